"""
Tests for Searcher

Q&A tier best-match selection, document tier pooling/dedupe/boosting, and
per-variation failure isolation.
"""

import pytest
from unittest.mock import Mock


def _chunk(chunk_id, similarity, partition, content="unrelated words here"):
    from huddle.common.vector_store import ChunkMatch
    return ChunkMatch(
        chunk_id=chunk_id,
        document_id=f"doc-{chunk_id}",
        content=content,
        similarity=similarity,
        partition=partition,
    )


def _qa(pair_id, similarity):
    from huddle.common.audience import Audience
    from huddle.common.vector_store import QAMatch
    return QAMatch(
        id=pair_id,
        question=f"question {pair_id}",
        answer=f"answer {pair_id}",
        category="general_sales",
        audience=Audience.PARENT,
        similarity=similarity,
    )


class TestRetrievalResult:
    def test_from_qa_match(self):
        from huddle.retriever.searcher import RetrievalResult

        result = RetrievalResult.from_qa_match(_qa("p1", 0.91))

        assert result.origin == "qa_pair"
        assert result.source_id == "p1"
        assert result.content == "answer p1"
        assert result.score == 0.91

    def test_score_prefers_boosted(self):
        from huddle.retriever.searcher import RetrievalResult

        result = RetrievalResult(source_id="c", content="x", similarity=0.5, boosted_similarity=0.6)

        assert result.origin == "document"
        assert result.score == 0.6
        assert result.to_source()["similarity"] == 0.6


class TestEmbedVariations:
    @pytest.mark.asyncio
    async def test_embeds_every_variation(self, embedder):
        from huddle.retriever.searcher import Searcher

        searcher = Searcher(Mock(), embedder)
        embeddings = await searcher.embed_variations(["a", "b", "c"])

        assert len(embeddings) == 3
        assert embedder.embed_single.call_count == 3

    @pytest.mark.asyncio
    async def test_failed_variation_is_skipped(self, embedder, caplog):
        import logging
        from huddle.retriever.searcher import Searcher

        def embed(text):
            if text == "bad":
                raise RuntimeError("rate limited")
            return [1.0, 0.0, 0.0]

        embedder.embed_single.side_effect = embed
        searcher = Searcher(Mock(), embedder)

        with caplog.at_level(logging.WARNING, logger="huddle.retriever.searcher"):
            embeddings = await searcher.embed_variations(["good", "bad", "also good"])

        assert len(embeddings) == 2
        assert "Embedding failed" in caplog.text

    @pytest.mark.asyncio
    async def test_unavailable_service(self, embedder):
        from huddle.retriever.searcher import Searcher

        embedder.is_available = False
        searcher = Searcher(Mock(), embedder)

        assert await searcher.embed_variations(["a"]) == []
        embedder.embed_single.assert_not_called()


class TestSearchQA:
    @pytest.mark.asyncio
    async def test_best_across_variations(self, embedder):
        from huddle.common.audience import Audience
        from huddle.retriever.searcher import Searcher

        store = Mock()
        by_marker = {1.0: [_qa("a", 0.78)], 2.0: [_qa("b", 0.91)], 3.0: []}
        store.search_qa.side_effect = lambda emb, aud, k, floor: by_marker[emb[0]]
        searcher = Searcher(store, embedder)

        best = await searcher.search_qa([[1.0], [2.0], [3.0]], Audience.PARENT)

        assert best.id == "b"
        assert best.similarity == 0.91

    @pytest.mark.asyncio
    async def test_uses_search_floor_and_top_one(self, embedder):
        from huddle.common.audience import Audience
        from huddle.retriever.searcher import Searcher

        store = Mock()
        store.search_qa.return_value = []
        searcher = Searcher(store, embedder)

        assert await searcher.search_qa([[1.0]], Audience.COACH) is None
        store.search_qa.assert_called_once_with([1.0], Audience.COACH, 1, 0.75)

    @pytest.mark.asyncio
    async def test_ties_keep_first_seen(self, embedder):
        from huddle.common.audience import Audience
        from huddle.retriever.searcher import Searcher

        store = Mock()
        by_marker = {1.0: [_qa("first", 0.88)], 2.0: [_qa("second", 0.88)]}
        store.search_qa.side_effect = lambda emb, aud, k, floor: by_marker[emb[0]]
        searcher = Searcher(store, embedder)

        best = await searcher.search_qa([[1.0], [2.0]], Audience.PARENT)

        assert best.id == "first"

    @pytest.mark.asyncio
    async def test_store_error_is_isolated(self, embedder):
        from huddle.common.audience import Audience
        from huddle.retriever.searcher import Searcher

        def search(emb, aud, k, floor):
            if emb[0] == 1.0:
                raise ConnectionError("db down")
            return [_qa("ok", 0.8)]

        store = Mock()
        store.search_qa.side_effect = search
        searcher = Searcher(store, embedder)

        best = await searcher.search_qa([[1.0], [2.0]], Audience.PARENT)

        assert best.id == "ok"


class TestSearchDocuments:
    @pytest.mark.asyncio
    async def test_queries_own_and_shared_partitions(self, embedder):
        from huddle.common.audience import Audience, Partition
        from huddle.retriever.searcher import Searcher

        store = Mock()
        store.search_docs.return_value = []
        searcher = Searcher(store, embedder)

        await searcher.search_documents([[1.0]], Audience.COACH, "question")

        calls = {(c.args[1], c.args[2], c.args[3]) for c in store.search_docs.call_args_list}
        assert calls == {(Partition.COACH, 2, 0.4), (Partition.SHARED, 1, 0.4)}

    @pytest.mark.asyncio
    async def test_dedupe_keeps_highest_similarity(self, embedder):
        from huddle.common.audience import Audience, Partition
        from huddle.retriever.searcher import Searcher

        def search(emb, partition, k, floor):
            if partition == Partition.SHARED:
                return []
            sim = 0.6 if emb[0] == 1.0 else 0.72
            return [_chunk("c1", sim, Partition.PARENT)]

        store = Mock()
        store.search_docs.side_effect = search
        searcher = Searcher(store, embedder)

        results = await searcher.search_documents([[1.0], [2.0]], Audience.PARENT, "xyz")

        assert len(results) == 1
        assert results[0].similarity == 0.72
        assert results[0].boosted_similarity == 0.72

    @pytest.mark.asyncio
    async def test_keyword_boost_reorders(self, embedder):
        from huddle.common.audience import Audience, Partition
        from huddle.retriever.searcher import Searcher

        def search(emb, partition, k, floor):
            if partition == Partition.SHARED:
                return [_chunk("tuition", 0.50, Partition.SHARED, "Monthly tuition is $200.")]
            return [_chunk("vague", 0.55, Partition.PARENT, "Families are welcome here.")]

        store = Mock()
        store.search_docs.side_effect = search
        searcher = Searcher(store, embedder)

        results = await searcher.search_documents([[1.0]], Audience.PARENT, "What is the monthly tuition?")

        assert [r.source_id for r in results] == ["tuition", "vague"]
        assert results[0].keyword_score == pytest.approx(2 / 3)
        assert results[0].boosted_similarity == pytest.approx(0.50 + 0.2 * 2 / 3)
        assert all(r.boosted_similarity <= 1.0 for r in results)

    @pytest.mark.asyncio
    async def test_keeps_top_five(self, embedder):
        from huddle.common.audience import Audience, Partition
        from huddle.retriever.searcher import Searcher

        def search(emb, partition, k, floor):
            base = emb[0] * 0.05
            return [_chunk(f"{partition.value}-{emb[0]}", 0.4 + base, partition)]

        store = Mock()
        store.search_docs.side_effect = search
        searcher = Searcher(store, embedder)

        results = await searcher.search_documents([[1.0], [2.0], [3.0], [4.0]], Audience.PARENT, "q")

        assert len(results) == 5
        scores = [r.boosted_similarity for r in results]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_shared_partition_failure_is_isolated(self, embedder, caplog):
        import logging
        from huddle.common.audience import Audience, Partition
        from huddle.retriever.searcher import Searcher

        def search(emb, partition, k, floor):
            if partition == Partition.SHARED:
                raise TimeoutError("slow")
            return [_chunk("own", 0.7, Partition.PARENT)]

        store = Mock()
        store.search_docs.side_effect = search
        searcher = Searcher(store, embedder)

        with caplog.at_level(logging.WARNING, logger="huddle.retriever.searcher"):
            results = await searcher.search_documents([[1.0]], Audience.PARENT, "q")

        assert [r.source_id for r in results] == ["own"]
        assert "Document search failed (shared)" in caplog.text

    @pytest.mark.asyncio
    async def test_parent_never_sees_coach_chunks(self, embedder, vec_at):
        from huddle.common.audience import Audience, Partition
        from huddle.common.schemas import Document, DocumentChunk
        from huddle.common.vector_store import InMemoryVectorStore
        from huddle.retriever.searcher import Searcher

        store = InMemoryVectorStore()
        for partition, sim in ((Partition.COACH, 0.99), (Partition.PARENT, 0.6), (Partition.SHARED, 0.5)):
            doc = Document(filename=f"{partition.value}.txt", partition=partition, idempotency_key=partition.value)
            store.add_document(doc)
            store.add_chunks([DocumentChunk(
                document_id=doc.id,
                partition=partition,
                chunk_index=0,
                content=f"{partition.value} content",
                embedding=vec_at(sim),
            )])
        searcher = Searcher(store, embedder)

        results = await searcher.search_documents([[1.0, 0.0, 0.0]], Audience.PARENT, "anything")

        assert {r.partition for r in results} == {Partition.PARENT, Partition.SHARED}
