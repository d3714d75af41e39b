"""
Tests for the admin services

Q&A pair maintenance, document chunking and upload idempotency, and the
feedback log.
"""

import pytest


@pytest.fixture
def store():
    from huddle.common.vector_store import InMemoryVectorStore
    return InMemoryVectorStore()


class TestQAPairService:
    @pytest.fixture
    def service(self, store, embedder):
        from huddle.admin.qa_pairs import QAPairService
        return QAPairService(store, embedder)

    def test_create_embeds_question(self, service, embedder):
        pair = service.create("  What does it cost?  ", " $200 per month ", "both")

        assert pair.question == "What does it cost?"
        assert pair.answer == "$200 per month"
        assert pair.category == "general_sales"
        assert pair.is_searchable
        embedder.embed_single.assert_called_once_with("What does it cost?")

    @pytest.mark.parametrize("question,answer", [(None, "a"), ("q", ""), ("   ", "a")])
    def test_create_requires_question_and_answer(self, service, question, answer):
        from huddle.common.errors import InvalidRequestError

        with pytest.raises(InvalidRequestError) as exc_info:
            service.create(question, answer)
        assert exc_info.value.code == "missing_fields"

    def test_create_rejects_bad_audience(self, service):
        from huddle.common.errors import InvalidRequestError

        with pytest.raises(InvalidRequestError) as exc_info:
            service.create("q", "a", "staff")
        assert exc_info.value.code == "invalid_audience"

    def test_get_accepts_prefixed_id(self, service):
        pair = service.create("q", "a")

        assert service.get(pair.public_id).id == pair.id
        assert service.get(pair.id).id == pair.id

    def test_get_missing_raises(self, service):
        from huddle.common.errors import NotFoundError

        with pytest.raises(NotFoundError):
            service.get("qa_missing")

    def test_update_answer_keeps_embedding(self, service, embedder):
        pair = service.create("q", "old")
        embedder.embed_single.reset_mock()

        updated = service.update(pair.id, answer="new", category="fees")

        assert updated.answer == "new"
        assert updated.category == "fees"
        assert updated.embedding == pair.embedding
        embedder.embed_single.assert_not_called()

    def test_update_question_reembeds(self, service, embedder, store):
        pair = service.create("old question", "a")
        embedder.embed_single.reset_mock()
        embedder.embed_single.side_effect = lambda text: [0.0, 1.0, 0.0]

        service.update(pair.public_id, question="new question")

        embedder.embed_single.assert_called_once_with("new question")
        stored = store.get_qa_pair(pair.id)
        assert stored.question == "new question"
        assert stored.embedding == [0.0, 1.0, 0.0]

    def test_update_same_question_is_noop(self, service, embedder):
        pair = service.create("q", "a")
        embedder.embed_single.reset_mock()

        service.update(pair.id, question="q")

        embedder.embed_single.assert_not_called()

    def test_delete(self, service, store):
        from huddle.common.errors import NotFoundError
        pair = service.create("q", "a")

        service.delete(pair.public_id)

        assert store.get_qa_pair(pair.id) is None
        with pytest.raises(NotFoundError):
            service.delete(pair.id)

    def test_list_pagination(self, service):
        for i in range(3):
            service.create(f"q{i}", "a", "coach" if i == 0 else "parent")

        page = service.list(audience="parent", limit=1)

        assert page["pagination"] == {"total": 2, "limit": 1, "offset": 0, "has_more": True}
        assert page["data"][0]["id"].startswith("qa_")
        assert "embedding" not in page["data"][0]

    def test_reembed_missing(self, service, store, embedder):
        from huddle.common.schemas import QAPair
        bare = QAPair(question="legacy", answer="a")
        store.add_qa_pair(bare)
        service.create("fresh", "a")

        assert service.reembed_missing(dry_run=True) == [bare.id]
        assert not store.get_qa_pair(bare.id).is_searchable

        assert service.reembed_missing(page_size=1) == [bare.id]
        assert store.get_qa_pair(bare.id).is_searchable
        assert service.reembed_missing() == []


class TestDocType:
    @pytest.mark.parametrize("filename,expected", [
        ("Parent_Handbook_2025.docx", "handbook"),
        ("march-newsletter.pdf", "newsletter"),
        ("Board Meeting.txt", "minutes"),
        ("coach-call.mp3", "transcript"),
        ("schedule-handbook.pdf", "handbook"),
        ("fall_schedule.txt", "schedule"),
        ("refund policies.docx", "policy"),
        ("overview.pdf", "handbook"),
        ("overview.txt", "document"),
    ])
    def test_get_doc_type(self, filename, expected):
        from huddle.admin.documents import get_doc_type
        assert get_doc_type(filename).value == expected


class TestSplitText:
    def test_short_text_is_one_chunk(self):
        from unittest.mock import patch
        from huddle.admin.documents import split_text

        with patch("huddle.admin.documents._encoding") as encoding:
            assert split_text("  Practice is at 4pm.  ") == ["Practice is at 4pm."]
        encoding.assert_not_called()

    def test_empty_text(self):
        from huddle.admin.documents import split_text
        assert split_text("   ") == []

    def test_default_sizes_are_tokens(self):
        from huddle.admin.documents import split_text, token_length
        text = " ".join(["practice"] * 2000)

        chunks = split_text(text)

        assert len(chunks) > 1
        assert all(token_length(c) <= 512 for c in chunks)
        # 512 tokens of this text run well past 512 characters
        assert len(chunks[0]) > 512

    def test_chunks_overlap_and_respect_size(self):
        from huddle.admin.documents import split_text
        text = " ".join(f"word{i:04d}" for i in range(600))

        chunks = split_text(text, chunk_size=500, chunk_overlap=100, length_function=len)

        assert len(chunks) > 1
        assert all(len(c) <= 500 for c in chunks)
        assert chunks[0].split()[-1] in chunks[1]
        assert chunks[-1].endswith("word0599")

    def test_prefers_paragraph_breaks(self):
        from huddle.admin.documents import split_text
        text = ("a" * 300) + "\n\n" + ("b" * 300)

        chunks = split_text(text, chunk_size=400, chunk_overlap=50, length_function=len)

        assert chunks == ["a" * 300, "b" * 300]

    def test_overlap_must_be_smaller(self):
        from huddle.admin.documents import split_text
        with pytest.raises(ValueError):
            split_text("text", chunk_size=100, chunk_overlap=100)


class TestDocumentService:
    @pytest.fixture
    def service(self, store, embedder):
        from huddle.admin.documents import DocumentService
        return DocumentService(store, embedder, chunk_size=200, chunk_overlap=50, length_function=len)

    def test_upload_chunks_and_embeds(self, service, store, embedder):
        from huddle.common.audience import Partition
        text = " ".join(["Tuition is due on the first of each month."] * 20)

        result = service.upload("Parent Handbook.pdf", text, "shared", page_number=3)

        assert result.created
        assert result.chunk_count > 1
        assert result.document.partition == Partition.SHARED
        assert store.count_chunks(result.document.id) == result.chunk_count
        assert result.to_api()["embeddings_generated"] is True
        assert result.to_api()["doc_type"] == "handbook"
        matches = store.search_docs([1.0, 0.0, 0.0], Partition.SHARED, top_k=1)
        assert matches[0].page_number == 3

    def test_embeddings_are_batched(self, service, embedder):
        from huddle.admin import documents
        text = " ".join(f"w{i}" for i in range(10000))

        result = service.upload("big.txt", text)

        batch_sizes = [len(c.args[0]) for c in embedder.embed.call_args_list]
        assert max(batch_sizes) <= documents.EMBED_BATCH_SIZE
        assert sum(batch_sizes) == result.chunk_count

    def test_repeat_upload_is_idempotent(self, service, store):
        first = service.upload("faq.txt", "Camp starts in June.", "parent", idempotency_key="k1")
        second = service.upload("faq.txt", "Camp starts in June.", "parent", idempotency_key="k1")

        assert not second.created
        assert second.document.id == first.document.id
        assert second.chunk_count == 1
        assert "embeddings_generated" not in second.to_api()
        assert len(store.list_documents()) == 1

    def test_derived_key_is_idempotent(self, service, store):
        service.upload("faq.txt", "Camp starts in June.", "coach", size=20, modified_at="2025-01-01")
        again = service.upload("faq.txt", "Camp starts in June.", "coach", size=20, modified_at="2025-01-01")

        assert not again.created

    def test_same_key_in_another_partition_is_new(self, service):
        service.upload("faq.txt", "Camp starts in June.", "parent", idempotency_key="k1")
        other = service.upload("faq.txt", "Camp starts in June.", "coach", idempotency_key="k1")

        assert other.created

    def test_failed_chunk_write_can_be_retried(self, embedder):
        from huddle.admin.documents import DocumentService
        from huddle.common.vector_store import InMemoryVectorStore

        store = InMemoryVectorStore(dimensions=3)
        service = DocumentService(store, embedder, chunk_size=200, chunk_overlap=50, length_function=len)
        embedder.embed.side_effect = lambda texts: [[1.0, 0.0, 0.0, 0.0] for _ in texts]

        with pytest.raises(ValueError):
            service.upload("faq.txt", "Camp starts in June.", "parent", idempotency_key="k1")
        assert store.list_documents() == []

        embedder.embed.side_effect = lambda texts: [[1.0, 0.0, 0.0] for _ in texts]
        retry = service.upload("faq.txt", "Camp starts in June.", "parent", idempotency_key="k1")

        assert retry.created
        assert retry.chunk_count > 0
        assert store.count_chunks(retry.document.id) == retry.chunk_count

    def test_failed_chunk_write_is_logged(self, store, embedder, caplog):
        import logging
        from unittest.mock import Mock
        from huddle.admin.documents import DocumentService

        failing = Mock(wraps=store)
        failing.add_chunks.side_effect = ConnectionError("db down")
        service = DocumentService(failing, embedder, length_function=len)

        with caplog.at_level(logging.ERROR, logger="huddle.admin.documents"):
            with pytest.raises(ConnectionError):
                service.upload("faq.txt", "Camp starts in June.", "parent")

        failing.delete_document.assert_called_once()
        assert store.list_documents() == []
        assert "removing document" in caplog.text

    @pytest.mark.parametrize("filename,content,audience,code", [
        (None, "text", None, "file_required"),
        ("notes.xlsx", "text", None, "invalid_file_type"),
        ("notes", "text", None, "invalid_file_type"),
        ("notes.txt", "   ", None, "content_required"),
        ("notes.txt", "text", "both", "invalid_audience"),
    ])
    def test_upload_validation(self, service, filename, content, audience, code):
        from huddle.common.errors import InvalidRequestError

        with pytest.raises(InvalidRequestError) as exc_info:
            service.upload(filename, content, audience)
        assert exc_info.value.code == code

    def test_delete_cascades(self, service, store):
        from huddle.common.errors import NotFoundError
        result = service.upload("faq.txt", "Camp starts in June.")

        service.delete(result.document.id)

        assert store.count_chunks(result.document.id) == 0
        assert service.list() == []
        with pytest.raises(NotFoundError):
            service.delete(result.document.id)


class TestFeedbackLog:
    def test_record_truncates_answer(self, store):
        from huddle.admin.feedback import FeedbackLog, MAX_ANSWER_LENGTH

        record = FeedbackLog(store, default_model="gpt-5-mini").record(
            "q", "x" * 5000, "down",
            audience="coach",
            chunk_ids=["c1"],
            chunk_scores=[0.7],
            chunk_sources=["shared"],
            search_type="rag",
        )

        assert len(record.answer) == MAX_ANSWER_LENGTH
        assert record.model_used == "gpt-5-mini"
        assert record.search_type.value == "rag"
        assert store.feedback == [record]

    def test_missing_fields(self, store):
        from huddle.admin.feedback import FeedbackLog
        from huddle.common.errors import InvalidRequestError

        with pytest.raises(InvalidRequestError) as exc_info:
            FeedbackLog(store).record("q", "a", None)
        assert exc_info.value.code == "missing_fields"

    def test_invalid_feedback_value(self, store):
        from huddle.admin.feedback import FeedbackLog
        from huddle.common.errors import InvalidRequestError

        with pytest.raises(InvalidRequestError) as exc_info:
            FeedbackLog(store).record("q", "a", "meh")
        assert exc_info.value.code == "invalid_feedback"
        assert store.feedback == []
