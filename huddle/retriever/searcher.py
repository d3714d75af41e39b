"""
Searcher

Two-tier similarity search over the vector store:
- Q&A tier: curated pairs, best single match across all query variations
- Document tier: the audience's partition plus the shared partition,
  pooled across variations, deduplicated, keyword-boosted and ranked

Failures of one variation or one partition are logged and contribute no
candidates; they never fail the request.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from ..common.audience import Audience, Partition
from ..common.config import RetrieverConfig
from ..common.embedding_service import EmbeddingService
from ..common.vector_store import VectorStore, QAMatch, ChunkMatch
from .keyword_scorer import keyword_overlap, boost

logger = logging.getLogger("huddle.retriever.searcher")

ORIGIN_QA_PAIR = "qa_pair"
ORIGIN_DOCUMENT = "document"


@dataclass
class RetrievalResult:
    """A ranked candidate from either tier"""
    source_id: str
    content: str
    similarity: float
    keyword_score: Optional[float] = None
    boosted_similarity: Optional[float] = None
    page_number: Optional[int] = None
    origin: str = ORIGIN_DOCUMENT
    document_id: Optional[str] = None
    partition: Optional[Partition] = None

    @classmethod
    def from_qa_match(cls, match: QAMatch) -> "RetrievalResult":
        return cls(
            source_id=match.id,
            content=match.answer,
            similarity=match.similarity,
            origin=ORIGIN_QA_PAIR,
        )

    @property
    def score(self) -> float:
        """Ranking score: boosted when available, raw otherwise"""
        if self.boosted_similarity is not None:
            return self.boosted_similarity
        return self.similarity

    def to_source(self) -> dict:
        return {
            "chunk_id": self.source_id,
            "document_id": self.document_id,
            "content": self.content,
            "similarity": self.score,
            "page_number": self.page_number,
        }


class Searcher:
    """
    Runs the Q&A and document searches for a set of query variations.

    Store and embedding calls are synchronous; they are pushed to worker
    threads and gathered so all variations are in flight at once.
    """

    def __init__(
        self,
        store: VectorStore,
        embedding_service: EmbeddingService,
        config: Optional[RetrieverConfig] = None,
    ):
        self._store = store
        self._embedding = embedding_service
        self._config = config or RetrieverConfig()

    async def embed_variations(self, variations: List[str]) -> List[List[float]]:
        """
        Embed every variation concurrently.

        Returns:
            Embeddings for the variations that succeeded, in variation order
        """
        if not self._embedding.is_available:
            logger.warning("Embedding service unavailable, skipping search")
            return []

        async def _embed(text: str) -> Optional[List[float]]:
            try:
                return await asyncio.to_thread(self._embedding.embed_single, text)
            except Exception as e:
                logger.warning("Embedding failed for variation %r: %s", text, e)
                return None

        embeddings = await asyncio.gather(*[_embed(v) for v in variations])
        return [e for e in embeddings if e is not None]

    async def search_qa(self, embeddings: List[List[float]], audience: Audience) -> Optional[QAMatch]:
        """
        Best Q&A pair visible to the audience across all embeddings.

        Ties keep the first variation's match.
        """
        cfg = self._config

        async def _lookup(embedding: List[float]) -> List[QAMatch]:
            try:
                return await asyncio.to_thread(
                    self._store.search_qa,
                    embedding,
                    audience,
                    1,
                    cfg.qa_search_floor,
                )
            except Exception as e:
                logger.warning("Q&A search failed: %s", e)
                return []

        results = await asyncio.gather(*[_lookup(e) for e in embeddings])

        best: Optional[QAMatch] = None
        for matches in results:
            if not matches:
                continue
            candidate = matches[0]
            if best is None or candidate.similarity > best.similarity:
                best = candidate
        return best

    async def search_documents(
        self,
        embeddings: List[List[float]],
        audience: Audience,
        question: str,
    ) -> List[RetrievalResult]:
        """
        Ranked chunks from the audience partition and the shared partition.

        Args:
            embeddings: One embedding per query variation
            audience: The asking audience (parent or coach)
            question: Normalized original question, used for keyword boosting

        Returns:
            At most ``max_chunks`` results, highest boosted similarity first
        """
        cfg = self._config
        own_partition = Partition.for_audience(audience)

        async def _lookup(embedding: List[float], partition: Partition, top_k: int) -> List[ChunkMatch]:
            try:
                return await asyncio.to_thread(
                    self._store.search_docs,
                    embedding,
                    partition,
                    top_k,
                    cfg.doc_search_floor,
                )
            except Exception as e:
                logger.warning("Document search failed (%s): %s", partition.value, e)
                return []

        lookups = []
        for embedding in embeddings:
            lookups.append(_lookup(embedding, own_partition, cfg.audience_top_k))
            lookups.append(_lookup(embedding, Partition.SHARED, cfg.shared_top_k))
        batches = await asyncio.gather(*lookups)

        # Dedupe by chunk id, keeping the highest raw similarity
        pooled = {}
        for batch in batches:
            for match in batch:
                if not match.partition.visible_to(audience):
                    logger.error("Dropping chunk %s from partition %s", match.chunk_id, match.partition.value)
                    continue
                current = pooled.get(match.chunk_id)
                if current is None or match.similarity > current.similarity:
                    pooled[match.chunk_id] = match

        results = []
        for match in pooled.values():
            kw_score = keyword_overlap(question, match.content)
            results.append(RetrievalResult(
                source_id=match.chunk_id,
                content=match.content,
                similarity=match.similarity,
                keyword_score=kw_score,
                boosted_similarity=boost(match.similarity, kw_score, cfg.keyword_boost_weight),
                page_number=match.page_number,
                origin=ORIGIN_DOCUMENT,
                document_id=match.document_id,
                partition=match.partition,
            ))

        results.sort(key=lambda r: r.boosted_similarity, reverse=True)
        return results[: cfg.max_chunks]
