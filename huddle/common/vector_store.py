"""
Vector Store

Two search shapes over two tiers:
- Q&A tier: curated pairs filtered by audience (pairs tagged "both" match
  either audience)
- Document tier: chunks partitioned into parent / coach / shared

Plus the admin-side record keeping (pairs, documents, chunks, feedback).
InMemoryVectorStore keeps everything in process and ranks with numpy; the
Postgres/pgvector backend lives in pg_store.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from .audience import Audience, Partition
from .embedding_service import batch_cosine_similarity
from .schemas import QAPair, Document, DocumentChunk, FeedbackRecord


@dataclass
class QAMatch:
    """A Q&A pair returned by similarity search"""
    id: str
    question: str
    answer: str
    category: str
    audience: Audience
    similarity: float


@dataclass
class ChunkMatch:
    """A document chunk returned by similarity search"""
    chunk_id: str
    document_id: str
    content: str
    similarity: float
    partition: Partition
    page_number: Optional[int] = None


class VectorStore(ABC):
    """Storage contract used by the retriever and the admin services"""

    # --- search -------------------------------------------------------------

    @abstractmethod
    def search_qa(
        self,
        embedding: List[float],
        audience: Audience,
        top_k: int = 1,
        min_similarity: float = 0.0,
    ) -> List[QAMatch]:
        """Nearest Q&A pairs visible to ``audience``, best first"""

    @abstractmethod
    def search_docs(
        self,
        embedding: List[float],
        partition: Partition,
        top_k: int = 2,
        min_similarity: float = 0.0,
    ) -> List[ChunkMatch]:
        """Nearest chunks stored in ``partition``, best first"""

    # --- Q&A pairs ----------------------------------------------------------

    @abstractmethod
    def add_qa_pair(self, pair: QAPair) -> QAPair: ...

    @abstractmethod
    def get_qa_pair(self, pair_id: str) -> Optional[QAPair]: ...

    @abstractmethod
    def update_qa_pair(self, pair: QAPair) -> QAPair: ...

    @abstractmethod
    def delete_qa_pair(self, pair_id: str) -> bool: ...

    @abstractmethod
    def list_qa_pairs(
        self,
        audience: Optional[Audience] = None,
        category: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[QAPair], int]:
        """Page of pairs (newest first) and the total matching count"""

    # --- documents ----------------------------------------------------------

    @abstractmethod
    def add_document(self, document: Document) -> Document: ...

    @abstractmethod
    def get_document(self, document_id: str) -> Optional[Document]: ...

    @abstractmethod
    def find_document_by_key(self, partition: Partition, idempotency_key: str) -> Optional[Document]: ...

    @abstractmethod
    def list_documents(self) -> List[Document]:
        """All documents across partitions, newest first"""

    @abstractmethod
    def delete_document(self, document_id: str) -> Optional[Document]:
        """Delete a document and its chunks. Returns the deleted document."""

    @abstractmethod
    def add_chunks(self, chunks: List[DocumentChunk]) -> int: ...

    @abstractmethod
    def count_chunks(self, document_id: str) -> int: ...

    # --- feedback -----------------------------------------------------------

    @abstractmethod
    def append_feedback(self, record: FeedbackRecord) -> FeedbackRecord: ...


class InMemoryVectorStore(VectorStore):
    """
    Process-local store for single-instance deployments and tests.

    Similarity is cosine, computed per query over the eligible rows only, so
    audience filtering happens before ranking rather than after it.
    """

    def __init__(self, dimensions: Optional[int] = None):
        self._dimensions = dimensions
        self._qa_pairs: Dict[str, QAPair] = {}
        self._documents: Dict[str, Document] = {}
        self._chunks: Dict[str, DocumentChunk] = {}
        self._feedback: List[FeedbackRecord] = []
        self._lock = threading.RLock()

    @property
    def feedback(self) -> List[FeedbackRecord]:
        return list(self._feedback)

    def _check_dimensions(self, embedding: Optional[List[float]]) -> None:
        if embedding is None or self._dimensions is None:
            return
        if len(embedding) != self._dimensions:
            raise ValueError(
                f"Vector dimension mismatch: expected {self._dimensions}, got {len(embedding)}"
            )

    @staticmethod
    def _rank(query: List[float], embeddings: List[List[float]], top_k: int, min_similarity: float):
        """Indices and scores of the best rows, highest first, stable on ties"""
        if not embeddings:
            return []
        similarities = batch_cosine_similarity(query, np.array(embeddings, dtype=float))
        order = np.argsort(-similarities, kind="stable")
        ranked = []
        for idx in order:
            score = float(similarities[idx])
            if score < min_similarity:
                break
            ranked.append((int(idx), score))
            if len(ranked) >= top_k:
                break
        return ranked

    # --- search -------------------------------------------------------------

    def search_qa(self, embedding, audience, top_k=1, min_similarity=0.0):
        with self._lock:
            eligible = [
                p for p in self._qa_pairs.values()
                if p.is_searchable and p.audience.visible_to(audience)
            ]
        ranked = self._rank(embedding, [p.embedding for p in eligible], top_k, min_similarity)
        return [
            QAMatch(
                id=eligible[idx].id,
                question=eligible[idx].question,
                answer=eligible[idx].answer,
                category=eligible[idx].category,
                audience=eligible[idx].audience,
                similarity=score,
            )
            for idx, score in ranked
        ]

    def search_docs(self, embedding, partition, top_k=2, min_similarity=0.0):
        with self._lock:
            eligible = [
                c for c in self._chunks.values()
                if c.embedding and c.partition == partition
            ]
        ranked = self._rank(embedding, [c.embedding for c in eligible], top_k, min_similarity)
        return [
            ChunkMatch(
                chunk_id=eligible[idx].id,
                document_id=eligible[idx].document_id,
                content=eligible[idx].content,
                similarity=score,
                partition=eligible[idx].partition,
                page_number=eligible[idx].page_number,
            )
            for idx, score in ranked
        ]

    # --- Q&A pairs ----------------------------------------------------------

    def add_qa_pair(self, pair):
        self._check_dimensions(pair.embedding)
        with self._lock:
            self._qa_pairs[pair.id] = pair
        return pair

    def get_qa_pair(self, pair_id):
        return self._qa_pairs.get(pair_id)

    def update_qa_pair(self, pair):
        self._check_dimensions(pair.embedding)
        with self._lock:
            if pair.id not in self._qa_pairs:
                raise KeyError(pair.id)
            self._qa_pairs[pair.id] = pair
        return pair

    def delete_qa_pair(self, pair_id):
        with self._lock:
            return self._qa_pairs.pop(pair_id, None) is not None

    def list_qa_pairs(self, audience=None, category=None, limit=50, offset=0):
        with self._lock:
            pairs = list(self._qa_pairs.values())
        if audience is not None:
            pairs = [p for p in pairs if p.audience in (audience, Audience.BOTH)]
        if category is not None:
            pairs = [p for p in pairs if p.category == category]
        pairs.sort(key=lambda p: p.created_at, reverse=True)
        return pairs[offset:offset + limit], len(pairs)

    # --- documents ----------------------------------------------------------

    def add_document(self, document):
        with self._lock:
            self._documents[document.id] = document
        return document

    def get_document(self, document_id):
        return self._documents.get(document_id)

    def find_document_by_key(self, partition, idempotency_key):
        with self._lock:
            for doc in self._documents.values():
                if doc.partition == partition and doc.idempotency_key == idempotency_key:
                    return doc
        return None

    def list_documents(self):
        with self._lock:
            docs = list(self._documents.values())
        return sorted(docs, key=lambda d: d.uploaded_at, reverse=True)

    def delete_document(self, document_id):
        with self._lock:
            doc = self._documents.pop(document_id, None)
            if doc is None:
                return None
            for chunk_id in [c.id for c in self._chunks.values() if c.document_id == document_id]:
                del self._chunks[chunk_id]
        return doc

    def add_chunks(self, chunks):
        with self._lock:
            for chunk in chunks:
                doc = self._documents.get(chunk.document_id)
                if doc is None:
                    raise KeyError(f"Unknown document: {chunk.document_id}")
                if chunk.partition != doc.partition:
                    raise ValueError(
                        f"Chunk partition {chunk.partition.value} does not match "
                        f"document partition {doc.partition.value}"
                    )
                self._check_dimensions(chunk.embedding)
            # All or nothing
            for chunk in chunks:
                self._chunks[chunk.id] = chunk
        return len(chunks)

    def count_chunks(self, document_id):
        with self._lock:
            return sum(1 for c in self._chunks.values() if c.document_id == document_id)

    # --- feedback -----------------------------------------------------------

    def append_feedback(self, record):
        with self._lock:
            self._feedback.append(record)
        return record
