"""
Persisted Records

Q&A pairs, documents, document chunks and feedback. The embedding of a pair
or chunk is computed from its text and stored alongside it; a record without
an embedding is never searched.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional
from pydantic import BaseModel, Field
from enum import Enum

from ..audience import Audience, Partition


# ============================================================================
# Enums
# ============================================================================

class DocType(str, Enum):
    """Kind of uploaded document"""
    HANDBOOK = "handbook"
    NEWSLETTER = "newsletter"
    MINUTES = "minutes"
    SCHEDULE = "schedule"
    POLICY = "policy"
    TRANSCRIPT = "transcript"
    DOCUMENT = "document"


class FeedbackValue(str, Enum):
    UP = "up"
    DOWN = "down"


class SearchType(str, Enum):
    """Which path produced the answer being rated"""
    QA_PAIR = "qa_pair"
    RAG = "rag"
    FALLBACK = "fallback"


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Records
# ============================================================================

class QAPair(BaseModel):
    """Curated question/answer pair written by an administrator"""
    id: str = Field(default_factory=_new_id)
    question: str
    answer: str
    audience: Audience = Audience.PARENT
    category: str = "general_sales"
    embedding: Optional[List[float]] = Field(default=None, repr=False)
    created_at: datetime = Field(default_factory=_now)

    @property
    def is_searchable(self) -> bool:
        return bool(self.embedding)

    @property
    def public_id(self) -> str:
        return f"qa_{self.id}"

    def to_api(self) -> dict:
        data = self.model_dump(mode="json", exclude={"embedding"})
        data["id"] = self.public_id
        data["has_embedding"] = self.is_searchable
        return data


class Document(BaseModel):
    """An uploaded document. Owns its chunks."""
    id: str = Field(default_factory=_new_id)
    filename: str
    doc_type: DocType = DocType.DOCUMENT
    partition: Partition = Partition.PARENT
    idempotency_key: str
    uploaded_at: datetime = Field(default_factory=_now)


class DocumentChunk(BaseModel):
    """Fixed-size slice of a document, embedded independently"""
    id: str = Field(default_factory=_new_id)
    document_id: str
    partition: Partition
    chunk_index: int
    content: str
    embedding: Optional[List[float]] = Field(default=None, repr=False)
    page_number: Optional[int] = None
    audio_timestamp: Optional[float] = None


class FeedbackRecord(BaseModel):
    """Thumbs up/down on an answer, kept for offline quality analysis"""
    id: str = Field(default_factory=_new_id)
    question: str
    answer: str = Field(max_length=1000)
    audience: Audience = Audience.PARENT
    feedback: FeedbackValue
    chunk_ids: List[str] = Field(default_factory=list)
    chunk_scores: List[float] = Field(default_factory=list)
    chunk_sources: List[Partition] = Field(default_factory=list)
    search_type: Optional[SearchType] = None
    confidence_score: Optional[float] = None
    response_time_ms: Optional[int] = None
    model_used: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
