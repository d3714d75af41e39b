"""Append-only answer feedback, kept for offline quality analysis."""

import logging
from typing import List, Optional

from ..common.audience import Audience, Partition
from ..common.errors import InvalidRequestError
from ..common.schemas import FeedbackRecord, FeedbackValue, SearchType
from ..common.vector_store import VectorStore

logger = logging.getLogger("huddle.admin.feedback")

MAX_ANSWER_LENGTH = 1000


def _parse_enum(enum_cls, value, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidRequestError(f"Invalid {field_name}: {value!r}", code=f"invalid_{field_name}")


class FeedbackLog:
    def __init__(self, store: VectorStore, default_model: Optional[str] = None):
        self._store = store
        self._default_model = default_model

    def record(
        self,
        question: Optional[str],
        answer: Optional[str],
        feedback: Optional[str],
        audience: Optional[str] = None,
        chunk_ids: Optional[List[str]] = None,
        chunk_scores: Optional[List[float]] = None,
        chunk_sources: Optional[List[str]] = None,
        search_type: Optional[str] = None,
        confidence_score: Optional[float] = None,
        response_time_ms: Optional[int] = None,
        model_used: Optional[str] = None,
    ) -> FeedbackRecord:
        if not question or not answer or not feedback:
            raise InvalidRequestError("Missing required fields", code="missing_fields")

        record = FeedbackRecord(
            question=question,
            answer=answer[:MAX_ANSWER_LENGTH],
            audience=_parse_enum(Audience, audience or Audience.PARENT.value, "audience"),
            feedback=_parse_enum(FeedbackValue, feedback, "feedback"),
            chunk_ids=list(chunk_ids or []),
            chunk_scores=list(chunk_scores or []),
            chunk_sources=[_parse_enum(Partition, s, "chunk_source") for s in (chunk_sources or [])],
            search_type=_parse_enum(SearchType, search_type, "search_type") if search_type else None,
            confidence_score=confidence_score,
            response_time_ms=response_time_ms,
            model_used=model_used or self._default_model,
        )
        self._store.append_feedback(record)
        logger.debug("Recorded %s feedback %s", record.feedback.value, record.id)
        return record
