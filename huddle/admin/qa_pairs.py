"""
Q&A Pair Service

Administrator-maintained question/answer pairs. The question is embedded on
create, and again on update only when the question text changes. A pair is
searchable only once it has an embedding.

Public ids carry a "qa_" prefix; the prefix is optional on lookup.
"""

import logging
from typing import Any, Dict, List, Optional

from ..common.audience import Audience
from ..common.embedding_service import EmbeddingService
from ..common.errors import InvalidRequestError, NotFoundError
from ..common.schemas import QAPair
from ..common.vector_store import VectorStore

logger = logging.getLogger("huddle.admin.qa_pairs")

QA_ID_PREFIX = "qa_"
DEFAULT_CATEGORY = "general_sales"


def strip_prefix(pair_id: str) -> str:
    if pair_id.startswith(QA_ID_PREFIX):
        return pair_id[len(QA_ID_PREFIX):]
    return pair_id


def parse_audience_tag(value: Optional[str]) -> Audience:
    """Audience tag for a pair: parent, coach or both (default parent)"""
    if not value:
        return Audience.PARENT
    try:
        return Audience(value)
    except ValueError:
        raise InvalidRequestError(
            "Audience must be parent, coach, or both",
            code="invalid_audience",
        )


class QAPairService:
    """CRUD over curated Q&A pairs with embedding maintenance"""

    def __init__(self, store: VectorStore, embedding_service: EmbeddingService):
        self._store = store
        self._embedding = embedding_service

    def create(
        self,
        question: Optional[str],
        answer: Optional[str],
        audience: Optional[str] = None,
        category: Optional[str] = None,
    ) -> QAPair:
        """
        Create and embed a pair.

        Raises:
            InvalidRequestError: missing question/answer or bad audience
        """
        if not question or not question.strip() or not answer or not answer.strip():
            raise InvalidRequestError("Question and answer are required", code="missing_fields")
        tag = parse_audience_tag(audience)

        embedding = self._embedding.embed_single(question.strip())
        pair = QAPair(
            question=question.strip(),
            answer=answer.strip(),
            audience=tag,
            category=category or DEFAULT_CATEGORY,
            embedding=embedding,
        )
        self._store.add_qa_pair(pair)
        logger.info("Created Q&A pair %s (%s)", pair.id, tag.value)
        return pair

    def get(self, pair_id: str) -> QAPair:
        pair = self._store.get_qa_pair(strip_prefix(pair_id))
        if pair is None:
            raise NotFoundError(f"Q&A pair not found: {pair_id}")
        return pair

    def update(
        self,
        pair_id: str,
        question: Optional[str] = None,
        answer: Optional[str] = None,
        audience: Optional[str] = None,
        category: Optional[str] = None,
    ) -> QAPair:
        """Apply a partial update. Re-embeds only if the question changed."""
        pair = self.get(pair_id)
        changes: Dict[str, Any] = {}

        if question is not None:
            if not question.strip():
                raise InvalidRequestError("Question cannot be empty", code="missing_fields")
            if question.strip() != pair.question:
                changes["question"] = question.strip()
                changes["embedding"] = self._embedding.embed_single(question.strip())
        if answer is not None:
            if not answer.strip():
                raise InvalidRequestError("Answer cannot be empty", code="missing_fields")
            changes["answer"] = answer.strip()
        if audience is not None:
            changes["audience"] = parse_audience_tag(audience)
        if category is not None:
            changes["category"] = category

        if not changes:
            return pair

        updated = pair.model_copy(update=changes)
        self._store.update_qa_pair(updated)
        logger.info(
            "Updated Q&A pair %s (%s)%s",
            updated.id,
            ", ".join(sorted(k for k in changes if k != "embedding")),
            " with new embedding" if "embedding" in changes else "",
        )
        return updated

    def delete(self, pair_id: str) -> None:
        if not self._store.delete_qa_pair(strip_prefix(pair_id)):
            raise NotFoundError(f"Q&A pair not found: {pair_id}")
        logger.info("Deleted Q&A pair %s", strip_prefix(pair_id))

    def list(
        self,
        audience: Optional[str] = None,
        category: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """
        Page of pairs, newest first.

        Filtering by parent or coach also returns pairs tagged both.
        """
        if limit < 1 or offset < 0:
            raise InvalidRequestError("limit must be positive and offset non-negative")
        tag = parse_audience_tag(audience) if audience else None
        pairs, total = self._store.list_qa_pairs(tag, category or None, limit, offset)
        return {
            "data": [p.to_api() for p in pairs],
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "has_more": total > offset + limit,
            },
        }

    def reembed_missing(self, dry_run: bool = False, page_size: int = 100) -> List[str]:
        """
        Embed every pair that has no embedding.

        Returns:
            Ids of the pairs that were (or, with dry_run, would be) embedded
        """
        missing = []
        offset = 0
        while True:
            pairs, total = self._store.list_qa_pairs(limit=page_size, offset=offset)
            missing.extend(p for p in pairs if not p.is_searchable)
            offset += page_size
            if offset >= total or not pairs:
                break

        fixed = []
        for pair in missing:
            if not dry_run:
                embedding = self._embedding.embed_single(pair.question)
                self._store.update_qa_pair(pair.model_copy(update={"embedding": embedding}))
            fixed.append(pair.id)
        logger.info("%s %d Q&A pair(s) without embeddings", "Found" if dry_run else "Embedded", len(fixed))
        return fixed
