"""
Retrieval Orchestrator

Routes a question to one of three outcomes:

    START -> EXPAND -> QA_SEARCH -> INSTANT
                                 -> DOC_SEARCH -> SYNTHESIZE
                                               -> FALLBACK

- INSTANT: a curated Q&A pair matched at >= instant_threshold; its answer
  is returned verbatim and documents are never searched
- SYNTHESIZE: document chunks matched at >= fallback_threshold; the LLM
  writes an answer from them
- FALLBACK: nothing confident; a canned contact message by category

Routing (retrieve) is separate from rendering (answer / streaming) so the
server can deliver the same decision as one JSON body or as a stream.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from ..common.audience import Audience
from ..common.config import RetrieverConfig, ContactConfig
from ..common.errors import InvalidRequestError
from ..common.llm_client import EffortTier
from ..common.schemas import SearchType
from ..common.vector_store import QAMatch
from .fallback import QuestionCategory, categorize_question, fallback_message
from .query_expander import QueryExpander, normalize_question
from .searcher import Searcher, RetrievalResult
from .synthesizer import Synthesizer, select_effort

logger = logging.getLogger("huddle.retriever.orchestrator")


class Route(str, Enum):
    INSTANT = "instant"
    SYNTHESIZE = "synthesize"
    FALLBACK = "fallback"


_SEARCH_TYPES = {
    Route.INSTANT: SearchType.QA_PAIR,
    Route.SYNTHESIZE: SearchType.RAG,
    Route.FALLBACK: SearchType.FALLBACK,
}


@dataclass
class RetrievalDecision:
    """Outcome of routing, before any text is generated"""
    question: str
    audience: Audience
    route: Route
    variations: List[str] = field(default_factory=list)
    qa_match: Optional[QAMatch] = None
    chunks: List[RetrievalResult] = field(default_factory=list)
    confidence: float = 0.0
    effort: Optional[EffortTier] = None
    fallback_message: Optional[str] = None
    category: Optional[QuestionCategory] = None
    started_at: float = field(default_factory=time.monotonic, repr=False)

    @property
    def search_type(self) -> SearchType:
        return _SEARCH_TYPES[self.route]

    @property
    def contexts(self) -> List[str]:
        return [c.content for c in self.chunks]

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)

    def sources(self) -> List[Dict[str, Any]]:
        if self.route == Route.INSTANT and self.qa_match is not None:
            return [{
                "type": SearchType.QA_PAIR.value,
                "question": self.qa_match.question,
                "category": self.qa_match.category,
                "similarity": self.qa_match.similarity,
            }]
        if self.route == Route.SYNTHESIZE:
            return [c.to_source() for c in self.chunks]
        return []

    def chunk_metadata(self) -> Dict[str, Any]:
        """
        Feedback metadata. On the instant route the single id and score are
        the matched Q&A pair's; only document chunks carry a partition.
        """
        return {
            "chunk_ids": [c.source_id for c in self.chunks],
            "chunk_scores": [c.score for c in self.chunks],
            "chunk_sources": [c.partition.value for c in self.chunks if c.partition is not None],
            "search_type": self.search_type.value,
            "confidence_score": self.confidence,
        }


@dataclass
class AnswerPayload:
    """Rendered answer as returned to the caller"""
    id: str
    question: str
    answer: str
    sources: List[Dict[str, Any]]
    confidence: float
    created_at: str
    route: Route
    effort: Optional[EffortTier] = None
    follow_up_questions: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "question": self.question,
            "answer": self.answer,
            "sources": self.sources,
            "confidence": self.confidence,
            "created_at": self.created_at,
            "route": self.route.value,
            "effort": self.effort.value if self.effort else None,
            "follow_up_questions": list(self.follow_up_questions),
            "metadata": dict(self.metadata),
        }


class RetrievalOrchestrator:
    """
    Question -> RetrievalDecision -> AnswerPayload.

    Retrieval failures degrade to fewer candidates and, at worst, FALLBACK.
    Only malformed input (InvalidRequestError) and generation failures on
    the SYNTHESIZE path (GenerationError) reach the caller.
    """

    def __init__(
        self,
        searcher: Searcher,
        synthesizer: Synthesizer,
        expander: Optional[QueryExpander] = None,
        config: Optional[RetrieverConfig] = None,
        contact: Optional[ContactConfig] = None,
    ):
        self._config = config or RetrieverConfig()
        self._searcher = searcher
        self._synthesizer = synthesizer
        self._expander = expander or QueryExpander(max_variations=self._config.max_variations)
        self._contact = contact or ContactConfig()

    @property
    def synthesizer(self) -> Synthesizer:
        return self._synthesizer

    async def retrieve(
        self,
        question: Optional[str],
        audience: Union[Audience, str, None] = Audience.PARENT,
    ) -> RetrievalDecision:
        """
        Route a question.

        Raises:
            InvalidRequestError: blank question or unsupported audience
        """
        started_at = time.monotonic()
        if isinstance(audience, Audience):
            audience = Audience.for_query(audience.value)
        else:
            audience = Audience.for_query(audience)

        normalized = normalize_question(question)
        if not normalized.rstrip("?"):
            raise InvalidRequestError("Question is required", code="missing_question")

        cfg = self._config
        variations = self._expander.expand(normalized)
        embeddings = await self._searcher.embed_variations(variations)

        qa_match = None
        if embeddings:
            qa_match = await self._searcher.search_qa(embeddings, audience)

        if qa_match is not None and qa_match.similarity >= cfg.instant_threshold:
            logger.info("Instant answer from Q&A pair %s (%.3f)", qa_match.id, qa_match.similarity)
            return RetrievalDecision(
                question=normalized,
                audience=audience,
                route=Route.INSTANT,
                variations=variations,
                qa_match=qa_match,
                chunks=[RetrievalResult.from_qa_match(qa_match)],
                confidence=qa_match.similarity,
                started_at=started_at,
            )

        chunks: List[RetrievalResult] = []
        if embeddings:
            chunks = await self._searcher.search_documents(embeddings, audience, normalized)
        top_confidence = chunks[0].score if chunks else 0.0

        if top_confidence < cfg.fallback_threshold:
            category = categorize_question(normalized)
            logger.info(
                "Fallback (%s): top confidence %.3f from %d chunk(s)",
                category.value, top_confidence, len(chunks),
            )
            return RetrievalDecision(
                question=normalized,
                audience=audience,
                route=Route.FALLBACK,
                variations=variations,
                qa_match=qa_match,
                confidence=0.0,
                fallback_message=fallback_message(normalized, audience, self._contact),
                category=category,
                started_at=started_at,
            )

        effort = select_effort(
            len(chunks),
            top_confidence,
            chunk_count_threshold=cfg.effort_chunk_count,
            confidence_threshold=cfg.effort_confidence_threshold,
        )
        logger.info(
            "Synthesizing from %d chunk(s), top %.3f, effort=%s",
            len(chunks), top_confidence, effort.value,
        )
        return RetrievalDecision(
            question=normalized,
            audience=audience,
            route=Route.SYNTHESIZE,
            variations=variations,
            qa_match=qa_match,
            chunks=chunks,
            confidence=top_confidence,
            effort=effort,
            started_at=started_at,
        )

    async def answer(
        self,
        question: Optional[str],
        audience: Union[Audience, str, None] = Audience.PARENT,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> AnswerPayload:
        """
        Route and render a complete answer.

        ``history`` holds earlier turns of the conversation ({role, content},
        oldest first). It shapes the synthesized answer and follow-ups only;
        routing looks at the question alone.

        Raises:
            InvalidRequestError: blank question or unsupported audience
            GenerationError: the LLM failed on the SYNTHESIZE path
        """
        decision = await self.retrieve(question, audience)

        if decision.route == Route.INSTANT:
            return self.build_payload(decision, decision.qa_match.answer)
        if decision.route == Route.FALLBACK:
            return self.build_payload(decision, decision.fallback_message)

        text = await asyncio.to_thread(
            self._synthesizer.synthesize,
            decision.question,
            decision.contexts,
            decision.audience,
            decision.effort,
            history,
        )
        followups = await self.followups_for(decision, text, history)
        return self.build_payload(decision, text, followups)

    async def followups_for(
        self,
        decision: RetrievalDecision,
        answer_text: str,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> List[str]:
        """Follow-up suggestions for synthesized answers when enabled"""
        if decision.route != Route.SYNTHESIZE or not self._config.followups_enabled:
            return []
        return await asyncio.to_thread(
            self._synthesizer.suggest_followups,
            decision.question,
            answer_text,
            decision.audience,
            history,
        )

    def build_payload(
        self,
        decision: RetrievalDecision,
        answer_text: str,
        followups: Optional[List[str]] = None,
    ) -> AnswerPayload:
        metadata = decision.chunk_metadata()
        metadata["response_time_ms"] = decision.elapsed_ms
        metadata["model_used"] = (
            self._synthesizer.model_for(decision.effort)
            if decision.route == Route.SYNTHESIZE else None
        )
        return AnswerPayload(
            id=str(uuid.uuid4()),
            question=decision.question,
            answer=answer_text,
            sources=decision.sources(),
            confidence=decision.confidence,
            created_at=datetime.now(timezone.utc).isoformat(),
            route=decision.route,
            effort=decision.effort,
            follow_up_questions=followups or [],
            metadata=metadata,
        )
