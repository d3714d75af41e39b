"""
Huddle Server

FastAPI server answering parent and coach questions.

Endpoints:
- POST /api/q: Answer a question (JSON, or NDJSON stream)
- GET/POST /api/qa-pairs, GET/PATCH/DELETE /api/qa-pairs/{id}: Curated Q&A
- GET/POST /api/documents, DELETE /api/documents/{id}: Document library
- POST /api/feedback: Thumbs up/down on an answer
- GET /health: Health check

Pipeline for /api/q:
1. Rate limit by client address
2. Normalize, expand and embed the question
3. Instant answer from a curated pair, or
4. Search documents and synthesize, or
5. Return a category fallback
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Tuple

from dotenv import load_dotenv
from fastapi import FastAPI, Request, HTTPException, Header, Depends
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel
from starlette.concurrency import iterate_in_threadpool

from .admin import QAPairService, DocumentService, FeedbackLog
from .common.config import load_config, HuddleConfig
from .common.embedding_service import EmbeddingService
from .common.errors import InvalidRequestError, NotFoundError, GenerationError
from .common.llm_client import LLMClient
from .common.rate_limiter import RateLimiter, SlidingWindowRateLimiter
from .common.vector_store import VectorStore, InMemoryVectorStore
from .retriever import (
    QueryExpander, Searcher, Synthesizer, RetrievalOrchestrator, Route, conversation_history,
)

load_dotenv()

logger = logging.getLogger("huddle.server")

NDJSON_MEDIA_TYPE = "application/x-ndjson"
RETRY_AFTER_SECONDS = "5"


# Global state
config: Optional[HuddleConfig] = None
store: Optional[VectorStore] = None
orchestrator: Optional[RetrievalOrchestrator] = None
qa_service: Optional[QAPairService] = None
document_service: Optional[DocumentService] = None
feedback_log: Optional[FeedbackLog] = None
rate_limiter: Optional[RateLimiter] = None


def create_store(cfg: HuddleConfig) -> VectorStore:
    """Vector store for the configured backend"""
    if cfg.store.backend == "postgres":
        from .common.pg_store import PgVectorStore

        if not cfg.store.database_url:
            raise ValueError("DATABASE_URL is required for the postgres store backend")
        pg = PgVectorStore(cfg.store.database_url)
        pg.create_tables()
        return pg
    if cfg.store.backend != "memory":
        raise ValueError(f"Unknown store backend: {cfg.store.backend}")
    return InMemoryVectorStore(dimensions=cfg.embedding.dimensions)


def init_components(
    cfg: HuddleConfig,
    vector_store: Optional[VectorStore] = None,
    embedding_service: Optional[EmbeddingService] = None,
    llm_client: Optional[LLMClient] = None,
    limiter: Optional[RateLimiter] = None,
) -> None:
    """Wire the pipeline and admin services into module state"""
    global config, store, orchestrator, qa_service, document_service, feedback_log, rate_limiter

    config = cfg
    store = vector_store or create_store(cfg)
    embedding_service = embedding_service or EmbeddingService(
        api_key=cfg.llm.openai_api_key or None,
        model=cfg.embedding.model,
        dimensions=cfg.embedding.dimensions,
    )
    llm_client = llm_client or LLMClient.from_config(cfg.llm)

    synthesizer = Synthesizer(llm_client)
    orchestrator = RetrievalOrchestrator(
        searcher=Searcher(store, embedding_service, cfg.retriever),
        synthesizer=synthesizer,
        expander=QueryExpander(max_variations=cfg.retriever.max_variations),
        config=cfg.retriever,
        contact=cfg.contact,
    )
    qa_service = QAPairService(store, embedding_service)
    document_service = DocumentService(store, embedding_service)
    feedback_log = FeedbackLog(store, default_model=llm_client.model or None)
    rate_limiter = limiter or SlidingWindowRateLimiter(
        limit=cfg.rate_limit.limit,
        window_seconds=cfg.rate_limit.window_seconds,
    )

    logger.info(
        "Components ready (store=%s, embeddings=%s, llm=%s)",
        type(store).__name__,
        "on" if embedding_service.is_available else "off",
        llm_client.provider if llm_client.is_available else "off",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    logger.info("Starting up...")
    init_components(load_config())

    yield

    logger.info("Shutting down...")


app = FastAPI(
    title="Huddle",
    description="Question answering over curated Q&A pairs and academy documents",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Request Models
# =============================================================================

class ChatMessage(BaseModel):
    role: Optional[str] = None  # "user" or "assistant"
    content: Optional[str] = None


class QuestionRequest(BaseModel):
    question: Optional[str] = None
    audience: Optional[str] = None  # "parent" (default) or "coach"
    stream: bool = False
    messages: Optional[List[ChatMessage]] = None  # earlier turns, oldest first

    def split_conversation(self) -> Tuple[Optional[str], List[Dict[str, str]]]:
        """
        The question to answer and the turns before it.

        Without ``question`` the last user message is the question and only
        the messages before it are history.
        """
        messages = [m.model_dump() for m in self.messages or []]
        question = self.question
        if question is None:
            for i in range(len(messages) - 1, -1, -1):
                if messages[i]["role"] == "user":
                    question = messages[i]["content"]
                    messages = messages[:i]
                    break
        return question, conversation_history(messages)


class QAPairCreate(BaseModel):
    question: Optional[str] = None
    answer: Optional[str] = None
    audience: Optional[str] = None  # "parent", "coach" or "both"
    category: Optional[str] = None


class QAPairUpdate(BaseModel):
    question: Optional[str] = None
    answer: Optional[str] = None
    audience: Optional[str] = None
    category: Optional[str] = None


class DocumentUpload(BaseModel):
    filename: Optional[str] = None
    content: Optional[str] = None  # extracted text
    audience: Optional[str] = None  # "parent", "coach" or "shared"
    size: Optional[int] = None
    modified_at: Optional[str] = None
    page_number: Optional[int] = None


class FeedbackSubmission(BaseModel):
    question: Optional[str] = None
    answer: Optional[str] = None
    feedback: Optional[str] = None  # "up" or "down"
    audience: Optional[str] = None
    chunk_ids: Optional[List[str]] = None
    chunk_scores: Optional[List[float]] = None
    chunk_sources: Optional[List[str]] = None
    search_type: Optional[str] = None
    confidence_score: Optional[float] = None
    response_time_ms: Optional[int] = None
    model_used: Optional[str] = None


# =============================================================================
# Error Handling
# =============================================================================

def _error_body(error_type: str, message: str, code: str, **extra) -> dict:
    body = {"type": error_type, "message": message, "code": code}
    body.update(extra)
    return {"error": body}


@app.exception_handler(InvalidRequestError)
async def invalid_request_handler(request: Request, exc: InvalidRequestError):
    return JSONResponse(_error_body("invalid_request", exc.message, exc.code), status_code=400)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(_error_body("not_found", exc.message, exc.code), status_code=404)


@app.exception_handler(GenerationError)
async def generation_error_handler(request: Request, exc: GenerationError):
    logger.error("Generation failed (%s): %s", exc.model or "unknown model", exc.message)
    return JSONResponse(
        _error_body(
            "generation_failed",
            "The answer could not be generated. Please try again.",
            "generation_failed",
            retryable=exc.retryable,
        ),
        status_code=503,
        headers={"Retry-After": RETRY_AFTER_SECONDS},
    )


# =============================================================================
# Dependencies
# =============================================================================

def client_id(request: Request) -> str:
    """Caller identity for rate limiting: proxy headers, then socket peer"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def enforce_rate_limit(request: Request) -> None:
    if rate_limiter is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    caller = client_id(request)
    if not rate_limiter.check_and_increment(caller):
        status = rate_limiter.status(caller)
        logger.warning("Rate limit exceeded for %s", caller)
        raise HTTPException(
            status_code=429,
            detail="Too many requests. Please try again later.",
            headers=status.headers(),
        )


def _require(component, name: str):
    if component is None:
        raise HTTPException(status_code=503, detail=f"{name} not initialized")
    return component


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "huddle",
        "initialized": orchestrator is not None,
        "store": type(store).__name__ if store else None,
        "llm_available": orchestrator.synthesizer.has_llm if orchestrator else False,
    }


@app.post("/api/q", dependencies=[Depends(enforce_rate_limit)])
async def ask(body: QuestionRequest, accept: Optional[str] = Header(None)):
    """
    Answer a question.

    Streams NDJSON when ``stream`` is true or the client accepts
    application/x-ndjson; otherwise returns a single JSON body.
    """
    pipeline = _require(orchestrator, "Orchestrator")
    question, history = body.split_conversation()

    wants_stream = body.stream or (accept is not None and NDJSON_MEDIA_TYPE in accept)
    if not wants_stream:
        payload = await pipeline.answer(question, body.audience, history)
        return payload.to_dict()

    decision = await pipeline.retrieve(question, body.audience)
    if decision.route == Route.SYNTHESIZE and not pipeline.synthesizer.has_llm:
        raise GenerationError("LLM client is not available")
    return StreamingResponse(_stream_answer(pipeline, decision, history), media_type=NDJSON_MEDIA_TYPE)


def _event(data: dict) -> str:
    return json.dumps(data) + "\n"


async def _stream_answer(pipeline: RetrievalOrchestrator, decision, history=None):
    """metadata event, then text deltas, then a done event"""
    preview = pipeline.build_payload(decision, "")
    yield _event({
        "type": "metadata",
        "id": preview.id,
        "question": preview.question,
        "route": preview.route.value,
        "effort": preview.effort.value if preview.effort else None,
        "confidence": preview.confidence,
        "sources": preview.sources,
        "metadata": preview.metadata,
    })

    if decision.route == Route.INSTANT:
        text = decision.qa_match.answer
        yield _event({"type": "text", "delta": text})
    elif decision.route == Route.FALLBACK:
        text = decision.fallback_message
        yield _event({"type": "text", "delta": text})
    else:
        parts = []
        deltas = pipeline.synthesizer.stream(
            decision.question, decision.contexts, decision.audience, decision.effort, history,
        )
        try:
            async for delta in iterate_in_threadpool(deltas):
                parts.append(delta)
                yield _event({"type": "text", "delta": delta})
        except GenerationError as e:
            logger.error("Streaming failed (%s): %s", e.model or "unknown model", e.message)
            yield _event({
                "type": "error",
                "error": {"type": "generation_failed", "retryable": e.retryable},
            })
            return
        text = "".join(parts)

    followups = await pipeline.followups_for(decision, text, history)
    yield _event({
        "type": "done",
        "id": preview.id,
        "follow_up_questions": followups,
        "response_time_ms": decision.elapsed_ms,
    })


@app.get("/api/qa-pairs")
def list_qa_pairs(
    audience: Optional[str] = None,
    category: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
):
    """List Q&A pairs, newest first"""
    service = _require(qa_service, "Q&A service")
    return service.list(audience=audience, category=category, limit=limit, offset=offset)


@app.post("/api/qa-pairs", status_code=201)
def create_qa_pair(body: QAPairCreate):
    """Create and embed a Q&A pair"""
    service = _require(qa_service, "Q&A service")
    pair = service.create(body.question, body.answer, body.audience, body.category)
    return pair.to_api()


@app.get("/api/qa-pairs/{pair_id}")
def get_qa_pair(pair_id: str):
    service = _require(qa_service, "Q&A service")
    return service.get(pair_id).to_api()


@app.patch("/api/qa-pairs/{pair_id}")
def update_qa_pair(pair_id: str, body: QAPairUpdate):
    """Partial update; the question is re-embedded only if it changed"""
    service = _require(qa_service, "Q&A service")
    pair = service.update(
        pair_id,
        question=body.question,
        answer=body.answer,
        audience=body.audience,
        category=body.category,
    )
    return pair.to_api()


@app.delete("/api/qa-pairs/{pair_id}", status_code=204)
def delete_qa_pair(pair_id: str):
    service = _require(qa_service, "Q&A service")
    service.delete(pair_id)
    return Response(status_code=204)


@app.post("/api/documents", dependencies=[Depends(enforce_rate_limit)])
def upload_document(body: DocumentUpload, idempotency_key: Optional[str] = Header(None)):
    """
    Upload extracted document text.

    Returns 201 for a new document and 200 when the idempotency key
    matches an existing upload in the same partition.
    """
    service = _require(document_service, "Document service")
    result = service.upload(
        filename=body.filename,
        content=body.content,
        audience=body.audience,
        idempotency_key=idempotency_key,
        size=body.size,
        modified_at=body.modified_at,
        page_number=body.page_number,
    )
    return JSONResponse(result.to_api(), status_code=201 if result.created else 200)


@app.get("/api/documents")
def list_documents():
    """All documents across partitions, newest first"""
    service = _require(document_service, "Document service")
    return {"documents": service.list()}


@app.delete("/api/documents/{document_id}")
def delete_document(document_id: str):
    """Delete a document and all of its chunks"""
    service = _require(document_service, "Document service")
    document = service.delete(document_id)
    return {"success": True, "id": document.id}


@app.post("/api/feedback")
def submit_feedback(body: FeedbackSubmission):
    log = _require(feedback_log, "Feedback log")
    record = log.record(**body.model_dump())
    return {"success": True, "id": record.id}


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the Huddle server"""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cfg = load_config()

    logger.info("Starting server on port %d", cfg.server.port)
    uvicorn.run(
        "huddle.server:app",
        host=cfg.server.host,
        port=cfg.server.port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
