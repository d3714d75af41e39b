"""
Huddle Common Module

Shared infrastructure for the retriever, the admin services and the server.
"""

from .audience import Audience, Partition
from .config import HuddleConfig, load_config
from .embedding_service import EmbeddingService
from .errors import HuddleError, InvalidRequestError, NotFoundError, GenerationError
from .llm_client import LLMClient, EffortTier
from .rate_limiter import RateLimiter, SlidingWindowRateLimiter
from .vector_store import VectorStore, InMemoryVectorStore, QAMatch, ChunkMatch

__all__ = [
    "Audience",
    "Partition",
    "HuddleConfig",
    "load_config",
    "EmbeddingService",
    "HuddleError",
    "InvalidRequestError",
    "NotFoundError",
    "GenerationError",
    "LLMClient",
    "EffortTier",
    "RateLimiter",
    "SlidingWindowRateLimiter",
    "VectorStore",
    "InMemoryVectorStore",
    "QAMatch",
    "ChunkMatch",
]
