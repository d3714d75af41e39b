"""
Embedding Service

Wraps the OpenAI embeddings endpoint. Every Q&A pair, document chunk and
query variation goes through the same model and dimension so their vectors
are comparable.
"""

import logging
from typing import List, Optional
import numpy as np

logger = logging.getLogger("huddle.common.embedding_service")


class EmbeddingService:
    """
    Embedding service for Huddle.

    Uses text-embedding-3-large truncated to 1536 dimensions, which matches
    the vector column size in the store.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "text-embedding-3-large",
        dimensions: int = 1536,
        client=None,
    ):
        self._model = model
        self._dimensions = dimensions
        self._client = client

        if self._client is None and api_key:
            try:
                from openai import OpenAI
                self._client = OpenAI(api_key=api_key)
                logger.info("Initialized with model=%s, dimensions=%d", model, dimensions)
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client: %s", e)
        elif self._client is None:
            logger.info("OpenAI API key not provided, embedding service unavailable")

    @property
    def is_available(self) -> bool:
        """Check if embedding service is available"""
        return self._client is not None

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of strings to embed

        Returns:
            List of embedding vectors, in input order
        """
        if not self._client:
            raise RuntimeError("Embedding client not initialized")

        if not texts:
            return []

        response = self._client.embeddings.create(
            input=texts,
            model=self._model,
            dimensions=self._dimensions,
        )
        data = sorted(response.data, key=lambda d: d.index)
        return [list(d.embedding) for d in data]

    def embed_single(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: String to embed

        Returns:
            Embedding vector
        """
        if not text:
            raise ValueError("Cannot embed empty text")

        embeddings = self.embed([text])
        return embeddings[0]


def batch_cosine_similarity(query_vec: List[float], matrix: np.ndarray) -> np.ndarray:
    """
    Cosine similarity between a query and every row of a matrix.

    Args:
        query_vec: Query embedding vector
        matrix: 2-D array, one embedding per row

    Returns:
        1-D array of similarity scores clamped to [0, 1]
    """
    if matrix.size == 0:
        return np.zeros(0)

    query = np.asarray(query_vec, dtype=float)
    query_norm = np.linalg.norm(query)
    row_norms = np.linalg.norm(matrix, axis=1)
    denom = row_norms * query_norm
    denom[denom == 0] = np.inf

    similarities = np.dot(matrix, query) / denom
    return np.clip(similarities, 0.0, 1.0)
