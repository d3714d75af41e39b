"""Shared fixtures: a deterministic embedder and unit vectors at a chosen similarity."""

import math
import pytest
from unittest.mock import Mock

QUERY_VECTOR = [1.0, 0.0, 0.0]


def _vector_at(similarity: float):
    """Unit vector whose cosine similarity with QUERY_VECTOR is ``similarity``"""
    return [similarity, math.sqrt(max(0.0, 1.0 - similarity ** 2)), 0.0]


@pytest.fixture
def vec_at():
    return _vector_at


@pytest.fixture
def embedder():
    """Embedding service that maps every text to QUERY_VECTOR"""
    svc = Mock()
    svc.is_available = True
    svc.dimensions = 3
    svc.embed_single.side_effect = lambda text: list(QUERY_VECTOR)
    svc.embed.side_effect = lambda texts: [list(QUERY_VECTOR) for _ in texts]
    return svc
