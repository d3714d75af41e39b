"""
Keyword Overlap Scorer

Lexical signal blended into vector similarity for document chunks. Embeddings
can rank a chunk about "fees" above one that literally says "tuition is $200";
the overlap score nudges exact-term matches back up.
"""

import re
from typing import FrozenSet, Set

STOP_WORDS: FrozenSet[str] = frozenset({
    "the", "is", "at", "which", "on", "and", "a", "an", "as", "are", "was",
    "were", "been", "be", "have", "has", "had", "do", "does", "did", "will",
    "would", "could", "should", "may", "might", "must", "can", "for", "with",
    "about", "into", "through", "during", "before", "after", "above", "below",
    "to", "from", "up", "down", "in", "out", "off", "over", "under", "again",
    "further", "then", "once",
})

MIN_KEYWORD_LENGTH = 3

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def keywords(text: str) -> Set[str]:
    """Unique lowercase tokens of 3+ characters that are not stop words"""
    cleaned = _NON_ALNUM.sub(" ", (text or "").lower())
    return {
        word for word in cleaned.split()
        if len(word) >= MIN_KEYWORD_LENGTH and word not in STOP_WORDS
    }


def keyword_overlap(question: str, passage: str) -> float:
    """
    Fraction of the question's keywords that appear in the passage.

    Returns:
        Score in [0, 1]; 0 when the question has no keywords
    """
    question_keywords = keywords(question)
    if not question_keywords:
        return 0.0
    overlap = question_keywords & keywords(passage)
    return len(overlap) / len(question_keywords)


def boost(similarity: float, keyword_score: float, weight: float = 0.2) -> float:
    """Blend keyword overlap into a similarity, capped at 1.0"""
    return min(similarity + weight * keyword_score, 1.0)
