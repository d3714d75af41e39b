"""
Huddle Record Schemas

Persisted records (Q&A pairs, documents, chunks, feedback).
"""

from .records import (
    QAPair,
    Document,
    DocumentChunk,
    FeedbackRecord,
    DocType,
    FeedbackValue,
    SearchType,
)

__all__ = [
    "QAPair",
    "Document",
    "DocumentChunk",
    "FeedbackRecord",
    "DocType",
    "FeedbackValue",
    "SearchType",
]
