"""
Admin Services

Content maintenance behind the admin endpoints:
- QAPairService: curated Q&A pairs and their embeddings
- DocumentService: partitioned document upload with idempotency
- FeedbackLog: thumbs up/down on answers
"""

from .qa_pairs import QAPairService
from .documents import DocumentService, UploadResult, get_doc_type, split_text
from .feedback import FeedbackLog

__all__ = [
    "QAPairService",
    "DocumentService",
    "UploadResult",
    "get_doc_type",
    "split_text",
    "FeedbackLog",
]
