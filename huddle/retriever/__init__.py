"""
Retriever - Question Answering over Curated Q&A and Documents

Key Components:
- QueryExpander: Deterministic lexical variations of a question
- Searcher: Q&A tier and document tier similarity search
- Synthesizer: Audience-scoped LLM answers from retrieved chunks
- RetrievalOrchestrator: Routes to instant, synthesize or fallback

Pipeline:
1. Normalize and expand the question
2. Embed every variation concurrently
3. Search curated Q&A pairs; a strong match is answered instantly
4. Otherwise search documents (audience + shared), boost by keyword overlap
5. Synthesize from confident chunks, or return a category fallback
"""

from .query_expander import QueryExpander, normalize_question
from .keyword_scorer import keyword_overlap, boost
from .fallback import QuestionCategory, categorize_question, fallback_message
from .searcher import Searcher, RetrievalResult
from .synthesizer import Synthesizer, select_effort, conversation_history
from .orchestrator import RetrievalOrchestrator, RetrievalDecision, AnswerPayload, Route

__all__ = [
    "QueryExpander",
    "normalize_question",
    "keyword_overlap",
    "boost",
    "QuestionCategory",
    "categorize_question",
    "fallback_message",
    "Searcher",
    "RetrievalResult",
    "Synthesizer",
    "select_effort",
    "conversation_history",
    "RetrievalOrchestrator",
    "RetrievalDecision",
    "AnswerPayload",
    "Route",
]
