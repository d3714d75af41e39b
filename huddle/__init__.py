"""
Huddle

Question answering for a sports-academy chatbot (parents and coaches).

Philosophy:
- Curated Q&A pairs answer instantly, without a generative call
- Everything else is answered only from retrieved handbook chunks
- Low confidence gets an honest "contact us", never a guess
- Parent and coach content never leak into each other's answers

Usage:
    from huddle.common import load_config, EmbeddingService, InMemoryVectorStore
    from huddle.retriever import QueryExpander, Searcher, Synthesizer, RetrievalOrchestrator
    from huddle.admin import QAPairService, DocumentService, FeedbackLog
"""

__version__ = "0.1.0"
