"""
Document Service

Uploads text extracted from handbooks, newsletters, minutes and transcripts
into one audience partition, split into overlapping chunks that are embedded
independently. Text extraction from binary formats happens upstream; this
service receives plain text.

Uploads are idempotent per partition: a repeated idempotency key returns the
existing document and its chunk count instead of creating a duplicate.
"""

import hashlib
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional

import tiktoken
from langchain_text_splitters import RecursiveCharacterTextSplitter

from ..common.audience import Partition
from ..common.embedding_service import EmbeddingService
from ..common.errors import InvalidRequestError, NotFoundError
from ..common.schemas import Document, DocumentChunk, DocType
from ..common.vector_store import VectorStore

logger = logging.getLogger("huddle.admin.documents")

VALID_EXTENSIONS = ("pdf", "docx", "txt", "mp3", "wav")
AUDIO_EXTENSIONS = ("mp3", "wav")

# Chunk sizes are in tokens of the embedding model
DEFAULT_CHUNK_SIZE = 512
DEFAULT_CHUNK_OVERLAP = 128
SEPARATORS = ("\n\n", "\n", ". ", " ", "")
TOKENIZER_MODEL = "text-embedding-3-large"
EMBED_BATCH_SIZE = 100


def file_extension(filename: str) -> str:
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def get_doc_type(filename: str) -> DocType:
    """Infer the document type from its name, then its extension"""
    lower = filename.lower()
    ext = file_extension(filename)

    if "handbook" in lower:
        return DocType.HANDBOOK
    if "newsletter" in lower:
        return DocType.NEWSLETTER
    if "minutes" in lower or "meeting" in lower:
        return DocType.MINUTES
    if ext in AUDIO_EXTENSIONS:
        return DocType.TRANSCRIPT
    if "schedule" in lower:
        return DocType.SCHEDULE
    if "policy" in lower or "policies" in lower:
        return DocType.POLICY
    return DocType.HANDBOOK if ext == "pdf" else DocType.DOCUMENT


def make_idempotency_key(
    partition: Partition,
    filename: str,
    size: int,
    modified_at: Optional[str] = None,
) -> str:
    raw = f"{partition.value}|{filename}|{size}|{modified_at or ''}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def token_length(text: str) -> int:
    """Token count under the embedding model's tokenizer"""
    return len(_encoding().encode(text))


@lru_cache(maxsize=1)
def _encoding():
    return tiktoken.encoding_for_model(TOKENIZER_MODEL)


def split_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    length_function: Callable[[str], int] = token_length,
) -> List[str]:
    """
    Overlapping chunks of at most ``chunk_size`` units of ``length_function``.

    Splits recursively on paragraph, line, sentence and word breaks, falling
    back to single characters. Sizes are tokens by default.
    """
    if chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be smaller than chunk_size")

    text = (text or "").strip()
    if not text:
        return []
    # Every token spans at least one byte
    if length_function is token_length and len(text.encode("utf-8")) <= chunk_size:
        return [text]

    splitter = RecursiveCharacterTextSplitter(
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        length_function=length_function,
        separators=list(SEPARATORS),
    )
    return [c.strip() for c in splitter.split_text(text) if c.strip()]


@dataclass
class UploadResult:
    document: Document
    chunk_count: int
    created: bool

    def to_api(self) -> Dict[str, Any]:
        data = {
            "id": self.document.id,
            "filename": self.document.filename,
            "doc_type": self.document.doc_type.value,
            "audience": self.document.partition.value,
            "chunk_count": self.chunk_count,
            "uploaded_at": self.document.uploaded_at.isoformat(),
        }
        if self.created:
            data["embeddings_generated"] = self.chunk_count > 0
        return data


class DocumentService:
    """Upload, list and delete partitioned documents"""

    def __init__(
        self,
        store: VectorStore,
        embedding_service: EmbeddingService,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
        length_function: Callable[[str], int] = token_length,
    ):
        self._store = store
        self._embedding = embedding_service
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap
        self._length_function = length_function

    def upload(
        self,
        filename: Optional[str],
        content: Optional[str],
        audience: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        size: Optional[int] = None,
        modified_at: Optional[str] = None,
        page_number: Optional[int] = None,
    ) -> UploadResult:
        """
        Store a document and its embedded chunks.

        Raises:
            InvalidRequestError: missing file name/content, unsupported
                extension, or unknown partition
        """
        if not filename:
            raise InvalidRequestError("No file provided", code="file_required")
        ext = file_extension(filename)
        if ext not in VALID_EXTENSIONS:
            raise InvalidRequestError(
                f"File type .{ext} not supported. Accepted: PDF, DOCX, TXT, MP3, WAV",
                code="invalid_file_type",
            )
        if content is None or not content.strip():
            raise InvalidRequestError("Document content is empty", code="content_required")
        partition = Partition.parse(audience)

        if not idempotency_key:
            idempotency_key = make_idempotency_key(
                partition,
                filename,
                size if size is not None else len(content.encode("utf-8")),
                modified_at,
            )

        existing = self._store.find_document_by_key(partition, idempotency_key)
        if existing is not None:
            logger.info("Duplicate upload of %s, returning %s", filename, existing.id)
            return UploadResult(existing, self._store.count_chunks(existing.id), created=False)

        document = Document(
            filename=filename,
            doc_type=get_doc_type(filename),
            partition=partition,
            idempotency_key=idempotency_key,
        )
        pieces = split_text(content, self._chunk_size, self._chunk_overlap, self._length_function)
        embeddings = self._embed_all(pieces)
        chunks = [
            DocumentChunk(
                document_id=document.id,
                partition=partition,
                chunk_index=i,
                content=piece,
                embedding=embedding,
                page_number=page_number,
            )
            for i, (piece, embedding) in enumerate(zip(pieces, embeddings))
        ]

        # A stored document always has its chunks
        self._store.add_document(document)
        try:
            count = self._store.add_chunks(chunks)
        except Exception:
            logger.error("Storing chunks for %s failed, removing document %s", filename, document.id)
            self._store.delete_document(document.id)
            raise
        logger.info(
            "Uploaded %s to %s as %s (%d chunks)",
            filename, partition.value, document.doc_type.value, count,
        )
        return UploadResult(document, count, created=True)

    def _embed_all(self, pieces: List[str]) -> List[List[float]]:
        embeddings = []
        for i in range(0, len(pieces), EMBED_BATCH_SIZE):
            embeddings.extend(self._embedding.embed(pieces[i:i + EMBED_BATCH_SIZE]))
        return embeddings

    def list(self) -> List[Dict[str, Any]]:
        """All documents across partitions, newest first"""
        return [
            {
                "id": doc.id,
                "filename": doc.filename,
                "doc_type": doc.doc_type.value,
                "audience": doc.partition.value,
                "uploaded_at": doc.uploaded_at.isoformat(),
            }
            for doc in self._store.list_documents()
        ]

    def delete(self, document_id: str) -> Document:
        document = self._store.delete_document(document_id)
        if document is None:
            raise NotFoundError(f"Document not found: {document_id}")
        logger.info("Deleted document %s and its chunks", document_id)
        return document
