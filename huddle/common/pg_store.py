"""
Postgres / pgvector Store

VectorStore backed by Postgres with the pgvector extension. Similarity is
``1 - cosine_distance`` so scores are comparable with InMemoryVectorStore.
Partition and audience filters are part of the WHERE clause, never applied
after the LIMIT.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    func,
    select,
    text,
)
from sqlalchemy.orm import declarative_base, sessionmaker

from .audience import Audience, Partition
from .schemas import QAPair, Document, DocType
from .vector_store import VectorStore, QAMatch, ChunkMatch

logger = logging.getLogger("huddle.common.pg_store")

EMBEDDING_DIM = 1536

Base = declarative_base()


def _utcnow():
    return datetime.now(timezone.utc)


class QAPairRow(Base):
    __tablename__ = "qa_pairs"

    id = Column(String(36), primary_key=True)
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    audience = Column(String(16), nullable=False, default=Audience.PARENT.value)
    category = Column(String(64), nullable=False, default="general_sales")
    embedding = Column(Vector(EMBEDDING_DIM), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (Index("idx_qa_pairs_audience", "audience"),)


class DocumentRow(Base):
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True)
    filename = Column(String(512), nullable=False)
    doc_type = Column(String(32), nullable=False, default=DocType.DOCUMENT.value)
    partition = Column(String(16), nullable=False)
    idempotency_key = Column(String(128), nullable=False)
    uploaded_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("partition", "idempotency_key", name="uq_documents_key"),)


class ChunkRow(Base):
    __tablename__ = "document_chunks"

    id = Column(String(36), primary_key=True)
    document_id = Column(String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    partition = Column(String(16), nullable=False)
    chunk_index = Column(Integer, nullable=False, default=0)
    content = Column(Text, nullable=False)
    embedding = Column(Vector(EMBEDDING_DIM), nullable=True)
    page_number = Column(Integer, nullable=True)
    audio_timestamp = Column(Float, nullable=True)

    __table_args__ = (
        Index("idx_chunks_document", "document_id"),
        Index("idx_chunks_partition", "partition"),
    )


class FeedbackRow(Base):
    __tablename__ = "answer_feedback"

    id = Column(String(36), primary_key=True)
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    audience = Column(String(16), nullable=False)
    feedback = Column(String(8), nullable=False)
    chunk_ids = Column(JSON, nullable=False, default=list)
    chunk_scores = Column(JSON, nullable=False, default=list)
    chunk_sources = Column(JSON, nullable=False, default=list)
    search_type = Column(String(16), nullable=True)
    confidence_score = Column(Float, nullable=True)
    response_time_ms = Column(Integer, nullable=True)
    model_used = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


def _vector_to_list(value) -> Optional[List[float]]:
    if value is None:
        return None
    return [float(v) for v in value]


def _to_qa_pair(row: QAPairRow) -> QAPair:
    return QAPair(
        id=row.id,
        question=row.question,
        answer=row.answer,
        audience=Audience(row.audience),
        category=row.category,
        embedding=_vector_to_list(row.embedding),
        created_at=row.created_at,
    )


def _to_document(row: DocumentRow) -> Document:
    return Document(
        id=row.id,
        filename=row.filename,
        doc_type=DocType(row.doc_type),
        partition=Partition(row.partition),
        idempotency_key=row.idempotency_key,
        uploaded_at=row.uploaded_at,
    )


class PgVectorStore(VectorStore):
    """VectorStore over Postgres + pgvector using SQLAlchemy sessions"""

    def __init__(self, database_url: str, echo: bool = False):
        self._engine = create_engine(database_url, echo=echo, pool_pre_ping=True)
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)

    def create_tables(self) -> None:
        """Create the vector extension and all tables if missing"""
        with self._engine.begin() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        Base.metadata.create_all(self._engine)
        logger.info("Tables ready")

    # --- search -------------------------------------------------------------

    def search_qa(self, embedding, audience, top_k=1, min_similarity=0.0):
        visible_tags = [tag.value for tag in Audience if tag.visible_to(audience)]
        distance = QAPairRow.embedding.cosine_distance(embedding)
        similarity = (1 - distance).label("similarity")
        stmt = (
            select(QAPairRow, similarity)
            .where(QAPairRow.embedding.isnot(None))
            .where(QAPairRow.audience.in_(visible_tags))
            .where((1 - distance) >= min_similarity)
            .order_by(distance)
            .limit(top_k)
        )
        with self._session_factory() as session:
            rows = session.execute(stmt).all()
        return [
            QAMatch(
                id=row.id,
                question=row.question,
                answer=row.answer,
                category=row.category,
                audience=Audience(row.audience),
                similarity=float(score),
            )
            for row, score in rows
        ]

    def search_docs(self, embedding, partition, top_k=2, min_similarity=0.0):
        distance = ChunkRow.embedding.cosine_distance(embedding)
        similarity = (1 - distance).label("similarity")
        stmt = (
            select(ChunkRow, similarity)
            .where(ChunkRow.embedding.isnot(None))
            .where(ChunkRow.partition == partition.value)
            .where((1 - distance) >= min_similarity)
            .order_by(distance)
            .limit(top_k)
        )
        with self._session_factory() as session:
            rows = session.execute(stmt).all()
        return [
            ChunkMatch(
                chunk_id=row.id,
                document_id=row.document_id,
                content=row.content,
                similarity=float(score),
                partition=Partition(row.partition),
                page_number=row.page_number,
            )
            for row, score in rows
        ]

    # --- Q&A pairs ----------------------------------------------------------

    def add_qa_pair(self, pair):
        with self._session_factory.begin() as session:
            session.add(QAPairRow(
                id=pair.id,
                question=pair.question,
                answer=pair.answer,
                audience=pair.audience.value,
                category=pair.category,
                embedding=pair.embedding,
                created_at=pair.created_at,
            ))
        return pair

    def get_qa_pair(self, pair_id):
        with self._session_factory() as session:
            row = session.get(QAPairRow, pair_id)
            return _to_qa_pair(row) if row else None

    def update_qa_pair(self, pair):
        with self._session_factory.begin() as session:
            row = session.get(QAPairRow, pair.id)
            if row is None:
                raise KeyError(pair.id)
            row.question = pair.question
            row.answer = pair.answer
            row.audience = pair.audience.value
            row.category = pair.category
            row.embedding = pair.embedding
        return pair

    def delete_qa_pair(self, pair_id):
        with self._session_factory.begin() as session:
            row = session.get(QAPairRow, pair_id)
            if row is None:
                return False
            session.delete(row)
        return True

    def list_qa_pairs(self, audience=None, category=None, limit=50, offset=0):
        stmt = select(QAPairRow)
        count_stmt = select(func.count()).select_from(QAPairRow)
        if audience is not None:
            tags = [audience.value, Audience.BOTH.value]
            stmt = stmt.where(QAPairRow.audience.in_(tags))
            count_stmt = count_stmt.where(QAPairRow.audience.in_(tags))
        if category is not None:
            stmt = stmt.where(QAPairRow.category == category)
            count_stmt = count_stmt.where(QAPairRow.category == category)
        stmt = stmt.order_by(QAPairRow.created_at.desc()).offset(offset).limit(limit)
        with self._session_factory() as session:
            rows = session.execute(stmt).scalars().all()
            total = session.execute(count_stmt).scalar_one()
        return [_to_qa_pair(r) for r in rows], int(total)

    # --- documents ----------------------------------------------------------

    def add_document(self, document):
        with self._session_factory.begin() as session:
            session.add(DocumentRow(
                id=document.id,
                filename=document.filename,
                doc_type=document.doc_type.value,
                partition=document.partition.value,
                idempotency_key=document.idempotency_key,
                uploaded_at=document.uploaded_at,
            ))
        return document

    def get_document(self, document_id):
        with self._session_factory() as session:
            row = session.get(DocumentRow, document_id)
            return _to_document(row) if row else None

    def find_document_by_key(self, partition, idempotency_key):
        stmt = (
            select(DocumentRow)
            .where(DocumentRow.partition == partition.value)
            .where(DocumentRow.idempotency_key == idempotency_key)
        )
        with self._session_factory() as session:
            row = session.execute(stmt).scalars().first()
            return _to_document(row) if row else None

    def list_documents(self):
        stmt = select(DocumentRow).order_by(DocumentRow.uploaded_at.desc())
        with self._session_factory() as session:
            return [_to_document(r) for r in session.execute(stmt).scalars().all()]

    def delete_document(self, document_id):
        with self._session_factory.begin() as session:
            row = session.get(DocumentRow, document_id)
            if row is None:
                return None
            document = _to_document(row)
            session.query(ChunkRow).filter(ChunkRow.document_id == document_id).delete()
            session.delete(row)
        return document

    def add_chunks(self, chunks):
        if not chunks:
            return 0
        with self._session_factory.begin() as session:
            for chunk in chunks:
                doc = session.get(DocumentRow, chunk.document_id)
                if doc is None:
                    raise KeyError(f"Unknown document: {chunk.document_id}")
                if doc.partition != chunk.partition.value:
                    raise ValueError(
                        f"Chunk partition {chunk.partition.value} does not match "
                        f"document partition {doc.partition}"
                    )
                session.add(ChunkRow(
                    id=chunk.id,
                    document_id=chunk.document_id,
                    partition=chunk.partition.value,
                    chunk_index=chunk.chunk_index,
                    content=chunk.content,
                    embedding=chunk.embedding,
                    page_number=chunk.page_number,
                    audio_timestamp=chunk.audio_timestamp,
                ))
        return len(chunks)

    def count_chunks(self, document_id):
        stmt = select(func.count()).select_from(ChunkRow).where(ChunkRow.document_id == document_id)
        with self._session_factory() as session:
            return int(session.execute(stmt).scalar_one())

    # --- feedback -----------------------------------------------------------

    def append_feedback(self, record):
        with self._session_factory.begin() as session:
            session.add(FeedbackRow(
                id=record.id,
                question=record.question,
                answer=record.answer,
                audience=record.audience.value,
                feedback=record.feedback.value,
                chunk_ids=list(record.chunk_ids),
                chunk_scores=list(record.chunk_scores),
                chunk_sources=[s.value for s in record.chunk_sources],
                search_type=record.search_type.value if record.search_type else None,
                confidence_score=record.confidence_score,
                response_time_ms=record.response_time_ms,
                model_used=record.model_used,
                created_at=record.created_at,
            ))
        return record
