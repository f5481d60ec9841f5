# docpipeline/db/postgres_client.py
import json
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

import structlog
from sqlalchemy import (
    create_engine, text, Engine, Table, MetaData, Column,
    BigInteger, String, Text, JSON, DateTime, Index,
    select, func, delete, update, insert,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from docpipeline.core.config import settings
from docpipeline.core.errors import MetadataStoreError
from docpipeline.application.ports.metadata_store_port import MetadataStorePort
from docpipeline.domain.models import Document, DocumentPage, DocumentStatus

log = structlog.get_logger(__name__)

_sync_engine: Optional[Engine] = None

_metadata = MetaData()
documents_table = Table(
    'documents',
    _metadata,
    Column('id', String(36), primary_key=True),
    Column('stored_name', String(255), nullable=False, unique=True),
    Column('original_name', String(1024), nullable=False),
    Column('content_type', String(255), nullable=False),
    Column('size_bytes', BigInteger, nullable=False),
    Column('status', String(32), nullable=False),
    Column('content_location', Text, nullable=False),
    Column('thumbnail_location', Text),
    Column('extracted_metadata', JSON().with_variant(postgresql.JSONB(), "postgresql")),
    Column('error_detail', Text),
    Column('uploaded_by', String(255), nullable=False),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('processed_at', DateTime(timezone=True)),
    Index('idx_documents_status', 'status'),
    Index('idx_documents_created_at', 'created_at'),
)

_UPSERT_COLUMNS = [c.name for c in documents_table.columns if c.name != 'id']


# --- Engine management ---
def get_sync_engine(database_url: Optional[str] = None) -> Engine:
    """
    Creates and returns a SQLAlchemy synchronous engine instance.
    Caches the engine globally per process when no explicit URL is given.
    """
    global _sync_engine
    sync_log = log.bind(component="SyncEngine")

    if database_url is None and _sync_engine is not None:
        return _sync_engine

    url = database_url or settings.database_url
    sync_log.info("Creating SQLAlchemy synchronous engine...")
    try:
        engine = create_engine(
            url,
            pool_pre_ping=True,
            pool_recycle=1800,
            json_serializer=json.dumps,
            json_deserializer=json.loads,
        )
        with engine.connect() as conn_test:
            conn_test.execute(text("SELECT 1"))
        sync_log.info("SQLAlchemy synchronous engine created and tested successfully.")
    except SQLAlchemyError as sa_err:
        sync_log.critical("Failed to create or connect SQLAlchemy synchronous engine", error=str(sa_err), exc_info=True)
        raise MetadataStoreError("Failed to connect to the metadata store", sa_err) from sa_err

    if database_url is None:
        _sync_engine = engine
    return engine


def dispose_sync_engine():
    """Disposes of the cached synchronous engine pool."""
    global _sync_engine
    if _sync_engine:
        log.info("Disposing SQLAlchemy synchronous engine pool...", component="SyncEngine")
        _sync_engine.dispose()
        _sync_engine = None


def init_schema(engine: Engine) -> None:
    """Creates the documents table and its indexes if they do not exist."""
    try:
        _metadata.create_all(engine)
    except SQLAlchemyError as e:
        log.critical("Failed to create metadata store schema", error=str(e), exc_info=True)
        raise MetadataStoreError("Schema creation failed", e) from e


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        # SQLite drops the offset; everything is written in UTC
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_row(document: Document) -> Dict[str, Any]:
    return {
        'id': document.id,
        'stored_name': document.stored_name,
        'original_name': document.original_name,
        'content_type': document.content_type,
        'size_bytes': document.size_bytes,
        'status': document.status.value,
        'content_location': document.content_location,
        'thumbnail_location': document.thumbnail_location,
        'extracted_metadata': (
            document.extracted_metadata.model_dump(mode='json') if document.extracted_metadata else None
        ),
        'error_detail': document.error_detail,
        'uploaded_by': document.uploaded_by,
        'created_at': _as_utc(document.created_at),
        'processed_at': _as_utc(document.processed_at),
    }


def _from_row(row: Any) -> Document:
    data = dict(row._mapping)
    data['created_at'] = _as_utc(data['created_at'])
    data['processed_at'] = _as_utc(data.get('processed_at'))
    return Document.model_validate(data)


class PostgresDocumentRepository(MetadataStorePort):
    """Metadata store backed by the `documents` table through a synchronous SQLAlchemy engine."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self.log = log.bind(component="PostgresDocumentRepository", dialect=engine.dialect.name)

    @contextmanager
    def _db_errors(self, action: str, **context) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            self.log.error(f"SQLAlchemyError during {action}", error=str(e), exc_info=True, **context)
            raise MetadataStoreError(f"Metadata store {action} failed", e) from e

    def create(self, document: Document) -> Document:
        create_log = self.log.bind(document_id=document.id, stored_name=document.stored_name)
        try:
            with self.engine.begin() as conn:
                conn.execute(insert(documents_table).values(**_to_row(document)))
        except IntegrityError as e:
            create_log.error("Document record already exists", error=str(e))
            raise MetadataStoreError(f"Document {document.id} already exists", e) from e
        except SQLAlchemyError as e:
            create_log.error("Failed to create document record", error=str(e), exc_info=True)
            raise MetadataStoreError(f"Failed to create document {document.id}", e) from e
        create_log.info("Document record created.")
        return document

    def get(self, document_id: str) -> Optional[Document]:
        with self._db_errors("get", document_id=document_id):
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(documents_table).where(documents_table.c.id == document_id)
                ).first()
        if row is None:
            self.log.debug("Document not found", document_id=document_id)
            return None
        return _from_row(row)

    def list(self, page: int, page_size: int) -> DocumentPage:
        effective_page = max(page, 1)
        offset = (effective_page - 1) * max(page_size, 0)
        with self._db_errors("list", page=page, page_size=page_size):
            with self.engine.connect() as conn:
                total = conn.execute(select(func.count()).select_from(documents_table)).scalar_one()
                rows = []
                if page_size > 0:
                    rows = conn.execute(
                        select(documents_table)
                        .order_by(documents_table.c.created_at.desc(), documents_table.c.id.desc())
                        .limit(page_size)
                        .offset(offset)
                    ).all()
        documents = [_from_row(r) for r in rows]
        self.log.debug("Fetched paginated documents", count=len(documents), total=total, page=page)
        return DocumentPage(documents=documents, total_count=total, page=page, page_size=page_size)

    def upsert(self, document: Document) -> Document:
        row = _to_row(document)
        with self._db_errors("upsert", document_id=document.id):
            with self.engine.begin() as conn:
                dialect = self.engine.dialect.name
                if dialect in ("postgresql", "sqlite"):
                    dialect_insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
                    stmt = dialect_insert(documents_table).values(**row)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=['id'],
                        set_={name: stmt.excluded[name] for name in _UPSERT_COLUMNS},
                    )
                    conn.execute(stmt)
                else:
                    result = conn.execute(
                        update(documents_table)
                        .where(documents_table.c.id == document.id)
                        .values(**{k: v for k, v in row.items() if k != 'id'})
                    )
                    if result.rowcount == 0:
                        conn.execute(insert(documents_table).values(**row))
        self.log.info("Document record upserted.", document_id=document.id, status=document.status.value)
        return document

    def delete(self, document_id: str) -> bool:
        with self._db_errors("delete", document_id=document_id):
            with self.engine.begin() as conn:
                result = conn.execute(delete(documents_table).where(documents_table.c.id == document_id))
                deleted = result.rowcount > 0
        if deleted:
            self.log.info("Document record deleted.", document_id=document_id)
        else:
            self.log.warning("Document record not found during delete attempt.", document_id=document_id)
        return deleted

    def list_by_status(self, status: DocumentStatus) -> List[Document]:
        with self._db_errors("list_by_status", status=status.value):
            with self.engine.connect() as conn:
                rows = conn.execute(
                    select(documents_table)
                    .where(documents_table.c.status == status.value)
                    .order_by(documents_table.c.created_at.asc())
                ).all()
        return [_from_row(r) for r in rows]

    def find_by_stored_name(self, stored_name: str) -> Optional[Document]:
        with self._db_errors("find_by_stored_name", stored_name=stored_name):
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(documents_table).where(documents_table.c.stored_name == stored_name)
                ).first()
        return _from_row(row) if row is not None else None
