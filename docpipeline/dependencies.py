# File: docpipeline/dependencies.py
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import Engine

from docpipeline.core.config import settings
from docpipeline.application.ports.extraction_port import ExtractionPort
from docpipeline.application.ports.metadata_store_port import MetadataStorePort
from docpipeline.application.ports.object_store_port import ObjectStorePort
from docpipeline.application.ports.queue_port import QueueProducerPort
from docpipeline.application.use_cases.document_access_use_case import DocumentAccessUseCase
from docpipeline.application.use_cases.ingest_document_use_case import IngestDocumentUseCase
from docpipeline.application.use_cases.process_document_use_case import ProcessDocumentUseCase
from docpipeline.application.use_cases.reconcile_documents_use_case import ReconcileDocumentsUseCase
from docpipeline.db.postgres_client import PostgresDocumentRepository, get_sync_engine, init_schema
from docpipeline.infrastructure.extractors import (
    CompositeExtractorAdapter,
    DocxAdapter,
    ImageAdapter,
    PdfAdapter,
    TxtAdapter,
)
from docpipeline.services.kafka_clients import KafkaProducerClient
from docpipeline.services.s3_client import S3Client


@dataclass
class ServiceContainer:
    """Explicitly constructed clients shared by the use cases of one process."""
    documents_store: ObjectStorePort
    metadata_store: MetadataStorePort
    queue: QueueProducerPort
    thumbnail_store: Optional[ObjectStorePort] = None
    engine: Optional[Engine] = None


def build_services(engine: Optional[Engine] = None) -> ServiceContainer:
    engine = engine or get_sync_engine()
    init_schema(engine)
    thumbnail_store = (
        S3Client(bucket_name=settings.AWS_S3_THUMBNAILS_BUCKET_NAME)
        if settings.AWS_S3_THUMBNAILS_BUCKET_NAME else None
    )
    return ServiceContainer(
        documents_store=S3Client(bucket_name=settings.AWS_S3_BUCKET_NAME),
        metadata_store=PostgresDocumentRepository(engine),
        queue=KafkaProducerClient(),
        thumbnail_store=thumbnail_store,
        engine=engine,
    )


def get_extractor(object_store: ObjectStorePort) -> ExtractionPort:
    """
    Builds the composite extractor with every format adapter registered.
    """
    pdf_extractor = PdfAdapter()
    docx_extractor = DocxAdapter()
    txt_extractor = TxtAdapter()
    image_extractor = ImageAdapter()

    return CompositeExtractorAdapter(
        object_store=object_store,
        extractors={
            "application/pdf": pdf_extractor,
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document": docx_extractor,
            "application/msword": docx_extractor,
            "text/plain": txt_extractor,
            "image/jpeg": image_extractor,
            "image/png": image_extractor,
            "image/gif": image_extractor,
        }
    )


def get_ingest_use_case(services: ServiceContainer) -> IngestDocumentUseCase:
    return IngestDocumentUseCase(
        object_store=services.documents_store,
        metadata_store=services.metadata_store,
        queue=services.queue,
    )


def get_document_access_use_case(services: ServiceContainer) -> DocumentAccessUseCase:
    return DocumentAccessUseCase(
        object_store=services.documents_store,
        metadata_store=services.metadata_store,
        thumbnail_store=services.thumbnail_store,
    )


def get_process_document_use_case(
    services: ServiceContainer, extractor: Optional[ExtractionPort] = None
) -> ProcessDocumentUseCase:
    return ProcessDocumentUseCase(
        metadata_store=services.metadata_store,
        extractor=extractor or get_extractor(services.documents_store),
        thumbnail_store=services.thumbnail_store,
    )


def get_reconcile_use_case(services: ServiceContainer) -> ReconcileDocumentsUseCase:
    return ReconcileDocumentsUseCase(
        object_store=services.documents_store,
        metadata_store=services.metadata_store,
        queue=services.queue,
    )
