import uuid
from typing import BinaryIO, Optional, Union

import structlog

from docpipeline.core.config import settings
from docpipeline.core.errors import IngestionError, IngestionStep, StoreUnavailableError
from docpipeline.core.metrics import INGESTION_STEP_FAILURES_TOTAL, UPLOADS_TOTAL, UPLOAD_FILE_SIZE_BYTES
from docpipeline.application.ports.metadata_store_port import MetadataStorePort
from docpipeline.application.ports.object_store_port import ObjectStorePort
from docpipeline.application.ports.queue_port import QueueProducerPort
from docpipeline.domain.models import (
    Document,
    DocumentStatus,
    DocumentSummary,
    ProcessDocumentMessage,
    generate_stored_name,
)

log = structlog.get_logger(__name__)


class IngestDocumentUseCase:
    """
    Stores an upload and hands it to the processing queue.

    The three writes happen in a fixed order: content, then metadata record, then
    queue message. A failure stops the sequence and is reported with the failed step;
    nothing is retried or rolled back here.

    - content write fails: nothing was created.
    - record create fails: the blob is orphaned until a reconciliation sweep reclaims it.
    - enqueue fails: the record stays Pending until it is requeued by reconciliation.
    """

    def __init__(
        self,
        object_store: ObjectStorePort,
        metadata_store: MetadataStorePort,
        queue: QueueProducerPort,
        queue_name: Optional[str] = None,
    ):
        self.object_store = object_store
        self.metadata_store = metadata_store
        self.queue = queue
        self.queue_name = queue_name or settings.PROCESSING_QUEUE_NAME
        self.log = log.bind(component="IngestDocumentUseCase")

    def execute(
        self,
        content: Union[bytes, BinaryIO],
        original_name: str,
        content_type: str,
        size_bytes: int,
        uploaded_by: str,
    ) -> DocumentSummary:
        document_id = str(uuid.uuid4())
        stored_name = generate_stored_name(original_name)
        data = content if isinstance(content, bytes) else content.read()

        ingest_log = self.log.bind(
            document_id=document_id, stored_name=stored_name,
            original_name=original_name, content_type=content_type, uploaded_by=uploaded_by,
        )
        ingest_log.info("Starting document ingestion", size_bytes=size_bytes)
        if len(data) != size_bytes:
            ingest_log.warning("Declared size differs from received content", declared=size_bytes, received=len(data))
        UPLOAD_FILE_SIZE_BYTES.labels(content_type=content_type).observe(len(data))

        # 1. Content
        try:
            location = self.object_store.put(stored_name, data, content_type)
        except StoreUnavailableError as e:
            raise self._step_failed(IngestionStep.STORE_CONTENT, document_id, content_type, e, ingest_log) from e

        document = Document(
            id=document_id,
            stored_name=stored_name,
            original_name=original_name,
            content_type=content_type,
            size_bytes=size_bytes,
            status=DocumentStatus.PENDING,
            content_location=location,
            uploaded_by=uploaded_by,
        )

        # 2. Metadata record
        try:
            self.metadata_store.create(document)
        except StoreUnavailableError as e:
            ingest_log.error("Content stored without a metadata record (orphaned blob)", content_location=location)
            raise self._step_failed(IngestionStep.CREATE_RECORD, document_id, content_type, e, ingest_log) from e

        # 3. Processing message
        message = ProcessDocumentMessage(
            document_id=document_id,
            stored_name=stored_name,
            container_name=self.object_store.container_name,
        )
        try:
            self.queue.send(self.queue_name, message)
        except StoreUnavailableError as e:
            ingest_log.error("Document record left Pending without a processing message")
            raise self._step_failed(IngestionStep.ENQUEUE, document_id, content_type, e, ingest_log) from e

        UPLOADS_TOTAL.labels(content_type=content_type, status="success").inc()
        ingest_log.info("Document stored and queued for processing", queue=self.queue_name)
        return document.to_summary()

    def _step_failed(self, step: IngestionStep, document_id: str, content_type: str, error: Exception, ingest_log) -> IngestionError:
        ingest_log.error("Ingestion step failed", step=step.value, error=str(error))
        INGESTION_STEP_FAILURES_TOTAL.labels(step=step.value).inc()
        UPLOADS_TOTAL.labels(content_type=content_type, status="error_server").inc()
        return IngestionError(step, document_id, str(error))
