import logging
from enum import Enum
from typing import Optional

import structlog
from tenacity import (
    RetryError, Retrying, before_sleep_log, retry_if_exception_type,
    stop_after_attempt, wait_exponential,
)

from docpipeline.core.errors import StoreUnavailableError
from docpipeline.core.metrics import PROCESSING_DURATION_SECONDS, PROCESSING_OUTCOMES_TOTAL
from docpipeline.application.ports.extraction_port import ExtractionPort
from docpipeline.application.ports.metadata_store_port import MetadataStorePort
from docpipeline.application.ports.object_store_port import ObjectStorePort
from docpipeline.domain.models import Document, ProcessDocumentMessage

log = structlog.get_logger(__name__)


class ProcessingOutcome(str, Enum):
    COMPLETED = "completed"
    SKIPPED_MISSING = "skipped_missing"
    ALREADY_TERMINAL = "already_terminal"


class ProcessDocumentUseCase:
    """
    Drives a document through Processing to Completed or Failed for one queue delivery.

    Deliveries are at-least-once, so every write is a whole-record upsert and the use
    case keeps no state between calls. Failures leave the document Failed and are
    re-raised so the delivery is not acknowledged.
    """

    def __init__(
        self,
        metadata_store: MetadataStorePort,
        extractor: ExtractionPort,
        thumbnail_store: Optional[ObjectStorePort] = None,
        failure_persist_attempts: int = 3,
        failure_persist_wait=None,
    ):
        self.metadata_store = metadata_store
        self.extractor = extractor
        self.thumbnail_store = thumbnail_store
        self.failure_persist_attempts = failure_persist_attempts
        self.failure_persist_wait = failure_persist_wait or wait_exponential(multiplier=0.5, min=0.5, max=5)
        self.log = log.bind(component="ProcessDocumentUseCase")

    def execute(self, message: ProcessDocumentMessage) -> ProcessingOutcome:
        use_case_log = self.log.bind(document_id=message.document_id, stored_name=message.stored_name)
        use_case_log.info("Received document for processing")

        document = self.metadata_store.get(message.document_id)
        if document is None:
            # Deleted between enqueue and delivery
            use_case_log.warning("Document record not found, dropping delivery")
            PROCESSING_OUTCOMES_TOTAL.labels(outcome=ProcessingOutcome.SKIPPED_MISSING.value).inc()
            return ProcessingOutcome.SKIPPED_MISSING

        if document.status.is_terminal:
            use_case_log.info("Document already in a terminal state, re-persisting unchanged", status=document.status.value)
            self.metadata_store.upsert(document)
            PROCESSING_OUTCOMES_TOTAL.labels(outcome=ProcessingOutcome.ALREADY_TERMINAL.value).inc()
            return ProcessingOutcome.ALREADY_TERMINAL

        document.mark_processing()
        # State to fall back to if a later step fails
        processing_snapshot = document.model_copy(deep=True)

        with PROCESSING_DURATION_SECONDS.labels(content_type=document.content_type).time():
            try:
                self.metadata_store.upsert(document)
                use_case_log.info("Status set to Processing, extracting metadata", content_type=document.content_type)

                result = self.extractor.extract(document.content_location, document.content_type)

                if result.thumbnail and self.thumbnail_store is not None:
                    thumbnail_location = self.thumbnail_store.put(f"{document.id}.png", result.thumbnail, "image/png")
                    document.thumbnail_location = thumbnail_location
                    processing_snapshot.thumbnail_location = thumbnail_location

                document.mark_completed(result.metadata)
                self.metadata_store.upsert(document)
            except Exception as e:
                self._record_failure(processing_snapshot, e, use_case_log)
                raise

        PROCESSING_OUTCOMES_TOTAL.labels(outcome=ProcessingOutcome.COMPLETED.value).inc()
        use_case_log.info("Document processed successfully", processed_at=document.processed_at.isoformat())
        return ProcessingOutcome.COMPLETED

    def _record_failure(self, document: Document, error: Exception, use_case_log) -> None:
        reason = f"{type(error).__name__}: {error}"[:2000]
        use_case_log.error("Document processing failed", error=reason)
        PROCESSING_OUTCOMES_TOTAL.labels(outcome="failed").inc()
        document.mark_failed(reason)

        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self.failure_persist_attempts),
                wait=self.failure_persist_wait,
                retry=retry_if_exception_type(StoreUnavailableError),
                before_sleep=before_sleep_log(use_case_log, logging.WARNING),
            ):
                with attempt:
                    self.metadata_store.upsert(document)
        except RetryError as retry_err:
            # The delivery is still not acknowledged, so redelivery gets another chance
            use_case_log.critical(
                "Could not persist Failed status",
                error=str(retry_err.last_attempt.exception()),
            )
            return
        use_case_log.info("Document marked as Failed", error_detail=document.error_detail)
