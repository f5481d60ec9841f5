from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

import structlog

from docpipeline.core.config import settings
from docpipeline.core.errors import StoreUnavailableError
from docpipeline.core.metrics import RECONCILIATION_ACTIONS_TOTAL
from docpipeline.application.ports.metadata_store_port import MetadataStorePort
from docpipeline.application.ports.object_store_port import ObjectStorePort
from docpipeline.application.ports.queue_port import QueueProducerPort
from docpipeline.domain.models import DocumentStatus, ProcessDocumentMessage, utcnow

log = structlog.get_logger(__name__)


@dataclass
class ReconciliationReport:
    requeued: List[str] = field(default_factory=list)
    requeue_failed: List[str] = field(default_factory=list)
    missing_content: List[str] = field(default_factory=list)
    orphaned_blobs: List[str] = field(default_factory=list)
    deleted_orphans: List[str] = field(default_factory=list)


class ReconcileDocumentsUseCase:
    """
    Out-of-band sweep over the two stores.

    - Pending/Processing records older than their threshold get a new processing
      message (processing is idempotent, so a duplicate is harmless).
    - Records whose content is missing are reported, never removed.
    - Blobs without a record, older than the grace period, are reported and only
      deleted when asked to.
    """

    def __init__(
        self,
        object_store: ObjectStorePort,
        metadata_store: MetadataStorePort,
        queue: QueueProducerPort,
        queue_name: Optional[str] = None,
        stuck_pending_after: Optional[timedelta] = None,
        stuck_processing_after: Optional[timedelta] = None,
        orphan_grace_period: Optional[timedelta] = None,
    ):
        self.object_store = object_store
        self.metadata_store = metadata_store
        self.queue = queue
        self.queue_name = queue_name or settings.PROCESSING_QUEUE_NAME
        self.stuck_after = {
            DocumentStatus.PENDING: stuck_pending_after or timedelta(seconds=settings.STUCK_PENDING_AFTER_SECONDS),
            DocumentStatus.PROCESSING: stuck_processing_after or timedelta(seconds=settings.STUCK_PROCESSING_AFTER_SECONDS),
        }
        self.orphan_grace_period = orphan_grace_period or timedelta(seconds=settings.ORPHAN_GRACE_PERIOD_SECONDS)
        self.log = log.bind(component="ReconcileDocumentsUseCase")

    def run(self, now: Optional[datetime] = None, delete_orphans: bool = False) -> ReconciliationReport:
        now = now or utcnow()
        report = ReconciliationReport()
        self.log.info("Starting reconciliation sweep", delete_orphans=delete_orphans)

        self._requeue_stuck(now, report)
        self._find_missing_content(report)
        self._find_orphaned_blobs(now, delete_orphans, report)

        self.log.info(
            "Reconciliation sweep finished",
            requeued=len(report.requeued),
            requeue_failed=len(report.requeue_failed),
            missing_content=len(report.missing_content),
            orphaned_blobs=len(report.orphaned_blobs),
            deleted_orphans=len(report.deleted_orphans),
        )
        return report

    def _requeue_stuck(self, now: datetime, report: ReconciliationReport) -> None:
        for status, threshold in self.stuck_after.items():
            for document in self.metadata_store.list_by_status(status):
                if now - document.created_at < threshold:
                    continue
                message = ProcessDocumentMessage(
                    document_id=document.id,
                    stored_name=document.stored_name,
                    container_name=self.object_store.container_name,
                )
                try:
                    self.queue.send(self.queue_name, message)
                except StoreUnavailableError as e:
                    self.log.error("Failed to requeue stuck document", document_id=document.id, error=str(e))
                    report.requeue_failed.append(document.id)
                    continue
                self.log.warning("Requeued stuck document", document_id=document.id, status=status.value, created_at=document.created_at.isoformat())
                RECONCILIATION_ACTIONS_TOTAL.labels(action=f"requeue_{status.value.lower()}").inc()
                report.requeued.append(document.id)

    def _find_missing_content(self, report: ReconciliationReport) -> None:
        for status in DocumentStatus:
            for document in self.metadata_store.list_by_status(status):
                key = self.object_store.key_from_location(document.content_location)
                if not self.object_store.exists(key):
                    self.log.error("Inconsistency: record without content", document_id=document.id, content_location=document.content_location)
                    RECONCILIATION_ACTIONS_TOTAL.labels(action="missing_content").inc()
                    report.missing_content.append(document.id)

    def _find_orphaned_blobs(self, now: datetime, delete_orphans: bool, report: ReconciliationReport) -> None:
        for stored in self.object_store.list_keys():
            if now - stored.last_modified < self.orphan_grace_period:
                continue
            if self.metadata_store.find_by_stored_name(stored.key) is not None:
                continue
            self.log.warning("Orphaned blob found", key=stored.key, last_modified=stored.last_modified.isoformat())
            RECONCILIATION_ACTIONS_TOTAL.labels(action="orphaned_blob").inc()
            report.orphaned_blobs.append(stored.key)
            if delete_orphans:
                self.object_store.delete(stored.key)
                RECONCILIATION_ACTIONS_TOTAL.labels(action="orphan_deleted").inc()
                report.deleted_orphans.append(stored.key)
