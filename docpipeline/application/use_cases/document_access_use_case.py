from datetime import timedelta
from typing import Optional, Tuple

import structlog

from docpipeline.core.config import settings
from docpipeline.core.errors import DocumentNotFoundError, ObjectStoreError
from docpipeline.core.metrics import DELETIONS_TOTAL
from docpipeline.application.ports.metadata_store_port import MetadataStorePort
from docpipeline.application.ports.object_store_port import ObjectStorePort
from docpipeline.domain.models import Document, DocumentPage

log = structlog.get_logger(__name__)


class DocumentAccessUseCase:
    """Read, signed download and delete operations spanning both stores."""

    def __init__(
        self,
        object_store: ObjectStorePort,
        metadata_store: MetadataStorePort,
        thumbnail_store: Optional[ObjectStorePort] = None,
        default_url_expiry: Optional[timedelta] = None,
    ):
        self.object_store = object_store
        self.metadata_store = metadata_store
        self.thumbnail_store = thumbnail_store
        self.default_url_expiry = default_url_expiry or timedelta(seconds=settings.DEFAULT_DOWNLOAD_URL_EXPIRY_SECONDS)
        self.log = log.bind(component="DocumentAccessUseCase")

    def get_document(self, document_id: str) -> Optional[Document]:
        return self.metadata_store.get(document_id)

    def list_documents(self, page: int, page_size: int) -> DocumentPage:
        return self.metadata_store.list(page, page_size)

    def _require(self, document_id: str) -> Document:
        document = self.metadata_store.get(document_id)
        if document is None:
            self.log.info("Document not found", document_id=document_id)
            raise DocumentNotFoundError(document_id)
        return document

    def get_download_url(self, document_id: str, expiry: Optional[timedelta] = None) -> str:
        """
        Issues a time-limited URL for the primary content.

        The record is not locked: a concurrent delete may remove the content right after
        the URL is issued.
        """
        document = self._require(document_id)
        key = self.object_store.key_from_location(document.content_location)
        url = self.object_store.signed_url(key, expiry or self.default_url_expiry)
        self.log.info("Download URL issued", document_id=document_id)
        return url

    def download_content(self, document_id: str) -> Tuple[Document, bytes]:
        document = self._require(document_id)
        data = self.object_store.get(self.object_store.key_from_location(document.content_location))
        if data is None:
            self.log.error("Metadata record exists but content is missing", document_id=document_id, content_location=document.content_location)
            raise DocumentNotFoundError(document_id)
        return document, data

    def delete_document(self, document_id: str) -> bool:
        """
        Deletes the content, the thumbnail and then the record, in that order.

        While the record exists it is the marker for whatever may still need cleanup,
        so a crash part way leaves a record that a repeated delete finishes off.
        Returns False when there was no record (already deleted).
        A recorded thumbnail with no thumbnail store configured fails the delete
        before anything is removed.
        """
        delete_log = self.log.bind(document_id=document_id)
        document = self.metadata_store.get(document_id)
        if document is None:
            delete_log.info("Document already absent, nothing to delete")
            DELETIONS_TOTAL.labels(status="absent").inc()
            return False

        if document.thumbnail_location and self.thumbnail_store is None:
            delete_log.error("Thumbnail recorded but no thumbnail store configured", thumbnail_location=document.thumbnail_location)
            raise ObjectStoreError(f"No thumbnail store to delete {document.thumbnail_location}")

        content_existed = self.object_store.delete(self.object_store.key_from_location(document.content_location))
        if not content_existed:
            delete_log.warning("Primary content was already missing", content_location=document.content_location)

        if document.thumbnail_location:
            self.thumbnail_store.delete(self.thumbnail_store.key_from_location(document.thumbnail_location))

        self.metadata_store.delete(document_id)
        DELETIONS_TOTAL.labels(status="deleted").inc()
        delete_log.info("Document deleted")
        return True
