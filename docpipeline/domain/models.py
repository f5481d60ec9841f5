import os
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from docpipeline.core.errors import InvalidStatusTransitionError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStatus(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.COMPLETED, DocumentStatus.FAILED)

    def can_transition_to(self, target: "DocumentStatus") -> bool:
        return target in _ALLOWED_TRANSITIONS[self]


# Processing -> Processing is allowed so a redelivered message can re-mark the record.
_ALLOWED_TRANSITIONS: Dict[DocumentStatus, FrozenSet[DocumentStatus]] = {
    DocumentStatus.PENDING: frozenset({DocumentStatus.PROCESSING}),
    DocumentStatus.PROCESSING: frozenset({
        DocumentStatus.PROCESSING, DocumentStatus.COMPLETED, DocumentStatus.FAILED,
    }),
    DocumentStatus.COMPLETED: frozenset(),
    DocumentStatus.FAILED: frozenset(),
}


class ExtractedMetadata(BaseModel):
    """Structured result of the extraction step."""
    page_count: Optional[int] = Field(None, description="Number of pages, where the format has pages.")
    author: Optional[str] = None
    title: Optional[str] = None
    custom_properties: Dict[str, str] = Field(default_factory=dict)


class Document(BaseModel):
    """Metadata record for one uploaded file."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    stored_name: str
    original_name: str
    content_type: str
    size_bytes: int
    status: DocumentStatus = DocumentStatus.PENDING
    content_location: str
    thumbnail_location: Optional[str] = None
    extracted_metadata: Optional[ExtractedMetadata] = None
    error_detail: Optional[str] = None
    uploaded_by: str
    created_at: datetime = Field(default_factory=utcnow)
    processed_at: Optional[datetime] = None

    def transition_to(self, target: DocumentStatus) -> None:
        if not self.status.can_transition_to(target):
            raise InvalidStatusTransitionError(self.status.value, target.value)
        self.status = target

    def mark_processing(self) -> None:
        self.transition_to(DocumentStatus.PROCESSING)

    def mark_completed(self, metadata: ExtractedMetadata, processed_at: Optional[datetime] = None) -> None:
        self.transition_to(DocumentStatus.COMPLETED)
        self.extracted_metadata = metadata
        self.error_detail = None
        self.processed_at = processed_at or utcnow()

    def mark_failed(self, reason: str, processed_at: Optional[datetime] = None) -> None:
        self.transition_to(DocumentStatus.FAILED)
        self.extracted_metadata = None
        self.error_detail = reason or "Unknown processing error"
        self.processed_at = processed_at or utcnow()

    def to_summary(self) -> "DocumentSummary":
        return DocumentSummary(
            id=self.id,
            original_name=self.original_name,
            status=self.status,
            created_at=self.created_at,
        )


class DocumentSummary(BaseModel):
    id: str
    original_name: str
    status: DocumentStatus
    created_at: datetime


class DocumentPage(BaseModel):
    documents: List[Document]
    total_count: int
    page: int
    page_size: int


class ProcessDocumentMessage(BaseModel):
    """Queue payload. The camelCase wire names are shared with every producer and consumer."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    document_id: str = Field(alias="documentId")
    stored_name: str = Field(alias="storedName")
    container_name: str = Field(alias="containerName")

    def to_wire(self) -> Dict[str, str]:
        return self.model_dump(by_alias=True)


def generate_stored_name(original_name: str) -> str:
    """Random storage key that keeps the (lower-cased) extension of the uploaded name."""
    _, extension = os.path.splitext(original_name or "")
    return f"{uuid.uuid4().hex}{extension.lower()}"
