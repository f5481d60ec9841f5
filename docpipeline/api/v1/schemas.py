# File: docpipeline/api/v1/schemas.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from docpipeline.domain.models import Document, DocumentStatus, DocumentSummary, ExtractedMetadata


class ErrorDetail(BaseModel):
    """Schema for error details in responses."""
    detail: str


class DocumentUploadResponse(BaseModel):
    """
    Returned once the document is stored and its processing message sent.
    """
    id: str
    file_name: str
    status: DocumentStatus
    created_at: datetime

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "123e4567-e89b-12d3-a456-426614174000",
                "file_name": "report.pdf",
                "status": "Pending",
                "created_at": "2024-01-01T12:00:00Z",
            }
        }
    )

    @classmethod
    def from_summary(cls, summary: DocumentSummary) -> "DocumentUploadResponse":
        return cls(id=summary.id, file_name=summary.original_name, status=summary.status, created_at=summary.created_at)


class DocumentResponse(BaseModel):
    id: str
    file_name: str
    content_type: str
    file_size: int
    status: DocumentStatus
    thumbnail_location: Optional[str] = None
    metadata: Optional[ExtractedMetadata] = None
    error_detail: Optional[str] = None
    uploaded_by: str
    created_at: datetime
    processed_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, document: Document) -> "DocumentResponse":
        return cls(
            id=document.id,
            file_name=document.original_name,
            content_type=document.content_type,
            file_size=document.size_bytes,
            status=document.status,
            thumbnail_location=document.thumbnail_location,
            metadata=document.extracted_metadata,
            error_detail=document.error_detail,
            uploaded_by=document.uploaded_by,
            created_at=document.created_at,
            processed_at=document.processed_at,
        )


class DocumentListResponse(BaseModel):
    documents: List[DocumentResponse]
    total_count: int
    page: int
    page_size: int


class DownloadUrlResponse(BaseModel):
    url: str
    expires_in: int = Field(description="Validity of the URL in seconds.")
