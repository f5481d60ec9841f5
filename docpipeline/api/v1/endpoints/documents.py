# File: docpipeline/api/v1/endpoints/documents.py
from datetime import timedelta
from typing import Optional
from urllib.parse import quote

import structlog
from fastapi import (
    APIRouter, Depends, File, Header, HTTPException, Query, Request, Response, UploadFile, status,
)

from docpipeline.core.config import settings
from docpipeline.core.errors import DocumentNotFoundError, IngestionError
from docpipeline.core.metrics import UPLOADS_TOTAL
from docpipeline.api.v1.schemas import (
    DocumentListResponse,
    DocumentResponse,
    DocumentUploadResponse,
    DownloadUrlResponse,
    ErrorDetail,
)
from docpipeline.application.use_cases.document_access_use_case import DocumentAccessUseCase
from docpipeline.application.use_cases.ingest_document_use_case import IngestDocumentUseCase
from docpipeline.dependencies import ServiceContainer, get_document_access_use_case, get_ingest_use_case

log = structlog.get_logger(__name__)
router = APIRouter()

NOT_FOUND = {status.HTTP_404_NOT_FOUND: {"model": ErrorDetail}}
STORE_UNAVAILABLE = {status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorDetail}}


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services

def get_ingest(services: ServiceContainer = Depends(get_services)) -> IngestDocumentUseCase:
    return get_ingest_use_case(services)

def get_access(services: ServiceContainer = Depends(get_services)) -> DocumentAccessUseCase:
    return get_document_access_use_case(services)

def clamp_pagination(page: int, page_size: int):
    page = page if page >= 1 else 1
    if page_size < 1:
        page_size = settings.DEFAULT_PAGE_SIZE
    return page, min(page_size, settings.MAX_PAGE_SIZE)


def content_disposition(filename: str) -> str:
    """
    Attachment header with an ASCII `filename` fallback and the exact name
    as RFC 5987 `filename*`. Header values must stay Latin-1 encodable.
    """
    ascii_name = filename.encode("ascii", "ignore").decode("ascii")
    fallback = "".join(c for c in ascii_name if c.isprintable() and c not in '"\\')
    if fallback.startswith(".") or not fallback.strip():
        fallback = "download" + fallback
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


@router.post(
    "/documents",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a document, store it, and queue it for processing.",
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorDetail},
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorDetail},
        status.HTTP_415_UNSUPPORTED_MEDIA_TYPE: {"model": ErrorDetail},
    },
)
def upload_document(
    response: Response,
    file: UploadFile = File(...),
    x_user_id: Optional[str] = Header(None),
    use_case: IngestDocumentUseCase = Depends(get_ingest),
):
    uploaded_by = x_user_id or "anonymous"
    content_type = file.content_type or "application/octet-stream"
    endpoint_log = log.bind(filename=file.filename, content_type=content_type, uploaded_by=uploaded_by)
    endpoint_log.info("Document upload request received.")

    if content_type not in settings.SUPPORTED_CONTENT_TYPES:
        UPLOADS_TOTAL.labels(content_type=content_type, status="error_client").inc()
        raise HTTPException(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, detail=f"File type {content_type} is not allowed")

    try:
        data = file.file.read(settings.MAX_UPLOAD_SIZE_BYTES + 1)
    finally:
        file.file.close()

    if not data:
        UPLOADS_TOTAL.labels(content_type=content_type, status="error_client").inc()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file provided")
    if len(data) > settings.MAX_UPLOAD_SIZE_BYTES:
        UPLOADS_TOTAL.labels(content_type=content_type, status="error_client").inc()
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File size exceeds {settings.MAX_UPLOAD_SIZE_BYTES // (1024 * 1024)}MB limit",
        )

    try:
        summary = use_case.execute(
            content=data,
            original_name=file.filename or "upload",
            content_type=content_type,
            size_bytes=len(data),
            uploaded_by=uploaded_by,
        )
    except IngestionError as e:
        endpoint_log.error("Document ingestion failed", step=e.step.value, document_id=e.document_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": "Failed to ingest document.", "step": e.step.value, "document_id": e.document_id},
        )

    response.headers["Location"] = f"{settings.API_V1_STR}/documents/{summary.id}"
    return DocumentUploadResponse.from_summary(summary)


@router.get("/documents", response_model=DocumentListResponse, responses=STORE_UNAVAILABLE)
def list_documents(
    page: int = Query(1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE),
    use_case: DocumentAccessUseCase = Depends(get_access),
):
    page, page_size = clamp_pagination(page, page_size)
    result = use_case.list_documents(page, page_size)
    return DocumentListResponse(
        documents=[DocumentResponse.from_document(d) for d in result.documents],
        total_count=result.total_count,
        page=page,
        page_size=page_size,
    )


@router.get("/documents/{document_id}", response_model=DocumentResponse, responses={**NOT_FOUND, **STORE_UNAVAILABLE})
def get_document(document_id: str, use_case: DocumentAccessUseCase = Depends(get_access)):
    document = use_case.get_document(document_id)
    if document is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Document {document_id} not found")
    return DocumentResponse.from_document(document)


@router.get(
    "/documents/{document_id}/download-url",
    response_model=DownloadUrlResponse,
    responses={**NOT_FOUND, **STORE_UNAVAILABLE},
)
def get_download_url(
    document_id: str,
    expires_in: Optional[int] = Query(None, ge=1, le=7 * 24 * 3600),
    use_case: DocumentAccessUseCase = Depends(get_access),
):
    expiry = timedelta(seconds=expires_in) if expires_in else None
    try:
        url = use_case.get_download_url(document_id, expiry)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    effective = expires_in or int(use_case.default_url_expiry.total_seconds())
    return DownloadUrlResponse(url=url, expires_in=effective)


@router.get("/documents/{document_id}/content", responses={**NOT_FOUND, **STORE_UNAVAILABLE})
def download_document(document_id: str, use_case: DocumentAccessUseCase = Depends(get_access)):
    try:
        document, data = use_case.download_content(document_id)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return Response(
        content=data,
        media_type=document.content_type,
        headers={"Content-Disposition": content_disposition(document.original_name)},
    )


@router.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT, responses=STORE_UNAVAILABLE)
def delete_document(document_id: str, use_case: DocumentAccessUseCase = Depends(get_access)):
    use_case.delete_document(document_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
