import fitz  # PyMuPDF
import structlog
from typing import Optional

from docpipeline.application.ports.extraction_port import ExtractionResult
from docpipeline.domain.models import ExtractedMetadata
from docpipeline.infrastructure.extractors.base_extractor import BaseExtractorAdapter


log = structlog.get_logger(__name__)

class PdfAdapter(BaseExtractorAdapter):
    """Reads page count, document info and a first-page thumbnail from PDFs using PyMuPDF."""

    SUPPORTED_CONTENT_TYPES = ["application/pdf"]

    def __init__(self, thumbnail_zoom: float = 0.5):
        self.thumbnail_zoom = thumbnail_zoom

    def extract_from_bytes(self, file_bytes: bytes, filename: str, content_type: str) -> ExtractionResult:
        self._check_content_type(content_type)

        log.debug("PdfAdapter: Reading PDF bytes", filename=filename)
        try:
            with fitz.open(stream=file_bytes, filetype="pdf") as doc:
                page_count = len(doc)
                info = doc.metadata or {}
                custom_properties = self._base_properties("pdf")
                for key in ("subject", "creator", "producer", "creationDate"):
                    if info.get(key):
                        custom_properties[key] = str(info[key])
                thumbnail = self._render_thumbnail(doc, filename) if page_count else None
        except Exception as e:
            raise self._handle_extraction_error(e, filename, "PdfAdapter") from e

        metadata = ExtractedMetadata(
            page_count=page_count,
            author=info.get("author") or None,
            title=info.get("title") or None,
            custom_properties=custom_properties,
        )
        log.info("PdfAdapter: PDF extraction successful", filename=filename, page_count=page_count, has_thumbnail=thumbnail is not None)
        return ExtractionResult(metadata=metadata, thumbnail=thumbnail)

    def _render_thumbnail(self, doc, filename: str) -> Optional[bytes]:
        try:
            pixmap = doc.load_page(0).get_pixmap(matrix=fitz.Matrix(self.thumbnail_zoom, self.thumbnail_zoom))
            return pixmap.tobytes("png")
        except Exception as e:
            # A missing thumbnail does not fail the document
            log.warning("PdfAdapter: Could not render thumbnail", filename=filename, error=str(e))
            return None
