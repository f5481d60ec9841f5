import io
import docx  # python-docx
import structlog

from docpipeline.application.ports.extraction_port import ExtractionResult
from docpipeline.domain.models import ExtractedMetadata
from docpipeline.infrastructure.extractors.base_extractor import BaseExtractorAdapter

log = structlog.get_logger(__name__)

class DocxAdapter(BaseExtractorAdapter):
    """Reads core properties of Word documents."""

    SUPPORTED_CONTENT_TYPES = [
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/msword" # python-docx can sometimes handle .doc, but it's not guaranteed
    ]

    def extract_from_bytes(self, file_bytes: bytes, filename: str, content_type: str) -> ExtractionResult:
        self._check_content_type(content_type)

        log.debug("DocxAdapter: Reading DOCX bytes", filename=filename)
        try:
            doc = docx.Document(io.BytesIO(file_bytes))
        except Exception as e:
            if content_type == "application/msword":
                log.warning("DocxAdapter: Failed to process .doc file. This format has limited support.", filename=filename, error=str(e))
            raise self._handle_extraction_error(e, filename, "DocxAdapter") from e

        props = doc.core_properties
        paragraphs = [p for p in doc.paragraphs if p.text and not p.text.isspace()]
        custom_properties = self._base_properties("document")
        custom_properties["paragraphCount"] = str(len(paragraphs))
        if props.subject:
            custom_properties["subject"] = props.subject
        if props.last_modified_by:
            custom_properties["lastModifiedBy"] = props.last_modified_by

        log.info("DocxAdapter: DOCX extraction successful", filename=filename, num_paragraphs=len(paragraphs))
        return ExtractionResult(
            metadata=ExtractedMetadata(
                author=props.author or None,
                title=props.title or None,
                custom_properties=custom_properties,
            )
        )
