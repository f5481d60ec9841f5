import structlog
from abc import ABC, abstractmethod
from typing import Dict, List

from docpipeline.application.ports.extraction_port import ExtractionError, ExtractionResult, UnsupportedContentTypeError

log = structlog.get_logger(__name__)

PROCESSED_BY = "docpipeline-worker"
PROCESSING_VERSION = "1.0"


class BaseExtractorAdapter(ABC):
    """
    Base class for per-format extractors working on raw bytes, with common logging.
    """

    SUPPORTED_CONTENT_TYPES: List[str] = []

    @abstractmethod
    def extract_from_bytes(self, file_bytes: bytes, filename: str, content_type: str) -> ExtractionResult:
        pass

    def _check_content_type(self, content_type: str) -> None:
        if content_type not in self.SUPPORTED_CONTENT_TYPES:
            raise UnsupportedContentTypeError(f"{type(self).__name__} does not support content type: {content_type}")

    def _base_properties(self, type_tag: str) -> Dict[str, str]:
        return {
            "type": type_tag,
            "processedBy": PROCESSED_BY,
            "processingVersion": PROCESSING_VERSION,
        }

    def _handle_extraction_error(self, e: Exception, filename: str, adapter_name: str) -> ExtractionError:
        log.error(f"{adapter_name} extraction failed", filename=filename, error=str(e), exc_info=True)
        return ExtractionError(f"Error extracting with {adapter_name} for {filename}: {e}")
