import structlog

from docpipeline.application.ports.extraction_port import ExtractionError, ExtractionResult
from docpipeline.domain.models import ExtractedMetadata
from docpipeline.infrastructure.extractors.base_extractor import BaseExtractorAdapter

log = structlog.get_logger(__name__)

_SIGNATURES = {
    "image/png": (b"\x89PNG\r\n\x1a\n",),
    "image/jpeg": (b"\xff\xd8\xff",),
    "image/gif": (b"GIF87a", b"GIF89a"),
}


class ImageAdapter(BaseExtractorAdapter):
    """Tags images and checks that the bytes match the declared format."""

    SUPPORTED_CONTENT_TYPES = list(_SIGNATURES)

    def extract_from_bytes(self, file_bytes: bytes, filename: str, content_type: str) -> ExtractionResult:
        self._check_content_type(content_type)

        if not file_bytes.startswith(_SIGNATURES[content_type]):
            log.warning("ImageAdapter: Content does not match declared type", filename=filename, content_type=content_type)
            raise ExtractionError(f"{filename} is not a valid {content_type} file")

        custom_properties = self._base_properties("image")
        custom_properties["format"] = content_type.split("/", 1)[1]
        return ExtractionResult(metadata=ExtractedMetadata(custom_properties=custom_properties))
