import structlog

from docpipeline.application.ports.extraction_port import ExtractionError, ExtractionResult
from docpipeline.domain.models import ExtractedMetadata
from docpipeline.infrastructure.extractors.base_extractor import BaseExtractorAdapter

log = structlog.get_logger(__name__)

class TxtAdapter(BaseExtractorAdapter):
    """Detects the encoding of plain text files and counts lines and characters."""

    SUPPORTED_CONTENT_TYPES = ["text/plain"]
    ENCODINGS_TO_TRY = ["utf-8", "cp1252", "latin-1"]

    def extract_from_bytes(self, file_bytes: bytes, filename: str, content_type: str) -> ExtractionResult:
        self._check_content_type(content_type)

        text = None
        encoding_used = None
        for enc in self.ENCODINGS_TO_TRY:
            try:
                text = file_bytes.decode(enc)
                encoding_used = enc
                break
            except UnicodeDecodeError:
                log.debug(f"TxtAdapter: Failed to decode with {enc}, trying next.", filename=filename)

        if text is None:
            log.error("TxtAdapter: Could not decode TXT file with tried encodings.", filename=filename)
            raise ExtractionError(f"Could not decode TXT file {filename} with tried encodings.")

        custom_properties = self._base_properties("text")
        custom_properties["encoding"] = encoding_used
        custom_properties["lineCount"] = str(len(text.splitlines()))
        custom_properties["charCount"] = str(len(text))

        log.info("TxtAdapter: TXT extraction successful", filename=filename, encoding=encoding_used, length=len(text))
        return ExtractionResult(metadata=ExtractedMetadata(custom_properties=custom_properties))
