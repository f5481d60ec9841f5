# File: docpipeline/infrastructure/extractors/composite_extractor_adapter.py
from typing import Dict, Optional
import structlog

from docpipeline.application.ports.extraction_port import (
    ExtractionError, ExtractionPort, ExtractionResult, UnsupportedContentTypeError,
)
from docpipeline.application.ports.object_store_port import ObjectStorePort
from .base_extractor import BaseExtractorAdapter

log = structlog.get_logger(__name__)

class CompositeExtractorAdapter(ExtractionPort):
    """
    Resolves a content reference through the object store and delegates extraction to
    the adapter registered for the content type.
    """
    def __init__(self, object_store: ObjectStorePort, extractors: Dict[str, BaseExtractorAdapter]):
        """
        Args:
            object_store: Store the content references point into.
            extractors: Maps content types (e.g. "application/pdf") to extractor instances.
        """
        self.object_store = object_store
        self.extractors = extractors
        self.log = log.bind(component="CompositeExtractorAdapter")
        self.log.info("Initialized with supported content types", types=list(extractors.keys()))

    def _select(self, content_type: str) -> Optional[BaseExtractorAdapter]:
        return self.extractors.get(content_type)

    def extract(self, content_ref: str, content_type: str) -> ExtractionResult:
        # Strip parameters such as charset
        normalized_content_type = content_type.split(';')[0].strip().lower()
        extractor = self._select(normalized_content_type)
        if not extractor:
            self.log.warning("Unsupported content type for composite extraction", content_type=content_type)
            raise UnsupportedContentTypeError(f"No extractor registered for content type: {content_type}")

        try:
            key = self.object_store.key_from_location(content_ref)
        except ValueError as e:
            self.log.error("Content location not readable from this store", content_ref=content_ref)
            raise ExtractionError(f"Cannot resolve content location {content_ref}: {e}") from e
        file_bytes = self.object_store.get(key)
        if file_bytes is None:
            self.log.error("Content missing from object store", content_ref=content_ref)
            raise ExtractionError(f"Content not found at {content_ref}")

        self.log.debug("Delegating extraction", key=key, content_type=normalized_content_type, extractor=type(extractor).__name__)
        try:
            return extractor.extract_from_bytes(file_bytes, key, normalized_content_type)
        except ExtractionError:
            raise
        except Exception as e:
            raise extractor._handle_extraction_error(e, key, f"CompositeAdapter -> {type(extractor).__name__}") from e
