from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from docpipeline.domain.models import ExtractedMetadata


class ExtractionError(Exception):
    """Base exception for extraction errors."""
    pass

class UnsupportedContentTypeError(ExtractionError):
    """Exception raised when a content type is not supported for extraction."""
    pass


@dataclass
class ExtractionResult:
    metadata: ExtractedMetadata
    thumbnail: Optional[bytes] = None  # PNG


class ExtractionPort(ABC):
    """
    Interface (Port) for metadata extraction from stored documents.
    """

    @abstractmethod
    def extract(self, content_ref: str, content_type: str) -> ExtractionResult:
        """
        Extracts metadata from the stored content.

        Args:
            content_ref: Location of the content in the object store.
            content_type: MIME type declared at upload time.

        Returns:
            The extracted metadata, optionally with a PNG thumbnail of the first page.

        Raises:
            UnsupportedContentTypeError: If the content_type is not supported.
            ExtractionError: For any other failure during extraction.
        """
        pass
