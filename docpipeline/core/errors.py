"""Error taxonomy shared by the store clients and the use cases."""

from enum import Enum
from typing import Optional


class DocPipelineError(Exception):
    """Base class for all errors raised by docpipeline."""
    pass


class DocumentNotFoundError(DocPipelineError):
    """The referenced document has no metadata record."""

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document {document_id} not found")


class InvalidStatusTransitionError(DocPipelineError):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Illegal status transition {current} -> {requested}")


class StoreUnavailableError(DocPipelineError):
    """A backend call (object store, metadata store or queue) failed."""

    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        self.message = message
        self.original_exception = original_exception
        super().__init__(message)

    def __str__(self):
        if self.original_exception:
            return f"{self.message}: {type(self.original_exception).__name__} - {str(self.original_exception)}"
        return self.message


class ObjectStoreError(StoreUnavailableError):
    pass


class MetadataStoreError(StoreUnavailableError):
    pass


class QueueError(StoreUnavailableError):
    pass


class IngestionStep(str, Enum):
    STORE_CONTENT = "store_content"
    CREATE_RECORD = "create_record"
    ENQUEUE = "enqueue"


class IngestionError(DocPipelineError):
    """Raised when one of the ingestion steps fails. `step` names the failed step."""

    def __init__(self, step: IngestionStep, document_id: str, message: str):
        self.step = step
        self.document_id = document_id
        super().__init__(f"Ingestion of {document_id} failed at step '{step.value}': {message}")
