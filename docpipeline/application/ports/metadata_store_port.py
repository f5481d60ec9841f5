from abc import ABC, abstractmethod
from typing import List, Optional

from docpipeline.domain.models import Document, DocumentPage, DocumentStatus


class MetadataStorePort(ABC):
    """
    Interface (Port) for the document metadata store.

    Absent documents are reported with None/False, never with an exception.
    Only backend failures raise (MetadataStoreError).
    """

    @abstractmethod
    def create(self, document: Document) -> Document:
        pass

    @abstractmethod
    def get(self, document_id: str) -> Optional[Document]:
        pass

    @abstractmethod
    def list(self, page: int, page_size: int) -> DocumentPage:
        """
        Returns one page of documents ordered by created_at descending, plus the total count.

        Pages are 1-based. Out-of-range values are not rejected: a page past the end is empty.
        """
        pass

    @abstractmethod
    def upsert(self, document: Document) -> Document:
        pass

    @abstractmethod
    def delete(self, document_id: str) -> bool:
        pass

    @abstractmethod
    def list_by_status(self, status: DocumentStatus) -> List[Document]:
        pass

    @abstractmethod
    def find_by_stored_name(self, stored_name: str) -> Optional[Document]:
        pass
