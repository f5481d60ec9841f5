from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterator, Optional


@dataclass(frozen=True)
class StoredObject:
    key: str
    size_bytes: int
    last_modified: datetime


class ObjectStorePort(ABC):
    """
    Interface (Port) for durable key -> bytes storage in a single container.
    """

    container_name: str

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str) -> str:
        """
        Stores `data` under `key` tagged with `content_type`.

        Returns:
            An opaque location reference for the stored object.

        Raises:
            ObjectStoreError: If the backend call fails.
        """
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Returns the stored bytes, or None if the key does not exist."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Deletes `key`. Returns whether it existed; deleting a missing key is not an error."""
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    def signed_url(self, key: str, expiry: timedelta) -> str:
        """Issues a time-limited read URL for `key`."""
        pass

    @abstractmethod
    def key_from_location(self, location: str) -> str:
        """Resolves a location previously returned by `put` back to its key."""
        pass

    @abstractmethod
    def list_keys(self) -> Iterator[StoredObject]:
        pass
