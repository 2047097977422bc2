"""
Abstract Storage Backend

Interface for permit document blob storage. References are URIs of the form
`<scheme>://<key>`.
"""

from abc import ABC, abstractmethod


class StorageBackend(ABC):
    """Abstract base class for object storage backends."""

    SCHEME: str = ""

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str) -> str:
        """
        Store bytes and return a stable reference.

        Args:
            key: Storage key (e.g., "SHP-2025-0001/STA_2010/3f2a9c_permit.pdf")
            data: Raw bytes to store
            content_type: MIME type

        Returns:
            URI string (e.g., "local://SHP-2025-0001/STA_2010/3f2a9c_permit.pdf")
        """

    @abstractmethod
    def get(self, uri: str) -> bytes:
        """Retrieve bytes by URI. Raises FileNotFoundError if missing."""

    @abstractmethod
    def delete(self, uri: str) -> bool:
        """Delete object by URI. Returns False if it didn't exist."""

    @abstractmethod
    def exists(self, uri: str) -> bool:
        pass

    def get_key_from_uri(self, uri: str) -> str:
        prefix = f"{self.SCHEME}://"
        if uri.startswith(prefix):
            return uri[len(prefix):]
        return uri
