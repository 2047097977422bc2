"""
Permit document storage.

The ledger only needs put/get/exists/delete against an opaque reference;
`create_storage` returns the configured backend. It is called once from
core bootstrap, not lazily per request.
"""

from exportgate.storage.base import StorageBackend
from exportgate.storage.local import LocalStorage


def create_storage(storage_path: str) -> StorageBackend:
    return LocalStorage(storage_path)


__all__ = ["StorageBackend", "LocalStorage", "create_storage"]
