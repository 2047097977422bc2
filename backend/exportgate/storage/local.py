"""
Local Filesystem Storage Backend

Permit documents are stored under the configured base path:
    storage/permits/
        SHP-2025-0001/
            STA_2010/
                3f2a9c41_permit.pdf
"""

from pathlib import Path

from exportgate.storage.base import StorageBackend


class LocalStorage(StorageBackend):
    SCHEME = "local"

    def __init__(self, base_path: str = "storage/permits"):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path(self, uri: str) -> Path:
        path = (self.base_path / self.get_key_from_uri(uri)).resolve()
        if self.base_path not in path.parents:
            raise ValueError(f"Storage key escapes base path: {uri}")
        return path

    def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return f"{self.SCHEME}://{key}"

    def get(self, uri: str) -> bytes:
        path = self._path(uri)
        if not path.exists():
            raise FileNotFoundError(f"Permit document not found: {uri}")
        return path.read_bytes()

    def delete(self, uri: str) -> bool:
        path = self._path(uri)
        if path.exists():
            path.unlink()
            self._cleanup_empty_dirs(path.parent)
            return True
        return False

    def exists(self, uri: str) -> bool:
        return self._path(uri).exists()

    def _cleanup_empty_dirs(self, path: Path) -> None:
        """Remove empty parent directories up to base_path."""
        while path != self.base_path and path.exists():
            if any(path.iterdir()):
                break
            path.rmdir()
            path = path.parent
