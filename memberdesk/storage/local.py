"""Local filesystem storage implementation."""

from pathlib import Path

from .base import AbstractStorage
from .exceptions import FileDeleteError, FileUploadError, InvalidStorageKeyError, StorageFileNotFoundError


class LocalStorage(AbstractStorage):
    """Local filesystem storage provider."""

    def __init__(self, base_path: str) -> None:
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, key: str) -> Path:
        """Resolve a key under the base path, refusing traversal."""
        if not key or key.startswith("/") or "\\" in key:
            raise InvalidStorageKeyError(f"Invalid storage key: {key!r}")
        path = (self.base_path / key).resolve()
        if self.base_path not in path.parents:
            raise InvalidStorageKeyError(f"Invalid storage key: {key!r}")
        return path

    def upload(self, file_content: bytes, key: str) -> None:
        path = self._get_full_path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(file_content)
        except OSError as e:
            msg = f"Failed to upload file locally: {key}"
            raise FileUploadError(msg) from e

    def download(self, key: str) -> bytes:
        path = self._get_full_path(key)
        if not path.is_file():
            msg = f"File not found: {key}"
            raise StorageFileNotFoundError(msg)
        return path.read_bytes()

    def exists(self, key: str) -> bool:
        return self._get_full_path(key).is_file()

    def delete(self, key: str) -> None:
        path = self._get_full_path(key)
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            msg = f"Failed to delete file locally: {key}"
            raise FileDeleteError(msg) from e
