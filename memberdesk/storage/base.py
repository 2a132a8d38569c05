"""Abstract storage interface for object storage providers."""

from abc import ABC, abstractmethod


class AbstractStorage(ABC):
    """Abstract base class for storage providers.

    Keys are forward-slash separated relative paths such as
    ``submissions/12/3/1700000000000_rapport.pdf``.
    """

    @abstractmethod
    def upload(self, file_content: bytes, key: str) -> None:
        """Store ``file_content`` under ``key``.

        Raises
        ------
            FileUploadError: If the upload fails.
        """
        raise NotImplementedError

    @abstractmethod
    def download(self, key: str) -> bytes:
        """Return the bytes stored under ``key``.

        Raises
        ------
            StorageFileNotFoundError: If the file is not found.
        """
        raise NotImplementedError

    @abstractmethod
    def exists(self, key: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete the file stored under ``key``. Missing files are ignored.

        Raises
        ------
            FileDeleteError: If the deletion fails.
        """
        raise NotImplementedError
