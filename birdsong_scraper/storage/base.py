from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable


class BaseStorage(ABC):
    """
    Abstract base class for the storage interface.

    Defines the file operations the ledger and the download workers rely on,
    so the output directory can be swapped for another backend in tests.
    """

    @abstractmethod
    def create_workspace(self, directory: str | Path) -> Path:
        """Create the output directory if needed.

        Args:
            directory (str | Path): Directory to create.

        Returns:
            Path: The directory path.

        Raises:
            RuntimeError: If the directory cannot be created.
        """
        pass

    @abstractmethod
    def file_exist(self, directory: str | Path, filename: str) -> bool:
        """
        Check if a file exists.

        Args:
            directory (str | Path): The directory holding the file.
            filename (str): The name of the file.

        Returns:
            bool: True if the file exists, False otherwise.
        """

    @abstractmethod
    def list_files(self, directory: str | Path, extension: str) -> list[str]:
        """List file names in a directory with the given extension, sorted."""

    @abstractmethod
    def save_file(self, path: str | Path, content: str) -> Path:
        """Replace the text file at path with content in a single step.

        Returns:
            Path: The absolute path of the saved file.

        Raises:
            RuntimeError: If file saving fails.
        """
        pass

    @abstractmethod
    def save_stream(self, path: str | Path, chunks: Iterable[bytes]) -> int:
        """Write binary chunks to path and return the number of bytes written."""
        pass
