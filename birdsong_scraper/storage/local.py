import os
import tempfile
from pathlib import Path
from typing import Iterable

from .base import BaseStorage


class LocalStorage(BaseStorage):
    """A client for interacting with local filesystem storage."""

    def create_workspace(self, directory: str | Path) -> Path:
        """Creates the output directory on the local filesystem.

        Args:
            directory (str | Path): Directory to create.

        Returns:
            Path: The directory path.
        """
        path = Path(directory)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RuntimeError(f"Error creating output directory {path}: {e}")
        return path

    def file_exist(self, directory: str | Path, filename: str) -> bool:
        """
        Check if a file exists in local storage

        Args:
            directory (str | Path): The directory holding the file.
            filename (str): The name of the file.

        Returns:
            bool: True if the file exists, False otherwise.
        """
        return (Path(directory) / filename).is_file()

    def list_files(self, directory: str | Path, extension: str) -> list[str]:
        """List file names in directory whose suffix matches extension.

        Args:
            directory (str | Path): Directory to scan.
            extension (str): Suffix including the dot, compared case-insensitively.

        Returns:
            list[str]: Sorted file names, empty when the directory is missing.
                Hidden files (in-progress writes) are not listed.
        """
        path = Path(directory)
        if not path.is_dir():
            return []
        extension = extension.lower()
        return sorted(
            f.name
            for f in path.iterdir()
            if f.is_file()
            and not f.name.startswith(".")
            and f.suffix.lower() == extension
        )

    def save_file(self, path: str | Path, content: str) -> Path:
        """Saves text content, replacing any previous file atomically.

        The content goes to a temporary file in the same directory which is
        then renamed over the target, so readers never see a partial file.

        Args:
            path (str | Path): Target file.
            content (str): The content to save as text.

        Returns:
            Path: The absolute path of the saved file.
        """
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=target.parent, prefix=f".{target.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", newline="", encoding="utf-8") as file:
                file.write(content)
            os.replace(tmp_name, target)
        except OSError as e:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise RuntimeError(f"Error saving file to local storage: {e}")
        return target.resolve()

    def save_stream(self, path: str | Path, chunks: Iterable[bytes]) -> int:
        """Write binary chunks to path, removing the partial file on error.

        Args:
            path (str | Path): Target file.
            chunks (Iterable[bytes]): Payload chunks, empty chunks are skipped.

        Returns:
            int: Number of bytes written.
        """
        target = Path(path)
        written = 0
        try:
            with open(target, "wb") as f:
                for chunk in chunks:
                    if chunk:
                        f.write(chunk)
                        written += len(chunk)
        except BaseException:
            if target.exists():
                target.unlink()
            raise
        return written
