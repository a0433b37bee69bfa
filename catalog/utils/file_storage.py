"""
Local-filesystem blob storage for uploaded files.
"""

import uuid
from pathlib import Path
from typing import Optional, Union

import aiofiles
import aiofiles.os
from fastapi import UploadFile

from catalog.core.exceptions import InvalidInputError, UpstreamFailureError
from catalog.core.logging import get_logger

logger = get_logger(__name__)


class LocalFileStorage:
    """Stores uploads under a managed directory with random names."""

    READ_CHUNK_SIZE = 64 * 1024

    def __init__(self, root: Path, max_size: Optional[int] = None):
        self.root = Path(root)
        self.max_size = max_size

    def ensure_root(self) -> None:
        if not self.root.exists():
            self.root.mkdir(parents=True, exist_ok=True)
            logger.info("Created upload directory", path=str(self.root))

    def new_path(self, extension: str) -> Path:
        """A fresh storage path; the caller's file name never takes part in it."""
        return self.root / f"{uuid.uuid4()}{extension.lower()}"

    async def write(self, file: UploadFile, extension: str, max_size: Optional[int] = None) -> Path:
        """
        Stream an upload to a new file.

        Args:
            file: Uploaded file
            extension: Suffix for the stored file, including the dot
            max_size: Size cap in bytes, defaults to the storage-wide cap

        Returns:
            Path of the stored file

        Raises:
            InvalidInputError: If the stream exceeds the size cap
            UpstreamFailureError: If the file cannot be written
        """
        self.ensure_root()
        path = self.new_path(extension)
        limit = max_size if max_size is not None else self.max_size
        total_size = 0

        try:
            async with aiofiles.open(path, "wb") as out:
                while chunk := await file.read(self.READ_CHUNK_SIZE):
                    total_size += len(chunk)
                    if limit is not None and total_size > limit:
                        raise InvalidInputError(
                            f"File size exceeds the limit of {limit // (1024 * 1024)}MB"
                        )
                    await out.write(chunk)
        except InvalidInputError:
            await self.delete(path)
            raise
        except OSError as e:
            await self.delete(path)
            logger.error("Failed to store upload", path=str(path), error=str(e))
            raise UpstreamFailureError(f"Could not store file: {e}") from e

        logger.info(
            "File saved",
            original_filename=file.filename,
            path=str(path),
            size=total_size,
        )
        return path

    async def delete(self, path: Optional[Union[str, Path]]) -> bool:
        """Delete a stored file if it exists."""
        if not path:
            return False
        path = Path(path)
        if not await aiofiles.os.path.exists(path):
            return False
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        logger.info("Deleted file", path=str(path))
        return True
