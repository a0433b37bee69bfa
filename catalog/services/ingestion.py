"""
Ingestion pipeline: validate an upload, persist its bytes, profile it.
"""

from pathlib import Path
from typing import List, Optional

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from catalog.core.config import settings
from catalog.core.exceptions import CatalogError, InternalError, InvalidInputError
from catalog.core.logging import get_logger
from catalog.schemas.dataset import Profile
from catalog.utils.file_parser import FileParser, file_parser
from catalog.utils.file_storage import LocalFileStorage

logger = get_logger(__name__)


class IngestionPipeline:
    """Turns an uploaded file into a stored file plus its Profile."""

    def __init__(
        self,
        storage: LocalFileStorage,
        parser: FileParser = file_parser,
        max_file_size: int = settings.max_upload_size,
        allowed_extensions: Optional[List[str]] = None,
    ):
        self.storage = storage
        self.parser = parser
        self.max_file_size = max_file_size
        self.allowed_extensions = allowed_extensions or list(settings.allowed_extensions)

    def validate(self, file: UploadFile) -> str:
        """
        Check size and extension of an upload.

        Returns:
            The lower-cased extension, including the dot

        Raises:
            InvalidInputError: If the upload is missing, too large or of a disallowed type
        """
        if file is None or not file.filename:
            raise InvalidInputError("No file uploaded")

        if file.size is not None and file.size > self.max_file_size:
            logger.warning("File size validation failed", filename=file.filename, size=file.size)
            raise InvalidInputError(
                f"File size exceeds the limit of {self.max_file_size // (1024 * 1024)}MB"
            )

        extension = Path(file.filename).suffix.lower()
        if extension not in self.allowed_extensions:
            logger.warning("File type validation failed", filename=file.filename, extension=extension)
            raise InvalidInputError(
                f"Invalid file type. Allowed types: {', '.join(self.allowed_extensions)}"
            )

        return extension

    async def ingest(self, file: UploadFile) -> Profile:
        """
        Validate, store and profile an upload.

        The stored file is removed again if anything after the write fails,
        so a rejected upload never leaves a file behind.
        """
        extension = self.validate(file)
        original_filename = Path(file.filename).name

        # Size is enforced again while streaming; UploadFile.size may be unknown
        path = await self.storage.write(file, extension, max_size=self.max_file_size)

        try:
            parsed = await run_in_threadpool(self.parser.parse, path, extension)
            file_size = path.stat().st_size
        except CatalogError:
            await self.storage.delete(path)
            raise
        except Exception as e:
            await self.storage.delete(path)
            logger.error("Error processing file", filename=original_filename, error=str(e))
            raise InternalError(f"Error processing file: {e}") from e

        logger.info(
            "File ingested",
            filename=original_filename,
            stored_as=path.name,
            rows=parsed.row_count,
            columns=len(parsed.columns),
        )
        return Profile(
            filename=path.name,
            original_filename=original_filename,
            file_size=file_size,
            file_type=extension.lstrip("."),
            row_count=parsed.row_count,
            columns=parsed.columns,
            file_path=str(path),
            preview=parsed.preview,
        )
