"""
File versioning for approved datasets.
"""

from uuid import UUID

from fastapi import UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from catalog.core.logging import get_logger
from catalog.db.repository import DatasetRepository, Update
from catalog.models.base import utcnow
from catalog.models.dataset import Dataset
from catalog.schemas.dataset import VersionHistoryEntry, VersionListResponse
from catalog.services.ingestion import IngestionPipeline
from catalog.services.lifecycle import ensure_versionable

logger = get_logger(__name__)


def snapshot_current_file(dataset: Dataset) -> VersionHistoryEntry:
    """Archive entry for the file a dataset currently points at."""
    return VersionHistoryEntry(
        version_number=len(dataset.versions or []) + 1,
        file_path=dataset.file_path,
        file_size=dataset.file_size,
        file_type=dataset.file_type,
        original_filename=dataset.original_filename,
        upload_date=dataset.upload_date,
        row_count=dataset.row_count,
        columns=dataset.columns or [],
    )


class VersioningService:
    """Replaces the file behind an approved dataset while keeping its history."""

    def __init__(self, db: AsyncSession, ingestion: IngestionPipeline):
        self.db = db
        self.repo = DatasetRepository(db)
        self.ingestion = ingestion

    async def create_version(self, dataset_id: UUID, upload: UploadFile) -> Dataset:
        """
        Upload a new file for an approved dataset.

        The current file is archived into ``versions`` and the dataset's file
        fields are replaced by the new profile. Status and metadata are kept.

        Raises:
            NotFoundError: If the dataset does not exist
            InvalidStateError: If the dataset is not approved
            InvalidInputError: If the new file is rejected by ingestion
        """
        dataset = await self.repo.get(dataset_id)
        ensure_versionable(dataset.status)

        profile = await self.ingestion.ingest(upload)

        def promote(current: Dataset) -> Update:
            ensure_versionable(current.status)
            entry = snapshot_current_file(current)
            return Update(
                assign={
                    **profile.file_fields(),
                    "upload_date": utcnow(),
                    "current_version": entry.version_number + 1,
                },
                push={"versions": [entry.model_dump(mode="json")]},
            )

        try:
            dataset = await self.repo.update_with(dataset_id, promote)
        except Exception:
            await self.ingestion.storage.delete(profile.file_path)
            raise

        logger.info(
            "Dataset version created",
            dataset_id=str(dataset_id),
            version=dataset.current_version,
            file=profile.filename,
        )
        return dataset

    async def list_versions(self, dataset_id: UUID) -> VersionListResponse:
        dataset = await self.repo.get(dataset_id)
        return VersionListResponse(
            dataset_id=dataset.id,
            current_version=dataset.current_version,
            versions=[VersionHistoryEntry.model_validate(v) for v in dataset.versions or []],
        )
