"""
Dataset service layer: upload, listing, lookup and deletion.
"""

import math
from typing import Any, Dict, List, Tuple
from uuid import UUID

from fastapi import UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog.core.exceptions import InternalError, NotFoundError
from catalog.core.logging import logger
from catalog.db.repository import DatasetFilter, DatasetRepository
from catalog.models.dataset import Dataset, DatasetStatus
from catalog.schemas.dataset import DatasetQuery, MetadataOutcome
from catalog.services.ai_service import build_prompt_content
from catalog.services.ingestion import IngestionPipeline
from catalog.services.lifecycle import all_statuses
from catalog.services.metadata_dispatcher import MetadataDispatcher, apply_metadata_outcome


class DatasetService:
    """Service class for dataset operations."""

    def __init__(
        self,
        db: AsyncSession,
        ingestion: IngestionPipeline,
        dispatcher: MetadataDispatcher,
    ):
        self.db = db
        self.repo = DatasetRepository(db)
        self.ingestion = ingestion
        self.dispatcher = dispatcher

    async def create_dataset(self, upload: UploadFile) -> Tuple[Dataset, List[Dict[str, Any]]]:
        """
        Ingest an upload, store the dataset and start metadata generation.

        The metadata job is dispatched but not awaited; callers poll the
        dataset status to see its outcome.

        Returns:
            The stored dataset and the preview rows of its file
        """
        profile = await self.ingestion.ingest(upload)

        dataset = Dataset(**profile.file_fields(), status=DatasetStatus.PROCESSED)
        try:
            dataset = await self.repo.insert(dataset)
        except SQLAlchemyError as e:
            await self.db.rollback()
            await self.ingestion.storage.delete(profile.file_path)
            logger.error("Failed to create dataset", filename=profile.original_filename, error=str(e))
            raise InternalError("Failed to save dataset") from e

        logger.info(
            "Dataset created",
            dataset_id=str(dataset.id),
            filename=dataset.original_filename,
            status=dataset.status.value,
        )

        content = build_prompt_content(profile.original_filename, profile.columns)
        try:
            await self.dispatcher.dispatch(dataset.id, content)
        except Exception as e:
            logger.error("Failed to dispatch metadata job", dataset_id=str(dataset.id), error=str(e))
            failed = await apply_metadata_outcome(
                self.repo,
                MetadataOutcome(dataset_id=dataset.id, succeeded=False, error=str(e), attempts=0),
            )
            dataset = failed or dataset

        return dataset, profile.preview

    async def list_datasets(self, query: DatasetQuery) -> Dict[str, Any]:
        """
        List datasets with pagination and filtering, newest first.
        """
        filters = DatasetFilter(
            search=query.search or None,
            categories=query.categories,
            status=query.status,
        )
        total = await self.repo.count_matching(filters)
        datasets = await self.repo.find_matching(filters, skip=query.offset, limit=query.limit)

        return {
            "datasets": datasets,
            "pagination": {
                "total": total,
                "page": query.page,
                "limit": query.limit,
                "pages": math.ceil(total / query.limit),
            },
        }

    async def get_dataset(self, dataset_id: UUID) -> Dataset:
        return await self.repo.get(dataset_id)

    async def delete_dataset(self, dataset_id: UUID) -> None:
        """
        Delete a dataset together with its current and archived files.
        """
        dataset = await self.repo.get(dataset_id)
        paths = [dataset.file_path] + [v.get("file_path") for v in dataset.versions or []]

        if not await self.repo.delete_by_id(dataset_id):
            raise NotFoundError(f"Dataset {dataset_id} not found")

        for path in paths:
            await self.ingestion.storage.delete(path)

        logger.info("Dataset deleted", dataset_id=str(dataset_id), files=len(paths))

    async def get_dataset_filters(self) -> Dict[str, List[str]]:
        """Every declared status plus the English categories in use."""
        return {
            "statuses": all_statuses(),
            "categories": await self.repo.distinct_values("category_en"),
        }
