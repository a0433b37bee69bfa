"""
Common dependencies for FastAPI endpoints.
"""

from functools import lru_cache
from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from catalog.core.config import settings
from catalog.db.session import AsyncSessionLocal, get_db as get_database_session
from catalog.services.ai_service import MetadataGenerator, create_metadata_generator
from catalog.services.dataset_service import DatasetService
from catalog.services.ingestion import IngestionPipeline
from catalog.services.metadata_dispatcher import MetadataDispatcher, create_dispatcher
from catalog.services.review import MetadataReviewService
from catalog.services.versioning import VersioningService
from catalog.utils.file_storage import LocalFileStorage


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Get database session dependency.

    This is a wrapper around the session manager's get_db function
    to provide a clean import for endpoints.
    """
    async for session in get_database_session():
        yield session


@lru_cache()
def get_storage() -> LocalFileStorage:
    return LocalFileStorage(settings.upload_dir, max_size=settings.max_upload_size)


@lru_cache()
def get_metadata_generator() -> MetadataGenerator:
    """Shared Azure OpenAI backed generator; raises if credentials are missing."""
    return create_metadata_generator(settings)


@lru_cache()
def get_dispatcher() -> MetadataDispatcher:
    return create_dispatcher(settings, AsyncSessionLocal, get_metadata_generator)


def get_ingestion(storage: LocalFileStorage = Depends(get_storage)) -> IngestionPipeline:
    return IngestionPipeline(storage)


def get_dataset_service(
    db: AsyncSession = Depends(get_db),
    ingestion: IngestionPipeline = Depends(get_ingestion),
    dispatcher: MetadataDispatcher = Depends(get_dispatcher),
) -> DatasetService:
    return DatasetService(db, ingestion, dispatcher)


def get_review_service(db: AsyncSession = Depends(get_db)) -> MetadataReviewService:
    return MetadataReviewService(db)


def get_versioning_service(
    db: AsyncSession = Depends(get_db),
    ingestion: IngestionPipeline = Depends(get_ingestion),
) -> VersioningService:
    return VersioningService(db, ingestion)
