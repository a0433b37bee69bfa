"""
Celery tasks for dataset metadata generation.
"""

import asyncio
from typing import Any, Coroutine, Dict, TypeVar
from uuid import UUID

from celery.utils.log import get_task_logger

from catalog.core.config import settings
from catalog.core.exceptions import UpstreamFailureError
from catalog.core.logging import bind_log_context
from catalog.db.repository import DatasetRepository
from catalog.db.session import WorkerSessionLocal, worker_engine
from catalog.schemas.dataset import GeneratedMetadata, MetadataOutcome
from catalog.services.ai_service import create_metadata_generator
from catalog.services.metadata_dispatcher import MetadataJob, apply_metadata_outcome
from catalog.workers.celery_app import celery_app

logger = get_task_logger(__name__)

T = TypeVar("T")


def _run_async(coro: Coroutine[Any, Any, T]) -> T:
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _apply_outcome(outcome: MetadataOutcome) -> None:
    try:
        async with WorkerSessionLocal() as session:
            await apply_metadata_outcome(DatasetRepository(session), outcome)
    finally:
        # Pooled connections belong to this task's event loop
        await worker_engine.dispose()


async def _generate(job: MetadataJob, content: str) -> GeneratedMetadata:
    generator = create_metadata_generator()
    try:
        return await job.attempt(content, generator)
    finally:
        # The client's connections belong to this task's event loop
        await generator.close()


@celery_app.task(
    bind=True,
    name="catalog.workers.tasks.metadata_tasks.generate_dataset_metadata",
    max_retries=settings.metadata_max_retries,
    default_retry_delay=settings.metadata_retry_delay,
)
def generate_dataset_metadata(self, dataset_id: str, content: str) -> Dict[str, Any]:
    """
    Generate metadata for one dataset and record the outcome.

    Each Celery attempt makes one AI call. Failed calls are retried with
    exponential backoff; once retries are exhausted the dataset is marked
    ``metadata_failed``.

    Args:
        dataset_id: Dataset ID
        content: Prompt content describing the dataset

    Returns:
        Summary of the outcome
    """
    job = MetadataJob(
        create_metadata_generator,
        max_retries=self.max_retries,
        retry_delay=settings.metadata_retry_delay,
        timeout=settings.ai_timeout_seconds,
    )
    attempt = self.request.retries + 1
    bind_log_context(dataset_id=dataset_id, task_id=self.request.id, attempt=attempt)
    logger.info(f"Generating metadata for dataset {dataset_id} (attempt {attempt})")

    try:
        metadata = _run_async(_generate(job, content))
        outcome = MetadataOutcome(
            dataset_id=UUID(dataset_id),
            succeeded=True,
            metadata=metadata,
            attempts=attempt,
        )
    except Exception as e:
        error = e.message if isinstance(e, UpstreamFailureError) else f"{type(e).__name__}: {e}"
        logger.warning(f"Metadata generation failed for dataset {dataset_id}: {error}")

        if self.request.retries < self.max_retries:
            retry_in = job.backoff(self.request.retries)
            logger.info(
                f"Retrying metadata generation in {retry_in} seconds "
                f"(attempt {attempt + 1}/{self.max_retries + 1})"
            )
            raise self.retry(exc=e, countdown=retry_in)

        logger.error(f"Giving up on metadata for dataset {dataset_id} after {attempt} attempts")
        outcome = MetadataOutcome(
            dataset_id=UUID(dataset_id),
            succeeded=False,
            error=error,
            attempts=attempt,
        )

    _run_async(_apply_outcome(outcome))

    return {
        "dataset_id": dataset_id,
        "succeeded": outcome.succeeded,
        "attempts": outcome.attempts,
    }
