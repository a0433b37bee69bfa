"""
Background metadata generation.

A dataset enters ``processed`` and a job is handed to a dispatcher without
being awaited. The job calls the AI collaborator with a timeout, retries with
exponential backoff and finally produces a MetadataOutcome, which
``apply_metadata_outcome`` writes back to the dataset.
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable, Optional, Set
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog.core.config import DispatchMode, Settings, settings as default_settings
from catalog.core.exceptions import InvalidStateError, NotFoundError, UpstreamFailureError
from catalog.core.logging import bind_log_context, get_logger
from catalog.db.repository import DatasetRepository
from catalog.models.dataset import Dataset, DatasetStatus
from catalog.schemas.dataset import AI_AUTHOR, GeneratedMetadata, MetadataOutcome
from catalog.services.ai_service import MetadataGenerator

logger = get_logger(__name__)

GeneratorFactory = Callable[[], MetadataGenerator]


class MetadataJob:
    """Retry-or-give-up policy around a MetadataGenerator."""

    def __init__(
        self,
        generator_factory: GeneratorFactory,
        max_retries: int = default_settings.metadata_max_retries,
        retry_delay: float = default_settings.metadata_retry_delay,
        timeout: float = default_settings.ai_timeout_seconds,
    ):
        self.generator_factory = generator_factory
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

    def backoff(self, retry: int) -> float:
        """Delay before the given retry, counting from 0."""
        return self.retry_delay * (2 ** retry)

    async def attempt(self, content: str, generator: Optional[MetadataGenerator] = None) -> GeneratedMetadata:
        """One generator call bounded by the job timeout."""
        if generator is None:
            generator = self.generator_factory()
        try:
            return await asyncio.wait_for(generator.generate(content), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamFailureError(f"AI call timed out after {self.timeout}s") from e

    async def run(self, dataset_id: UUID, content: str) -> MetadataOutcome:
        """Call the generator until it succeeds or the retries are used up."""
        attempts = self.max_retries + 1
        last_error = ""

        for attempt in range(1, attempts + 1):
            try:
                metadata = await self.attempt(content)
            except Exception as e:
                last_error = e.message if isinstance(e, UpstreamFailureError) else f"{type(e).__name__}: {e}"
                logger.warning(
                    "Metadata generation attempt failed",
                    dataset_id=str(dataset_id),
                    attempt=attempt,
                    max_attempts=attempts,
                    error=last_error,
                )
                if attempt < attempts:
                    await asyncio.sleep(self.backoff(attempt - 1))
                continue

            return MetadataOutcome(
                dataset_id=dataset_id,
                succeeded=True,
                metadata=metadata,
                attempts=attempt,
            )

        logger.error(
            "Metadata generation gave up",
            dataset_id=str(dataset_id),
            attempts=attempts,
            error=last_error,
        )
        return MetadataOutcome(
            dataset_id=dataset_id,
            succeeded=False,
            error=last_error,
            attempts=attempts,
        )


async def apply_metadata_outcome(
    repo: DatasetRepository,
    outcome: MetadataOutcome,
) -> Optional[Dataset]:
    """
    Write a job outcome to its dataset.

    The outcome only applies while the dataset is still ``processed``. A late
    outcome, or one for a deleted dataset, is logged and dropped.

    Returns:
        The updated dataset, or None if the outcome was discarded
    """
    if outcome.succeeded and outcome.metadata is not None:
        metadata = outcome.metadata.model_dump(mode="json")
        assign = {"meta_data": metadata, "status": DatasetStatus.METADATA_GENERATED}
        push = {
            "metadata_history": [{
                "metadata": metadata,
                "created_by": AI_AUTHOR,
                "created_at": datetime.now(timezone.utc).isoformat(),
                "comment": "",
            }]
        }
    else:
        assign = {"status": DatasetStatus.METADATA_FAILED}
        push = None

    try:
        dataset = await repo.update_fields(
            outcome.dataset_id,
            assign=assign,
            push=push,
            expected_status=[DatasetStatus.PROCESSED],
        )
    except (InvalidStateError, NotFoundError) as e:
        logger.warning(
            "Discarding metadata outcome",
            dataset_id=str(outcome.dataset_id),
            succeeded=outcome.succeeded,
            reason=e.message,
        )
        return None

    logger.info(
        "Dataset status changed",
        dataset_id=str(dataset.id),
        status=dataset.status.value,
        attempts=outcome.attempts,
    )
    return dataset


class MetadataDispatcher:
    """Hands metadata jobs to whatever runs them."""

    async def dispatch(self, dataset_id: UUID, content: str) -> None:
        raise NotImplementedError

    async def drain(self) -> None:
        """Wait for jobs started by this process."""


class InProcessMetadataDispatcher(MetadataDispatcher):
    """Runs jobs as asyncio tasks on the API event loop."""

    def __init__(
        self,
        job: MetadataJob,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.job = job
        self.session_factory = session_factory
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def dispatch(self, dataset_id: UUID, content: str) -> None:
        task = asyncio.create_task(self._run(dataset_id, content), name=f"metadata-{dataset_id}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        logger.info("Metadata job dispatched", dataset_id=str(dataset_id), mode=DispatchMode.INLINE.value)

    async def _run(self, dataset_id: UUID, content: str) -> None:
        # Runs in a copy of the dispatching request's context
        bind_log_context(clear=False, dataset_id=dataset_id)
        try:
            outcome = await self.job.run(dataset_id, content)
            async with self.session_factory() as session:
                await apply_metadata_outcome(DatasetRepository(session), outcome)
        except asyncio.CancelledError:
            logger.warning("Metadata job cancelled", dataset_id=str(dataset_id))
            raise
        except Exception as e:
            logger.exception("Metadata job crashed", dataset_id=str(dataset_id), error=str(e))
            await self._record_failure(dataset_id, str(e))

    async def _record_failure(self, dataset_id: UUID, error: str) -> None:
        outcome = MetadataOutcome(dataset_id=dataset_id, succeeded=False, error=error, attempts=0)
        try:
            async with self.session_factory() as session:
                await apply_metadata_outcome(DatasetRepository(session), outcome)
        except Exception as e:
            logger.exception("Could not record metadata failure", dataset_id=str(dataset_id), error=str(e))

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class CeleryMetadataDispatcher(MetadataDispatcher):
    """Queues jobs on the Celery ``metadata`` queue."""

    async def dispatch(self, dataset_id: UUID, content: str) -> None:
        from catalog.workers.tasks.metadata_tasks import generate_dataset_metadata

        result = generate_dataset_metadata.delay(str(dataset_id), content)
        logger.info(
            "Metadata job dispatched",
            dataset_id=str(dataset_id),
            mode=DispatchMode.CELERY.value,
            task_id=result.id,
        )


def create_dispatcher(
    config: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    generator_factory: GeneratorFactory,
) -> MetadataDispatcher:
    """Pick the dispatcher for the configured mode."""
    if config.metadata_dispatch_mode == DispatchMode.CELERY:
        return CeleryMetadataDispatcher()

    job = MetadataJob(
        generator_factory,
        max_retries=config.metadata_max_retries,
        retry_delay=config.metadata_retry_delay,
        timeout=config.ai_timeout_seconds,
    )
    return InProcessMetadataDispatcher(job, session_factory)
