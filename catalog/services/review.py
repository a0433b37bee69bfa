"""
Metadata review workflow: editors submit, admins approve or request changes.
"""

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from catalog.core.logging import get_logger
from catalog.db.repository import DatasetRepository, Update
from catalog.models.dataset import Dataset, DatasetStatus
from catalog.schemas.dataset import MetadataSubmission
from catalog.services.lifecycle import resolve_submission_target

logger = get_logger(__name__)


class MetadataReviewService:
    """Applies human metadata submissions to datasets."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = DatasetRepository(db)

    async def submit_metadata(self, dataset_id: UUID, submission: MetadataSubmission) -> Dataset:
        """
        Replace a dataset's metadata and move it through review.

        A ``changes_requested`` submission over existing history only
        overwrites the comment of the last history entry; every other
        submission appends a new entry.

        Raises:
            NotFoundError: If the dataset does not exist
            InvalidStateError: If the dataset is not reviewable or the move is illegal
            InvalidInputError: If an editor attempts an admin-only move
        """
        requested = DatasetStatus(submission.status.value) if submission.status else None
        fields = submission.metadata_fields()
        previous = {}

        def decide(dataset: Dataset) -> Update:
            target = resolve_submission_target(dataset.status, requested, submission.role)
            previous["status"] = dataset.status
            update = Update(assign={"meta_data": fields, "status": target})

            history = list(dataset.metadata_history or [])
            if target == DatasetStatus.CHANGES_REQUESTED and history:
                history[-1] = {**history[-1], "comment": submission.comment}
                update.assign["metadata_history"] = history
            else:
                update.push["metadata_history"] = [{
                    "metadata": fields,
                    "created_by": submission.role.value,
                    "created_at": datetime.now(timezone.utc).isoformat(),
                    "comment": submission.comment,
                }]
            return update

        dataset = await self.repo.update_with(dataset_id, decide)

        logger.info(
            "Metadata submitted",
            dataset_id=str(dataset_id),
            role=submission.role.value,
            from_status=previous["status"].value,
            status=dataset.status.value,
            history_entries=len(dataset.metadata_history),
        )
        return dataset
