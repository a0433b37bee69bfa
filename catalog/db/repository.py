"""
Dataset persistence operations.

Every mutation is a compare-and-swap on ``Dataset.lock_version``: SQLAlchemy
adds the expected version to the UPDATE's WHERE clause and raises
StaleDataError when another writer got there first. ``update_with`` re-reads
the row and re-applies the caller's decision on conflict.
"""

import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Union
from uuid import UUID

from sqlalchemy import String, cast, delete, distinct, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from catalog.core.exceptions import InvalidStateError, NotFoundError
from catalog.core.logging import get_logger
from catalog.models.dataset import Dataset, DatasetStatus

logger = get_logger(__name__)


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so search text matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass
class Update:
    """Field assignments plus list appends for one dataset write."""
    assign: Dict[str, Any] = field(default_factory=dict)
    push: Dict[str, List[Any]] = field(default_factory=dict)


@dataclass
class DatasetFilter:
    """Predicates for listing datasets."""
    search: Optional[str] = None
    categories: Sequence[str] = ()
    status: Optional[DatasetStatus] = None


Decision = Callable[[Dataset], Union[Update, Awaitable[Update]]]


class DatasetRepository:
    """Data access for the Dataset entity."""

    MAX_CONFLICT_RETRIES = 5

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def find_by_id(self, dataset_id: UUID) -> Optional[Dataset]:
        result = await self.db.execute(
            select(Dataset).where(Dataset.id == dataset_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, dataset_id: UUID) -> Dataset:
        dataset = await self.find_by_id(dataset_id)
        if dataset is None:
            raise NotFoundError(f"Dataset {dataset_id} not found")
        return dataset

    async def count_matching(self, filters: DatasetFilter) -> int:
        query = select(func.count()).select_from(Dataset)
        query = self._apply_filter(query, filters)
        result = await self.db.execute(query)
        return result.scalar() or 0

    async def find_matching(
        self,
        filters: DatasetFilter,
        skip: int = 0,
        limit: int = 10,
    ) -> List[Dataset]:
        query = self._apply_filter(select(Dataset), filters)
        query = query.order_by(Dataset.created_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def distinct_values(self, field_name: str) -> List[Any]:
        """Distinct non-null values of a metadata field across all datasets."""
        column = Dataset.meta_data[field_name].as_string()
        result = await self.db.execute(
            select(distinct(column)).where(column.is_not(None)).order_by(column)
        )
        return [value for value in result.scalars().all() if value is not None]

    def _apply_filter(self, query, filters: DatasetFilter):
        if filters.status is not None:
            query = query.where(Dataset.status == filters.status)

        if filters.search:
            pattern = f"%{escape_like(filters.search.strip())}%"
            metadata = Dataset.meta_data
            columns = [
                metadata["title_en"].as_string(),
                metadata["title_ar"].as_string(),
                metadata["description_en"].as_string(),
                metadata["description_ar"].as_string(),
                cast(metadata["tags"], String),
                Dataset.original_filename,
                Dataset.file_type,
            ]
            query = query.where(
                or_(*[column.ilike(pattern, escape="\\") for column in columns])
            )

        if filters.categories:
            query = query.where(
                or_(*[
                    or_(
                        Dataset.meta_data["category_en"].as_string() == category,
                        Dataset.meta_data["category_ar"].as_string() == category,
                    )
                    for category in filters.categories
                ])
            )

        return query

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def insert(self, dataset: Dataset) -> Dataset:
        self.db.add(dataset)
        await self.db.commit()
        await self.db.refresh(dataset)
        logger.info("Dataset saved", dataset_id=str(dataset.id), status=dataset.status.value)
        return dataset

    async def update_fields(
        self,
        dataset_id: UUID,
        assign: Optional[Dict[str, Any]] = None,
        push: Optional[Dict[str, List[Any]]] = None,
        expected_status: Optional[Iterable[DatasetStatus]] = None,
    ) -> Dataset:
        """
        Assign fields and append to list fields of one dataset.

        Args:
            dataset_id: Dataset to update
            assign: Attribute assignments
            push: Items to append, keyed by list attribute
            expected_status: If given, the update only applies while the
                dataset is in one of these states

        Raises:
            NotFoundError: If the dataset does not exist
            InvalidStateError: If the status precondition does not hold
        """
        allowed = frozenset(expected_status) if expected_status is not None else None

        def decide(dataset: Dataset) -> Update:
            if allowed is not None and dataset.status not in allowed:
                raise InvalidStateError(
                    f"Dataset is '{dataset.status.value}'",
                    details={"current": dataset.status.value, "expected": sorted(s.value for s in allowed)},
                )
            return Update(assign=dict(assign or {}), push={k: list(v) for k, v in (push or {}).items()})

        return await self.update_with(dataset_id, decide)

    async def update_with(self, dataset_id: UUID, decide: Decision) -> Dataset:
        """
        Read a dataset, let ``decide`` compute the write, and apply it atomically.

        ``decide`` sees the freshest row on every attempt and may raise to
        abort. On a lost race the session is rolled back and the whole cycle
        repeats, up to MAX_CONFLICT_RETRIES times.
        """
        for attempt in range(1, self.MAX_CONFLICT_RETRIES + 1):
            dataset = await self.get(dataset_id)
            update = decide(dataset)
            if inspect.isawaitable(update):
                update = await update

            for name, value in update.assign.items():
                setattr(dataset, name, value)
            for name, items in update.push.items():
                setattr(dataset, name, list(getattr(dataset, name) or []) + list(items))

            try:
                await self.db.commit()
            except StaleDataError:
                await self.db.rollback()
                logger.warning(
                    "Concurrent dataset update, retrying",
                    dataset_id=str(dataset_id),
                    attempt=attempt,
                )
                continue

            await self.db.refresh(dataset)
            return dataset

        raise InvalidStateError(
            f"Dataset {dataset_id} was modified concurrently, please retry",
            details={"attempts": self.MAX_CONFLICT_RETRIES},
        )

    async def delete_by_id(self, dataset_id: UUID) -> bool:
        result = await self.db.execute(delete(Dataset).where(Dataset.id == dataset_id))
        await self.db.commit()
        return (result.rowcount or 0) > 0
