"""
Unit tests for the dataset repository and its compare-and-swap updates.
"""

import uuid

import pytest

from catalog.core.exceptions import InvalidStateError, NotFoundError
from catalog.db.repository import DatasetFilter, DatasetRepository, Update
from catalog.models.dataset import Dataset, DatasetStatus


def new_dataset(**overrides) -> Dataset:
    fields = dict(
        filename=f"{uuid.uuid4()}.csv",
        original_filename="data.csv",
        file_size=12,
        file_type="csv",
        row_count=2,
        columns=[{"name": "a", "data_type": "number", "sample_values": ["1"]}],
        file_path="/tmp/none.csv",
        status=DatasetStatus.PROCESSED,
    )
    fields.update(overrides)
    return Dataset(**fields)


class TestDatasetRepository:
    """Reads, filters and atomic writes."""

    @pytest.mark.asyncio
    async def test_insert_and_get(self, db_session):
        repo = DatasetRepository(db_session)
        dataset = await repo.insert(new_dataset())

        loaded = await repo.get(dataset.id)

        assert loaded.status == DatasetStatus.PROCESSED
        assert loaded.meta_data == {}
        assert loaded.metadata_history == []
        assert loaded.current_version == 1
        assert loaded.lock_version == 1

    @pytest.mark.asyncio
    async def test_get_missing(self, db_session):
        with pytest.raises(NotFoundError):
            await DatasetRepository(db_session).get(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_update_fields_sets_and_pushes(self, db_session):
        repo = DatasetRepository(db_session)
        dataset = await repo.insert(new_dataset())

        updated = await repo.update_fields(
            dataset.id,
            assign={"status": DatasetStatus.METADATA_FAILED},
            push={"metadata_history": [{"created_by": "AI"}]},
        )

        assert updated.status == DatasetStatus.METADATA_FAILED
        assert updated.metadata_history == [{"created_by": "AI"}]
        assert updated.lock_version == 2

    @pytest.mark.asyncio
    async def test_update_fields_status_precondition(self, db_session):
        repo = DatasetRepository(db_session)
        dataset = await repo.insert(new_dataset(status=DatasetStatus.UNDER_REVIEW))

        with pytest.raises(InvalidStateError):
            await repo.update_fields(
                dataset.id,
                assign={"status": DatasetStatus.METADATA_GENERATED},
                expected_status=[DatasetStatus.PROCESSED],
            )

        assert (await repo.get(dataset.id)).status == DatasetStatus.UNDER_REVIEW

    @pytest.mark.asyncio
    async def test_lost_race_is_retried_on_fresh_row(self, db_session, session_factory):
        repo = DatasetRepository(db_session)
        dataset = await repo.insert(new_dataset(metadata_history=[]))
        seen_lengths = []

        async def decide(current: Dataset) -> Update:
            seen_lengths.append(len(current.metadata_history))
            if len(seen_lengths) == 1:
                # Another writer commits between our read and our write
                async with session_factory() as other:
                    await DatasetRepository(other).update_fields(
                        dataset.id, push={"metadata_history": [{"created_by": "editor"}]}
                    )
            return Update(push={"metadata_history": [{"created_by": "admin"}]})

        updated = await repo.update_with(dataset.id, decide)

        assert seen_lengths == [0, 1]
        assert [e["created_by"] for e in updated.metadata_history] == ["editor", "admin"]

    @pytest.mark.asyncio
    async def test_persistent_conflict_surfaces_as_invalid_state(self, db_session, session_factory):
        repo = DatasetRepository(db_session)
        dataset = await repo.insert(new_dataset())

        async def decide(current: Dataset) -> Update:
            async with session_factory() as other:
                await DatasetRepository(other).update_fields(dataset.id, assign={"row_count": 99})
            return Update(assign={"row_count": 1})

        with pytest.raises(InvalidStateError, match="modified concurrently"):
            await repo.update_with(dataset.id, decide)

    @pytest.mark.asyncio
    async def test_delete_by_id(self, db_session):
        repo = DatasetRepository(db_session)
        dataset = await repo.insert(new_dataset())

        assert await repo.delete_by_id(dataset.id) is True
        assert await repo.delete_by_id(dataset.id) is False
        assert await repo.find_by_id(dataset.id) is None


class TestDatasetFiltering:
    """Search, category and status filters."""

    @pytest.fixture
    def metadata(self):
        return {
            "title_en": "Population by Emirate",
            "title_ar": "السكان حسب الإمارة",
            "description_en": "Resident counts for each emirate.",
            "description_ar": "عدد السكان في كل إمارة.",
            "tags": ["population", "census"],
            "category_en": "Demographics",
            "category_ar": "التركيبة السكانية",
        }

    @pytest.mark.asyncio
    async def test_search_and_filters(self, db_session, metadata):
        repo = DatasetRepository(db_session)
        census = await repo.insert(new_dataset(
            original_filename="census.xlsx", file_type="xlsx",
            meta_data=metadata, status=DatasetStatus.METADATA_GENERATED,
        ))
        sales = await repo.insert(new_dataset(original_filename="sales.csv"))

        async def ids(**kwargs):
            found = await repo.find_matching(DatasetFilter(**kwargs))
            return {d.id for d in found}

        assert await ids(search="POPULATION") == {census.id}
        assert await ids(search="census") == {census.id}
        assert await ids(search="xlsx") == {census.id}
        assert await ids(search="السكان") == {census.id}
        assert await ids(categories=["Finance", "التركيبة السكانية"]) == {census.id}
        assert await ids(status=DatasetStatus.PROCESSED) == {sales.id}
        assert await repo.count_matching(DatasetFilter()) == 2

    @pytest.mark.asyncio
    async def test_search_wildcards_match_literally(self, db_session):
        repo = DatasetRepository(db_session)
        underscored = await repo.insert(new_dataset(original_filename="sales_2024.csv"))
        await repo.insert(new_dataset(original_filename="sales2024.csv"))

        async def ids(search):
            found = await repo.find_matching(DatasetFilter(search=search))
            return {d.id for d in found}

        assert await ids("_") == {underscored.id}
        assert await ids("s_2") == {underscored.id}
        assert await ids("%") == set()

    @pytest.mark.asyncio
    async def test_newest_first_with_paging(self, db_session):
        repo = DatasetRepository(db_session)
        first = await repo.insert(new_dataset(original_filename="first.csv"))
        second = await repo.insert(new_dataset(original_filename="second.csv"))

        page = await repo.find_matching(DatasetFilter(), skip=0, limit=1)
        rest = await repo.find_matching(DatasetFilter(), skip=1, limit=1)

        assert [d.id for d in page] == [second.id]
        assert [d.id for d in rest] == [first.id]

    @pytest.mark.asyncio
    async def test_distinct_values(self, db_session, metadata):
        repo = DatasetRepository(db_session)
        await repo.insert(new_dataset(meta_data=metadata))
        await repo.insert(new_dataset(meta_data=dict(metadata)))
        await repo.insert(new_dataset(meta_data={"category_en": "Economics"}))
        await repo.insert(new_dataset())

        assert await repo.distinct_values("category_en") == ["Demographics", "Economics"]
