"""
Unit tests for dataset file versioning.
"""

import uuid

import pandas as pd
import pytest

from catalog.core.exceptions import InvalidInputError, InvalidStateError, NotFoundError
from catalog.db.repository import DatasetRepository
from catalog.models.dataset import DatasetStatus


async def approved_dataset(dataset_service, db_session, upload_factory, csv_bytes):
    dataset, _ = await dataset_service.create_dataset(upload_factory("v1.csv", csv_bytes))
    await dataset_service.dispatcher.drain()
    return await DatasetRepository(db_session).update_fields(
        dataset.id, assign={"status": DatasetStatus.APPROVED}
    )


class TestCreateVersion:
    """Archiving the current file and promoting a new one."""

    @pytest.mark.asyncio
    async def test_new_version_archives_current_file(
        self, dataset_service, versioning_service, db_session, upload_factory, csv_bytes, storage
    ):
        dataset = await approved_dataset(dataset_service, db_session, upload_factory, csv_bytes)
        original_path = dataset.file_path

        updated = await versioning_service.create_version(
            dataset.id, upload_factory("v2.csv", b"a,b,c\n1,2,x\n3,4,y\n5,6,z\n")
        )

        assert updated.status == DatasetStatus.APPROVED
        assert updated.current_version == 2
        assert len(updated.versions) == 1
        archived = updated.versions[0]
        assert archived["version_number"] == 1
        assert archived["file_path"] == original_path
        assert archived["original_filename"] == "v1.csv"
        assert archived["row_count"] == 2
        assert updated.original_filename == "v2.csv"
        assert updated.row_count == 3
        assert len(updated.columns) == 3
        assert updated.meta_data["title_en"] == "UAE Economic Indicators"

    @pytest.mark.asyncio
    async def test_current_version_tracks_history_length(
        self, dataset_service, versioning_service, db_session, upload_factory, csv_bytes
    ):
        dataset = await approved_dataset(dataset_service, db_session, upload_factory, csv_bytes)

        for n in range(3):
            dataset = await versioning_service.create_version(dataset.id, upload_factory(f"v{n + 2}.csv", csv_bytes))
            assert dataset.current_version == len(dataset.versions) + 1

        listing = await versioning_service.list_versions(dataset.id)
        assert listing.current_version == 4
        assert [v.version_number for v in listing.versions] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_non_approved_dataset_rejected(
        self, dataset_service, versioning_service, upload_factory, csv_bytes, storage
    ):
        dataset, _ = await dataset_service.create_dataset(upload_factory("v1.csv", csv_bytes))
        await dataset_service.dispatcher.drain()
        files_before = sorted(storage.root.iterdir())

        with pytest.raises(InvalidStateError):
            await versioning_service.create_version(dataset.id, upload_factory("v2.csv", csv_bytes))

        reloaded = await dataset_service.get_dataset(dataset.id)
        assert reloaded.versions == []
        assert reloaded.current_version == 1
        assert sorted(storage.root.iterdir()) == files_before

    @pytest.mark.asyncio
    async def test_rejected_file_leaves_dataset_untouched(
        self, dataset_service, versioning_service, db_session, upload_factory, csv_bytes, excel_factory, storage
    ):
        dataset = await approved_dataset(dataset_service, db_session, upload_factory, csv_bytes)
        files_before = sorted(storage.root.iterdir())

        with pytest.raises(InvalidInputError):
            await versioning_service.create_version(
                dataset.id, upload_factory("empty.xlsx", excel_factory(pd.DataFrame(), "empty.xlsx"))
            )

        reloaded = await dataset_service.get_dataset(dataset.id)
        assert reloaded.versions == []
        assert sorted(storage.root.iterdir()) == files_before

    @pytest.mark.asyncio
    async def test_missing_dataset(self, versioning_service, upload_factory, csv_bytes):
        with pytest.raises(NotFoundError):
            await versioning_service.create_version(uuid.uuid4(), upload_factory("v2.csv", csv_bytes))
