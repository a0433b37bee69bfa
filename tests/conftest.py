"""
Test configuration and fixtures.
"""

import io
import os
import tempfile
from pathlib import Path
from typing import AsyncGenerator, Callable, Dict, Generator, List, Optional

# Settings are read at import time
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="catalog-tests-"))
os.environ.setdefault("APP_TESTING", "true")
os.environ.setdefault("APP_DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_ROOT / 'app.db'}")
os.environ.setdefault("APP_UPLOAD_DIR", str(_TEST_ROOT / "uploads"))
os.environ.setdefault("APP_METADATA_RETRY_DELAY", "0")

import pandas as pd
import pytest
import pytest_asyncio
from fastapi import UploadFile
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from catalog.core.dependencies import get_db, get_dispatcher, get_storage
from catalog.core.exceptions import UpstreamFailureError
from catalog.db.session import _json_serializer
from catalog.main import app
from catalog.models.base import Base
from catalog.schemas.dataset import GeneratedMetadata
from catalog.services.dataset_service import DatasetService
from catalog.services.ingestion import IngestionPipeline
from catalog.services.metadata_dispatcher import InProcessMetadataDispatcher, MetadataJob
from catalog.services.review import MetadataReviewService
from catalog.services.versioning import VersioningService
from catalog.utils.file_storage import LocalFileStorage


SAMPLE_METADATA = {
    "title_en": "UAE Economic Indicators",
    "title_ar": "مؤشرات اقتصاد الإمارات",
    "description_en": "Key economic indicators of the UAE by year.",
    "description_ar": "المؤشرات الاقتصادية الرئيسية لدولة الإمارات حسب السنة.",
    "tags": ["economics", "uae", "gdp"],
    "category_en": "Economics",
    "category_ar": "الاقتصاد",
    "subcategory_en": "Financial Indicators",
    "subcategory_ar": "المؤشرات المالية",
}


class FakeMetadataGenerator:
    """Stands in for the Azure OpenAI backed generator."""

    def __init__(self, metadata: Optional[Dict] = None, failures: int = 0):
        self.metadata = metadata or SAMPLE_METADATA
        self.failures = failures
        self.calls: List[str] = []

    async def generate(self, content: str) -> GeneratedMetadata:
        self.calls.append(content)
        if len(self.calls) <= self.failures:
            raise UpstreamFailureError("AI unavailable")
        return GeneratedMetadata(**self.metadata)


def make_upload(filename: str, content: bytes) -> UploadFile:
    """Build an UploadFile the way FastAPI hands it to endpoints."""
    return UploadFile(file=io.BytesIO(content), filename=filename, size=len(content))


def excel_bytes(frame: pd.DataFrame, tmp_dir: Path, name: str = "sheet.xlsx") -> bytes:
    path = tmp_dir / name
    frame.to_excel(path, index=False)
    return path.read_bytes()


@pytest.fixture
def sample_metadata() -> Dict:
    return dict(SAMPLE_METADATA)


@pytest.fixture
def csv_bytes() -> bytes:
    return b"a,b\n1,2\n3,4\n"


@pytest.fixture
def upload_factory() -> Callable[[str, bytes], UploadFile]:
    return make_upload


@pytest.fixture
def excel_factory(tmp_path: Path) -> Callable[..., bytes]:
    """Serialize a DataFrame to xlsx bytes."""
    def build(frame: pd.DataFrame, name: str = "sheet.xlsx") -> bytes:
        return excel_bytes(frame, tmp_path, name)
    return build


@pytest.fixture
def fake_generator() -> FakeMetadataGenerator:
    return FakeMetadataGenerator()


@pytest.fixture
def storage(tmp_path: Path) -> LocalFileStorage:
    return LocalFileStorage(tmp_path / "uploads", max_size=10 * 1024 * 1024)


@pytest.fixture
def ingestion(storage: LocalFileStorage) -> IngestionPipeline:
    return IngestionPipeline(storage)


@pytest.fixture
def session_factory(tmp_path: Path) -> Generator[async_sessionmaker, None, None]:
    """Session factory over a fresh SQLite file; no pooled connections outlive a session."""
    db_path = tmp_path / "catalog.db"

    sync_engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(bind=sync_engine)
    sync_engine.dispose()

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}",
        poolclass=NullPool,
        json_serializer=_json_serializer,
    )
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    engine.sync_engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def metadata_job(fake_generator: FakeMetadataGenerator) -> MetadataJob:
    return MetadataJob(lambda: fake_generator, max_retries=2, retry_delay=0, timeout=5)


@pytest.fixture
def dispatcher(metadata_job: MetadataJob, session_factory: async_sessionmaker) -> InProcessMetadataDispatcher:
    return InProcessMetadataDispatcher(metadata_job, session_factory)


@pytest.fixture
def dataset_service(
    db_session: AsyncSession,
    ingestion: IngestionPipeline,
    dispatcher: InProcessMetadataDispatcher,
) -> DatasetService:
    return DatasetService(db_session, ingestion, dispatcher)


@pytest.fixture
def review_service(db_session: AsyncSession) -> MetadataReviewService:
    return MetadataReviewService(db_session)


@pytest.fixture
def versioning_service(db_session: AsyncSession, ingestion: IngestionPipeline) -> VersioningService:
    return VersioningService(db_session, ingestion)


@pytest.fixture
def client(
    session_factory: async_sessionmaker,
    storage: LocalFileStorage,
    dispatcher: InProcessMetadataDispatcher,
) -> Generator[TestClient, None, None]:
    """Create test client with overridden database, storage and AI."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
