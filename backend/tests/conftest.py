
import shutil
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from config import settings
from engine.transcoder import ToolResult, get_transcoder
from models.database import Base, get_db
from models.video import Video
from services.blob_store import LocalBlobStore, get_blob_store

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_BASE_URL = "http://test"


# --- Fake ffmpeg ---
class FakeTranscoder:
    """Stands in for ffmpeg/ffprobe: copies the input to the output without spawning anything."""

    def __init__(self):
        self.calls = []
        self.result = ToolResult(success=True)
        self.write_output = True
        self.source_duration = 20.0
        self.probe_ok = True
        self._output_duration = None

    def _run(self, input_path, output_path):
        if self.result.success and self.write_output:
            shutil.copyfile(input_path, output_path)
        return self.result

    def trim(self, input_path, output_path, start_seconds, end_seconds):
        self.calls.append(("trim", start_seconds, end_seconds))
        self._output_duration = end_seconds - start_seconds
        return self._run(input_path, output_path)

    def copy(self, input_path, output_path):
        self.calls.append(("copy",))
        self._output_duration = self.source_duration
        return self._run(input_path, output_path)

    def probe_duration(self, file_path):
        self.calls.append(("probe",))
        return self._output_duration if self.probe_ok else None


@pytest.fixture(scope="function")
def transcoder() -> FakeTranscoder:
    return FakeTranscoder()


# --- Database Setup ---
@pytest_asyncio.fixture(scope="function")
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(engine):
    return async_sessionmaker(expire_on_commit=False, bind=engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# --- File System ---
@pytest.fixture(scope="function")
def blob_store(tmp_path) -> LocalBlobStore:
    store = LocalBlobStore(tmp_path / "uploads", TEST_BASE_URL, settings.max_upload_bytes)
    store.ensure_directories()
    return store


# --- Client Setup ---
@pytest_asyncio.fixture(scope="function")
async def client(session_factory, blob_store, transcoder) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    app.dependency_overrides[get_transcoder] = lambda: transcoder

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=f"{TEST_BASE_URL}/api") as c:
        yield c

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def make_video(session_factory):
    """Insert a Video row directly, bypassing the upload pipeline."""
    async def _make(**overrides) -> Video:
        fields = dict(
            filename="videos/test.webm",
            content_type="video/webm",
            duration_seconds=60.0,
            size_bytes=1024,
            public_url=f"{TEST_BASE_URL}/api/uploads/videos/test.webm",
            view_count=0,
        )
        fields.update(overrides)
        video = Video(**fields)
        async with session_factory() as session:
            session.add(video)
            await session.commit()
            await session.refresh(video)
        return video

    return _make
