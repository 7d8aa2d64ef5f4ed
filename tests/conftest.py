"""pytest fixtures for Paperbag backend tests.

Provides:
- settings: Test settings (secrets filled in, validation skipped)
- session_factory: In-memory SQLite database with the schema created
- session: Function-scoped database session
- uow_factory: Function-scoped UnitOfWork factory
- clock: Controllable epoch-ms clock for rate limiters
- scheduler: Scheduler whose cartoon job only records payloads
- services: Service graph wired to the fixtures above
- ctx / other_ctx: Request contexts for two different signed-in users
"""

import os

# Settings are instantiated when the app module is imported
os.environ.setdefault("APP_ENV", "test")

from typing import Any, AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from paperbag.core.config import Settings  # noqa: E402
from paperbag.core.database import setup_db_session  # noqa: E402
from paperbag.models.image import ImageRecord  # noqa: E402
from paperbag.security.middleware import RequestContext  # noqa: E402
from paperbag.services.container import build_services  # noqa: E402
from paperbag.services.identity import Identity  # noqa: E402
from paperbag.uow import create_uow_factory  # noqa: E402
from paperbag.workers.cartoon_generation_worker import CARTOON_GENERATION_JOB  # noqa: E402
from paperbag.workers.scheduler import AsyncioJobScheduler  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
START_MS = 1_700_000_000_000


class FakeClock:
    """Epoch-ms clock that only moves when told to."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def settings() -> Settings:
    return Settings(
        APP_ENV="test",
        DATABASE_URL=TEST_DATABASE_URL,
        AUTH_JWT_SECRET="test-jwt-secret-with-enough-length-for-hs256",
        STORAGE_SIGNING_KEY="test-signing-key",
        STORAGE_UPLOAD_BASE_URL="https://blobs.test/upload",
        STORAGE_PUBLIC_BASE_URL="https://blobs.test/files",
        REPLICATE_API_TOKEN="r8_test",
    )


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory database per test."""
    factory = setup_db_session(TEST_DATABASE_URL)
    engine = factory.kw["bind"]
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield factory

    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def uow_factory(session_factory):
    return create_uow_factory(session_factory)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class RecordingJob:
    """Stand-in for the cartoon generation job."""

    def __init__(self) -> None:
        self.payloads: list[dict[str, Any]] = []

    async def __call__(self, payload: dict[str, Any]) -> None:
        self.payloads.append(payload)


@pytest.fixture
def recorded_jobs() -> RecordingJob:
    return RecordingJob()


@pytest_asyncio.fixture
async def scheduler(recorded_jobs) -> AsyncGenerator[AsyncioJobScheduler, None]:
    scheduler = AsyncioJobScheduler()
    scheduler.register(CARTOON_GENERATION_JOB, recorded_jobs)
    yield scheduler
    await scheduler.shutdown()


@pytest.fixture
def services(settings, uow_factory, scheduler, clock):
    return build_services(settings, uow_factory, scheduler=scheduler, clock=clock)


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(
        identity=Identity(subject="user-1"), user_agent="pytest", ip_address="10.0.0.1"
    )


@pytest.fixture
def other_ctx() -> RequestContext:
    return RequestContext(
        identity=Identity(subject="user-2"), user_agent="pytest", ip_address="10.0.0.2"
    )


@pytest.fixture
def anonymous_ctx() -> RequestContext:
    return RequestContext(identity=None, user_agent="pytest", ip_address="10.0.0.3")


@pytest.fixture
def make_image(uow_factory):
    """Insert an image record and return it (detached, with its final values)."""

    async def _make_image(**overrides: Any) -> ImageRecord:
        values: dict[str, Any] = {
            "user_id": "user-1",
            "original_storage_id": "storage-1",
            "original_image_url": "https://blobs.test/files/storage-1",
            "file_name": "photo.png",
        }
        values.update(overrides)
        async with await uow_factory() as uow:
            image = await uow.images.add(ImageRecord(**values))
        return image

    return _make_image
