import os

os.environ.setdefault("TELEMETRY_ENABLED", "false")
os.environ.setdefault("PASSWORD_HASH_ITERATIONS", "1000")
os.environ.setdefault("SESSION_TOKEN_PEPPER", "test-pepper")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Import Base + all models so metadata is complete
import app.models  # noqa: F401
from app.models.base import Base

from app.main import app
from app.core.db import get_db
from app.core.redis import get_redis
from app.services.media import MediaUploader, get_media_uploader

from tests.fakes import FakeRedis
from tests.fixtures_seed import adopter, make_listing, other_adopter, owner  # noqa: F401


def _test_db_url() -> str:
    # Point at Postgres with DATABASE_URL_TEST; in-memory SQLite otherwise.
    return os.getenv("DATABASE_URL_TEST", "sqlite+aiosqlite:///:memory:")


@pytest_asyncio.fixture
async def async_engine():
    url = _test_db_url()
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    engine = create_async_engine(url, **kwargs)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def db_session(async_engine):
    session_factory = async_sessionmaker(async_engine, expire_on_commit=False, class_=AsyncSession)
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def uploads():
    """Requests received by the fake media host."""
    return []


@pytest_asyncio.fixture
async def media_uploader(uploads):
    def handler(request: httpx.Request) -> httpx.Response:
        uploads.append(request)
        n = len(uploads)
        return httpx.Response(
            200,
            json={"secure_url": f"https://media.test/pets/{n}.jpg", "public_id": f"pets/{n}"},
        )

    uploader = MediaUploader(
        upload_url="https://media.test/image/upload",
        upload_preset="test_preset",
        transport=httpx.MockTransport(handler),
    )
    yield uploader
    await uploader.aclose()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, fake_redis: FakeRedis, media_uploader: MediaUploader):
    """
    HTTP client that uses the test DB session, fake Redis and fake media host
    via dependency overrides.
    """
    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_media_uploader] = lambda: media_uploader

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
