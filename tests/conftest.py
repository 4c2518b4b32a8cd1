import os
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("PUBLIC_BASE_URL", "https://files.creatorarmour.test")
os.environ.setdefault("STORAGE_DIR", tempfile.mkdtemp(prefix="armour-storage-"))
os.environ.setdefault("LLM_PROVIDER", "openai")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from armour.auth import get_current_user
from armour.database import create_tables, get_db
from armour.main import app
from armour.routers.ai_jobs import get_session_factory
from armour.services.contract_fetcher import ContractFetcher, get_contract_fetcher
from armour.services.job_client import get_task_client
from armour.services.llm_provider import get_llm_service
from armour.services.storage import StorageService, get_storage

from fakes import CREATOR, FakeLLM, FakeTaskClient


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'armour-test.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage(tmp_path):
    return StorageService(
        root=str(tmp_path / "storage"),
        public_base_url="https://files.creatorarmour.test",
        signing_secret="storage-secret",
    )


@pytest.fixture
def task_client():
    return FakeTaskClient()


@pytest.fixture
def llm():
    return FakeLLM("{}")


@pytest.fixture
def contract_transport():
    """Mutable MockTransport handler for contract downloads; tests replace `.handler`."""

    class Downloads:
        def __init__(self):
            self.handler = lambda request: httpx.Response(404)

        def __call__(self, request):
            return self.handler(request)

    return Downloads()


@pytest.fixture
def auth():
    """Holds the caller used by `get_current_user`; tests set `auth.user`."""

    class Caller:
        user = CREATOR

    return Caller()


@pytest_asyncio.fixture
async def client(session_factory, storage, task_client, llm, contract_transport, auth):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_current_user] = lambda: auth.user
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_task_client] = lambda: task_client
    app.dependency_overrides[get_llm_service] = lambda: llm
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_contract_fetcher] = lambda: ContractFetcher(
        transport=httpx.MockTransport(contract_transport)
    )

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http

    app.dependency_overrides.clear()
