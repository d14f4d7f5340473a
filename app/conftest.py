"""
Fixtures compartidos: base de datos SQLite en memoria, cliente HTTP y tokens por tienda.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from httpx import ASGITransport, AsyncClient
from uuid import uuid4

from app.main import app
from app.database.database import Database, get_async_db
from app.modules.auth.utils import create_access_token


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def test_db():
    """Base de datos nueva por test (SQLite en memoria, una sola conexión)"""
    db = Database()
    db.init("sqlite+aiosqlite://")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
async def db_session(test_db):
    async with test_db.sessionmaker() as session:
        yield session


@pytest.fixture
async def client(test_db):
    async def override_get_async_db():
        async with test_db.sessionmaker() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_async_db] = override_get_async_db
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def tenant_a():
    return uuid4()


@pytest.fixture
def tenant_b():
    return uuid4()


@pytest.fixture
def headers_a(tenant_a):
    return {"Authorization": f"Bearer {create_access_token(tenant_a, user_id='owner-a', role='OWNER')}"}


@pytest.fixture
def headers_b(tenant_b):
    return {"Authorization": f"Bearer {create_access_token(tenant_b, user_id='owner-b', role='OWNER')}"}
