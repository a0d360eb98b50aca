"""
Shared fixtures.

The environment is set before the app is imported: the tests run against a
throwaway SQLite file instead of PostgreSQL, with a cheap bcrypt cost.
"""
import os
import tempfile

_TEST_DB_DIR = tempfile.mkdtemp(prefix="customer-service-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TEST_DB_DIR, 'customers.db')}"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-that-is-definitely-longer-than-32-bytes"
os.environ["JWT_ISSUER"] = "api-gateway"
os.environ["JWT_EXPIRATION_MS"] = "3600000"

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from customer_service.main import app
from customer_service.auth.jwt import create_access_token, get_token_codec
from customer_service.auth.models import Role
from customer_service.base_microservice import AsyncSessionLocal, Base, engine, init_models


@pytest_asyncio.fixture
async def database():
    """Fresh schema for one test."""
    await init_models()
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def client(database):
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        yield ac


@pytest_asyncio.fixture
async def db_session(database):
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
def codec():
    return get_token_codec()


@pytest.fixture
def auth_headers(codec):
    """Build an Authorization header for any identity."""
    def _headers(subject_id: str, email: str = "someone@example.com", role: Role = Role.CUSTOMER):
        token = create_access_token(str(subject_id), email, role, codec)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def admin_headers(auth_headers):
    return auth_headers("999", "admin@example.com", Role.ADMIN)


@pytest.fixture
def create_customer(client):
    """Register a customer through the API and return the response body."""
    async def _create(email: str, password: str = "pw123456", **fields):
        payload = {"email": email, "password": password, "firstName": "A", "lastName": "B"}
        payload.update(fields)
        response = await client.post("/customers", json=payload)
        assert response.status_code == 201, response.text
        return response.json()
    return _create
