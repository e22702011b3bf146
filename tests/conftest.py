from __future__ import annotations

import os
from collections.abc import AsyncIterator, Callable
from typing import Any, Dict

import httpx
import mongomock
import pytest

# Settings are read once when the app is built, so they must be in place before any import below.
os.environ["SILVER_MONGO_URI"] = "mongodb://localhost:27017"
os.environ["SILVER_DB_NAME"] = "silverlining_test"
os.environ["JWT_SECRET"] = "test-access-secret"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret"
# Cheapest bcrypt cost passlib accepts keeps password hashing fast.
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["BACKGROUND_JOBS_ENABLED"] = "false"

from silverlining.api.config import load_config  # noqa: E402
from silverlining.api.main import create_app  # noqa: E402
from silverlining.api.schemas.common import UserRole, UserStatus  # noqa: E402
from silverlining.api.schemas.users import UserCreate  # noqa: E402
from silverlining.api.security import ACCESS, create_token  # noqa: E402
from silverlining.api.services import users_service  # noqa: E402
from silverlining.api.state import AppState, get_state  # noqa: E402

COLLECTIONS = [
    "users",
    "kyc_applications",
    "transactions",
    "portfolios",
    "notifications",
    "settings",
    "logs",
    "revoked_tokens",
]


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(scope="session")
def app():
    """
    FastAPI app backed by an in-memory mongomock client.

    httpx's ASGITransport does not run the lifespan, so indexes are created here and the
    background scheduler is left stopped; job ticks are exercised directly in their tests.
    """
    fastapi_app = create_app(load_config(), client_factory=mongomock.MongoClient)
    get_state(fastapi_app).mongo.init_indexes()
    return fastapi_app


@pytest.fixture(scope="session")
def state(app) -> AppState:
    return get_state(app)


@pytest.fixture
def mongo_db(state: AppState):
    return state.mongo.app_db()


@pytest.fixture(autouse=True)
def _clean_collections(state: AppState) -> None:
    """Empty every collection between tests (delete_many keeps the indexes)."""
    db = state.mongo.app_db()
    for name in COLLECTIONS:
        db[name].delete_many({})
    if state.background is not None:
        for job in state.background.jobs.values():  # type: ignore[attr-defined]
            job.last_run = None
            job.last_error = None
            job.last_result = None


@pytest.fixture
async def async_client(app) -> AsyncIterator[httpx.AsyncClient]:
    """Async HTTP client bound to the FastAPI ASGI app."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def make_user(state: AppState) -> Callable[..., Dict[str, Any]]:
    """Factory creating a user directly through the service layer; returns the stored document."""
    counter = {"n": 0}

    def _make(
        *,
        name: str | None = None,
        email: str | None = None,
        password: str = "secret123",
        role: UserRole = UserRole.USER,
        status: UserStatus = UserStatus.ACTIVE,
        phone: str | None = None,
    ) -> Dict[str, Any]:
        counter["n"] += 1
        n = counter["n"]
        user = users_service.create_user(
            state,
            UserCreate(
                name=name or f"Test User {n}",
                email=email or f"user{n}@example.com",
                password=password,
                role=role,
                status=status,
                phone=phone,
            ),
        )
        doc = users_service.find_user_doc(state, user.id)
        assert doc is not None
        return doc

    return _make


@pytest.fixture
def auth_headers(state: AppState) -> Callable[[Dict[str, Any]], Dict[str, str]]:
    """Bearer header for a stored user document."""

    def _headers(user_doc: Dict[str, Any]) -> Dict[str, str]:
        token = create_token(state.config, user_doc, ACCESS)["token"]
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def admin_user(make_user) -> Dict[str, Any]:
    return make_user(name="Admin", email="admin@example.com", role=UserRole.ADMIN)


@pytest.fixture
def admin_headers(admin_user, auth_headers) -> Dict[str, str]:
    return auth_headers(admin_user)


@pytest.fixture
def user_headers(make_user, auth_headers) -> Dict[str, str]:
    return auth_headers(make_user(name="Regular", email="regular@example.com"))
