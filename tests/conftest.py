"""Test fixtures for multi-tenant isolation tests.

Provides:
- Settings pointed at a temporary DATA_DIR (fresh master DB and tenant stores per test)
- FastAPI test app with initialized database
- Async HTTP clients: anonymous, logged in as a tenant owner, and logged in
  as a developer (a staff role outside the support team)
- Two test tenants (alpha, beta) with isolated stores
- A mock LLM service wired into the assistant dependency
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.api.deps import get_assistant
from src.app.config import get_settings
from src.app.core.database import close_db, get_engine, get_store_registry, init_db
from src.app.core.security import hash_password
from src.app.core.tenant import TenantContext
from src.app.main import create_app
from src.app.models.shared import Account
from src.app.models.tenant import User
from src.app.services.assistant import HelpdeskAssistant
from src.app.services.tenant_provisioning import provision_tenant

SUPERADMIN_TOKEN = "superadmin-test-token"


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point every test at its own data directory, no Redis, no LLM keys."""
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("REDIS_URL", "")
    monkeypatch.setenv("SESSION_SECRET_KEY", "test-session-secret")
    monkeypatch.setenv("SUPERADMIN_TOKEN", SUPERADMIN_TOKEN)
    monkeypatch.setenv("DEFAULT_LANGUAGE", "en")
    for key in ("ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GEMINI_API_KEY", "SENTRY_DSN"):
        monkeypatch.setenv(key, "")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[None, None]:
    """Initialized master database; closes every store afterwards."""
    await init_db()
    yield
    await close_db()


@pytest.fixture
def mock_llm() -> MagicMock:
    """LLM service double. ``completion`` returns a canned answer."""
    llm = MagicMock()
    llm.available = True
    llm.completion = AsyncMock(
        return_value={
            "content": "The activation fee is 49 EUR.",
            "model": "anthropic/claude-3-5-haiku-latest",
            "usage": {"prompt_tokens": 120, "completion_tokens": 12, "total_tokens": 132},
            "tenant_id": "",
        }
    )
    return llm


@pytest_asyncio.fixture
async def app(db, mock_llm):
    """Create the FastAPI app. The assistant talks to ``mock_llm``."""
    application = create_app()
    application.dependency_overrides[get_assistant] = lambda: HelpdeskAssistant(llm=mock_llm)
    yield application
    await application.state.jobs.drain()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Anonymous async HTTP client (keeps its own session cookie)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def _provision(name: str, slug: str, email: str, password: str, owner: str) -> dict:
    tenant = await provision_tenant(
        name=name,
        owner_email=email,
        owner_password=password,
        owner_name=owner,
        slug=slug,
    )
    return {**tenant, "password": password}


@pytest_asyncio.fixture
async def tenant_alpha(db) -> dict:
    return await _provision("Alpha Support", "alpha", "owner@alpha.example.com", "alpha-pass-1", "Alice Alpha")


@pytest_asyncio.fixture
async def tenant_beta(db) -> dict:
    return await _provision("Beta Desk", "beta", "owner@beta.example.com", "beta-pass-1", "Bob Beta")


async def _logged_in_client(app, tenant: dict) -> AsyncClient:
    ac = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
    await ac.__aenter__()
    response = await ac.post(
        "/login",
        json={"email": tenant["owner"]["email"], "password": tenant["password"]},
    )
    assert response.status_code == 200, response.text
    return ac


@pytest_asyncio.fixture
async def alpha_client(app, tenant_alpha) -> AsyncGenerator[AsyncClient, None]:
    ac = await _logged_in_client(app, tenant_alpha)
    try:
        yield ac
    finally:
        await ac.aclose()


@pytest_asyncio.fixture
async def beta_client(app, tenant_beta) -> AsyncGenerator[AsyncClient, None]:
    ac = await _logged_in_client(app, tenant_beta)
    try:
        yield ac
    finally:
        await ac.aclose()


async def _add_staff(tenant: dict, email: str, password: str, full_name: str, role: str) -> dict:
    """Add a staff member to ``tenant``: master account plus tenant user."""
    async with AsyncSession(get_engine()) as session:
        session.add(
            Account(
                email=email,
                hashed_password=hash_password(password),
                full_name=full_name,
                tenant_id=tenant["tenant_id"],
            )
        )
        await session.commit()
    store = await get_store_registry().get_store(tenant["tenant_id"])
    async with store.write_session() as session:
        session.add(User(email=email, full_name=full_name, role=role))
    return {"owner": {"email": email}, "password": password}


@pytest_asyncio.fixture
async def alpha_developer_client(app, tenant_alpha) -> AsyncGenerator[AsyncClient, None]:
    staff = await _add_staff(tenant_alpha, "dev@alpha.example.com", "dev-pass-12", "Dan Dev", "developer")
    ac = await _logged_in_client(app, staff)
    try:
        yield ac
    finally:
        await ac.aclose()


async def _context(tenant: dict) -> TenantContext:
    store = await get_store_registry().get_store(tenant["tenant_id"])
    return TenantContext(tenant_id=tenant["tenant_id"], tenant_slug=tenant["slug"], store=store)


@pytest_asyncio.fixture
async def alpha_context(tenant_alpha) -> TenantContext:
    """Alpha's tenant context. Tests enter it with ``tenant_scope``."""
    return await _context(tenant_alpha)


@pytest_asyncio.fixture
async def beta_context(tenant_beta) -> TenantContext:
    return await _context(tenant_beta)
