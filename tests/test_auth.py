"""Authentication tests.

Tests organization sign-up, session login and logout, the current user
endpoint, and that a staff session only ever opens its own tenant.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.core.database import TenantStoreError, TenantStoreRegistry, get_engine
from src.app.models.shared import Account, Tenant


# ── Registration ──────────────────────────────────────────────────────────────


async def test_register_creates_tenant_and_signs_in(client):
    response = await client.post(
        "/register",
        json={
            "company_name": "Gamma Help",
            "full_name": "Gus Gamma",
            "email": "Gus@Gamma.example.com",
            "password": "gamma-pass-1",
        },
    )
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["slug"] == "gamma-help"
    assert data["plan_id"] == "trial"
    assert data["owner"]["email"] == "gus@gamma.example.com"
    assert data["owner"]["role"] == "admin"

    me = await client.get("/api/v1/auth/me")
    assert me.status_code == 200
    assert me.json()["tenant_slug"] == "gamma-help"
    assert me.json()["trial_days_left"] == 7


async def test_register_duplicate_slug_rejected(client, tenant_alpha):
    response = await client.post(
        "/register",
        json={
            "company_name": "Another Alpha",
            "slug": "alpha",
            "full_name": "Eve",
            "email": "eve@other.example.com",
            "password": "long-enough",
        },
    )
    assert response.status_code == 409
    assert "already exists" in response.json()["detail"]


async def test_register_duplicate_email_rejected(client, tenant_alpha):
    response = await client.post(
        "/register",
        json={
            "company_name": "Delta",
            "full_name": "Alice again",
            "email": "owner@alpha.example.com",
            "password": "long-enough",
        },
    )
    assert response.status_code == 409


async def test_register_validates_input(client, db):
    short_password = await client.post(
        "/register",
        json={"company_name": "Zeta", "full_name": "Z", "email": "z@zeta.example.com", "password": "short"},
    )
    assert short_password.status_code == 422

    bad_slug = await client.post(
        "/register",
        json={
            "company_name": "Zeta",
            "slug": "-Bad Slug-",
            "full_name": "Z",
            "email": "z@zeta.example.com",
            "password": "long-enough",
        },
    )
    assert bad_slug.status_code == 400


async def test_register_leaves_nothing_behind_when_store_fails(client, db):
    payload = {
        "company_name": "Acme",
        "full_name": "Ann Acme",
        "email": "ann@acme.example.com",
        "password": "acme-pass-1",
    }
    with patch.object(
        TenantStoreRegistry,
        "get_store",
        new=AsyncMock(side_effect=TenantStoreError("acme", "disk full")),
    ):
        response = await client.post("/register", json=payload)
    assert response.status_code == 500

    async with AsyncSession(get_engine()) as session:
        assert (await session.execute(select(Tenant).where(Tenant.slug == "acme"))).first() is None
        assert (await session.execute(select(Account).where(Account.email == "ann@acme.example.com"))).first() is None

    retry = await client.post("/register", json=payload)
    assert retry.status_code == 201, retry.text
    assert (await client.get("/api/v1/auth/me")).json()["email"] == "ann@acme.example.com"


# ── Login Tests ───────────────────────────────────────────────────────────────


async def test_login_valid_credentials(client, tenant_alpha):
    """Login returns the staff profile and records the login time."""
    response = await client.post(
        "/login",
        json={"email": "OWNER@alpha.example.com", "password": "alpha-pass-1"},
    )
    assert response.status_code == 200, response.text
    user = response.json()["user"]
    assert user["email"] == "owner@alpha.example.com"
    assert user["full_name"] == "Alice Alpha"

    async with AsyncSession(get_engine()) as session:
        account = (
            await session.execute(select(Account).where(Account.email == "owner@alpha.example.com"))
        ).scalar_one()
    assert account.last_login is not None


async def test_login_invalid_credentials(client, tenant_alpha):
    """Login with wrong password returns 401."""
    response = await client.post(
        "/login",
        json={"email": "owner@alpha.example.com", "password": "wrong-password"},
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


async def test_login_nonexistent_user(client, tenant_alpha):
    response = await client.post(
        "/login",
        json={"email": "nobody@example.com", "password": "any-password"},
    )
    assert response.status_code == 401


# ── Current user ──────────────────────────────────────────────────────────────


async def test_me_returns_user_and_tenant(alpha_client, tenant_alpha):
    response = await alpha_client.get("/api/v1/auth/me")
    assert response.status_code == 200
    data = response.json()
    assert data["email"] == "owner@alpha.example.com"
    assert data["role"] == "admin"
    assert data["tenant_id"] == tenant_alpha["tenant_id"]
    assert data["tenant_slug"] == "alpha"
    assert data["trial_expired"] is False


async def test_logout_ends_the_session(alpha_client):
    response = await alpha_client.post("/logout")
    assert response.status_code == 200

    response = await alpha_client.get("/api/v1/auth/me")
    assert response.status_code == 303


async def test_logged_in_clients_stay_in_their_tenant(alpha_client, beta_client):
    alpha_me, beta_me = await alpha_client.get("/api/v1/auth/me"), await beta_client.get("/api/v1/auth/me")
    assert alpha_me.json()["tenant_slug"] == "alpha"
    assert beta_me.json()["tenant_slug"] == "beta"
