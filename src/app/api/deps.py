"""FastAPI dependency injection for tenant-scoped resources and authentication.

These dependencies are used in endpoint function signatures to inject the
current tenant context, its store session, the signed-in staff user and the
shared services (assistant, job registry, tenant directory).
"""

from __future__ import annotations

import secrets
from collections.abc import AsyncGenerator
from typing import Any

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.config import get_settings
from src.app.core.database import TenantStoreError, get_shared_session, get_store_registry
from src.app.core.redis import get_redis_pool
from src.app.core.security import session_user
from src.app.core.tenant import TenantContext, get_current_tenant, has_tenant_context
from src.app.services.assistant import HelpdeskAssistant
from src.app.services.jobs import JobRegistry
from src.app.services.tenant_directory import TenantDirectory, TenantRecord


async def get_tenant() -> TenantContext:
    """Get the current tenant context (set by TenantMiddleware)."""
    if not has_tenant_context():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No tenant selected")
    return get_current_tenant()


async def get_db(tenant: TenantContext = Depends(get_tenant)) -> AsyncGenerator[AsyncSession, None]:
    """Get a read session on the current tenant's store."""
    async with tenant.store.session() as session:
        yield session


async def get_shared_db() -> AsyncGenerator[AsyncSession, None]:
    """Get a master database session (auth and platform admin endpoints)."""
    async for session in get_shared_session():
        yield session


def get_directory() -> TenantDirectory:
    return TenantDirectory(get_redis_pool())


def get_jobs(request: Request) -> JobRegistry:
    return request.app.state.jobs


def get_assistant() -> HelpdeskAssistant:
    """Assistant bound to the process LLM service (overridden in tests)."""
    return HelpdeskAssistant()


async def get_current_user(
    request: Request,
    tenant: TenantContext = Depends(get_tenant),
) -> dict[str, Any]:
    """Return the signed-in staff user of the current tenant.

    Raises:
        HTTPException(401): No staff session, or the session belongs to
            another tenant (visitor sessions carry only a chat tenant).
    """
    user = session_user(request)
    if user is None or request.session.get("tenant_id") != tenant.tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user


def require_role(*roles: str):
    """Dependency factory: the signed-in staff user must have one of ``roles``."""

    async def guard(user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
        if user.get("role") not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return user

    return guard


# Tickets and help-center articles are handled by the support team.
require_support = require_role("admin", "support")


def tenant_name(request: Request) -> str:
    record: TenantRecord | None = getattr(request.state, "tenant", None)
    return record.name if record else ""


async def resolve_public_tenant(
    request: Request,
    slug: str,
    directory: TenantDirectory,
) -> tuple[TenantContext, TenantRecord]:
    """Resolve a help center by slug for anonymous visitors.

    Reuses the ambient context when it already is that tenant. Otherwise
    opens the tenant's store and remembers the tenant as the visitor's chat
    tenant, so later livechat calls without a slug land on the same tenant.
    The returned context is not published; callers enter it with
    ``tenant_scope``.

    Raises:
        HTTPException(404): Unknown or disabled tenant.
        HTTPException(500): The tenant store cannot be opened.
    """
    if has_tenant_context():
        current = get_current_tenant()
        if current.tenant_slug == slug:
            return current, request.state.tenant

    record = await directory.get_by_slug(slug)
    if record is None or not record.enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Help center not found")
    try:
        store = await get_store_registry().get_store(record.tenant_id)
    except TenantStoreError as exc:
        raise HTTPException(status_code=500, detail="Tenant database unavailable") from exc

    if not request.session.get("tenant_id"):
        request.session["chat_tenant_id"] = record.tenant_id
    ctx = TenantContext(
        tenant_id=record.tenant_id,
        tenant_slug=record.slug,
        store=store,
        trial_expired=not record.is_active(),
    )
    return ctx, record


async def require_superadmin(x_superadmin_token: str | None = Header(default=None)) -> None:
    """Guard platform endpoints with the static SUPERADMIN_TOKEN."""
    expected = get_settings().SUPERADMIN_TOKEN
    if not expected or not x_superadmin_token or not secrets.compare_digest(x_superadmin_token, expected):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

