"""Tenant context propagation via Python contextvars.

This module is the foundation of multi-tenant isolation. The TenantContext
is set by TenantMiddleware at the start of each request and is accessible
anywhere in the call stack via get_current_tenant() / get_current_store().

The context lives strictly for the lifetime of one request: the middleware
resets it in a finally block, and asyncio gives every request task its own
copy of the context, so concurrent requests for different tenants never see
each other's store. Code that runs after the request has ended (background
jobs) must re-enter a captured context explicitly with tenant_scope().
"""

from __future__ import annotations

import contextvars
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.app.core.database import TenantStore

# ── Tenant Context ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TenantContext:
    """Immutable tenant context for the current request."""

    tenant_id: str
    tenant_slug: str
    store: TenantStore
    trial_expired: bool = False


_tenant_context: contextvars.ContextVar[TenantContext] = contextvars.ContextVar("tenant_context")


def get_current_tenant() -> TenantContext:
    """Get the tenant context for the current request.

    Raises RuntimeError if no tenant context has been set (i.e., the call
    is not within a tenant-scoped request).
    """
    try:
        return _tenant_context.get()
    except LookupError:
        raise RuntimeError("No tenant context set -- request is not tenant-scoped")


def get_current_store() -> TenantStore:
    """Shortcut for the current tenant's store handle."""
    return get_current_tenant().store


def has_tenant_context() -> bool:
    return _tenant_context.get(None) is not None


def set_tenant_context(ctx: TenantContext) -> contextvars.Token[TenantContext]:
    """Set the tenant context for the current request. Returns a token for reset."""
    return _tenant_context.set(ctx)


def reset_tenant_context(token: contextvars.Token[TenantContext]) -> None:
    _tenant_context.reset(token)


@contextmanager
def tenant_scope(ctx: TenantContext) -> Iterator[TenantContext]:
    """Publish ``ctx`` as the current tenant for the duration of the block."""
    token = set_tenant_context(ctx)
    try:
        yield ctx
    finally:
        reset_tenant_context(token)


# ── Path classification ─────────────────────────────────────────────────────

# Reachable without a tenant in the session.
PUBLIC_PATHS = (
    "/login",
    "/register",
    "/logout",
    "/health",
    "/metrics",
    "/docs",
    "/openapi.json",
    "/redoc",
    "/help",
    "/api/chat/",
    "/superadmin",
)

# Public paths where an anonymous visitor's remembered chat tenant applies.
CHAT_TENANT_PATHS = (
    "/help",
    "/api/chat/",
)


def is_public_path(path: str) -> bool:
    return path.startswith(PUBLIC_PATHS)


def uses_chat_tenant(path: str) -> bool:
    return path.startswith(CHAT_TENANT_PATHS)
