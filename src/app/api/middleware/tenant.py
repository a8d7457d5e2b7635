"""Session-based tenant resolution middleware.

Resolves the tenant for each request from:
1. The staff session (``tenant_id`` set at login)
2. The anonymous visitor's remembered chat tenant (``chat_tenant_id``),
   only on the public help center and livechat API paths

Then opens (or reuses) the tenant's store and publishes a TenantContext for
the lifetime of the request.
"""

from __future__ import annotations

import redis.asyncio as aioredis
import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.app.core.database import TenantStoreError, get_store_registry
from src.app.core.tenant import (
    TenantContext,
    is_public_path,
    reset_tenant_context,
    set_tenant_context,
    uses_chat_tenant,
)
from src.app.services.tenant_directory import TenantDirectory

logger = structlog.get_logger(__name__)

LOGIN_PATH = "/login"


class TenantMiddleware(BaseHTTPMiddleware):
    """Attach the current tenant's store to every tenant-scoped request.

    Behaviour:
    - No tenant on a public path: the request proceeds without context.
    - No tenant on any other path: redirect to the login page. A session
      holding a user but no tenant is corrupted and is cleared first.
    - Tenant inactive (disabled or trial over): the request proceeds with
      ``trial_expired`` set so handlers can offer an upgrade path.
    - Store cannot be opened: 500 for this request only.

    Must be installed inside SessionMiddleware.
    """

    def __init__(self, app, redis_client: aioredis.Redis | None = None):
        super().__init__(app)
        self._directory = TenantDirectory(redis_client)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        session = request.session

        tenant_id = session.get("tenant_id")
        if not tenant_id and uses_chat_tenant(path):
            tenant_id = session.get("chat_tenant_id")

        if not tenant_id:
            if is_public_path(path):
                return await call_next(request)
            if session.get("user"):
                logger.warning("tenant.session_corrupted", path=path)
                session.clear()
            return RedirectResponse(url=LOGIN_PATH, status_code=303)

        record = await self._directory.get(tenant_id)
        if record is None:
            logger.warning("tenant.unknown", tenant_id=tenant_id, path=path)
            session.clear()
            if is_public_path(path):
                return await call_next(request)
            return RedirectResponse(url=LOGIN_PATH, status_code=303)

        trial_expired = not record.is_active()

        try:
            store = await get_store_registry().get_store(tenant_id)
        except TenantStoreError as exc:
            logger.error("tenant.store_open_failed", tenant_id=tenant_id, reason=exc.reason)
            return JSONResponse(status_code=500, content={"detail": "Tenant database unavailable"})

        request.state.tenant_id = tenant_id
        request.state.tenant = record
        request.state.trial_expired = trial_expired

        ctx = TenantContext(
            tenant_id=tenant_id,
            tenant_slug=record.slug,
            store=store,
            trial_expired=trial_expired,
        )
        token = set_tenant_context(ctx)
        try:
            response = await call_next(request)
        finally:
            reset_tenant_context(token)

        if trial_expired:
            response.headers["X-Trial-Expired"] = "true"
        return response
