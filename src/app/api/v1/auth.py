"""Authentication API endpoints.

Provides organization sign-up, login, logout and current user info. Staff
identity lives in the signed session cookie; the session also carries the
tenant id that TenantMiddleware resolves on every request.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.api.deps import get_current_user, get_shared_db
from src.app.core.database import TenantStoreError, get_store_registry
from src.app.core.security import login_session, verify_password
from src.app.models.shared import Account
from src.app.models.tenant import User
from src.app.schemas.auth import LoginRequest, RegisterRequest, UserResponse
from src.app.services.tenant_provisioning import provision_tenant

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, request: Request):
    """Create an organization on a trial plan and sign its owner in."""
    try:
        tenant = await provision_tenant(
            name=body.company_name,
            owner_email=body.email,
            owner_password=body.password,
            owner_name=body.full_name,
            slug=body.slug,
        )
    except TenantStoreError as exc:
        raise HTTPException(status_code=500, detail="Tenant database unavailable") from exc
    login_session(request, tenant["tenant_id"], tenant["owner"])
    return tenant


@router.post("/login")
async def login(body: LoginRequest, request: Request, db: AsyncSession = Depends(get_shared_db)):
    """Authenticate against the master account table.

    The account names the tenant; the staff user is then loaded from that
    tenant's own store to get its id and role.
    """
    email = body.email.strip().lower()
    account = (await db.execute(select(Account).where(Account.email == email))).scalar_one_or_none()
    if account is None or not account.is_active or not verify_password(body.password, account.hashed_password):
        logger.info("auth.login_failed", email=email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    store = await get_store_registry().get_store(account.tenant_id)
    async with store.session() as session:
        user = (await session.execute(select(User).where(User.email == email))).scalar_one_or_none()
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )

    account.last_login = datetime.now(timezone.utc)
    await db.commit()

    profile = {"id": user.id, "email": user.email, "full_name": user.full_name, "role": user.role}
    login_session(request, account.tenant_id, profile)
    logger.info("auth.login", tenant_id=account.tenant_id, user_id=user.id)
    return {"ok": True, "user": profile}


@router.post("/logout")
async def logout(request: Request):
    request.session.clear()
    return {"ok": True}


@router.get("/api/v1/auth/me", response_model=UserResponse)
async def get_me(request: Request, user: dict = Depends(get_current_user)):
    """Return current user info with the tenant's trial state."""
    record = request.state.tenant
    return UserResponse(
        id=user["id"],
        email=user["email"],
        full_name=user["full_name"],
        role=user["role"],
        tenant_id=record.tenant_id,
        tenant_slug=record.slug,
        trial_expired=request.state.trial_expired,
        trial_days_left=record.trial_days_left(),
    )
