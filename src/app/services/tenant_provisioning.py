"""Tenant provisioning service.

Creates a tenant row and its owner account in the master database, opens
the tenant's own store (creating its SQLite file and tables) and adds the
owner as the first admin user there, then commits the master rows. New
tenants start on a trial plan.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timedelta, timezone

import structlog
from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.config import get_settings
from src.app.core.database import TenantStoreError, get_engine, get_store_registry
from src.app.core.security import hash_password
from src.app.models.shared import Account, Tenant
from src.app.models.tenant import User
from src.app.services.tenant_directory import TRIAL_PLAN
from src.knowledge.keywords import strip_accents

logger = structlog.get_logger(__name__)

# Slug validation: lowercase alphanumeric + hyphens, 3-50 chars
SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]{1,48}[a-z0-9]$")


def slugify(value: str) -> str:
    """Derive a URL slug from a display name ("Café Noël" -> "cafe-noel")."""
    slug = re.sub(r"[^a-z0-9]+", "-", strip_accents(value.lower())).strip("-")
    return slug[:50].strip("-")


async def provision_tenant(
    name: str,
    owner_email: str,
    owner_password: str,
    owner_name: str,
    slug: str | None = None,
) -> dict:
    """Provision a new tenant with its owner account and isolated store.

    Steps:
    1. Validate slug format (derived from the name when omitted)
    2. Check for duplicate slug and duplicate owner email
    3. Insert tenant (trial plan) and owner account in the master database
    4. Open the tenant store and insert the owner as admin user
    5. Commit the master rows; nothing is committed if step 4 fails

    Raises:
        HTTPException(400): Invalid slug format
        HTTPException(409): Slug or email already registered
        TenantStoreError: The tenant store could not be created
    """
    settings = get_settings()
    slug = slug or slugify(name)
    email = owner_email.strip().lower()

    if not SLUG_PATTERN.match(slug):
        raise HTTPException(
            status_code=400,
            detail="Slug must be 3-50 chars, lowercase alphanumeric and hyphens only, "
                   "must start and end with alphanumeric character.",
        )

    tenant_id = str(uuid.uuid4())
    trial_ends_at = datetime.now(timezone.utc) + timedelta(days=settings.TRIAL_DAYS)

    async with AsyncSession(get_engine(), expire_on_commit=False) as session:
        if (await session.execute(select(Tenant.id).where(Tenant.slug == slug))).first():
            raise HTTPException(status_code=409, detail=f"Tenant with slug '{slug}' already exists")
        if (await session.execute(select(Account.id).where(Account.email == email))).first():
            raise HTTPException(status_code=409, detail="An account with this email already exists")

        session.add(
            Tenant(
                id=tenant_id,
                slug=slug,
                name=name,
                plan_id=TRIAL_PLAN,
                trial_ends_at=trial_ends_at,
                is_active=True,
            )
        )
        # Flush the tenant before the account that references it.
        await session.flush()
        session.add(
            Account(
                email=email,
                hashed_password=hash_password(owner_password),
                full_name=owner_name,
                tenant_id=tenant_id,
                is_owner=True,
            )
        )
        await session.flush()

        # The master rows are committed only once the tenant store holds its
        # admin user; a store failure rolls them back with the session.
        try:
            store = await get_store_registry().get_store(tenant_id)
        except TenantStoreError:
            logger.error("tenant.provisioning_failed", tenant_id=tenant_id, slug=slug)
            raise
        async with store.write_session() as tenant_session:
            admin = User(email=email, full_name=owner_name, role="admin")
            tenant_session.add(admin)
            await tenant_session.flush()
            admin_id = admin.id

        await session.commit()

    logger.info("tenant.provisioned", tenant_id=tenant_id, slug=slug)
    return {
        "tenant_id": tenant_id,
        "slug": slug,
        "name": name,
        "plan_id": TRIAL_PLAN,
        "trial_ends_at": trial_ends_at.isoformat(),
        "owner": {"id": admin_id, "email": email, "full_name": owner_name, "role": "admin"},
    }
