"""Tenant lookups against the master database, with an optional Redis cache.

The tenant middleware looks up the session's tenant on every request, so
records are cached in Redis for TENANT_CACHE_TTL_SECONDS. Trial expiry is
computed at read time from trial_ends_at, never cached as a boolean.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.config import get_settings
from src.app.core.database import get_engine
from src.app.models.shared import Tenant

logger = structlog.get_logger(__name__)

TRIAL_PLAN = "trial"


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; stored timestamps are always UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class TenantRecord:
    """Snapshot of a tenant row as needed for request routing."""

    tenant_id: str
    slug: str
    name: str
    plan_id: str
    enabled: bool
    trial_ends_at: datetime | None = None

    @classmethod
    def from_model(cls, tenant: Tenant) -> TenantRecord:
        return cls(
            tenant_id=tenant.id,
            slug=tenant.slug,
            name=tenant.name,
            plan_id=tenant.plan_id,
            enabled=tenant.is_active,
            trial_ends_at=as_utc(tenant.trial_ends_at),
        )

    def is_active(self, now: datetime | None = None) -> bool:
        """Enabled, and for trial plans, trial not yet over."""
        if not self.enabled:
            return False
        if self.plan_id == TRIAL_PLAN and self.trial_ends_at is not None:
            return self.trial_ends_at > (now or datetime.now(timezone.utc))
        return True

    def trial_days_left(self, now: datetime | None = None) -> int | None:
        if self.plan_id != TRIAL_PLAN or self.trial_ends_at is None:
            return None
        remaining = self.trial_ends_at - (now or datetime.now(timezone.utc))
        return max(0, remaining.days + (1 if remaining.seconds else 0))

    def to_json(self) -> str:
        data = asdict(self)
        data["trial_ends_at"] = self.trial_ends_at.isoformat() if self.trial_ends_at else None
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str) -> TenantRecord:
        data = json.loads(raw)
        if data.get("trial_ends_at"):
            data["trial_ends_at"] = datetime.fromisoformat(data["trial_ends_at"])
        return cls(**data)


class TenantDirectory:
    """Resolve tenants by id or slug.

    Args:
        redis_client: Optional Redis client used as a read-through cache.
    """

    def __init__(self, redis_client: aioredis.Redis | None = None):
        self._redis = redis_client
        self._ttl = get_settings().TENANT_CACHE_TTL_SECONDS

    async def get(self, tenant_id: str) -> TenantRecord | None:
        cached = await self._cache_get(f"tenant:lookup:{tenant_id}")
        if cached is not None:
            return cached

        async with AsyncSession(get_engine(), expire_on_commit=False) as session:
            tenant = await session.get(Tenant, tenant_id)
        if tenant is None:
            return None

        record = TenantRecord.from_model(tenant)
        await self._cache_set(record)
        return record

    async def get_by_slug(self, slug: str) -> TenantRecord | None:
        async with AsyncSession(get_engine(), expire_on_commit=False) as session:
            result = await session.execute(select(Tenant).where(Tenant.slug == slug))
            tenant = result.scalar_one_or_none()
        return TenantRecord.from_model(tenant) if tenant is not None else None

    async def list_all(self) -> list[TenantRecord]:
        async with AsyncSession(get_engine(), expire_on_commit=False) as session:
            result = await session.execute(select(Tenant).order_by(Tenant.created_at))
            return [TenantRecord.from_model(t) for t in result.scalars().all()]

    async def set_enabled(self, tenant_id: str, enabled: bool) -> TenantRecord | None:
        """Soft-activate or deactivate a tenant."""
        async with AsyncSession(get_engine(), expire_on_commit=False) as session:
            tenant = await session.get(Tenant, tenant_id)
            if tenant is None:
                return None
            tenant.is_active = enabled
            await session.commit()
            record = TenantRecord.from_model(tenant)
        await self.invalidate(tenant_id)
        logger.info("tenant.status_changed", tenant_id=tenant_id, enabled=enabled)
        return record

    async def invalidate(self, tenant_id: str) -> None:
        if not self._redis:
            return
        try:
            await self._redis.delete(f"tenant:lookup:{tenant_id}")
        except RedisError:
            logger.warning("tenant.cache_invalidate_failed", tenant_id=tenant_id)

    # ── Cache ───────────────────────────────────────────────────────────

    async def _cache_get(self, key: str) -> TenantRecord | None:
        if not self._redis:
            return None
        try:
            raw = await self._redis.get(key)
        except RedisError:
            logger.warning("tenant.cache_lookup_failed", key=key)
            return None
        return TenantRecord.from_json(raw) if raw else None

    async def _cache_set(self, record: TenantRecord) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(f"tenant:lookup:{record.tenant_id}", record.to_json(), ex=self._ttl)
        except RedisError:
            logger.warning("tenant.cache_set_failed", tenant_id=record.tenant_id)
