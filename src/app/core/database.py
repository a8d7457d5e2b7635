"""Async SQLAlchemy storage with one SQLite database per tenant.

Provides:
- SharedBase: Declarative base for the master database (tenants, accounts)
- TenantBase: Declarative base for per-tenant tables (knowledge, chat, tickets)
- get_engine(): Lazy master engine singleton
- TenantStore: Handle on one tenant's database with query/execute primitives
  and a per-tenant write lock
- TenantStoreRegistry: Opens or creates tenant stores on demand and caches
  them for the life of the process
- get_shared_session(): Master database session dependency
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import AsyncGenerator, AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sqlalchemy import MetaData, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.app.config import get_settings


# ── Declarative Bases ───────────────────────────────────────────────────────


class SharedBase(DeclarativeBase):
    """Base class for master database models (tenants, accounts)."""

    metadata = MetaData()


class TenantBase(DeclarativeBase):
    """Base class for models stored in each tenant's own database."""

    metadata = MetaData()


# ── Master engine (lazy init) ───────────────────────────────────────────────

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Get or create the master database engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        settings.data_path.mkdir(parents=True, exist_ok=True)
        _engine = create_async_engine(
            settings.master_database_url,
            connect_args={"timeout": 15},
            echo=False,
        )
    return _engine


# ── Tenant stores ───────────────────────────────────────────────────────────


class TenantStoreError(Exception):
    """A tenant store could not be opened or created."""

    def __init__(self, tenant_id: str, reason: str):
        super().__init__(f"Tenant store unavailable for {tenant_id}: {reason}")
        self.tenant_id = tenant_id
        self.reason = reason


@dataclass(frozen=True)
class ExecuteResult:
    rowcount: int
    lastrowid: int | None


class TenantStore:
    """Handle on one tenant's isolated SQLite database.

    Reads run concurrently. Every write goes through a per-tenant
    asyncio.Lock so concurrent requests for the same tenant are applied one
    at a time instead of relying on SQLite's file locking.
    """

    def __init__(self, tenant_id: str, path: Path):
        self.tenant_id = tenant_id
        self.path = path
        self.engine: AsyncEngine = create_async_engine(
            f"sqlite+aiosqlite:///{path}",
            connect_args={"timeout": 15},
            echo=False,
        )
        self._sessionmaker = async_sessionmaker(self.engine, expire_on_commit=False)
        self._write_lock = asyncio.Lock()

    async def open(self) -> None:
        """Create the database file and tenant tables if they don't exist."""
        from src.app.models import tenant as _tenant_models  # noqa: F401

        self.path.parent.mkdir(parents=True, exist_ok=True)
        async with self._write_lock:
            async with self.engine.begin() as conn:
                await conn.run_sync(TenantBase.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()

    # ── Raw query primitives ────────────────────────────────────────────

    async def fetch_one(self, sql: str, params: Mapping[str, Any] | None = None) -> dict[str, Any] | None:
        async with self.engine.connect() as conn:
            result = await conn.execute(text(sql), dict(params or {}))
            row = result.mappings().first()
            return dict(row) if row is not None else None

    async def fetch_all(self, sql: str, params: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        async with self.engine.connect() as conn:
            result = await conn.execute(text(sql), dict(params or {}))
            return [dict(row) for row in result.mappings().all()]

    async def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> ExecuteResult:
        """Run a write statement under the tenant write lock and commit it."""
        async with self._write_lock:
            async with self.engine.begin() as conn:
                result = await conn.execute(text(sql), dict(params or {}))
                return ExecuteResult(rowcount=result.rowcount, lastrowid=result.lastrowid)

    # ── ORM sessions ────────────────────────────────────────────────────

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Session for reads. Do not commit through it; use write_session()."""
        async with self._sessionmaker() as session:
            yield session

    @asynccontextmanager
    async def write_session(self) -> AsyncIterator[AsyncSession]:
        """Session holding the tenant write lock; commits on clean exit."""
        async with self._write_lock:
            async with self._sessionmaker() as session:
                try:
                    yield session
                    await session.commit()
                except BaseException:
                    await session.rollback()
                    raise


_TENANT_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")


class TenantStoreRegistry:
    """Open-or-create tenant stores, cached per tenant for the process lifetime."""

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir
        self._stores: dict[str, TenantStore] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, tenant_id: str) -> bool:
        return tenant_id in self._stores

    async def get_store(self, tenant_id: str) -> TenantStore:
        """Return the cached store for ``tenant_id``, opening it on first use.

        Raises:
            TenantStoreError: The id is not a safe directory name, or the
                database could not be created or opened.
        """
        store = self._stores.get(tenant_id)
        if store is not None:
            return store
        if not _TENANT_ID_PATTERN.match(tenant_id):
            raise TenantStoreError(tenant_id, "invalid tenant id")

        async with self._lock:
            store = self._stores.get(tenant_id)
            if store is None:
                store = TenantStore(tenant_id, self.base_dir / tenant_id / "hub.db")
                try:
                    await store.open()
                except (OSError, SQLAlchemyError) as exc:
                    await store.close()
                    raise TenantStoreError(tenant_id, str(exc)) from exc
                self._stores[tenant_id] = store
        return store

    async def close_all(self) -> None:
        async with self._lock:
            stores = list(self._stores.values())
            self._stores.clear()
        for store in stores:
            await store.close()


_registry: TenantStoreRegistry | None = None


def get_store_registry() -> TenantStoreRegistry:
    """Get or create the tenant store registry singleton."""
    global _registry
    if _registry is None:
        _registry = TenantStoreRegistry(get_settings().tenants_dir)
    return _registry


# ── Session Factories ───────────────────────────────────────────────────────


async def get_shared_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession for the master database."""
    engine = get_engine()
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


# ── Database Initialization ─────────────────────────────────────────────────


async def init_db() -> None:
    """Create the master tables if they don't exist."""
    from src.app.models import shared as _shared_models  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(SharedBase.metadata.create_all)


async def close_db() -> None:
    """Close every tenant store and dispose of the master engine."""
    global _engine, _registry
    if _registry:
        await _registry.close_all()
        _registry = None
    if _engine:
        await _engine.dispose()
        _engine = None
