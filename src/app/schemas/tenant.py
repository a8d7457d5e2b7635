"""Pydantic schemas for platform tenant administration."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class TenantResponse(BaseModel):
    """Response schema for tenant data."""

    id: str
    slug: str
    name: str
    plan_id: str
    is_active: bool = True
    trial_ends_at: datetime | None = None
    trial_days_left: int | None = None
