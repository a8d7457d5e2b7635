"""Pydantic schemas for authentication API endpoints."""

from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    """Sign-up of a new organization and its owner."""

    company_name: str = Field(..., min_length=1, max_length=200, description="Organization display name")
    slug: str | None = Field(default=None, description="Help-center slug, derived from the name when omitted")
    full_name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr = Field(..., description="Owner email address")
    password: str = Field(..., min_length=8, description="Owner password")


class LoginRequest(BaseModel):
    """Request schema for user login."""

    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=1, description="User password")


class UserResponse(BaseModel):
    """Response schema for current user info."""

    id: int
    email: str
    full_name: str
    role: str
    tenant_id: str
    tenant_slug: str
    trial_expired: bool = False
    trial_days_left: int | None = None
