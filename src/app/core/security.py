"""Password hashing and session identity helpers.

Staff authenticate with a signed session cookie (Starlette SessionMiddleware).
The session carries the tenant id and a small user dict; nothing else about
the user is trusted from the cookie.

Uses bcrypt directly (not passlib) for Python 3.13 compatibility.
"""

from __future__ import annotations

from typing import Any

import bcrypt
from starlette.requests import Request

# ── Password Hashing ──────────────────────────────────────────────────────────


def hash_password(password: str) -> str:
    """Hash a plaintext password using bcrypt."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a plaintext password against its bcrypt hash."""
    return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))


# ── Session identity ──────────────────────────────────────────────────────────


def login_session(request: Request, tenant_id: str, user: dict[str, Any]) -> None:
    """Replace the session with a fresh staff login."""
    request.session.clear()
    request.session["tenant_id"] = tenant_id
    request.session["user"] = user


def session_user(request: Request) -> dict[str, Any] | None:
    user = request.session.get("user")
    return user if isinstance(user, dict) else None
