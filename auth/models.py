"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic) -- stores and flows do
the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

SUPER_ADMIN_CODE = "strapi-super-admin"


@dataclass
class Role:
    name: str
    code: str
    description: str = ""
    id: int | None = None


@dataclass
class User:
    """An administrator account.

    registration_token is set while the account is an unaccepted invitation
    and cleared once the invitee registers. reset_password_token is set by the
    forgot-password flow and cleared by the reset. Neither ever leaves the
    process -- sanitize_user() strips them together with hashed_password.
    """

    email: str
    id: int | None = None
    firstname: str | None = None
    lastname: str | None = None
    username: str | None = None
    hashed_password: str | None = None
    is_active: bool = False
    blocked: bool = False
    registration_token: str | None = None
    reset_password_token: str | None = None
    reset_password_expires_at: str | None = None
    prefered_language: str | None = None
    created_at: str | None = None
    roles: list[Role] = field(default_factory=list)


@dataclass
class RegistrationInfo:
    """Public view of a pending invitation."""

    email: str
    firstname: Optional[str] = None
    lastname: Optional[str] = None


@dataclass
class PendingMfaSession:
    """Server-side state of one in-progress MFA login.

    Holds the user id, not the user record: the principal is re-read from the
    store on confirm so a deactivation in between takes effect.
    """

    session_id: str
    code: str
    user_id: int
    remember_me: bool
    expires_at: float
    attempts: int = 0


# ---------------------------------------------------------------------------
# Flow results -- the API layer wraps these in its response envelope
# ---------------------------------------------------------------------------


@dataclass
class LoginResult:
    """token is None while a second factor is still required (mfa=True)."""

    token: Optional[str]
    user: dict
    mfa: bool


@dataclass
class MfaResult:
    token: str
    remember_me: bool


@dataclass
class SessionGrant:
    """Token plus sanitized user, returned by register, bootstrap and reset."""

    token: str
    user: dict
