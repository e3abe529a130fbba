"""
auth/tokens.py -- Session JWTs, one-time tokens, MFA codes and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       only the user id plus iat/exp. decode_jwt_token() never raises -- an
       invalid token is a normal outcome, reported as DecodedToken(False, None).

  One-time tokens: secrets.token_hex(20) -- 160 bits of entropy. Uniqueness is
       the store's job (UNIQUE columns), not this module's.

  Verification codes: secrets.randbelow(1_000_000) zero-padded to 6 digits.
       randbelow is exactly uniform, unlike reducing a fixed number of random
       bytes modulo 10**6.

  Passwords: bcrypt directly, no passlib wrapper. The _DUMMY_HASH constant
       enables timing equalization in the identity provider so response time
       does not reveal whether an email exists [C1].

Settings are passed explicitly where callers have them (AuthContext) and fall
back to the get_settings() singleton otherwise.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import bcrypt
from jose import JWTError, jwt

from auth.errors import ValidationError
from core.config import DEFAULT_TOKEN_EXPIRE_SECONDS, Settings, get_settings

if TYPE_CHECKING:
    from auth.models import User

logger = logging.getLogger("cmsadmin.auth.tokens")

VERIFICATION_CODE_DIGITS = 6

# bcrypt refuses input longer than 72 bytes (UTF-8), whatever the character count.
PASSWORD_MAX_BYTES = 72


@dataclass(frozen=True)
class TokenOptions:
    secret: str
    algorithm: str = "HS256"
    expires_in: int = DEFAULT_TOKEN_EXPIRE_SECONDS


@dataclass(frozen=True)
class DecodedToken:
    is_valid: bool
    payload: dict | None


def get_token_options(settings: Settings | None = None) -> TokenOptions:
    """Return signing options, falling back to defaults for unset values."""
    settings = settings or get_settings()
    return TokenOptions(
        secret=settings.secret_key,
        algorithm=settings.token_algorithm or "HS256",
        expires_in=settings.token_expire_seconds or DEFAULT_TOKEN_EXPIRE_SECONDS,
    )


# ---------------------------------------------------------------------------
# Opaque tokens and verification codes
# ---------------------------------------------------------------------------


def create_token() -> str:
    """Return a random 40-char hex token for registration and password reset."""
    return secrets.token_hex(20)


def create_verification_token() -> str:
    """Return a random 6-digit code for a multi-factor challenge."""
    return str(secrets.randbelow(10**VERIFICATION_CODE_DIGITS)).zfill(VERIFICATION_CODE_DIGITS)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_jwt_token(user: User | Any, settings: Settings | None = None) -> str:
    """Sign a session token for an admin user.

    Only the id is taken from the user; accepts a User or any object/dict
    exposing ``id``.
    """
    options = get_token_options(settings)
    user_id = user["id"] if isinstance(user, dict) else user.id
    now = datetime.now(timezone.utc)
    claims = {
        "id": user_id,
        "iat": now,
        "exp": now + timedelta(seconds=options.expires_in),
    }
    return jwt.encode(claims, options.secret, algorithm=options.algorithm)


def decode_jwt_token(token: str, settings: Settings | None = None) -> DecodedToken:
    """Verify signature and expiry. Returns DecodedToken(False, None) on any failure.

    The returned payload holds the user id only; iat/exp are checked here and
    dropped.
    """
    if not isinstance(token, str) or not token:
        return DecodedToken(False, None)
    options = get_token_options(settings)
    try:
        claims = jwt.decode(token, options.secret, algorithms=[options.algorithm])
    except (JWTError, UnicodeError):
        # Lone surrogates fail the UTF-8 encode inside jose before any check runs.
        return DecodedToken(False, None)
    if "id" not in claims:
        return DecodedToken(False, None)
    return DecodedToken(True, {"id": claims["id"]})


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Raises ValidationError for passwords longer than PASSWORD_MAX_BYTES once
    encoded; the API models reject them earlier, this covers direct callers.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > PASSWORD_MAX_BYTES:
        raise ValidationError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash [C1]. Computed once at module load.
_DUMMY_HASH: str = hash_password("cmsadmin_timing_dummy")
