"""
auth/authentication.py -- Credential login, token renewal and logout.

Login runs in two phases so no request state is shared between them:

  authenticate_credentials()  identity provider check -> User, or raises
  build_login_response()      MFA challenge or token issuance -> LoginResult

Error surfacing policy for the first phase:
  - LoginNotAllowedError from the provider is safe to disclose and propagates.
  - Bad credentials become ApplicationError carrying the provider's message.
    Unknown email and wrong password share that message and status.
  - Anything else the provider raises, timeouts included, becomes the opaque
    ProviderError. The cause is logged, never returned.
Every failure emits admin.auth.error exactly once.
"""

from __future__ import annotations

import logging

from auth.context import AuthContext
from auth.errors import ApplicationError, LoginNotAllowedError, ProviderError, ValidationError
from auth.mfa import start_challenge
from auth.models import LoginResult, User
from auth.store import sanitize_user
from auth.tokens import create_jwt_token, decode_jwt_token
from core.events import AUTH_ERROR, AUTH_SUCCESS, LOGOUT

logger = logging.getLogger("cmsadmin.auth")

PROVIDER = "local"


def _auth_failed(ctx: AuthContext, error: Exception) -> None:
    ctx.events.emit(AUTH_ERROR, {"error": error, "provider": PROVIDER})


async def authenticate_credentials(ctx: AuthContext, identifier: str, password: str) -> User:
    try:
        result = await ctx.call(
            ctx.identity.authenticate(identifier, password),
            "Identity provider",
            passthrough=(LoginNotAllowedError,),
        )
    except (LoginNotAllowedError, ProviderError) as exc:
        _auth_failed(ctx, exc)
        raise

    if result.user is None:
        logger.info("Login rejected: %s", result.message)
        error = ApplicationError(result.message)
        _auth_failed(ctx, error)
        raise error
    return result.user


async def build_login_response(
    ctx: AuthContext,
    user: User,
    remember_me: bool = False,
    session_id: str | None = None,
) -> LoginResult:
    """Issue a token, or start the MFA challenge and withhold it."""
    sanitized = sanitize_user(user)
    if ctx.mfa_enabled():
        if not session_id:
            raise ValueError("A session id is required when multi-factor authentication is enabled")
        await start_challenge(ctx, user, remember_me, session_id)
        return LoginResult(token=None, user=sanitized, mfa=True)

    ctx.events.emit(AUTH_SUCCESS, {"user": sanitized, "provider": PROVIDER})
    return LoginResult(token=create_jwt_token(user, ctx.settings), user=sanitized, mfa=False)


async def login(
    ctx: AuthContext,
    identifier: str,
    password: str,
    remember_me: bool = False,
    session_id: str | None = None,
) -> LoginResult:
    user = await authenticate_credentials(ctx, identifier, password)
    return await build_login_response(ctx, user, remember_me=remember_me, session_id=session_id)


def renew_token(ctx: AuthContext, token: str) -> str:
    """Exchange a valid session token for a fresh one with a new expiry."""
    decoded = decode_jwt_token(token, ctx.settings)
    if not decoded.is_valid:
        raise ValidationError("Invalid token")
    return create_jwt_token(decoded.payload, ctx.settings)


def logout(ctx: AuthContext, user: User) -> dict:
    """Tokens are stateless; logout only records the event."""
    ctx.events.emit(LOGOUT, {"user": sanitize_user(user)})
    return {}
