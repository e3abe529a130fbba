"""
auth/mfa.py -- Multi-factor challenge and confirm.

A challenge binds a fresh 6-digit code, the user id and the remember-me flag
to the caller's session id. A new login on the same session replaces the
previous challenge.

Confirm rules:
  - no live challenge, or wrong code      -> ForbiddenError, no token
  - each wrong code counts one attempt; at mfa_max_attempts the challenge is
    destroyed and the user must log in again
  - correct code                          -> challenge destroyed, token issued
  - user deactivated or blocked meanwhile -> ForbiddenError

If the code email cannot be sent, the challenge is dropped and
admin.auth.error is emitted before the ProviderError propagates.
"""

from __future__ import annotations

import hmac
import logging

from auth.context import AuthContext
from auth.errors import ForbiddenError, ProviderError
from auth.models import MfaResult, User
from auth.store import sanitize_user
from auth.tokens import VERIFICATION_CODE_DIGITS, create_jwt_token, create_verification_token
from core.events import AUTH_ERROR, AUTH_SUCCESS

logger = logging.getLogger("cmsadmin.auth.mfa")

INCORRECT_CODE = "Verification code is incorrect"


def normalize_code(code: int | str) -> str | None:
    """Return the code as a zero-padded 6-digit string, or None if it cannot be one."""
    if isinstance(code, bool):
        return None
    if isinstance(code, int):
        if 0 <= code < 10**VERIFICATION_CODE_DIGITS:
            return str(code).zfill(VERIFICATION_CODE_DIGITS)
        return None
    if isinstance(code, str):
        code = code.strip()
        if code.isdigit() and len(code) <= VERIFICATION_CODE_DIGITS:
            return code.zfill(VERIFICATION_CODE_DIGITS)
    return None


async def start_challenge(ctx: AuthContext, user: User, remember_me: bool, session_id: str) -> None:
    """Create the pending challenge for session_id and send the code by email."""
    code = create_verification_token()
    ctx.pending.create(session_id, code=code, user_id=user.id, remember_me=remember_me)
    try:
        await ctx.call(
            ctx.notifier.send_multi_factor_authentication_email(user=sanitize_user(user), code=code),
            "MFA email dispatch",
        )
    except ProviderError as exc:
        # The code never reached the user; drop the challenge it guards.
        ctx.pending.invalidate(session_id)
        ctx.events.emit(AUTH_ERROR, {"error": exc, "provider": "local"})
        raise
    logger.info("MFA challenge started for user_id=%s", user.id)


async def verify_code(ctx: AuthContext, session_id: str | None, code: int | str) -> MfaResult:
    pending = ctx.pending.get(session_id) if session_id else None
    if pending is None:
        raise ForbiddenError(INCORRECT_CODE)

    submitted = normalize_code(code)
    if submitted is None or not hmac.compare_digest(submitted, pending.code):
        attempts = ctx.pending.record_failed_attempt(pending.session_id, ctx.settings.mfa_max_attempts)
        logger.warning("Incorrect MFA code for user_id=%s (attempt %d)", pending.user_id, attempts)
        raise ForbiddenError(INCORRECT_CODE)

    # Another confirm on the same session may have consumed the challenge.
    if not ctx.pending.invalidate(pending.session_id):
        raise ForbiddenError(INCORRECT_CODE)

    user = ctx.users.get_by_id(pending.user_id)
    if user is None or not user.is_active or user.blocked:
        raise ForbiddenError(INCORRECT_CODE)

    ctx.events.emit(AUTH_SUCCESS, {"user": sanitize_user(user), "provider": "local"})
    return MfaResult(token=create_jwt_token(user, ctx.settings), remember_me=pending.remember_me)
