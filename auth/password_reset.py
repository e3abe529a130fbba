"""
auth/password_reset.py -- Forgot-password and reset-password flows.

forgot_password() gives the caller no signal about whether the email belongs
to an account: it returns None in every case and the API answers 204 before
it runs. Only active accounts receive a token.

reset_password() consumes the token once; unknown, used and expired tokens
all fail the same way.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from auth.context import AuthContext
from auth.errors import ValidationError
from auth.models import SessionGrant
from auth.store import sanitize_user
from auth.tokens import create_jwt_token, create_token, hash_password

logger = logging.getLogger("cmsadmin.auth.password_reset")


async def forgot_password(ctx: AuthContext, email: str) -> None:
    user = ctx.users.get_by_email(email)
    if user is None or not user.is_active:
        logger.info("Password reset requested for an unknown or inactive account")
        return

    token = create_token()
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=ctx.settings.reset_password_token_ttl_seconds)
    ctx.users.set_reset_password_token(user.id, token, expires_at)
    await ctx.call(
        ctx.notifier.send_forgot_password_email(user=sanitize_user(user), token=token),
        "Password reset email dispatch",
    )


def reset_password(ctx: AuthContext, token: str, password: str) -> SessionGrant:
    user = ctx.users.reset_password(token, hash_password(password))
    if user is None:
        raise ValidationError("Invalid or expired reset password token")
    logger.info("Password reset completed for user_id=%s", user.id)
    return SessionGrant(token=create_jwt_token(user, ctx.settings), user=sanitize_user(user))
