"""Unit tests for auth/password_reset.py."""

from datetime import datetime, timedelta, timezone

import pytest

from auth.errors import ValidationError
from auth.password_reset import forgot_password, reset_password
from auth.tokens import decode_jwt_token, verify_password
from conftest import make_user, run

NEW_PASSWORD = "N3wPassword"


def _request_token(ctx, email: str = "admin@x.com") -> str:
    run(forgot_password(ctx, email))
    return ctx.notifier.reset_emails[-1]["token"]


class TestForgotPassword:
    """Requesting a reset link."""

    def test_known_email_gets_token(self, ctx) -> None:
        """An active account receives one email whose token is stored on the user."""
        user = make_user(ctx)
        run(forgot_password(ctx, "Admin@X.com"))
        assert len(ctx.notifier.reset_emails) == 1
        sent = ctx.notifier.reset_emails[0]
        assert sent["user"]["id"] == user.id
        assert "reset_password_token" not in sent["user"]
        assert ctx.users.get_by_id(user.id).reset_password_token == sent["token"]

    def test_unknown_email_is_silent(self, ctx) -> None:
        """An unknown email returns None and sends nothing."""
        make_user(ctx)
        assert run(forgot_password(ctx, "nobody@x.com")) is None
        assert ctx.notifier.reset_emails == []

    def test_inactive_user_gets_nothing(self, ctx) -> None:
        """Inactive accounts never receive a reset token."""
        make_user(ctx, is_active=False)
        run(forgot_password(ctx, "admin@x.com"))
        assert ctx.notifier.reset_emails == []

    def test_token_expiry_is_set(self, ctx) -> None:
        """The stored expiry lies within reset_password_token_ttl_seconds from now."""
        user = make_user(ctx)
        _request_token(ctx)
        stored = ctx.users.get_by_id(user.id)
        expires_at = datetime.fromisoformat(stored.reset_password_expires_at)
        remaining = expires_at - datetime.now(timezone.utc)
        assert timedelta(0) < remaining <= timedelta(seconds=ctx.settings.reset_password_token_ttl_seconds)


class TestResetPassword:
    """Consuming a reset token."""

    def test_reset_rotates_password_and_logs_in(self, ctx) -> None:
        """A valid token sets the new password, clears the token and returns a session."""
        user = make_user(ctx)
        token = _request_token(ctx)
        grant = reset_password(ctx, token, NEW_PASSWORD)
        assert decode_jwt_token(grant.token, ctx.settings).payload == {"id": user.id}
        stored = ctx.users.get_by_id(user.id)
        assert verify_password(NEW_PASSWORD, stored.hashed_password)
        assert stored.reset_password_token is None

    def test_token_is_single_use(self, ctx) -> None:
        """A used reset token is rejected."""
        make_user(ctx)
        token = _request_token(ctx)
        reset_password(ctx, token, NEW_PASSWORD)
        with pytest.raises(ValidationError):
            reset_password(ctx, token, "An0therPass")

    def test_expired_token_rejected(self, ctx) -> None:
        """A token past its expiry is rejected."""
        user = make_user(ctx)
        past = datetime.now(timezone.utc) - timedelta(seconds=1)
        ctx.users.set_reset_password_token(user.id, "expired-token", past)
        with pytest.raises(ValidationError, match="Invalid or expired"):
            reset_password(ctx, "expired-token", NEW_PASSWORD)

    def test_unknown_token_rejected(self, ctx) -> None:
        """An unknown token is rejected."""
        make_user(ctx)
        with pytest.raises(ValidationError):
            reset_password(ctx, "nope", NEW_PASSWORD)

    def test_multibyte_password_rejected(self, ctx) -> None:
        """A password over the bcrypt byte cap is a validation error and leaves the token usable."""
        make_user(ctx)
        token = _request_token(ctx)
        with pytest.raises(ValidationError, match="72 bytes"):
            reset_password(ctx, token, "Aa1" + "\u00e9" * 69)
        assert reset_password(ctx, token, NEW_PASSWORD).token

    def test_deactivated_user_cannot_reset(self, ctx) -> None:
        """A token held by a since-deactivated user is rejected."""
        user = make_user(ctx)
        token = _request_token(ctx)
        ctx.users.update_user(user.id, is_active=False)
        with pytest.raises(ValidationError):
            reset_password(ctx, token, NEW_PASSWORD)
