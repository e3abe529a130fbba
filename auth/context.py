"""
auth/context.py -- Collaborator interfaces and the AuthContext bundle.

Every flow function in auth/ takes an AuthContext as its first argument
instead of reaching for module-level globals. The API lifespan builds one
context per process; tests build their own with recording fakes.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Protocol, TypeVar

from auth.errors import ProviderError
from auth.models import User
from auth.sessions import PendingSessionStore
from auth.store import UserStore
from core.config import Settings
from core.events import EventHub, Telemetry

logger = logging.getLogger("cmsadmin.auth")

T = TypeVar("T")


@dataclass
class AuthResult:
    """Outcome of a credential check that did not raise.

    user is None for bad credentials; message is then safe to show.
    """

    user: User | None
    message: str = ""


class IdentityProvider(Protocol):
    async def authenticate(self, identifier: str, password: str) -> AuthResult:
        """Verify credentials. Raise LoginNotAllowedError for blocked accounts."""
        ...


class Notifier(Protocol):
    async def send_multi_factor_authentication_email(self, user: dict, code: str) -> None: ...

    async def send_forgot_password_email(self, user: dict, token: str) -> None: ...


class EventSink(Protocol):
    def emit(self, name: str, payload: dict) -> None: ...


@dataclass
class AuthContext:
    settings: Settings
    users: UserStore
    identity: IdentityProvider
    notifier: Notifier
    pending: PendingSessionStore
    events: EventSink = field(default_factory=EventHub)
    telemetry: Telemetry = field(default_factory=Telemetry)

    def mfa_enabled(self) -> bool:
        return self.users.get_advanced_settings()["multi_factor_authentication"]

    async def call(
        self,
        awaitable: Awaitable[T],
        what: str,
        passthrough: tuple[type[Exception], ...] = (),
    ) -> T:
        """Await an external collaborator under provider_timeout_seconds.

        Exceptions listed in passthrough propagate unchanged. Any other
        failure, timeout included, becomes the opaque ProviderError. The real
        cause goes to the server log only.
        """
        try:
            return await asyncio.wait_for(awaitable, timeout=self.settings.provider_timeout_seconds)
        except passthrough:
            raise
        except asyncio.TimeoutError:
            logger.warning("%s timed out after %.1fs", what, self.settings.provider_timeout_seconds)
            raise ProviderError() from None
        except Exception as exc:
            logger.exception("%s failed", what)
            raise ProviderError() from exc
