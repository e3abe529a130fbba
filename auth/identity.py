"""
auth/identity.py -- Local email/password identity provider.

authenticate() always runs bcrypt, whether or not the email exists, so an
attacker cannot enumerate accounts by measuring response time [C1]:
  - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
  - Wrong password: bcrypt runs against the real hash (same cost)

Unknown email and wrong password produce the same message. A blocked account
is reported only after the password matched.

bcrypt is CPU-bound, so the check runs in a worker thread to keep the event
loop free.
"""

from __future__ import annotations

import asyncio

from auth.context import AuthResult
from auth.errors import LoginNotAllowedError
from auth.store import UserStore
from auth.tokens import _DUMMY_HASH, verify_password

INVALID_CREDENTIALS = "Invalid credentials"
USER_NOT_ACTIVE = "User not active"


class LocalIdentityProvider:
    def __init__(self, store: UserStore) -> None:
        self.store = store

    async def authenticate(self, identifier: str, password: str) -> AuthResult:
        return await asyncio.to_thread(self.check_credentials, identifier, password)

    def check_credentials(self, identifier: str, password: str) -> AuthResult:
        user = self.store.get_by_email(identifier)
        if user is None or user.hashed_password is None:
            # Equalize timing -- do NOT return early before running bcrypt [C1]
            verify_password(password, _DUMMY_HASH)
            return AuthResult(None, INVALID_CREDENTIALS)
        if not verify_password(password, user.hashed_password):
            return AuthResult(None, INVALID_CREDENTIALS)
        if not user.is_active:
            return AuthResult(None, USER_NOT_ACTIVE)
        if user.blocked:
            raise LoginNotAllowedError()
        return AuthResult(user)
