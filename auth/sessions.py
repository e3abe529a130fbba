"""
auth/sessions.py -- Pending MFA Session store.

One row per in-progress multi-factor login, keyed by a random session id that
travels in the signed session cookie. The row lives in the database rather
than in process memory so every worker sees the same challenge.

Lifecycle:
    create()      -- first factor succeeded; replaces any earlier challenge
                     for the same session id (last write wins)
    get()         -- read for confirm; expired rows read as missing
    record_failed_attempt() -- wrong code; destroys the row at max attempts
    invalidate()  -- successful confirm; returns False if another request
                     consumed the row first, so at most one confirm wins
    purge_expired() -- called periodically by the API lifespan

Usage:
    store = PendingSessionStore("sqlite:///:memory:", ttl=600)
    store.create("sid", code="042133", user_id=1, remember_me=False)
    pending = store.get("sid")
"""

from __future__ import annotations

import time

from sqlalchemy import Boolean, Column, Float, Integer, MetaData, String, Table, select
from sqlalchemy.engine import Engine

from auth.models import PendingMfaSession
from auth.store import make_engine
from core.config import get_settings

_DEFAULT_TTL = 600

_metadata = MetaData()

_pending = Table(
    "pending_mfa_sessions",
    _metadata,
    Column("session_id", String(64), primary_key=True),
    Column("code", String(6), nullable=False),
    Column("user_id", Integer, nullable=False),
    Column("remember_me", Boolean, nullable=False, default=False),
    Column("attempts", Integer, nullable=False, default=0),
    Column("expires_at", Float, nullable=False),
)


class PendingSessionStore:
    def __init__(self, db_url: str | None = None, ttl: int = _DEFAULT_TTL) -> None:
        self.ttl = ttl
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)

    def create(self, session_id: str, code: str, user_id: int, remember_me: bool) -> PendingMfaSession:
        pending = PendingMfaSession(
            session_id=session_id,
            code=code,
            user_id=user_id,
            remember_me=bool(remember_me),
            expires_at=time.time() + self.ttl,
        )
        with self.engine.connect() as conn:
            conn.execute(_pending.delete().where(_pending.c.session_id == session_id))
            conn.execute(
                _pending.insert().values(
                    session_id=pending.session_id,
                    code=pending.code,
                    user_id=pending.user_id,
                    remember_me=pending.remember_me,
                    attempts=0,
                    expires_at=pending.expires_at,
                )
            )
            conn.commit()
        return pending

    def get(self, session_id: str) -> PendingMfaSession | None:
        """Return the live challenge for session_id, or None if missing or expired."""
        if not session_id:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(_pending.select().where(_pending.c.session_id == session_id)).fetchone()
        if row is None:
            return None
        if row.expires_at <= time.time():
            self.invalidate(session_id)
            return None
        return PendingMfaSession(
            session_id=row.session_id,
            code=row.code,
            user_id=row.user_id,
            remember_me=bool(row.remember_me),
            expires_at=row.expires_at,
            attempts=row.attempts,
        )

    def record_failed_attempt(self, session_id: str, max_attempts: int) -> int:
        """Count a wrong code. Deletes the challenge once max_attempts is reached.

        Returns the attempt count after this failure.
        """
        with self.engine.connect() as conn:
            conn.execute(
                _pending.update()
                .where(_pending.c.session_id == session_id)
                .values(attempts=_pending.c.attempts + 1)
            )
            attempts = conn.execute(
                select(_pending.c.attempts).where(_pending.c.session_id == session_id)
            ).scalar()
            if attempts is not None and attempts >= max_attempts:
                conn.execute(_pending.delete().where(_pending.c.session_id == session_id))
            conn.commit()
        return attempts or 0

    def invalidate(self, session_id: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_pending.delete().where(_pending.c.session_id == session_id))
            conn.commit()
        return result.rowcount > 0

    def purge_expired(self) -> int:
        """Delete all expired challenges. Returns number of rows removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_pending.delete().where(_pending.c.expires_at <= time.time()))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()
