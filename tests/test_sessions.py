"""Unit tests for auth/sessions.py -- PendingSessionStore."""

import pytest

from conftest import close_context, make_context


@pytest.fixture
def store():
    ctx = make_context()
    yield ctx.pending
    close_context(ctx)


def test_create_and_get(store) -> None:
    """A stored challenge reads back with its code, user, flag and zero attempts."""
    store.create("sid", code="042133", user_id=7, remember_me=True)
    pending = store.get("sid")
    assert pending.code == "042133"
    assert pending.user_id == 7
    assert pending.remember_me is True
    assert pending.attempts == 0


def test_missing_session_reads_as_none(store) -> None:
    """Unknown and empty session ids read as None."""
    assert store.get("unknown") is None
    assert store.get("") is None


def test_last_write_wins(store) -> None:
    """Creating again on the same session replaces the earlier challenge."""
    store.create("sid", code="111111", user_id=1, remember_me=False)
    store.create("sid", code="222222", user_id=1, remember_me=True)
    pending = store.get("sid")
    assert pending.code == "222222"
    assert pending.remember_me is True


def test_sessions_are_isolated(store) -> None:
    """Challenges on different sessions do not interfere."""
    store.create("a", code="111111", user_id=1, remember_me=False)
    store.create("b", code="222222", user_id=2, remember_me=False)
    assert store.get("a").user_id == 1
    assert store.get("b").user_id == 2


def test_expired_session_reads_as_none(store) -> None:
    """A challenge past its TTL reads as None."""
    store.ttl = -1
    store.create("sid", code="111111", user_id=1, remember_me=False)
    assert store.get("sid") is None


def test_invalidate_wins_once(store) -> None:
    """Only the first invalidate() reports a deletion."""
    store.create("sid", code="111111", user_id=1, remember_me=False)
    assert store.invalidate("sid") is True
    assert store.invalidate("sid") is False
    assert store.get("sid") is None


def test_failed_attempts_counted_then_destroyed(store) -> None:
    """Attempts are counted and the row is deleted at the maximum."""
    store.create("sid", code="111111", user_id=1, remember_me=False)
    assert store.record_failed_attempt("sid", max_attempts=3) == 1
    assert store.record_failed_attempt("sid", max_attempts=3) == 2
    assert store.get("sid").attempts == 2
    assert store.record_failed_attempt("sid", max_attempts=3) == 3
    assert store.get("sid") is None


def test_purge_expired_keeps_live_sessions(store) -> None:
    """purge_expired() removes stale rows only."""
    store.create("live", code="111111", user_id=1, remember_me=False)
    store.ttl = -1
    store.create("stale", code="222222", user_id=2, remember_me=False)
    assert store.purge_expired() == 1
    assert store.get("live") is not None
