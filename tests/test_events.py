"""Unit tests for core/events.py."""

from core.events import LOGOUT, EventHub, Telemetry


def test_subscribers_receive_events() -> None:
    """A subscriber receives the event name and payload."""
    hub = EventHub()
    received = []
    hub.subscribe(LOGOUT, lambda name, payload: received.append((name, payload)))
    hub.emit(LOGOUT, {"user": {"id": 1}})
    assert received == [(LOGOUT, {"user": {"id": 1}})]


def test_emit_without_subscribers_is_noop() -> None:
    """Emitting with no subscribers does nothing."""
    EventHub().emit("admin.auth.success", {})


def test_failing_handler_does_not_stop_others(caplog) -> None:
    """A raising handler is logged and the next handler still runs."""
    hub = EventHub()
    received = []

    def broken(name, payload):
        raise RuntimeError("boom")

    hub.subscribe(LOGOUT, broken)
    hub.subscribe(LOGOUT, lambda name, payload: received.append(name))
    hub.emit(LOGOUT, {})
    assert received == [LOGOUT]
    assert "Event handler for admin.logout failed" in caplog.text


def test_telemetry_uses_transport() -> None:
    """send() hands the event name to the transport."""
    sent = []
    Telemetry(transport=sent.append).send("didCreateFirstAdmin")
    assert sent == ["didCreateFirstAdmin"]


def test_telemetry_never_raises() -> None:
    """A failing transport is swallowed after logging."""

    def broken(event):
        raise ConnectionError("offline")

    Telemetry(transport=broken).send("didCreateFirstAdmin")


def test_disabled_telemetry_sends_nothing() -> None:
    """Disabled telemetry never calls the transport."""
    sent = []
    Telemetry(transport=sent.append, enabled=False).send("didCreateFirstAdmin")
    assert sent == []
