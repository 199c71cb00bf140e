from __future__ import annotations

import logging

import pytest

from pyconnect.events import EventBus, SubscriptionInfo, SubscriptionKind


def test_listeners_run_in_subscription_order() -> None:
    bus = EventBus()
    calls: list[str] = []
    bus.on("ping", lambda payload: calls.append(f"a:{payload}"))
    bus.on("ping", lambda payload: calls.append(f"b:{payload}"))
    bus.on("pong", lambda payload: calls.append("never"))

    assert bus.emit("ping", 1) == 2
    assert calls == ["a:1", "b:1"]


def test_emit_without_listeners_is_noop() -> None:
    bus = EventBus()
    assert bus.emit("nobody-home") == 0


def test_dispatch_is_exact_name_only() -> None:
    bus = EventBus()
    calls: list[object] = []
    bus.on("user", calls.append)

    bus.emit("user:login", 1)
    bus.emit("USER", 2)

    assert calls == []


def test_failing_listener_does_not_stop_others(caplog: pytest.LogCaptureFixture) -> None:
    errors: list[tuple[str, Exception]] = []
    bus = EventBus(on_listener_error=lambda name, exc: errors.append((name, exc)))
    calls: list[str] = []

    def boom(payload: object) -> None:
        raise ValueError("boom")

    bus.on("ping", lambda payload: calls.append("first"))
    bus.on("ping", boom)
    bus.on("ping", lambda payload: calls.append("third"))

    with caplog.at_level(logging.ERROR, logger="pyconnect.events.bus"):
        assert bus.emit("ping") == 3

    assert calls == ["first", "third"]
    assert len(errors) == 1
    assert errors[0][0] == "ping"
    assert isinstance(errors[0][1], ValueError)
    assert "Error in event handler for 'ping'" in caplog.text


def test_failing_error_hook_is_contained() -> None:
    def bad_hook(name: str, exc: Exception) -> None:
        raise RuntimeError("hook broke")

    bus = EventBus(on_listener_error=bad_hook)
    calls: list[object] = []
    bus.on("ping", lambda payload: 1 / 0)
    bus.on("ping", calls.append)

    bus.emit("ping", "x")

    assert calls == ["x"]


def test_once_fires_a_single_time() -> None:
    bus = EventBus()
    calls: list[object] = []
    bus.once("ping", calls.append)

    bus.emit("ping", 1)
    bus.emit("ping", 2)

    assert calls == [1]
    assert bus.listener_count("ping") == 0


def test_once_is_removed_even_when_listener_reemits() -> None:
    bus = EventBus()
    calls: list[object] = []

    def handler(payload: int) -> None:
        calls.append(payload)
        if payload < 3:
            bus.emit("ping", payload + 1)

    bus.once("ping", handler)
    bus.emit("ping", 1)

    assert calls == [1]


def test_once_can_be_removed_before_firing() -> None:
    bus = EventBus()
    calls: list[object] = []
    sub = bus.once("ping", calls.append)

    bus.off(sub)
    bus.emit("ping", 1)

    assert calls == []


def test_off_is_idempotent() -> None:
    bus = EventBus()
    calls: list[object] = []
    sub = bus.on("ping", calls.append)
    keep = bus.on("ping", calls.append)

    bus.off(sub)
    bus.off(sub)
    bus.emit("ping", 1)

    assert calls == [1]
    assert bus.listener_count("ping") == 1
    bus.off(keep)
    assert bus.list() == []


def test_listener_removed_during_emit_is_skipped() -> None:
    bus = EventBus()
    calls: list[str] = []
    later = None

    def first(payload: object) -> None:
        calls.append("first")
        bus.off(later)

    bus.on("ping", first)
    later = bus.on("ping", lambda payload: calls.append("later"))

    bus.emit("ping")
    bus.emit("ping")

    assert calls == ["first", "first"]


def test_listener_added_during_emit_waits_for_next_emit() -> None:
    bus = EventBus()
    calls: list[str] = []

    def first(payload: object) -> None:
        calls.append("first")
        bus.on("ping", lambda p: calls.append("added"))

    bus.once("ping", first)
    bus.emit("ping")
    assert calls == ["first"]

    bus.emit("ping")
    assert calls == ["first", "added"]


def test_clear_single_name_and_all() -> None:
    bus = EventBus()
    bus.on("a", lambda p: None)
    bus.on("a", lambda p: None)
    bus.on("b", lambda p: None)

    bus.clear("a")
    assert bus.listener_count("a") == 0
    assert bus.listener_count("b") == 1

    bus.clear()
    assert bus.list() == []


def test_list_describes_subscriptions() -> None:
    bus = EventBus()
    bus.on("custom", lambda p: None)
    bus.on("resource:posts:create", lambda p: None)
    bus.on("resource:posts:update:7", lambda p: None)
    bus.on("resource:posts:update:7", lambda p: None)

    assert bus.list() == [
        SubscriptionInfo(name="custom", kind=SubscriptionKind.CUSTOM, listeners=1),
        SubscriptionInfo(
            name="resource:posts:create",
            kind=SubscriptionKind.RESOURCE,
            listeners=1,
            resource_id="posts",
        ),
        SubscriptionInfo(
            name="resource:posts:update:7",
            kind=SubscriptionKind.RESOURCE,
            listeners=2,
            resource_id="posts",
            sub_id="7",
        ),
    ]


def test_custom_resource_prefix() -> None:
    bus = EventBus(resource_prefix="feed")

    assert bus.parse("feed:posts:create") is not None
    assert bus.parse("resource:posts:create") is None
