from __future__ import annotations

import pytest

from pkgops.errors import SubscriptionError
from pkgops.event_bus import EventBus, payload_operation_id


def test_handlers_receive_payload_for_their_channel(bus) -> None:
    got: list[dict] = []
    bus.subscribe("a", got.append)

    bus.emit("a", {"x": 1})
    bus.emit("b", {"x": 2})

    assert got == [{"x": 1}]


def test_emit_copies_payload(bus) -> None:
    got: list[dict] = []
    bus.subscribe("a", got.append)
    payload = {"x": 1}

    bus.emit("a", payload)
    payload["x"] = 2

    assert got == [{"x": 1}]


def test_unsubscribe_stops_delivery(bus) -> None:
    got: list[dict] = []
    unsubscribe = bus.subscribe("a", got.append)

    unsubscribe()
    unsubscribe()
    bus.emit("a", {})

    assert got == []
    assert bus.handler_count("a") == 0


def test_failing_handler_does_not_block_others(bus) -> None:
    got: list[dict] = []

    def broken(_payload: dict) -> None:
        raise RuntimeError("boom")

    bus.subscribe("a", broken)
    bus.subscribe("a", got.append)

    bus.emit("a", {"n": 1})

    assert got == [{"n": 1}]


def test_unsubscribe_during_dispatch_skips_handler(bus) -> None:
    got: list[str] = []
    unsubscribers = {}

    def first(_payload: dict) -> None:
        got.append("first")
        unsubscribers["second"]()

    bus.subscribe("a", first)
    unsubscribers["second"] = bus.subscribe("a", lambda _p: got.append("second"))

    bus.emit("a", {})

    assert got == ["first"]


def test_closed_bus_refuses_subscriptions_and_drops_events() -> None:
    bus = EventBus()
    got: list[dict] = []
    bus.subscribe("a", got.append)
    bus.close()

    bus.emit("a", {})

    assert bus.closed
    assert got == []
    with pytest.raises(SubscriptionError):
        bus.subscribe("a", got.append)


def test_payload_operation_id_variants() -> None:
    assert payload_operation_id({"operationId": "a"}) == "a"
    assert payload_operation_id({"operation_id": "b"}) == "b"
    assert payload_operation_id({}) is None
    assert payload_operation_id(None) is None
