"""Tests for the in-process trace hooks."""

from __future__ import annotations

from bqpreview.services import telemetry


def test_emit_reaches_registered_listener() -> None:
    received: list[dict] = []
    telemetry.register_event_listener("analysis.gated", received.append)

    telemetry.emit("analysis.gated", {"reason": "busy"})
    telemetry.emit("analysis.completed", {"phase": "success"})

    assert received == [{"event": "analysis.gated", "reason": "busy"}]


def test_unregister_stops_delivery() -> None:
    received: list[dict] = []
    telemetry.register_event_listener("analysis.gated", received.append)
    telemetry.unregister_event_listener("analysis.gated", received.append)

    telemetry.emit("analysis.gated")

    assert received == []


def test_failing_listener_does_not_break_emit() -> None:
    received: list[dict] = []

    def broken(payload: dict) -> None:
        raise RuntimeError("listener failed")

    telemetry.register_event_listener("analysis.completed", broken)
    telemetry.register_event_listener("analysis.completed", received.append)

    telemetry.emit("analysis.completed", {"phase": "failed"})

    assert len(received) == 1


def test_sink_collects_named_events_until_detached() -> None:
    sink = telemetry.InMemoryTraceSink(capacity=10)
    detach = telemetry.attach_sink(sink, "analysis.gated")

    telemetry.emit("analysis.gated", {"reason": "rate_limited"})
    detach()
    telemetry.emit("analysis.gated", {"reason": "busy"})

    assert sink.names() == ["analysis.gated"]
    assert sink.tail(1)[0].payload["reason"] == "rate_limited"
    assert len(sink) == 1
