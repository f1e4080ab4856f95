"""Shared pytest fixtures."""

from __future__ import annotations

import os

import pytest

from bqpreview.services import telemetry


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Keep the developer's BQPREVIEW_* variables and log directory out of tests."""

    for name in list(os.environ):
        if name.startswith("BQPREVIEW_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("BQPREVIEW_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture(autouse=True)
def _reset_telemetry():
    yield
    telemetry.clear_event_listeners()


@pytest.fixture
def trace_sink():
    sink = telemetry.InMemoryTraceSink()
    detach = telemetry.attach_sink(sink, "analysis.gated", "analysis.completed")
    yield sink
    detach()
