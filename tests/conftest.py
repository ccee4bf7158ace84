"""Pytest configuration.

The operation core is built on QObject signals and QTimer, and the tray
indicator needs a widget application. We create a single `QApplication` for
the entire session, in offscreen mode, and shut it down at the end.
"""

from __future__ import annotations

import os
from typing import Any

import pytest

_APP: Any | None = None


def pytest_configure(config) -> None:  # noqa: ARG001
    """Ensure a QApplication exists before collecting/running tests."""

    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

    try:
        from PySide6.QtWidgets import QApplication
    except ImportError:
        return

    global _APP

    app = QApplication.instance()
    if app is None:
        # Keep a strong ref so it isn't GC'd mid-session.
        _APP = QApplication([])
    else:
        _APP = app


def pytest_sessionfinish(session, exitstatus) -> None:  # noqa: ARG001
    """Attempt a clean Qt shutdown to avoid lingering threads at interpreter exit."""

    try:
        from PySide6.QtWidgets import QApplication
    except ImportError:
        return

    app = QApplication.instance()
    if app is None:
        return

    app.quit()
    app.processEvents()


class FakeClock:
    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLauncher:
    """Records launches instead of spawning processes."""

    def __init__(self, error: Exception | None = None) -> None:
        self.launches: list[tuple[str, Any]] = []
        self.error = error

    def launch(self, operation_id, request):  # noqa: ANN001
        if self.error is not None:
            raise self.error
        self.launches.append((operation_id, request))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bus():
    from pkgops.event_bus import EventBus

    bus = EventBus()
    yield bus
    bus.close()


@pytest.fixture
def registry(clock):
    from pkgops.registry import OperationRegistry

    return OperationRegistry(clock=clock)


@pytest.fixture
def router(registry, bus):
    from pkgops.event_router import EventRouter

    return EventRouter(registry, bus)


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def manager(registry, router, bus, launcher):
    from pkgops.lifecycle import OperationManager

    manager = OperationManager(registry, router, bus, launcher)
    yield manager
    manager.shutdown()


@pytest.fixture
def settings(tmp_path):
    from pkgops.settings import Settings

    return Settings(tmp_path / "settings.json")


@pytest.fixture
def record(bus):
    """Collect payloads published on a channel: ``events = record("channel")``."""

    def _record(channel: str) -> list[dict]:
        events: list[dict] = []
        bus.subscribe(channel, events.append)
        return events

    return _record
