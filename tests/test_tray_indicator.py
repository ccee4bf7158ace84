from __future__ import annotations

import pytest

from pkgops import commands
from pkgops.event_bus import OPERATION_FINISHED, RESTORE_PANEL
from pkgops.tray_indicator import TrayIndicator


@pytest.fixture
def tray(bus, settings):
    tray = TrayIndicator(bus, settings)
    yield tray
    tray.shutdown()


def test_tracks_minimized_operations(tray, manager, settings) -> None:
    op_id = manager.begin("Installing git", commands.install_request(settings, "git"))

    manager.toggle_minimize(op_id)

    assert tray.minimized_ids() == [op_id]
    assert tray.tray.toolTip() == "Installing git (running)"

    manager.toggle_minimize(op_id)

    assert tray.minimized_ids() == []
    assert tray.tray.toolTip() == ""


def test_tooltip_follows_result_while_minimized(tray, manager, bus, settings) -> None:
    op_id = manager.begin("Installing git", commands.install_request(settings, "git"))
    manager.toggle_minimize(op_id)

    bus.emit(OPERATION_FINISHED, {"operationId": op_id, "success": False, "message": "broken"})

    assert tray.tray.toolTip() == "Installing git (failed)"


def test_close_removes_indicator(tray, manager, settings) -> None:
    a = manager.begin("Installing git", commands.install_request(settings, "git"))
    b = manager.begin("Installing curl", commands.install_request(settings, "curl"))
    manager.toggle_minimize(a)
    manager.toggle_minimize(b)
    assert tray.tray.toolTip() == "2 operations in the background, latest: Installing curl"

    manager.close(b)

    assert tray.minimized_ids() == [a]


def test_request_restore_targets_latest_and_unminimizes(tray, manager, registry, record, settings) -> None:
    restores = record(RESTORE_PANEL)
    a = manager.begin("Installing git", commands.install_request(settings, "git"))
    b = manager.begin("Installing curl", commands.install_request(settings, "curl"))
    manager.toggle_minimize(a)
    manager.toggle_minimize(b)

    tray.request_restore()

    assert restores == [{"operationId": b}]
    assert registry.get(b).is_minimized is False
    assert tray.minimized_ids() == [a]


def test_request_restore_without_minimized_is_noop(tray, record) -> None:
    restores = record(RESTORE_PANEL)

    tray.request_restore()

    assert restores == []
