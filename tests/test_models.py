from __future__ import annotations

import re

import pytest

from pkgops.models import (
    MinimizedState,
    MultiInstanceWarningConfig,
    Operation,
    OperationResult,
    OperationStatus,
    OutputLine,
    OutputSource,
    ScanResult,
    can_transition,
    generate_operation_id,
)

S = OperationStatus


@pytest.mark.parametrize(
    "old,new,allowed",
    [
        (S.PENDING, S.IN_PROGRESS, True),
        (S.PENDING, S.CANCELLED, True),
        (S.IN_PROGRESS, S.SUCCESS, True),
        (S.IN_PROGRESS, S.PENDING, False),
        (S.SUCCESS, S.ERROR, False),
        (S.CANCELLED, S.IN_PROGRESS, False),
        (S.ERROR, S.ERROR, True),
    ],
)
def test_can_transition(old, new, allowed) -> None:
    assert can_transition(old, new) is allowed


@pytest.mark.parametrize(
    "code,detections,api_key_missing",
    [(0, False, False), (2, True, False), (16, False, True), (1, True, False)],
)
def test_scan_result_from_exit_code(code, detections, api_key_missing) -> None:
    scan = ScanResult.from_exit_code(code)

    assert scan.detections_found is detections
    assert scan.is_api_key_missing is api_key_missing
    assert scan.needs_attention is (code != 0)


def test_banner_message_falls_back_per_status() -> None:
    op = Operation(id="a", title="A", status=S.CANCELLED)
    assert op.banner_message() == "Operation was cancelled"

    op.status = S.SUCCESS
    op.result = OperationResult(True, "")
    assert op.banner_message() == "Operation completed successfully"

    op.result = OperationResult(True, "Installed git")
    assert op.banner_message() == "Installed git"


def test_output_line_error_detection() -> None:
    assert OutputLine("\x1b[31mERROR\x1b[0m boom").is_error
    assert OutputLine("fine", OutputSource.STDERR).is_error
    assert not OutputLine("Downloading...").is_error
    assert OutputLine("\x1b[1mbold\x1b[0m").clean == "bold"


def test_output_source_parse_falls_back() -> None:
    assert OutputSource.parse("stderr") is OutputSource.STDERR
    assert OutputSource.parse(None) is OutputSource.STDOUT


def test_generate_operation_id_format() -> None:
    op_id = generate_operation_id("install")

    assert re.fullmatch(r"install-\d+-[0-9a-z]{9}", op_id)
    assert op_id != generate_operation_id("install")


def test_warning_config_from_dict_sanitizes() -> None:
    cfg = MultiInstanceWarningConfig.from_dict({"threshold": 0, "dismissed": 1})

    assert cfg.threshold == 1
    assert cfg.dismissed is True
    assert MultiInstanceWarningConfig.from_dict(None) == MultiInstanceWarningConfig()
    assert MultiInstanceWarningConfig.from_dict({"threshold": "x"}).threshold == 2


def test_minimized_state_payload_keys() -> None:
    state = MinimizedState("a", True, True, "Installing git", S.IN_PROGRESS, timestamp=5.0)

    assert state.to_payload() == {
        "operationId": "a",
        "isMinimized": True,
        "showIndicator": True,
        "title": "Installing git",
        "result": "in-progress",
        "timestamp": 5.0,
    }
