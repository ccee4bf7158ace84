from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from .output_text import is_error_line, strip_ansi


class OperationStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    OperationStatus.SUCCESS,
    OperationStatus.ERROR,
    OperationStatus.CANCELLED,
})

_TRANSITIONS = {
    OperationStatus.PENDING: {
        OperationStatus.IN_PROGRESS,
        OperationStatus.ERROR,
        OperationStatus.CANCELLED,
    },
    OperationStatus.IN_PROGRESS: {
        OperationStatus.SUCCESS,
        OperationStatus.ERROR,
        OperationStatus.CANCELLED,
    },
}


def can_transition(old: OperationStatus, new: OperationStatus) -> bool:
    """Forward-only lifecycle: pending -> in-progress -> terminal."""
    if old == new:
        return True
    return new in _TRANSITIONS.get(old, ())


class OutputSource(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"
    COMMAND = "command"
    SUCCESS = "success"
    ERROR = "error"

    @classmethod
    def parse(cls, value) -> "OutputSource":
        try:
            return cls(value)
        except ValueError:
            return cls.STDOUT


@dataclass(frozen=True)
class OutputLine:
    line: str
    source: OutputSource = OutputSource.STDOUT
    timestamp: float = field(default_factory=time.time)

    @property
    def clean(self) -> str:
        return strip_ansi(self.line)

    @property
    def is_error(self) -> bool:
        if self.source == OutputSource.ERROR:
            return True
        return is_error_line(self.clean, self.source == OutputSource.STDERR)


@dataclass(frozen=True)
class OperationResult:
    success: bool
    message: str
    timestamp: float = field(default_factory=time.time)


_FALLBACK_MESSAGES = {
    OperationStatus.SUCCESS: "Operation completed successfully",
    OperationStatus.ERROR: "Operation failed",
    OperationStatus.CANCELLED: "Operation was cancelled",
}


@dataclass
class Operation:
    id: str
    title: str
    kind: str = ""
    status: OperationStatus = OperationStatus.PENDING
    output: List[OutputLine] = field(default_factory=list)
    result: Optional[OperationResult] = None
    is_minimized: bool = False
    created_at: float = 0.0
    updated_at: float = 0.0
    is_scan: bool = False
    next_step_label: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def banner_message(self) -> str:
        """Text for the terminal banner, with a generic fallback."""
        if self.result and self.result.message:
            return self.result.message
        return _FALLBACK_MESSAGES.get(self.status, "")


@dataclass
class MultiInstanceWarningConfig:
    enabled: bool = True
    threshold: int = 2
    dismissed: bool = False

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "MultiInstanceWarningConfig":
        data = data or {}
        try:
            threshold = max(1, int(data.get("threshold", 2)))
        except (TypeError, ValueError):
            threshold = 2
        return cls(
            enabled=bool(data.get("enabled", True)),
            threshold=threshold,
            dismissed=bool(data.get("dismissed", False)),
        )

    def to_dict(self) -> dict:
        return {"enabled": self.enabled, "threshold": self.threshold, "dismissed": self.dismissed}


@dataclass(frozen=True)
class ScanResult:
    detections_found: bool
    is_api_key_missing: bool
    message: str

    @property
    def needs_attention(self) -> bool:
        return self.detections_found or self.is_api_key_missing

    @classmethod
    def from_exit_code(cls, code: int) -> "ScanResult":
        # Exit codes of `scoop virustotal`.
        if code == 0:
            return cls(False, False, "No threats found.")
        if code == 2:
            return cls(True, False, "VirusTotal found one or more detections.")
        if code == 16:
            return cls(False, True, "VirusTotal API key is not configured.")
        return cls(
            True,
            False,
            f"Scan failed with an unexpected error (exit code {code}). Please check the output.",
        )

    @classmethod
    def from_payload(cls, payload: dict) -> "ScanResult":
        return cls(
            detections_found=bool(payload.get("detections_found")),
            is_api_key_missing=bool(payload.get("is_api_key_missing")),
            message=str(payload.get("message") or ""),
        )

    def to_payload(self) -> dict:
        return {
            "detections_found": self.detections_found,
            "is_api_key_missing": self.is_api_key_missing,
            "message": self.message,
        }


@dataclass(frozen=True)
class MinimizedState:
    operation_id: str
    is_minimized: bool
    show_indicator: bool
    title: str
    result: OperationStatus
    timestamp: float = field(default_factory=time.time)

    def to_payload(self) -> dict:
        return {
            "operationId": self.operation_id,
            "isMinimized": self.is_minimized,
            "showIndicator": self.show_indicator,
            "title": self.title,
            "result": self.result.value,
            "timestamp": self.timestamp,
        }


@dataclass
class NextStep:
    """Follow-up action offered after a successful operation."""

    label: str
    on_next: Callable[[], None]


_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_operation_id(kind: str) -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{kind}-{int(time.time() * 1000)}-{suffix}"
