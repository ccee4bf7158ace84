"""Helpers for turning raw command output into displayable lines."""

from __future__ import annotations

import re
from typing import List

# Match CSI, OSC, and other ANSI escape sequences.
_CSI = r"\x1B[@-_][0-?]*[ -/]*[@-~]"
_OSC = r"\x1B\][^\x07\x1B]*(\x07|\x1B\\)"
_ANSI_RE = re.compile(f"({_OSC}|{_CSI}|\x9B[0-?]*[ -/]*[@-~])")

_ERROR_KEYWORDS = (
    "error",
    "failed",
    "exception",
    "cannot",
    "could not",
    "not found",
    "access to the path",
    "denied",
)

_ERROR_MARKERS = (
    "Remove-Item",
    "Access to the path",
    "is denied",
)

# Number of error lines quoted in a failure message.
ERROR_PREVIEW_LINES = 3


def strip_ansi(text: str) -> str:
    """Return *text* with ANSI escape sequences removed."""

    if "\x1b" not in text and "\x9b" not in text:
        return text
    return _ANSI_RE.sub("", text)


def is_error_line(line: str, is_stderr: bool = False) -> bool:
    """Heuristic used both for highlighting and for the final result message."""

    if is_stderr:
        return True
    lowered = line.lower()
    if any(keyword in lowered for keyword in _ERROR_KEYWORDS):
        return True
    return any(marker in line for marker in _ERROR_MARKERS)


def split_lines(buffer: str) -> tuple[List[str], str]:
    """Split *buffer* into complete lines and the trailing partial line.

    Carriage returns from the pty are dropped.
    """

    if "\n" not in buffer:
        return [], buffer
    *complete, rest = buffer.split("\n")
    return [line.rstrip("\r") for line in complete], rest


def summarize_result(name: str, exit_code: int, error_lines: List[str]) -> tuple[bool, str]:
    """Build the (success, message) pair reported when a command exits."""

    if exit_code == 0 and not error_lines:
        return True, f"{name} completed successfully"

    if error_lines:
        preview = "\n".join(error_lines[:ERROR_PREVIEW_LINES])
        if len(error_lines) > ERROR_PREVIEW_LINES:
            preview += f"\n... and {len(error_lines) - ERROR_PREVIEW_LINES} more errors"
        return False, (
            f"{name} failed with {len(error_lines)} error(s):\n{preview}\n"
            "Please check the output log for details."
        )

    return False, f"{name} failed with exit code {exit_code}. Please check the output log for details."
