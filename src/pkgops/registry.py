from __future__ import annotations

import dataclasses
import threading
import time
from typing import Callable, Dict, List, Optional

from PySide6.QtCore import QObject, Signal

from .errors import DuplicateOperationError, InvalidTransitionError
from .logger import get_logger
from .models import (
    Operation,
    OperationResult,
    OperationStatus,
    OutputLine,
    can_transition,
)

_logger = get_logger("registry")

DEFAULT_OUTPUT_LIMIT = 1000

_FIELDS = {f.name for f in dataclasses.fields(Operation)}
# output and result only change through append_output / set_result
_IMMUTABLE = {"id", "title", "output", "result", "created_at", "updated_at"}
_RESULT_STATUSES = {OperationStatus.SUCCESS, OperationStatus.ERROR}


class OperationRegistry(QObject):
    """Single source of truth mapping operation id -> Operation.

    Readers get snapshot copies; every mutation goes through this class under
    one lock and is announced through the signals below.
    """

    operation_added = Signal(str)
    operation_updated = Signal(str)
    operation_removed = Signal(str)

    def __init__(
        self,
        output_limit: int = DEFAULT_OUTPUT_LIMIT,
        clock: Callable[[], float] = time.time,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self.output_limit = max(1, int(output_limit))
        self.clock = clock
        self._operations: Dict[str, Operation] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------
    def create(
        self,
        operation_id: str,
        title: str,
        *,
        kind: str = "",
        is_scan: bool = False,
        next_step_label: Optional[str] = None,
    ) -> Operation:
        with self._lock:
            if operation_id in self._operations:
                raise DuplicateOperationError(operation_id)
            now = self.clock()
            op = Operation(
                id=operation_id,
                title=title,
                kind=kind,
                is_scan=is_scan,
                next_step_label=next_step_label,
                created_at=now,
                updated_at=now,
            )
            self._operations[operation_id] = op
            snapshot = self._snapshot(op)
        _logger.debug("operation created: %s (%s)", operation_id, title)
        self.operation_added.emit(operation_id)
        return snapshot

    def get(self, operation_id: str) -> Optional[Operation]:
        with self._lock:
            op = self._operations.get(operation_id)
            return self._snapshot(op) if op is not None else None

    def __contains__(self, operation_id: object) -> bool:
        with self._lock:
            return operation_id in self._operations

    def __len__(self) -> int:
        with self._lock:
            return len(self._operations)

    def update(self, operation_id: str, **changes) -> None:
        unknown = set(changes) - _FIELDS
        if unknown:
            raise TypeError(f"unknown operation fields: {', '.join(sorted(unknown))}")
        fixed = set(changes) & _IMMUTABLE
        if fixed:
            raise TypeError(f"fields cannot be updated: {', '.join(sorted(fixed))}")

        with self._lock:
            op = self._operations.get(operation_id)
            if op is None:
                _logger.debug("update for unknown operation ignored: %s", operation_id)
                return

            if "status" in changes:
                new_status = OperationStatus(changes["status"])
                if new_status in _RESULT_STATUSES and new_status != op.status:
                    raise ValueError(f"{new_status.value} is only reachable through set_result")
                if not can_transition(op.status, new_status):
                    raise InvalidTransitionError(operation_id, op.status.value, new_status.value)
                changes["status"] = new_status

            for name, value in changes.items():
                setattr(op, name, value)
            op.updated_at = self.clock()
        self.operation_updated.emit(operation_id)

    def remove(self, operation_id: str) -> None:
        with self._lock:
            removed = self._operations.pop(operation_id, None)
        if removed is not None:
            _logger.debug("operation removed: %s", operation_id)
            self.operation_removed.emit(operation_id)

    def all(self) -> List[Operation]:
        with self._lock:
            return [self._snapshot(op) for op in self._operations.values()]

    def list_active(self) -> List[Operation]:
        """Running or minimized operations, most recently updated first."""
        with self._lock:
            active = [
                self._snapshot(op)
                for op in self._operations.values()
                if op.status == OperationStatus.IN_PROGRESS or op.is_minimized
            ]
        active.sort(key=lambda op: op.updated_at, reverse=True)
        return active

    # ------------------------------------------------------------------
    # event application
    # ------------------------------------------------------------------
    def append_output(self, operation_id: str, line: OutputLine) -> bool:
        with self._lock:
            op = self._operations.get(operation_id)
            if op is None:
                return False
            output = op.output
            if len(output) >= self.output_limit:
                # Keep the newest lines contiguous; drop from the front.
                del output[: len(output) - self.output_limit + 1]
            output.append(line)
            op.updated_at = self.clock()
        self.operation_updated.emit(operation_id)
        return True

    def set_result(self, operation_id: str, result: OperationResult) -> bool:
        """Apply a terminal result once. Returns False when it was dropped."""
        with self._lock:
            op = self._operations.get(operation_id)
            if op is None:
                _logger.debug("result for unknown operation dropped: %s", operation_id)
                return False
            if op.result is not None:
                _logger.debug("duplicate result dropped: %s", operation_id)
                return False
            if op.status == OperationStatus.CANCELLED:
                _logger.debug("late result after cancel ignored: %s", operation_id)
                return False
            status = OperationStatus.SUCCESS if result.success else OperationStatus.ERROR
            if not can_transition(op.status, status):
                _logger.debug("result for %s operation dropped: %s", op.status.value, operation_id)
                return False
            op.result = result
            op.status = status
            op.updated_at = self.clock()
        self.operation_updated.emit(operation_id)
        return True

    @staticmethod
    def _snapshot(op: Operation) -> Operation:
        return dataclasses.replace(op, output=list(op.output))
