from __future__ import annotations

from typing import Dict, List, Optional

from PySide6.QtCore import QObject, Signal

from .errors import SubscriptionError
from .event_bus import (
    OPERATION_FINISHED,
    OPERATION_OUTPUT,
    SCAN_FINISHED,
    EventBus,
    Unsubscribe,
    payload_operation_id,
)
from .logger import get_logger
from .models import OperationResult, OutputLine, OutputSource, ScanResult
from .registry import OperationRegistry

_logger = get_logger("event_router")

SUBSCRIPTION_FAILED_MESSAGE = (
    "Could not listen for operation events. "
    "The command may still be running, but its progress cannot be shown."
)




class EventRouter(QObject):
    """Route output/result events from the bus into the registry.

    The router holds one subscription per channel and looks the target
    operation up by id. Operations are attached when they start and stay
    attached until a terminal event arrives or the operation is closed.
    Minimizing an operation never detaches it.
    """

    output_appended = Signal(str, object)  # operation id, OutputLine
    operation_finished = Signal(str)
    scan_passed = Signal(str)

    def __init__(self, registry: OperationRegistry, bus: EventBus, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._registry = registry
        self._bus = bus
        self._attached: Dict[str, bool] = {}  # operation id -> is scan
        self._subscriptions: Dict[str, Unsubscribe] = {}

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def attach(self, operation_id: str, *, is_scan: bool = False) -> bool:
        if operation_id in self._attached:
            return True

        channels = [
            (OPERATION_OUTPUT, self._on_output),
            # Scans also end here when cancelled or not started.
            (OPERATION_FINISHED, self._on_finished),
        ]
        if is_scan:
            channels.append((SCAN_FINISHED, self._on_scan_finished))

        try:
            self._subscribe(channels)
        except SubscriptionError as exc:
            _logger.error("could not attach listeners for %s: %s", operation_id, exc)
            if not self._attached:
                self._release()
            if self._registry.set_result(operation_id, OperationResult(False, SUBSCRIPTION_FAILED_MESSAGE)):
                self.operation_finished.emit(operation_id)
            return False

        self._attached[operation_id] = is_scan
        _logger.debug("listening for %s", operation_id)
        return True

    def detach(self, operation_id: str) -> None:
        if self._attached.pop(operation_id, None) is None:
            return
        _logger.debug("stopped listening for %s", operation_id)
        if not self._attached:
            self._release()

    def is_attached(self, operation_id: str) -> bool:
        return operation_id in self._attached

    def attached_ids(self) -> List[str]:
        return list(self._attached)

    # ------------------------------------------------------------------
    # subscriptions
    # ------------------------------------------------------------------
    def _subscribe(self, channels) -> None:
        if self._bus.closed:
            # closing the bus dropped our handlers
            self._subscriptions.clear()
        for channel, handler in channels:
            if channel not in self._subscriptions:
                self._subscriptions[channel] = self._bus.subscribe(channel, handler)

    def _release(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, {}
        for unsubscribe in subscriptions.values():
            unsubscribe()

    # ------------------------------------------------------------------
    # handlers
    # ------------------------------------------------------------------
    def _on_output(self, payload: dict) -> None:
        operation_id = payload_operation_id(payload)
        if operation_id not in self._attached:
            return
        line = OutputLine(
            line=str(payload.get("line", "")),
            source=OutputSource.parse(payload.get("source")),
        )
        if not self._registry.append_output(operation_id, line):
            _logger.debug("output for closed operation dropped: %s", operation_id)
            self.detach(operation_id)
            return
        self.output_appended.emit(operation_id, line)

    def _on_finished(self, payload: dict) -> None:
        operation_id = payload_operation_id(payload)
        if operation_id not in self._attached:
            return
        result = OperationResult(
            success=bool(payload.get("success")),
            message=str(payload.get("message") or ""),
        )
        self._finish(operation_id, result)

    def _on_scan_finished(self, payload: dict) -> None:
        target = payload_operation_id(payload)
        if target is None:
            # Scan results may arrive without an id; they belong to the listening scans.
            targets = [op_id for op_id, is_scan in self._attached.items() if is_scan]
        elif self._attached.get(target):
            targets = [target]
        else:
            return

        scan = ScanResult.from_payload(payload)
        for operation_id in targets:
            if scan.needs_attention:
                self._finish(operation_id, OperationResult(False, scan.message))
            elif self._finish(operation_id, OperationResult(True, scan.message)):
                self.scan_passed.emit(operation_id)

    def _finish(self, operation_id: str, result: OperationResult) -> bool:
        applied = self._registry.set_result(operation_id, result)
        # The process has reported its final word either way.
        self.detach(operation_id)
        if applied:
            _logger.info(
                "operation %s finished: %s", operation_id, "success" if result.success else "error"
            )
            self.operation_finished.emit(operation_id)
        return applied
