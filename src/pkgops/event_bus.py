"""Channel based pub/sub used between the operation core and its collaborators.

Handlers always run on the thread that owns the bus. `emit` may be called
from any thread; Qt queues cross-thread emissions so delivery stays in
arrival order.
"""

from __future__ import annotations

import itertools
from typing import Any, Callable, Dict, Optional

from PySide6.QtCore import QObject, Signal, Slot

from .errors import SubscriptionError
from .logger import get_logger

_logger = get_logger("event_bus")

OPERATION_OUTPUT = "operation-output"
OPERATION_FINISHED = "operation-finished"
SCAN_FINISHED = "virustotal-scan-finished"
PANEL_MINIMIZE_STATE = "panel-minimize-state"
RESTORE_PANEL = "restore-panel"
CANCEL_OPERATION = "cancel-operation"

Handler = Callable[[dict], None]
Unsubscribe = Callable[[], None]


def payload_operation_id(payload: Optional[dict]) -> Optional[str]:
    """Return the operation id of *payload*, accepting camelCase and snake_case."""
    if not isinstance(payload, dict):
        return None
    value = payload.get("operationId")
    if value is None:
        value = payload.get("operation_id")
    return str(value) if value is not None else None


class EventBus(QObject):
    published = Signal(str, object)

    def __init__(self, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._handlers: Dict[str, Dict[int, Handler]] = {}
        self._tokens = itertools.count(1)
        self._closed = False
        self.published.connect(self._dispatch)

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def subscribe(self, channel: str, handler: Handler) -> Unsubscribe:
        if self._closed:
            raise SubscriptionError(f"event bus is closed, cannot listen on {channel}")

        token = next(self._tokens)
        self._handlers.setdefault(channel, {})[token] = handler

        def _unsubscribe() -> None:
            handlers = self._handlers.get(channel)
            if handlers is not None:
                handlers.pop(token, None)

        return _unsubscribe

    def emit(self, channel: str, payload: Optional[Dict[str, Any]] = None) -> None:
        if self._closed:
            _logger.debug("dropping %s on closed bus", channel)
            return
        self.published.emit(channel, dict(payload or {}))

    def handler_count(self, channel: str) -> int:
        return len(self._handlers.get(channel, {}))

    def close(self) -> None:
        self._closed = True
        self._handlers.clear()

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------
    @Slot(str, object)
    def _dispatch(self, channel: str, payload: dict) -> None:
        current = self._handlers.get(channel, {})
        for token, handler in list(current.items()):
            if token not in current:
                # unsubscribed by an earlier handler of this dispatch
                continue
            try:
                handler(payload)
            except Exception:
                _logger.exception("handler for %s failed", channel)
