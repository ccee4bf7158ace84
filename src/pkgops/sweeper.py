from __future__ import annotations

from typing import List, Optional

from PySide6.QtCore import QObject, QTimer, Signal, Slot

from .logger import get_logger
from .models import OperationStatus
from .registry import OperationRegistry

_logger = get_logger("sweeper")

DEFAULT_TTL_SECONDS = 5 * 60
DEFAULT_INTERVAL_MS = 60_000

# Only finished operations age out; running and cancelled ones never do.
_SWEEPABLE = (OperationStatus.SUCCESS, OperationStatus.ERROR)


class CleanupSweeper(QObject):
    """Periodically evict finished operations nobody closed."""

    swept = Signal(list)

    def __init__(
        self,
        registry: OperationRegistry,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self._registry = registry
        self.ttl_seconds = ttl_seconds
        self._timer = QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self._on_timeout)

    def start(self) -> None:
        self._timer.start()

    def stop(self) -> None:
        self._timer.stop()

    def is_running(self) -> bool:
        return self._timer.isActive()

    def interval_ms(self) -> int:
        return self._timer.interval()

    def sweep(self, now: Optional[float] = None) -> List[str]:
        if now is None:
            now = self._registry.clock()
        stale = [
            op.id
            for op in self._registry.all()
            if op.status in _SWEEPABLE and now - op.updated_at > self.ttl_seconds
        ]
        for operation_id in stale:
            self._registry.remove(operation_id)
        if stale:
            _logger.debug("swept %d stale operation(s)", len(stale))
            self.swept.emit(stale)
        return stale

    @Slot()
    def _on_timeout(self) -> None:
        self.sweep()
