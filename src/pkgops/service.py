from __future__ import annotations

from typing import Optional

from PySide6.QtCore import QObject

from .concurrency_guard import MultiInstanceGuard
from .event_bus import EventBus
from .event_router import EventRouter
from .lifecycle import OperationManager
from .logger import get_logger
from .registry import OperationRegistry
from .runner import ProcessSupervisor
from .settings import Settings
from .sweeper import CleanupSweeper

_logger = get_logger("service")


class OperationCenter(QObject):
    """Owns the operation core for the lifetime of the process.

    Build one at startup and hand it to whatever shows operations; nothing in
    the package creates one implicitly.
    """

    def __init__(
        self,
        settings: Settings,
        bus: Optional[EventBus] = None,
        launcher=None,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self.settings = settings
        self.bus = bus or EventBus(self)
        self.registry = OperationRegistry(output_limit=settings.get_output_limit(), parent=self)
        self.router = EventRouter(self.registry, self.bus, self)
        if launcher is None:
            launcher = ProcessSupervisor(self.bus, cancel_grace_ms=settings.get_cancel_grace_ms(), parent=self)
        self.launcher = launcher
        self.manager = OperationManager(self.registry, self.router, self.bus, launcher, self)
        self.sweeper = CleanupSweeper(
            self.registry,
            ttl_seconds=settings.get_ttl_seconds(),
            interval_ms=settings.get_cleanup_interval_ms(),
            parent=self,
        )
        self.guard = MultiInstanceGuard(self.registry, settings, self)
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self.sweeper.start()
        _logger.debug("operation center started")

    def shutdown(self) -> None:
        if not self._started:
            return
        self._started = False
        self.sweeper.stop()
        self.manager.cancel_all()
        shutdown = getattr(self.launcher, "shutdown", None)
        if callable(shutdown):
            shutdown()
        self.manager.shutdown()
        _logger.debug("operation center stopped")
