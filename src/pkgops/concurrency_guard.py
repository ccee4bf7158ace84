from __future__ import annotations

from typing import Optional

from PySide6.QtCore import QObject, Signal, Slot

from .logger import get_logger
from .models import MultiInstanceWarningConfig
from .registry import OperationRegistry
from .settings import Settings

_logger = get_logger("concurrency_guard")

SETTINGS_KEY = "multi_instance_warning"


class MultiInstanceGuard(QObject):
    """Raise a warning flag when too many operations are active at once.

    The guard only reports the condition. Dismissal is the user's call and
    sticks (persisted in settings) until ``reset`` is called.
    """

    warning_changed = Signal(bool)

    def __init__(self, registry: OperationRegistry, settings: Settings, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._registry = registry
        self._settings = settings
        self._config = MultiInstanceWarningConfig.from_dict(settings.get(SETTINGS_KEY))
        self._warning = self.should_warn()

        registry.operation_added.connect(self._reevaluate)
        registry.operation_updated.connect(self._reevaluate)
        registry.operation_removed.connect(self._reevaluate)

    @property
    def config(self) -> MultiInstanceWarningConfig:
        return MultiInstanceWarningConfig(**self._config.to_dict())

    def active_count(self) -> int:
        return len(self._registry.list_active())

    def should_warn(self) -> bool:
        cfg = self._config
        return cfg.enabled and not cfg.dismissed and self.active_count() >= cfg.threshold

    def dismiss(self) -> None:
        self.update_config(dismissed=True)

    def reset(self) -> None:
        self.update_config(dismissed=False)

    def update_config(self, **changes) -> None:
        data = self._config.to_dict()
        unknown = set(changes) - set(data)
        if unknown:
            raise TypeError(f"unknown warning options: {', '.join(sorted(unknown))}")
        data.update(changes)
        self._config = MultiInstanceWarningConfig.from_dict(data)
        self._settings.set(SETTINGS_KEY, self._config.to_dict())
        self._settings.save()
        self._reevaluate()

    @Slot(str)
    def _reevaluate(self, _operation_id: str = "") -> None:
        warning = self.should_warn()
        if warning == self._warning:
            return
        self._warning = warning
        if warning:
            _logger.warning(
                "%d operations are running at once; package manager commands may conflict",
                self.active_count(),
            )
        self.warning_changed.emit(warning)
