from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from PySide6.QtCore import QObject, Slot
from PySide6.QtGui import QAction, QIcon
from PySide6.QtWidgets import QApplication, QMenu, QStyle, QSystemTrayIcon

from .event_bus import PANEL_MINIMIZE_STATE, RESTORE_PANEL, EventBus, payload_operation_id
from .logger import get_logger
from .settings import Settings

_logger = get_logger("tray_indicator")

_STATUS_TEXT = {
    "in-progress": "running",
    "success": "finished",
    "error": "failed",
    "cancelled": "cancelled",
}


class TrayIndicator(QObject):
    """System tray companion for minimized operations.

    Follows ``panel-minimize-state`` notifications and asks for a restore via
    ``restore-panel`` when the icon is clicked.
    """

    def __init__(
        self,
        bus: EventBus,
        settings: Settings,
        icon: Optional[QIcon] = None,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self._bus = bus
        self._settings = settings
        self._minimized: Dict[str, Tuple[str, str]] = {}  # operation id -> (title, status)

        if icon is None or icon.isNull():
            icon = QApplication.style().standardIcon(QStyle.StandardPixmap.SP_MessageBoxInformation)
        self.tray = QSystemTrayIcon(icon, self)

        menu = QMenu()
        action_restore = QAction("Restore", self.tray)
        action_restore.triggered.connect(self.request_restore)
        menu.addAction(action_restore)
        self._menu = menu
        self.tray.setContextMenu(menu)
        self.tray.activated.connect(self._on_activated)
        self.tray.messageClicked.connect(self.request_restore)

        self._unsubscribe = bus.subscribe(PANEL_MINIMIZE_STATE, self._on_minimize_state)

    def minimized_ids(self) -> List[str]:
        return list(self._minimized)

    @Slot()
    def request_restore(self) -> None:
        if not self._minimized:
            return
        operation_id = next(reversed(self._minimized))
        self._bus.emit(RESTORE_PANEL, {"operationId": operation_id})

    def shutdown(self) -> None:
        self._unsubscribe()
        self.tray.hide()

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------
    def _on_activated(self, reason) -> None:
        if reason in (QSystemTrayIcon.ActivationReason.Trigger, QSystemTrayIcon.ActivationReason.DoubleClick):
            self.request_restore()

    def _on_minimize_state(self, payload: dict) -> None:
        operation_id = payload_operation_id(payload)
        if operation_id is None:
            return
        title = str(payload.get("title") or "")
        status = str(payload.get("result") or "in-progress")

        previous = self._minimized.pop(operation_id, None)
        if payload.get("showIndicator"):
            self._minimized[operation_id] = (title, status)
            # finished while minimized
            if status in ("success", "error") and (previous is None or previous[1] != status):
                self._notify_finished(title, status)

        self._refresh()

    def _refresh(self) -> None:
        if not self._minimized:
            self.tray.setToolTip("")
            self.tray.hide()
            return
        count = len(self._minimized)
        title, status = next(reversed(self._minimized.values()))
        if count == 1:
            tip = f"{title} ({_STATUS_TEXT.get(status, status)})"
        else:
            tip = f"{count} operations in the background, latest: {title}"
        self.tray.setToolTip(tip)
        self.tray.show()

    def _notify_finished(self, title: str, status: str) -> None:
        if not self._settings.get("notify_operation_finished", True):
            return
        if not QSystemTrayIcon.isSystemTrayAvailable():
            _logger.debug("no system tray, skipping notification for %s", title)
            return
        if status == "success":
            icon = QSystemTrayIcon.MessageIcon.Information
        else:
            icon = QSystemTrayIcon.MessageIcon.Critical
        timeout_ms = self._settings.get_int("notification_timeout_ms")
        self.tray.show()
        self.tray.showMessage(title, f"{title} {_STATUS_TEXT[status]}", icon, timeout_ms)
