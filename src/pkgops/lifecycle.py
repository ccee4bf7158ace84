from __future__ import annotations

from typing import Callable, Dict, Optional

from PySide6.QtCore import QObject, Slot

from .commands import CommandRequest
from .errors import LaunchError
from .event_bus import (
    CANCEL_OPERATION,
    PANEL_MINIMIZE_STATE,
    RESTORE_PANEL,
    EventBus,
    payload_operation_id,
)
from .event_router import EventRouter
from .logger import get_logger
from .models import (
    MinimizedState,
    NextStep,
    Operation,
    OperationResult,
    OperationStatus,
    generate_operation_id,
)
from .registry import OperationRegistry

_logger = get_logger("lifecycle")


class OperationManager(QObject):
    """Drive operations through pending -> in-progress -> terminal.

    The launcher is any object with ``launch(operation_id, request)`` that
    returns immediately and reports progress on the event bus
    (see ``runner.ProcessSupervisor``).
    """

    def __init__(
        self,
        registry: OperationRegistry,
        router: EventRouter,
        bus: EventBus,
        launcher=None,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self._registry = registry
        self._router = router
        self._bus = bus
        self._launcher = launcher
        self._next_steps: Dict[str, NextStep] = {}
        self._install_confirms: Dict[str, Callable[[], None]] = {}

        router.operation_finished.connect(self._on_operation_finished)
        router.scan_passed.connect(self._on_scan_passed)
        registry.operation_removed.connect(self._forget)
        self._unsubscribe_restore = bus.subscribe(RESTORE_PANEL, self._on_restore_panel)

    def set_launcher(self, launcher) -> None:
        self._launcher = launcher

    # ------------------------------------------------------------------
    # creation / start
    # ------------------------------------------------------------------
    def create(
        self,
        kind: str,
        title: str,
        *,
        is_scan: bool = False,
        next_step: Optional[NextStep] = None,
        on_install_confirm: Optional[Callable[[], None]] = None,
    ) -> Operation:
        operation_id = generate_operation_id(kind)
        op = self._registry.create(
            operation_id,
            title,
            kind=kind,
            is_scan=is_scan,
            next_step_label=next_step.label if next_step else None,
        )
        if next_step is not None:
            self._next_steps[operation_id] = next_step
        if on_install_confirm is not None:
            self._install_confirms[operation_id] = on_install_confirm
        return op

    def start(self, operation_id: str, request: CommandRequest) -> bool:
        op = self._registry.get(operation_id)
        if op is None:
            _logger.debug("start for unknown operation ignored: %s", operation_id)
            return False
        if op.status != OperationStatus.PENDING:
            _logger.warning("operation %s already %s, not starting again", operation_id, op.status.value)
            return False

        self._registry.update(operation_id, status=OperationStatus.IN_PROGRESS)
        self._emit_minimize_state(operation_id)

        # Listen before launching so the first lines are not lost.
        if not self._router.attach(operation_id, is_scan=op.is_scan):
            return False

        _logger.info("starting %s: %s", operation_id, request.command_line())
        try:
            if self._launcher is None:
                raise LaunchError("no command launcher configured")
            self._launcher.launch(operation_id, request)
        except (LaunchError, OSError) as exc:
            _logger.error("could not launch %s: %s", operation_id, exc)
            self._router.detach(operation_id)
            message = f"Failed to start {request.display_name}: {exc}"
            if self._registry.set_result(operation_id, OperationResult(False, message)):
                self._on_operation_finished(operation_id)
            return False
        return True

    def begin(
        self,
        title: str,
        request: CommandRequest,
        *,
        next_step: Optional[NextStep] = None,
        on_install_confirm: Optional[Callable[[], None]] = None,
    ) -> str:
        """Create and start an operation for *request*; returns its id."""
        op = self.create(
            request.kind,
            title,
            is_scan=request.is_scan,
            next_step=next_step,
            on_install_confirm=on_install_confirm,
        )
        self.start(op.id, request)
        return op.id

    # ------------------------------------------------------------------
    # user actions
    # ------------------------------------------------------------------
    def cancel(self, operation_id: str) -> bool:
        return self._cancel(operation_id, announce=True)

    def _cancel(self, operation_id: str, announce: bool) -> bool:
        op = self._registry.get(operation_id)
        if op is None or op.status != OperationStatus.IN_PROGRESS:
            _logger.debug("cancel ignored for %s", operation_id)
            return False

        # Mark first so a result racing in from the launcher cannot win.
        self._registry.update(operation_id, status=OperationStatus.CANCELLED)
        self._bus.emit(CANCEL_OPERATION, {"operationId": operation_id})
        _logger.info("cancellation requested: %s", operation_id)
        if announce:
            self._emit_minimize_state(operation_id)
        return True

    def cancel_all(self) -> int:
        cancelled = 0
        for op in self._registry.all():
            if op.status == OperationStatus.IN_PROGRESS and self.cancel(op.id):
                cancelled += 1
        return cancelled

    def close(self, operation_id: str, was_successful: bool = False) -> None:
        op = self._registry.get(operation_id)
        if op is None:
            self._router.detach(operation_id)
            return

        if op.status == OperationStatus.IN_PROGRESS:
            # the closing state below is the only one the panel should see
            self._cancel(operation_id, announce=False)
        elif op.status == OperationStatus.PENDING:
            self._registry.update(operation_id, status=OperationStatus.CANCELLED)

        state = MinimizedState(
            operation_id=operation_id,
            is_minimized=False,
            show_indicator=False,
            title=op.title,
            result=OperationStatus.SUCCESS if was_successful else OperationStatus.ERROR,
        )
        self._bus.emit(PANEL_MINIMIZE_STATE, state.to_payload())
        self._router.detach(operation_id)
        self._registry.remove(operation_id)

    def toggle_minimize(self, operation_id: str) -> bool:
        op = self._registry.get(operation_id)
        if op is None:
            return False
        self._registry.update(operation_id, is_minimized=not op.is_minimized)
        self._emit_minimize_state(operation_id)
        return True

    def run_next_step(self, operation_id: str) -> bool:
        op = self._registry.get(operation_id)
        step = self._next_steps.get(operation_id)
        if op is None or step is None or op.status != OperationStatus.SUCCESS:
            return False
        step.on_next()
        return True

    def install_anyway(self, operation_id: str) -> bool:
        """Proceed with the install after a scan raised a warning."""
        op = self._registry.get(operation_id)
        confirm = self._install_confirms.get(operation_id)
        if op is None or confirm is None or not op.is_scan or op.result is None:
            return False
        confirm()
        return True

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------
    def _emit_minimize_state(self, operation_id: str) -> None:
        op = self._registry.get(operation_id)
        if op is None:
            return
        shown = op.status if op.is_terminal else OperationStatus.IN_PROGRESS
        state = MinimizedState(
            operation_id=operation_id,
            is_minimized=op.is_minimized,
            show_indicator=op.is_minimized,
            title=op.title,
            result=shown,
        )
        self._bus.emit(PANEL_MINIMIZE_STATE, state.to_payload())

    @Slot(str)
    def _on_operation_finished(self, operation_id: str) -> None:
        self._emit_minimize_state(operation_id)

    @Slot(str)
    def _on_scan_passed(self, operation_id: str) -> None:
        confirm = self._install_confirms.get(operation_id)
        if confirm is not None:
            confirm()

    @Slot(str)
    def _forget(self, operation_id: str) -> None:
        self._router.detach(operation_id)
        self._next_steps.pop(operation_id, None)
        self._install_confirms.pop(operation_id, None)

    def _on_restore_panel(self, payload: dict) -> None:
        target = payload_operation_id(payload)
        if target is None:
            minimized = [op for op in self._registry.list_active() if op.is_minimized]
            if not minimized:
                return
            target = minimized[0].id
        op = self._registry.get(target)
        if op is not None and op.is_minimized:
            self.toggle_minimize(target)

    def shutdown(self) -> None:
        self._unsubscribe_restore()
