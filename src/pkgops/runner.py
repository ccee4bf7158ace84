import os
import shlex
import signal
from typing import Dict, List, Optional

import pexpect
from PySide6.QtCore import QObject, QSocketNotifier, QTimer, Signal, Slot

from .commands import CommandRequest
from .errors import LaunchError
from .event_bus import (
    CANCEL_OPERATION,
    OPERATION_FINISHED,
    OPERATION_OUTPUT,
    SCAN_FINISHED,
    EventBus,
    payload_operation_id,
)
from .logger import get_logger
from .models import OutputSource, ScanResult
from .output_text import is_error_line, split_lines, strip_ansi, summarize_result

_logger = get_logger("runner")


class _ProcessHandle(QObject):
    """One pexpect driven child process reporting for a single operation."""

    finished = Signal(str, int)

    def __init__(self, operation_id: str, request: CommandRequest, bus: EventBus, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.operation_id = operation_id
        self._request = request
        self._bus = bus
        self._proc: Optional[pexpect.spawn] = None
        self._notifier: Optional[QSocketNotifier] = None
        self._buffer: str = ""
        self._error_lines: List[str] = []
        self._cancelled = False
        self._done = False
        self._kill_timer = QTimer(self)
        self._kill_timer.setSingleShot(True)
        self._kill_timer.timeout.connect(self._force_terminate)

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def start(self, env: Optional[dict] = None):
        argv = list(self._request.argv)
        self._emit_line(f"$ {shlex.join(argv)}", OutputSource.COMMAND)

        env = (env or os.environ.copy()).copy()
        env.setdefault("NO_COLOR", "1")
        env.setdefault("CLICOLOR", "0")
        # A capable terminal keeps progress bars from complaining; colours are
        # still disabled through the variables above.
        env.setdefault("TERM", "xterm-256color")

        try:
            self._proc = pexpect.spawn(
                argv[0],
                argv[1:],
                env=env,
                encoding="utf-8",
                codec_errors="replace",
                echo=False,
                timeout=None,
            )
        except (pexpect.exceptions.ExceptionPexpect, OSError) as exc:
            _logger.error("could not start %s: %s", argv[0], exc)
            self._emit_line(f"[error] could not start process: {exc}", OutputSource.ERROR)
            self._finish(127, spawn_error=str(exc))
            return

        self._proc.delaybeforesend = None

        self._notifier = QSocketNotifier(self._proc.child_fd, QSocketNotifier.Type.Read, self)
        self._notifier.activated.connect(self._on_read_ready)
        _logger.debug("%s spawned pid %s", self.operation_id, self._proc.pid)

    def is_running(self) -> bool:
        return self._proc is not None and self._proc.isalive()

    def cancel(self, grace_ms: int):
        if self._done:
            return
        self._cancelled = True
        self.send_sigint()
        self._kill_timer.start(max(0, grace_ms))

    def send_sigint(self):
        if not self._proc or not self._proc.isalive():
            return
        try:
            self._proc.sendintr()
        except OSError:
            try:
                os.kill(self._proc.pid, signal.SIGINT)
            except OSError:
                pass

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------
    @Slot()
    def _force_terminate(self):
        if not self._proc:
            return
        if self._proc.isalive():
            _logger.warning("%s did not stop after SIGINT, terminating", self.operation_id)
            try:
                self._proc.terminate(force=True)
            except OSError:
                try:
                    self._proc.kill(signal.SIGKILL)
                except OSError:
                    pass
        self._on_read_ready()

    @Slot()
    def _on_read_ready(self):
        if not self._proc:
            return
        if self._read_available() or not self._proc.isalive():
            # The child may have written its last lines right before exiting.
            self._read_available()
            self._finalize_process()

    def _read_available(self) -> bool:
        """Consume everything readable right now; True once the pty hit EOF."""
        try:
            while True:
                chunk = self._proc.read_nonblocking(4096, timeout=0)
                if not chunk:
                    return False
                self._process_text(chunk)
        except pexpect.exceptions.TIMEOUT:
            return False
        except (pexpect.exceptions.EOF, OSError):
            return True

    def _process_text(self, text: str):
        text = strip_ansi(text)
        if not text:
            return
        lines, self._buffer = split_lines(self._buffer + text)
        for line in lines:
            self._handle_line(line)

    def _handle_line(self, line: str):
        if is_error_line(line):
            self._error_lines.append(line)
        self._emit_line(line, OutputSource.STDOUT)

    def _emit_line(self, line: str, source: OutputSource):
        self._bus.emit(OPERATION_OUTPUT, {
            "operationId": self.operation_id,
            "line": line,
            "source": source.value,
        })

    def _finalize_process(self):
        if not self._proc:
            return

        if self._buffer:
            self._handle_line(self._buffer.rstrip("\r"))
            self._buffer = ""

        proc = self._proc
        if proc.isalive():
            proc.close(force=True)
        else:
            proc.close()

        exit_code = proc.exitstatus
        if exit_code is None:
            if proc.signalstatus is not None:
                exit_code = -proc.signalstatus
            else:
                exit_code = 0

        self._finish(exit_code)

    def _finish(self, code: int, spawn_error: Optional[str] = None):
        if self._done:
            return
        self._done = True
        self._kill_timer.stop()

        if self._notifier:
            self._notifier.setEnabled(False)
            self._notifier.deleteLater()
            self._notifier = None
        self._proc = None

        name = self._request.display_name
        _logger.info("%s exited with %s", self.operation_id, code)

        if spawn_error is not None:
            self._emit_finished(False, f"Failed to spawn command '{self._request.command_line()}': {spawn_error}")
        elif self._cancelled:
            self._emit_finished(False, f"{name} was cancelled by user")
        elif self._request.is_scan:
            payload = ScanResult.from_exit_code(code).to_payload()
            payload["operationId"] = self.operation_id
            self._bus.emit(SCAN_FINISHED, payload)
        else:
            success, message = summarize_result(name, code, self._error_lines)
            self._emit_finished(success, message)

        self.finished.emit(self.operation_id, code)

    def _emit_finished(self, success: bool, message: str):
        self._bus.emit(OPERATION_FINISHED, {
            "operationId": self.operation_id,
            "success": success,
            "message": message,
        })


class ProcessSupervisor(QObject):
    """Run package manager commands concurrently, one pty per operation.

    Output and results go out on the event bus; ``cancel-operation`` events
    coming back in interrupt the matching process.
    """

    process_finished = Signal(str, int)

    def __init__(self, bus: EventBus, cancel_grace_ms: int = 3000, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._bus = bus
        self.cancel_grace_ms = cancel_grace_ms
        self._handles: Dict[str, _ProcessHandle] = {}
        self._unsubscribe_cancel = bus.subscribe(CANCEL_OPERATION, self._on_cancel)

    def launch(self, operation_id: str, request: CommandRequest, env: Optional[dict] = None):
        if not request.argv:
            raise LaunchError("empty command")
        if operation_id in self._handles:
            raise LaunchError(f"operation {operation_id} already has a running process")

        handle = _ProcessHandle(operation_id, request, self._bus, self)
        handle.finished.connect(self._on_handle_finished)
        self._handles[operation_id] = handle
        handle.start(env)

    def is_running(self, operation_id: str) -> bool:
        handle = self._handles.get(operation_id)
        return handle is not None and handle.is_running()

    def running_ids(self) -> List[str]:
        return [op_id for op_id, handle in self._handles.items() if handle.is_running()]

    def cancel(self, operation_id: str) -> bool:
        handle = self._handles.get(operation_id)
        if handle is None:
            return False
        _logger.info("interrupting %s", operation_id)
        handle.cancel(self.cancel_grace_ms)
        return True

    def shutdown(self):
        self._unsubscribe_cancel()
        for handle in list(self._handles.values()):
            handle.cancel(0)

    def _on_cancel(self, payload: dict):
        operation_id = payload_operation_id(payload)
        if operation_id is None:
            _logger.debug("cancel request without operation id ignored")
            return
        self.cancel(operation_id)

    @Slot(str, int)
    def _on_handle_finished(self, operation_id: str, code: int):
        handle = self._handles.pop(operation_id, None)
        if handle is not None:
            handle.deleteLater()
        self.process_finished.emit(operation_id, code)
