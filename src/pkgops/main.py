import argparse
import functools
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from PySide6.QtCore import QCoreApplication, QObject, QTimer, Slot

from . import commands
from .logger import setup_logger
from .models import OperationStatus, OutputLine
from .service import OperationCenter
from .settings import Settings

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130


class CliSession(QObject):
    """Print the output of the operations started from the command line."""

    def __init__(self, app: QCoreApplication, center: OperationCenter, quiet: bool = False):
        super().__init__()
        self._app = app
        self._center = center
        self._quiet = quiet
        self._ids: List[str] = []
        self._interrupted = False

        center.router.output_appended.connect(self._on_output)
        center.router.operation_finished.connect(self._on_finished)
        center.registry.operation_updated.connect(self.check_done)
        center.guard.warning_changed.connect(self._on_warning)
        process_finished = getattr(center.launcher, "process_finished", None)
        if process_finished is not None:
            process_finished.connect(self.check_done)

    def begin(self, request: commands.CommandRequest, minimized: bool = False, on_install_confirm=None) -> str:
        operation_id = self._center.manager.begin(
            request.display_name, request, on_install_confirm=on_install_confirm
        )
        self._ids.append(operation_id)
        if minimized:
            self._center.manager.toggle_minimize(operation_id)
        return operation_id

    def interrupt(self) -> None:
        if self._interrupted:
            return
        self._interrupted = True
        count = self._center.manager.cancel_all()
        print(f"Cancelling {count} running operation(s)...", file=sys.stderr)
        self.check_done()

    def exit_code(self) -> int:
        if self._interrupted:
            return EXIT_INTERRUPTED
        statuses = [self._status(op_id) for op_id in self._ids]
        if statuses and all(status == OperationStatus.SUCCESS for status in statuses):
            return EXIT_OK
        return EXIT_FAILED

    def _status(self, operation_id: str) -> Optional[OperationStatus]:
        op = self._center.registry.get(operation_id)
        return op.status if op else None

    def _title(self, operation_id: str) -> str:
        op = self._center.registry.get(operation_id)
        return op.title if op else operation_id

    @Slot(str, object)
    def _on_output(self, operation_id: str, line: OutputLine) -> None:
        if self._quiet or operation_id not in self._ids:
            return
        stream = sys.stderr if line.is_error else sys.stdout
        print(f"[{self._title(operation_id)}] {line.clean}", file=stream, flush=True)

    @Slot(str)
    def _on_finished(self, operation_id: str) -> None:
        op = self._center.registry.get(operation_id)
        if op is None or operation_id not in self._ids:
            return
        marker = "ok" if op.status == OperationStatus.SUCCESS else "failed"
        print(f"[{op.title}] {marker}: {op.banner_message()}", flush=True)

    @Slot(bool)
    def _on_warning(self, warning: bool) -> None:
        if warning:
            print(
                "Several package manager operations are running at once. "
                "Run with --dismiss-warning to stop this notice.",
                file=sys.stderr,
            )

    def check_done(self, *_args) -> None:
        # Decide on the next loop turn; a finished scan may still start its install.
        QTimer.singleShot(0, self._quit_if_done)

    def _quit_if_done(self) -> None:
        for op_id in self._ids:
            status = self._status(op_id)
            if status is not None and not status.is_terminal:
                return
        running_ids = getattr(self._center.launcher, "running_ids", None)
        if callable(running_ids) and running_ids():
            return
        self._app.quit()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pkgops",
        description="Run package manager commands side by side and follow their output.",
    )
    parser.add_argument("--config", type=Path, help="Settings file (default: ~/.config/pkgops/settings.json).")
    parser.add_argument("--tray", action="store_true", help="Show a tray indicator for minimized operations.")
    parser.add_argument("--minimized", action="store_true", help="Start operations minimized.")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only print the final result of each operation.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    parser.add_argument("--dismiss-warning", action="store_true", help="Stop warning about concurrent operations.")
    parser.add_argument("--reset-warning", action="store_true", help="Warn about concurrent operations again.")

    sub = parser.add_subparsers(dest="action", required=True)

    p_install = sub.add_parser("install", help="Install packages.")
    p_install.add_argument("packages", nargs="+")
    p_install.add_argument("--bucket", default="", help="Bucket the packages come from.")

    p_update = sub.add_parser("update", help="Update packages (all when none given).")
    p_update.add_argument("packages", nargs="*")

    p_uninstall = sub.add_parser("uninstall", help="Uninstall packages.")
    p_uninstall.add_argument("packages", nargs="+")

    p_scan = sub.add_parser("scan", help="Scan packages with VirusTotal.")
    p_scan.add_argument("packages", nargs="+")
    p_scan.add_argument("--bucket", default="", help="Bucket the packages come from.")
    p_scan.add_argument("--install", action="store_true", help="Install each package whose scan is clean.")

    p_run = sub.add_parser("run", help="Run an arbitrary command.")
    p_run.add_argument("argv", nargs=argparse.REMAINDER, help="Command and arguments (after --).")
    return parser


def _run_argv(args) -> List[str]:
    argv = list(args.argv)
    if argv[:1] == ["--"]:
        argv = argv[1:]
    return argv


def _requests(args, settings: Settings) -> List[commands.CommandRequest]:
    if args.action == "install":
        return [commands.install_request(settings, pkg, args.bucket) for pkg in args.packages]
    if args.action == "update":
        if not args.packages:
            return [commands.update_request(settings)]
        return [commands.update_request(settings, pkg) for pkg in args.packages]
    if args.action == "uninstall":
        return [commands.uninstall_request(settings, pkg) for pkg in args.packages]
    if args.action == "scan":
        return [commands.scan_request(settings, pkg, args.bucket) for pkg in args.packages]
    return [commands.command_request(_run_argv(args))]


def main(argv: Optional[List[str]] = None):
    parser = _build_parser()
    args, qt_args = parser.parse_known_args(argv)
    if args.action == "run" and not _run_argv(args):
        parser.error("run needs a command")

    setup_logger(logging.DEBUG if args.verbose else logging.INFO)
    settings = Settings(args.config)

    qt_argv = [sys.argv[0], *qt_args]
    if args.tray:
        from PySide6.QtWidgets import QApplication

        app = QApplication(qt_argv)
        app.setQuitOnLastWindowClosed(False)
    else:
        app = QCoreApplication(qt_argv)

    center = OperationCenter(settings)
    if args.dismiss_warning:
        center.guard.dismiss()
    if args.reset_warning:
        center.guard.reset()

    tray = None
    if args.tray:
        from .tray_indicator import TrayIndicator

        tray = TrayIndicator(center.bus, settings)

    session = CliSession(app, center, quiet=args.quiet)

    # Let Python run the SIGINT handler while Qt owns the main loop.
    signal.signal(signal.SIGINT, lambda *_: session.interrupt())
    pulse = QTimer()
    pulse.start(200)
    pulse.timeout.connect(lambda: None)

    center.start()
    for index, request in enumerate(_requests(args, settings)):
        on_confirm = None
        if args.action == "scan" and args.install:
            install = commands.install_request(settings, args.packages[index], args.bucket)
            on_confirm = functools.partial(session.begin, install, minimized=args.minimized)
        session.begin(request, minimized=args.minimized, on_install_confirm=on_confirm)

    session.check_done()
    app.exec()

    center.shutdown()
    if tray is not None:
        tray.shutdown()
    sys.exit(session.exit_code())


if __name__ == "__main__":
    main()
