"""Build the command requests handed to the process supervisor."""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from typing import List, Optional

from .settings import Settings

KIND_INSTALL = "install"
KIND_UPDATE = "update"
KIND_UNINSTALL = "uninstall"
KIND_SCAN = "scan"
KIND_COMMAND = "command"


@dataclass(frozen=True)
class CommandRequest:
    kind: str
    argv: List[str]
    display_name: str

    @property
    def is_scan(self) -> bool:
        return self.kind == KIND_SCAN

    def command_line(self) -> str:
        return shlex.join(self.argv)


def _package_manager(settings: Settings) -> str:
    return settings.get("package_manager") or "scoop"


def _qualified(package: str, bucket: Optional[str]) -> str:
    # An empty bucket or the literal "None" means no bucket was chosen.
    if not bucket or bucket.lower() == "none":
        return package
    return f"{bucket}/{package}"


def install_request(settings: Settings, package: str, bucket: Optional[str] = None) -> CommandRequest:
    name = _qualified(package, bucket)
    return CommandRequest(KIND_INSTALL, [_package_manager(settings), "install", name], f"Installing {package}")


def update_request(settings: Settings, package: Optional[str] = None) -> CommandRequest:
    pm = _package_manager(settings)
    if not package:
        return CommandRequest(KIND_UPDATE, [pm, "update", "*"], "Updating all packages")
    return CommandRequest(KIND_UPDATE, [pm, "update", package], f"Updating {package}")


def uninstall_request(settings: Settings, package: str) -> CommandRequest:
    return CommandRequest(KIND_UNINSTALL, [_package_manager(settings), "uninstall", package], f"Uninstalling {package}")


def scan_request(settings: Settings, package: str, bucket: Optional[str] = None) -> CommandRequest:
    sub = settings.get("virus_scan_subcommand") or "virustotal"
    return CommandRequest(
        KIND_SCAN,
        [_package_manager(settings), sub, _qualified(package, bucket)],
        f"Scanning {package}",
    )


def command_request(argv: List[str], display_name: Optional[str] = None) -> CommandRequest:
    if not argv:
        raise ValueError("empty command")
    argv = list(argv)
    return CommandRequest(KIND_COMMAND, argv, display_name or shlex.join(argv))
