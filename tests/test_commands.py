from __future__ import annotations

import pytest

from pkgops import commands


def test_install_request_with_bucket(settings) -> None:
    request = commands.install_request(settings, "git", "main")

    assert request.argv == ["scoop", "install", "main/git"]
    assert request.display_name == "Installing git"
    assert request.kind == commands.KIND_INSTALL
    assert not request.is_scan


@pytest.mark.parametrize("bucket", [None, "", "None"])
def test_install_request_without_bucket(settings, bucket) -> None:
    assert commands.install_request(settings, "git", bucket).argv == ["scoop", "install", "git"]


def test_update_all_and_single(settings) -> None:
    assert commands.update_request(settings).argv == ["scoop", "update", "*"]
    assert commands.update_request(settings).display_name == "Updating all packages"
    assert commands.update_request(settings, "git").argv == ["scoop", "update", "git"]


def test_package_manager_comes_from_settings(settings) -> None:
    settings.set("package_manager", "mypm")

    assert commands.uninstall_request(settings, "git").argv == ["mypm", "uninstall", "git"]


def test_scan_request(settings) -> None:
    request = commands.scan_request(settings, "git", "extras")

    assert request.argv == ["scoop", "virustotal", "extras/git"]
    assert request.is_scan
    assert request.display_name == "Scanning git"


def test_command_request(settings) -> None:
    request = commands.command_request(["echo", "hello world"])

    assert request.kind == commands.KIND_COMMAND
    assert request.display_name == "echo 'hello world'"
    assert request.command_line() == "echo 'hello world'"
    with pytest.raises(ValueError):
        commands.command_request([])
