from __future__ import annotations

from pkgops.main import _build_parser, _requests, _run_argv


def _parse(*argv: str):
    args, _ = _build_parser().parse_known_args(list(argv))
    return args


def test_install_with_bucket(settings) -> None:
    args = _parse("--minimized", "install", "git", "curl", "--bucket", "main")
    requests = _requests(args, settings)

    assert args.minimized
    assert [r.argv for r in requests] == [
        ["scoop", "install", "main/git"],
        ["scoop", "install", "main/curl"],
    ]


def test_update_without_packages_updates_all(settings) -> None:
    requests = _requests(_parse("update"), settings)

    assert [r.argv for r in requests] == [["scoop", "update", "*"]]


def test_scan_requests(settings) -> None:
    args = _parse("scan", "git", "--install")

    assert args.install
    assert _requests(args, settings)[0].is_scan


def test_run_strips_separator(settings) -> None:
    args = _parse("run", "--", "echo", "-n", "hi")

    assert _run_argv(args) == ["echo", "-n", "hi"]
    assert _requests(args, settings)[0].argv == ["echo", "-n", "hi"]
