from __future__ import annotations

import json

from pkgops.settings import Settings


def test_defaults_when_file_missing(tmp_path) -> None:
    settings = Settings(tmp_path / "missing.json")

    assert settings.get("package_manager") == "scoop"
    assert settings.get_output_limit() == 1000
    assert settings.get_ttl_seconds() == 300
    assert settings.get_cleanup_interval_ms() == 60000
    assert settings.get("multi_instance_warning") == {"enabled": True, "threshold": 2, "dismissed": False}


def test_user_values_override_defaults(tmp_path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"package_manager": "winget", "operation_output_limit": 50}), encoding="utf-8")

    settings = Settings(path)

    assert settings.get("package_manager") == "winget"
    assert settings.get_output_limit() == 50
    assert settings.get_ttl_seconds() == 300


def test_invalid_json_falls_back_to_defaults(tmp_path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")

    settings = Settings(path)

    assert settings.get("package_manager") == "scoop"


def test_non_object_file_is_ignored(tmp_path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")

    assert Settings(path).get_output_limit() == 1000


def test_save_and_reload(tmp_path) -> None:
    path = tmp_path / "nested" / "settings.json"
    settings = Settings(path)
    settings.set("operation_ttl_seconds", 42)
    settings.save()

    assert Settings(path).get_ttl_seconds() == 42


def test_get_int_clamps_and_recovers_from_bad_values(settings) -> None:
    settings.set("cleanup_interval_ms", 10)
    settings.set("operation_output_limit", "lots")

    assert settings.get_cleanup_interval_ms() == 1000
    assert settings.get_output_limit() == 1000


def test_reset_to_defaults_does_not_share_nested_dicts(settings) -> None:
    settings.get("multi_instance_warning")["dismissed"] = True
    settings.reset_to_defaults()

    assert settings.get("multi_instance_warning")["dismissed"] is False
    assert Settings.DEFAULTS["multi_instance_warning"]["dismissed"] is False
