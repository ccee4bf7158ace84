import copy
import json
from pathlib import Path
from typing import Any, Dict, Optional

from .logger import get_logger

_logger = get_logger("settings")


class Settings:
    """Central settings management with sensible defaults."""

    DEFAULTS = {
        # Package manager executable used to build commands
        "package_manager": "scoop",
        "virus_scan_subcommand": "virustotal",

        # Operation tracking
        "operation_output_limit": 1000,
        "operation_ttl_seconds": 300,
        "cleanup_interval_ms": 60000,
        "cancel_grace_ms": 3000,

        # Multi-instance warning (dismissal is sticky until reset)
        "multi_instance_warning": {
            "enabled": True,
            "threshold": 2,
            "dismissed": False,
        },

        # Tray indicator
        "notify_operation_finished": True,
        "notification_timeout_ms": 8000,
    }

    def __init__(self, config_file: Optional[Path] = None):
        if config_file is None:
            config_file = Path.home() / ".config" / "pkgops" / "settings.json"
        self.config_file = Path(config_file)
        self.config_dir = self.config_file.parent
        self._data: Dict[str, Any] = {}
        self.load()

    def load(self):
        """Load settings from file and fall back to defaults."""
        self._data = copy.deepcopy(self.DEFAULTS)

        if self.config_file.exists():
            try:
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    user_data = json.load(f)
                if isinstance(user_data, dict):
                    self._data.update(user_data)
                    _logger.debug("settings loaded: %s", self.config_file)
                else:
                    _logger.warning("settings file ignored, not an object: %s", self.config_file)
            except (OSError, ValueError) as e:
                _logger.warning("could not load settings: %s", e)

    def save(self):
        """Persist the current settings."""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(self._data, f, indent=2, ensure_ascii=False)
            _logger.debug("settings saved: %s", self.config_file)
        except OSError as e:
            _logger.error("could not save settings: %s", e)

    def get(self, key: str, default=None) -> Any:
        """Retrieve a setting value."""
        return self._data.get(key, default)

    def set(self, key: str, value: Any):
        """Store a setting value."""
        self._data[key] = value

    def reset_to_defaults(self):
        """Reset all settings."""
        self._data = copy.deepcopy(self.DEFAULTS)
        self.save()

    # ---- Convenience methods ----

    def get_int(self, key: str, minimum: int = 0) -> int:
        """Return an integer setting, falling back to the default on bad input."""
        value = self.get(key, self.DEFAULTS.get(key))
        try:
            number = int(value)
        except (TypeError, ValueError):
            _logger.warning("invalid value for %s: %r", key, value)
            number = int(self.DEFAULTS[key])
        return max(minimum, number)

    def get_output_limit(self) -> int:
        return self.get_int("operation_output_limit", minimum=1)

    def get_ttl_seconds(self) -> int:
        return self.get_int("operation_ttl_seconds", minimum=1)

    def get_cleanup_interval_ms(self) -> int:
        return self.get_int("cleanup_interval_ms", minimum=1000)

    def get_cancel_grace_ms(self) -> int:
        return self.get_int("cancel_grace_ms", minimum=0)
