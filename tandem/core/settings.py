r"""
Global Settings Management for Tandem.

Uses platformdirs to store user settings in OS-standard locations.
Manages the Model Gateway endpoint, loop limits, session lifetime and the
persisted sign-in.

Storage Locations (via platformdirs):
- Windows: %APPDATA%\TandemIDE\Tandem\config.json
- Linux: ~/.config/tandem/config.json
- macOS: ~/Library/Application Support/Tandem/config.json

Environment:
- TANDEM_SERVER_URL overrides gateway.server_url (loaded from .env at startup)
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Optional, Dict, Any
from platformdirs import user_config_dir

logger = logging.getLogger(__name__)

SERVER_URL_ENV = "TANDEM_SERVER_URL"


class SettingsManager:
    """
    Manages global user settings in OS-standard config directory.

    Settings are stored as JSON and include:
    - Gateway (server_url, request_timeout)
    - Limits (history bound, context window sizes, output caps, timeouts)
    - Sessions (idle reaping of detached sessions, history persistence)
    - Auth (token and email of the last sign-in)
    """

    APP_NAME = "Tandem"
    APP_AUTHOR = "TandemIDE"
    CONFIG_FILE_NAME = "config.json"

    SECTIONS = ("gateway", "limits", "sessions", "auth")

    # Default settings structure
    DEFAULT_SETTINGS = {
        "gateway": {
            "server_url": "http://127.0.0.1:3000",
            "request_timeout": 120.0
        },
        "limits": {
            "history_limit": 50,
            "context_turns": 10,
            "analysis_turns": 8,
            "context_chars": 1000,
            "read_chars": 3000,
            "output_chars": 5000,
            "command_timeout": 120,
            "max_buffer_bytes": 5 * 1024 * 1024
        },
        "sessions": {
            "idle_ttl": 1800,
            "reap_interval": 60,
            "persist_history": True,
            "history_retention_days": 30
        },
        "auth": {
            "token": "",
            "email": ""
        }
    }

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize SettingsManager with platformdirs config directory.

        Args:
            config_dir: Override for the config directory (tests).
        """
        if config_dir is None:
            config_dir = Path(user_config_dir(self.APP_NAME, self.APP_AUTHOR))
        self.config_dir = Path(config_dir)
        self.config_file = self.config_dir / self.CONFIG_FILE_NAME

        self.config_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Settings config directory: {self.config_dir}")

    def load_settings(self) -> Dict[str, Any]:
        """
        Load settings from config file.

        Returns:
            Dict with settings (uses defaults if file doesn't exist).
        """
        if not self.config_file.exists():
            logger.info("Config file not found, using defaults")
            return self._defaults()

        try:
            with self.config_file.open("r", encoding="utf-8") as f:
                settings = json.load(f)

            return self._merge_with_defaults(settings)

        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse config file: {e}")
            logger.warning("Using default settings")
            return self._defaults()

        except OSError as e:
            logger.error(f"Failed to load settings: {e}")
            return self._defaults()

    def save_settings(self, settings: Dict[str, Any]) -> bool:
        """
        Save settings to config file.

        Args:
            settings: Settings dict to save.

        Returns:
            True if save succeeded, False otherwise.
        """
        try:
            validated_settings = self._merge_with_defaults(settings)

            # Write to temp file first (atomic write)
            temp_file = self.config_file.with_suffix(".tmp")
            with temp_file.open("w", encoding="utf-8") as f:
                json.dump(validated_settings, f, indent=2)

            temp_file.replace(self.config_file)

            logger.info("Settings saved successfully")
            return True

        except (OSError, TypeError) as e:
            logger.error(f"Failed to save settings: {e}")
            return False

    def get_server_url(self) -> str:
        """
        Get the Model Gateway base URL.

        The TANDEM_SERVER_URL environment variable wins over the config file.
        """
        override = os.environ.get(SERVER_URL_ENV)
        if override:
            return override.rstrip("/")
        settings = self.load_settings()
        return settings["gateway"]["server_url"].rstrip("/")

    def get_request_timeout(self) -> float:
        """Get the Model Gateway request timeout in seconds."""
        return float(self.load_settings()["gateway"]["request_timeout"])

    def get_limit(self, key: str) -> int:
        """
        Get a loop limit.

        Args:
            key: Limit name (e.g., "history_limit", "output_chars").

        Returns:
            Configured value, or the default when not configured.
        """
        settings = self.load_settings()
        return settings.get("limits", {}).get(
            key,
            self.DEFAULT_SETTINGS["limits"][key]
        )

    def set_limit(self, key: str, value: int) -> bool:
        """Set a loop limit."""
        settings = self.load_settings()
        settings["limits"][key] = value
        return self.save_settings(settings)

    def get_session_setting(self, key: str) -> Any:
        """
        Get a session lifetime setting.

        Args:
            key: Setting name (e.g., "idle_ttl", "persist_history").

        Returns:
            Configured value, or the default when not configured.
        """
        settings = self.load_settings()
        return settings.get("sessions", {}).get(
            key,
            self.DEFAULT_SETTINGS["sessions"][key]
        )

    def get_history_db_path(self) -> Path:
        """SQLite file holding persisted conversation transcripts."""
        return self.config_dir / "history.db"

    def get_saved_auth(self) -> Optional[Dict[str, str]]:
        """
        Get the persisted sign-in.

        Returns:
            {"token": str, "email": str} or None if signed out.
        """
        auth = self.load_settings().get("auth", {})
        if not auth.get("token"):
            return None
        return {"token": auth["token"], "email": auth.get("email", "")}

    def save_auth(self, token: str, email: str) -> bool:
        """Persist a sign-in so new sessions start signed in."""
        settings = self.load_settings()
        settings["auth"] = {"token": token, "email": email}
        return self.save_settings(settings)

    def clear_auth(self) -> bool:
        """Forget the persisted sign-in."""
        settings = self.load_settings()
        settings["auth"] = {"token": "", "email": ""}
        return self.save_settings(settings)

    def _defaults(self) -> Dict[str, Any]:
        return copy.deepcopy(self.DEFAULT_SETTINGS)

    def _merge_with_defaults(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge user settings with defaults to handle missing keys.

        Args:
            settings: User settings dict (potentially incomplete).

        Returns:
            Complete settings dict with defaults filled in.
        """
        merged = self._defaults()

        for section in self.SECTIONS:
            if isinstance(settings.get(section), dict):
                merged[section].update(settings[section])

        return merged

    def reset_to_defaults(self) -> bool:
        """
        Reset all settings to defaults.

        Returns:
            True if reset succeeded.
        """
        logger.warning("Resetting settings to defaults")
        return self.save_settings(self._defaults())

    def get_config_file_path(self) -> Path:
        """Get absolute path to config file for debugging."""
        return self.config_file


# Singleton instance for global access
_settings_manager: Optional[SettingsManager] = None


def get_settings_manager() -> SettingsManager:
    """
    Get singleton SettingsManager instance.

    Returns:
        Global SettingsManager instance.
    """
    global _settings_manager
    if _settings_manager is None:
        _settings_manager = SettingsManager()
    return _settings_manager


def reset_settings_manager() -> None:
    """
    Reset global SettingsManager instance.

    WARNING: Only use in tests.
    """
    global _settings_manager
    _settings_manager = None


__all__ = [
    "SettingsManager",
    "SERVER_URL_ENV",
    "get_settings_manager",
    "reset_settings_manager",
]
