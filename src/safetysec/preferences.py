"""
Theme preferences.

Small JSON key-value store for app settings such as the theme mode.
"""

import json
from enum import Enum
from pathlib import Path
from typing import Any, Dict

from loguru import logger

THEME_KEY = "theme_mode"


class ThemeMode(str, Enum):
    LIGHT = "LIGHT"
    DARK = "DARK"
    SYSTEM = "SYSTEM"


class ThemePreferences:
    """
    File-backed preferences.

    Unknown or unreadable values fall back to defaults instead of failing.
    """

    def __init__(self, path: Path):
        """
        Initialize preferences.

        Args:
            path: JSON file holding the preferences
        """
        self.path = Path(path)

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except Exception as e:
            logger.error(f"Failed to load preferences: {e}")
            return {}

    def get(self, key: str, default: Any = None) -> Any:
        """Stored value for key, or default."""
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        """
        Store a value.

        Args:
            key: Preference key
            value: JSON-serializable value
        """
        data = self._load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(data, f, indent=2)

    def get_theme_mode(self) -> ThemeMode:
        """Saved theme, SYSTEM when unset or unknown."""
        name = self.get(THEME_KEY, ThemeMode.SYSTEM.value)
        try:
            return ThemeMode(name)
        except ValueError:
            return ThemeMode.SYSTEM

    def set_theme_mode(self, mode: ThemeMode) -> None:
        mode = ThemeMode(mode)
        self.set(THEME_KEY, mode.value)
        logger.debug(f"Theme set to {mode.value}")
