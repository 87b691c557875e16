"""
JSON-file settings provider.

Settings live in ``<home>/settings.json``. Missing keys are filled from
defaults without overwriting stored values; a corrupt file falls back to
defaults rather than blocking startup.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ..persistence import LoadError, atomic_write_json, read_json
from .models import DEFAULT_SETTINGS, AppSettings

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.json"


def get_app_home() -> Path:
    """
    Application data directory.

    ``COMPSYNC_HOME`` overrides the default ``~/.compsync``.
    """
    override = os.environ.get("COMPSYNC_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".compsync"


def deep_merge(target: Dict[str, Any], defaults: Dict[str, Any]) -> Dict[str, Any]:
    """Fill keys missing from ``target`` with values from ``defaults``."""
    for key, default_value in defaults.items():
        if key not in target:
            target[key] = copy.deepcopy(default_value)
        elif isinstance(default_value, dict) and isinstance(target[key], dict):
            target[key] = deep_merge(target[key], default_value)
    return target


class JsonSettingsProvider:
    """
    Settings store backed by a JSON file.

    get_settings() returns a fresh snapshot each call; callers must not
    hold on to it across operations.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else get_app_home() / SETTINGS_FILE
        self._settings = self._load()

    def _load(self) -> AppSettings:
        try:
            raw = read_json(self.path)
        except LoadError as e:
            logger.warning(f"[Settings] {e}; using defaults")
            return DEFAULT_SETTINGS.model_copy(deep=True)

        if raw is None:
            return DEFAULT_SETTINGS.model_copy(deep=True)
        if not isinstance(raw, dict):
            logger.warning("[Settings] Settings file is not an object; using defaults")
            return DEFAULT_SETTINGS.model_copy(deep=True)

        merged = deep_merge(raw, DEFAULT_SETTINGS.model_dump(mode="json"))
        try:
            return AppSettings.model_validate(merged)
        except ValidationError as e:
            logger.warning(f"[Settings] Settings corrupted, resetting to defaults: {e}")
            return DEFAULT_SETTINGS.model_copy(deep=True)

    def get_settings(self) -> AppSettings:
        return self._settings.model_copy(deep=True)

    def update(self, settings: AppSettings) -> None:
        """Replace and persist the settings."""
        self._settings = settings.model_copy(deep=True)
        atomic_write_json(self.path, self._settings.model_dump(mode="json"))
        logger.info(f"[Settings] Saved to {self.path}")


class StaticSettingsProvider:
    """Fixed in-memory settings, for embedding and tests."""

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or AppSettings()

    def get_settings(self) -> AppSettings:
        return self._settings.model_copy(deep=True)

    def update(self, settings: AppSettings) -> None:
        self._settings = settings.model_copy(deep=True)
