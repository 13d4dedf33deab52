"""Settings file management with validation and change notifications."""

from __future__ import annotations

import os
import sys
from copy import deepcopy
from pathlib import Path
from typing import Any

from PySide6.QtCore import QObject, Signal

from ..errors import SettingsLoadError, SettingsValidationError
from ..utils.jsonio import read_json, write_json
from .schema import DEFAULT_SETTINGS, merge_with_defaults


def default_settings_path() -> Path:
    """Return the default settings.json location for the current platform."""

    if os.name == "nt":
        base = os.environ.get("APPDATA")
        if base:
            return Path(base) / "Everlook" / "settings.json"
        return Path.home() / "AppData" / "Roaming" / "Everlook" / "settings.json"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "Everlook" / "settings.json"
    base = os.environ.get("XDG_CONFIG_HOME")
    if base:
        return Path(base) / "Everlook" / "settings.json"
    return Path.home() / ".config" / "Everlook" / "settings.json"


class SettingsManager(QObject):
    """Load, validate and persist user settings for the application."""

    settingsChanged = Signal(str, object)

    def __init__(self, path: Path | None = None) -> None:
        super().__init__()
        self._path = path
        self._data: dict[str, Any] = deepcopy(DEFAULT_SETTINGS)

    @property
    def path(self) -> Path:
        return self._path or default_settings_path()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def load(self) -> None:
        """Load the settings JSON from disk, creating defaults if missing."""

        path = self.path
        self._path = path
        if path.exists():
            try:
                payload = read_json(path)
            except (OSError, ValueError) as exc:
                raise SettingsLoadError(str(exc)) from exc
        else:
            payload = None
        if payload is not None and not isinstance(payload, dict):
            raise SettingsLoadError(f"{path} does not contain a JSON object")
        try:
            self._data = merge_with_defaults(payload)
        except Exception as exc:
            raise SettingsValidationError(str(exc)) from exc
        self._write()

    def get(self, key: str, default: Any | None = None) -> Any:
        """Return the value for *key*, supporting dotted access for nested keys."""

        target = self._data
        parts = key.split(".")
        for index, part in enumerate(parts):
            if not isinstance(target, dict) or part not in target:
                return default
            value = target[part]
            if index == len(parts) - 1:
                return value
            target = value
        return default

    def set(self, key: str, value: Any) -> None:
        """Update *key* with *value* and persist the change."""

        def _normalise(payload: Any) -> Any:
            if isinstance(payload, dict):
                return {k: _normalise(v) for k, v in payload.items()}
            if isinstance(payload, (list, tuple)):
                return [_normalise(item) for item in payload]
            if isinstance(payload, Path):
                return str(payload)
            return payload

        value = _normalise(value)

        parts = key.split(".")
        candidate = deepcopy(self._data)
        target: dict[str, Any] = candidate
        for part in parts[:-1]:
            branch = target.get(part)
            if not isinstance(branch, dict):
                branch = {}
                target[part] = branch
            target = branch
        target[parts[-1]] = value
        try:
            self._data = merge_with_defaults(candidate)
        except Exception as exc:
            raise SettingsValidationError(str(exc)) from exc
        self._write()
        self.settingsChanged.emit(key, value)

    # ------------------------------------------------------------------
    # Package directories
    # ------------------------------------------------------------------
    def package_directories(self) -> list[str]:
        """Return the configured package directories in insertion order."""

        return list(self.get("package_directories", []))

    def add_package_directory(self, directory: Path | str) -> bool:
        """Append *directory*; return ``False`` if it was already configured."""

        current = self.package_directories()
        entry = os.fspath(directory)
        if entry in current:
            return False
        self.set("package_directories", [*current, entry])
        return True

    def remove_package_directory(self, directory: Path | str) -> bool:
        """Drop *directory*; return ``False`` if it was not configured."""

        current = self.package_directories()
        entry = os.fspath(directory)
        if entry not in current:
            return False
        self.set("package_directories", [item for item in current if item != entry])
        return True

    # ------------------------------------------------------------------
    # Internal utilities
    # ------------------------------------------------------------------
    def _write(self) -> None:
        path = self.path
        self._path = path
        write_json(path, self._data)


__all__ = ["SettingsManager", "default_settings_path"]
