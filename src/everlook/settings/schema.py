"""Schema helpers for the application settings file."""

from __future__ import annotations

import os
from copy import deepcopy
from typing import Any

from jsonschema import Draft202012Validator

from ..config import DEFAULT_WORKERS_PER_CORE, PATH_SEPARATOR, SUPPORTED_SEPARATORS

SETTINGS_SCHEMA: dict[str, Any] = {
    "$id": "everlook/settings.schema.json",
    "type": "object",
    "required": ["schema", "package_directories", "explorer"],
    "properties": {
        "schema": {"const": "everlook/settings@1"},
        "package_directories": {
            "type": "array",
            "items": {"type": "string"},
        },
        "explorer": {
            "type": "object",
            "properties": {
                "workers_per_core": {"type": "integer", "minimum": 1},
                "max_workers": {"type": ["integer", "null"], "minimum": 1},
                "path_separator": {
                    "type": "string",
                    "enum": list(SUPPORTED_SEPARATORS),
                },
            },
            "additionalProperties": True,
        },
    },
    "additionalProperties": True,
}

DEFAULT_SETTINGS: dict[str, Any] = {
    "schema": "everlook/settings@1",
    "package_directories": [],
    "explorer": {
        "workers_per_core": DEFAULT_WORKERS_PER_CORE,
        "max_workers": None,
        "path_separator": PATH_SEPARATOR,
    },
}

_validator = Draft202012Validator(SETTINGS_SCHEMA)


def _normalise_directories(entries: list[Any]) -> list[str]:
    normalised: list[str] = []
    for entry in entries:
        try:
            path = os.fspath(entry)
        except TypeError:
            continue
        if path not in normalised:
            normalised.append(str(path))
    return normalised


def merge_with_defaults(data: dict[str, Any] | None) -> dict[str, Any]:
    """Merge *data* with :data:`DEFAULT_SETTINGS` and validate the result."""

    merged = deepcopy(DEFAULT_SETTINGS)
    if data:
        for key, value in data.items():
            if key == "explorer" and isinstance(value, dict):
                target = merged.setdefault("explorer", {})
                for sub_key, sub_value in value.items():
                    target[sub_key] = sub_value
                continue
            if key == "package_directories" and isinstance(value, list):
                merged[key] = _normalise_directories(value)
                continue
            merged[key] = value
    _validator.validate(merged)
    return merged


def validate_settings(data: dict[str, Any]) -> None:
    """Validate *data* against the settings schema."""

    _validator.validate(data)


__all__ = ["DEFAULT_SETTINGS", "SETTINGS_SCHEMA", "merge_with_defaults", "validate_settings"]
