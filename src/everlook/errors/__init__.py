"""Custom exception hierarchy for Everlook."""

from __future__ import annotations


class EverlookError(Exception):
    """Base class for all custom errors raised by Everlook."""


# --- Explorer errors ---

class ExplorerError(EverlookError):
    """Base class for errors raised by the explorer builder."""


class MissingListfileError(ExplorerError):
    """Raised when a referenced package has no loaded listfile."""


class InvalidStateError(ExplorerError):
    """Raised when a lifecycle operation is attempted in the wrong state."""


# --- Package errors ---

class PackageError(EverlookError):
    """Base class for package group failures."""


class PackageLoadError(PackageError):
    """Raised when a package directory cannot be turned into a package group."""


# --- Settings errors ---

class SettingsError(EverlookError):
    """Base class for settings related failures."""


class SettingsLoadError(SettingsError):
    """Raised when the settings file cannot be parsed or loaded."""


class SettingsValidationError(SettingsError):
    """Raised when settings data fails schema validation."""
