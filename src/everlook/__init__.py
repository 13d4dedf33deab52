"""Everlook explorer: lazy, one-level-at-a-time browsing of package groups."""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
