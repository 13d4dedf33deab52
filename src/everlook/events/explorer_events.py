from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .bus import Event

if TYPE_CHECKING:
    from ..explorer.reference import ItemReference


@dataclass(kw_only=True)
class ItemEnumeratedEvent(Event):
    """Base class for events that carry a single item reference."""

    reference: ItemReference


@dataclass(kw_only=True)
class PackageGroupAddedEvent(ItemEnumeratedEvent):
    """A package group was loaded; ``reference`` is its top-level overlay."""


@dataclass(kw_only=True)
class PackageEnumeratedEvent(ItemEnumeratedEvent):
    """A package was registered under its group.

    Only the registration is reported; the package contents are listed
    afterwards by the regular work queue.
    """


@dataclass(kw_only=True)
class EnumerationFinishedEvent(ItemEnumeratedEvent):
    """One level of a hard reference has been listed."""


@dataclass(kw_only=True)
class EnumerationFailedEvent(ItemEnumeratedEvent):
    error: Optional[Exception] = None
