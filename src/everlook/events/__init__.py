from .bus import Event, EventBus, Subscription
from .explorer_events import (
    EnumerationFailedEvent,
    EnumerationFinishedEvent,
    ItemEnumeratedEvent,
    PackageEnumeratedEvent,
    PackageGroupAddedEvent,
)

__all__ = [
    "EnumerationFailedEvent",
    "EnumerationFinishedEvent",
    "Event",
    "EventBus",
    "ItemEnumeratedEvent",
    "PackageEnumeratedEvent",
    "PackageGroupAddedEvent",
    "Subscription",
]
