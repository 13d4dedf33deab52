"""Forward explorer events from the ``EventBus`` to Qt signals.

Bus handlers run on the worker thread that produced the event. Connecting a
widget slot to these signals lets Qt queue the call onto the widget's own
thread instead. Errors that an :class:`ErrorHandler` reports at ``ERROR`` or
``CRITICAL`` severity are forwarded through :attr:`ExplorerSignals.errorOccurred`.
"""

from __future__ import annotations

from typing import List, Optional

from PySide6.QtCore import QObject, Signal

from ..errors.handler import ErrorHandler, ErrorSeverity
from ..events.bus import EventBus, Subscription
from ..events.explorer_events import (
    EnumerationFailedEvent,
    EnumerationFinishedEvent,
    PackageEnumeratedEvent,
    PackageGroupAddedEvent,
)


class ExplorerSignals(QObject):
    """Qt signal container mirroring the explorer notifications."""

    packageGroupAdded = Signal(object)
    packageEnumerated = Signal(object)
    enumerationFinished = Signal(object)
    enumerationFailed = Signal(object, str)
    errorOccurred = Signal(str, str)

    def __init__(
        self,
        event_bus: EventBus,
        parent: QObject | None = None,
        error_handler: Optional[ErrorHandler] = None,
    ) -> None:
        super().__init__(parent)
        self._subscriptions: List[Subscription] = [
            event_bus.subscribe(
                PackageGroupAddedEvent,
                lambda event: self.packageGroupAdded.emit(event.reference),
            ),
            event_bus.subscribe(
                PackageEnumeratedEvent,
                lambda event: self.packageEnumerated.emit(event.reference),
            ),
            event_bus.subscribe(
                EnumerationFinishedEvent,
                lambda event: self.enumerationFinished.emit(event.reference),
            ),
            event_bus.subscribe(
                EnumerationFailedEvent,
                lambda event: self.enumerationFailed.emit(event.reference, str(event.error or "")),
            ),
        ]
        self._event_bus = event_bus
        if error_handler is not None:
            self.attach_error_handler(error_handler)

    def attach_error_handler(self, error_handler: ErrorHandler) -> None:
        """Route *error_handler*'s UI notifications to :attr:`errorOccurred`."""

        error_handler.register_ui_callback(self._emit_error)

    def _emit_error(self, message: str, severity: ErrorSeverity) -> None:
        self.errorOccurred.emit(message, severity.value)

    def dispose(self) -> None:
        """Detach from the bus; the signals stop firing."""

        for subscription in self._subscriptions:
            self._event_bus.unsubscribe(subscription)
        self._subscriptions.clear()


__all__ = ["ExplorerSignals"]
