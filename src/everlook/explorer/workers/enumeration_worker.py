"""Pooled worker that lists one level of one work unit."""

from __future__ import annotations

from typing import Callable, List, Optional

from PySide6.QtCore import QRunnable

from ...config import PATH_SEPARATOR
from ...utils.logging import get_logger
from ..enumerator import enumerate_hard_reference
from ..reference import ItemReference, ReferenceState
from ..scheduler import WorkUnit

LOGGER = get_logger(__name__)


class EnumerationWorker(QRunnable):
    """Enumerate the hard references claimed by a single :class:`WorkUnit`.

    The worker does not touch the scheduler or the event bus directly; it
    reports through four callbacks supplied by the builder. They are plain
    callables rather than a ``Signals`` object because the pool threads and
    the builder's loop threads run no Qt event loop, so queued signal
    delivery would never happen there. GUI code listens through
    :class:`~everlook.explorer.qt_bridge.ExplorerSignals` instead.

    ``on_batch(unit, hard_reference, children)``
        called after each hard reference has been listed, before its state
        flips to ``ENUMERATED``.
    ``on_finished(unit, hard_reference)``
        called right after the state flip.
    ``on_failed(unit, hard_reference, error)``
        called once when listing a part raised; the remaining parts of the
        unit are not attempted.
    ``on_done(unit)``
        always called last, from a ``finally`` block.
    """

    def __init__(
        self,
        unit: WorkUnit,
        *,
        on_batch: Callable[[WorkUnit, ItemReference, List[ItemReference]], None],
        on_finished: Callable[[WorkUnit, ItemReference], None],
        on_failed: Callable[[WorkUnit, ItemReference, Exception], None],
        on_done: Callable[[WorkUnit], None],
        separator: str = PATH_SEPARATOR,
    ) -> None:
        super().__init__()
        self.setAutoDelete(False)
        self._unit = unit
        self._on_batch = on_batch
        self._on_finished = on_finished
        self._on_failed = on_failed
        self._on_done = on_done
        self._separator = separator
        self._error: Optional[Exception] = None

    @property
    def unit(self) -> WorkUnit:
        return self._unit

    @property
    def failed(self) -> bool:
        """Return ``True`` if one of the parts could not be listed."""

        return self._error is not None

    def run(self) -> None:
        """List every claimed part in registration order."""

        current: Optional[ItemReference] = None
        try:
            for part in self._unit.parts:
                current = part
                children = enumerate_hard_reference(part, self._separator)
                self._on_batch(self._unit, part, children)
                part.state = ReferenceState.ENUMERATED
                current = None
                self._on_finished(self._unit, part)
        except Exception as exc:
            self._error = exc
            # Unfinished parts go back to NOT_ENUMERATED; finished ones stay.
            for part in self._unit.parts:
                part.reset()
            try:
                self._on_failed(self._unit, current or self._unit.reference, exc)
            except Exception:
                LOGGER.exception("Failure callback raised for %r", self._unit.reference)
        finally:
            self._on_done(self._unit)


__all__ = ["EnumerationWorker"]
