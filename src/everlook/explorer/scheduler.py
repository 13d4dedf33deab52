"""Work and wait queues shared by the dispatch and resubmission loops."""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, Dict, List, Optional

from .reference import ItemReference, ReferenceState


class SubmitOutcome(str, Enum):
    QUEUED = "queued"
    WAITING = "waiting"
    IGNORED = "ignored"


@dataclass(eq=False)
class WorkUnit:
    """One reference handed to one worker.

    ``parts`` are the hard references this unit claimed at submission time,
    primary first, in registration order.
    """

    reference: ItemReference
    parts: tuple[ItemReference, ...]
    generation: int


class WorkScheduler:
    """Owns the work queue, the wait queue and the set of dispatched units.

    Every mutation happens under one condition variable, which also wakes the
    dispatch loop (new work or a free worker slot) and the resubmission loop
    (a reference finished, or a new reference started waiting).
    """

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._work: Deque[WorkUnit] = deque()
        self._queued: Dict[ItemReference, WorkUnit] = {}
        self._waiting: List[ItemReference] = []
        self._waiting_set: set[ItemReference] = set()
        self._active: Dict[ItemReference, WorkUnit] = {}
        self._loaded = False
        self._ever_loaded = False
        self._halted = True
        self._generation = 0
        self._wake_epoch = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def generation(self) -> int:
        with self._condition:
            return self._generation

    def work_queue(self) -> List[ItemReference]:
        with self._condition:
            return [unit.reference for unit in self._work]

    def wait_queue(self) -> List[ItemReference]:
        with self._condition:
            return list(self._waiting)

    def active(self) -> List[ItemReference]:
        with self._condition:
            return list(self._active)

    def is_tracked(self, reference: ItemReference) -> bool:
        with self._condition:
            return self._is_tracked(reference)

    # ------------------------------------------------------------------
    # Lifecycle switches
    # ------------------------------------------------------------------
    def resume(self) -> None:
        with self._condition:
            self._halted = False
            self._condition.notify_all()

    def halt(self) -> None:
        with self._condition:
            self._halted = True
            self._condition.notify_all()

    def set_loaded(self, loaded: bool) -> None:
        with self._condition:
            self._loaded = loaded
            self._ever_loaded = self._ever_loaded or loaded
            self._condition.notify_all()

    def reset(self) -> int:
        """Forget all queued and waiting work and start a new generation.

        Units already dispatched keep running; their generation no longer
        matches so the builder discards what they produce.
        """

        with self._condition:
            self._work.clear()
            self._queued.clear()
            self._waiting.clear()
            self._waiting_set.clear()
            self._generation += 1
            self._wake_epoch += 1
            self._condition.notify_all()
            return self._generation

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    def submit(self, reference: ItemReference) -> SubmitOutcome:
        """Queue *reference* for enumeration; safe to call from any thread."""

        with self._condition:
            outcome = self._submit_locked(reference)
            if outcome is SubmitOutcome.WAITING:
                self._wake_epoch += 1
            if outcome is not SubmitOutcome.IGNORED:
                self._condition.notify_all()
            return outcome

    def _submit_locked(self, reference: ItemReference) -> SubmitOutcome:
        reference = self._tree_reference(reference)
        if reference.state == ReferenceState.ENUMERATED:
            return SubmitOutcome.IGNORED
        if self._is_tracked(reference):
            return SubmitOutcome.IGNORED
        if not self._is_ready(reference) or reference.state != ReferenceState.NOT_ENUMERATED:
            self._waiting.append(reference)
            self._waiting_set.add(reference)
            return SubmitOutcome.WAITING

        parts = tuple(
            part for part in reference.hard_references()
            if part.state == ReferenceState.NOT_ENUMERATED
        )
        for part in parts:
            part.state = ReferenceState.ENUMERATING
        if not reference.is_virtual:
            reference.state = ReferenceState.ENUMERATING

        unit = WorkUnit(reference=reference, parts=parts, generation=self._generation)
        self._work.append(unit)
        self._queued[reference] = unit
        return SubmitOutcome.QUEUED

    @staticmethod
    def _tree_reference(reference: ItemReference) -> ItemReference:
        """Return the object that holds *reference*'s identity in the tree.

        A hard reference whose parent has not been listed yet is reserved in
        that parent, so the listing stores this very object as the child.
        """

        parent = reference.parent_reference
        if reference.is_virtual or parent is None:
            return reference
        if parent.state == ReferenceState.ENUMERATED:
            return parent.get_child(reference.identity) or reference
        return parent.expect_child(reference)

    def _is_tracked(self, reference: ItemReference) -> bool:
        return (
            reference in self._queued
            or reference in self._active
            or reference in self._waiting_set
        )

    @staticmethod
    def _is_ready(reference: ItemReference) -> bool:
        parent = reference.parent_reference
        if parent is not None and parent.state != ReferenceState.ENUMERATED:
            return False
        if reference.is_virtual:
            for part in reference.hard_references():
                part_parent = part.parent_reference
                if part_parent is not None and part_parent.state != ReferenceState.ENUMERATED:
                    return False
        return True

    # ------------------------------------------------------------------
    # Dispatch side
    # ------------------------------------------------------------------
    def next_unit(self, max_active: int) -> Optional[WorkUnit]:
        """Block until a unit may be dispatched; ``None`` once halted."""

        with self._condition:
            while True:
                if self._halted:
                    return None
                if self._loaded and self._work and len(self._active) < max_active:
                    break
                self._condition.wait()
            unit = self._work.popleft()
            del self._queued[unit.reference]
            self._active[unit.reference] = unit
            return unit

    def finish(self, unit: WorkUnit) -> None:
        """Reap a dispatched unit once its worker has returned."""

        with self._condition:
            if self._active.get(unit.reference) is unit:
                del self._active[unit.reference]
            self._wake_epoch += 1
            self._condition.notify_all()

    # ------------------------------------------------------------------
    # Resubmission side
    # ------------------------------------------------------------------
    def resubmit_ready(self, seen_epoch: int) -> Optional[tuple[List[ItemReference], int]]:
        """Wait for a wake-up and move ready waiting references back to work.

        Returns the promoted references and the epoch that was handled, or
        ``None`` once halted.
        """

        with self._condition:
            while not self._halted and self._wake_epoch == seen_epoch:
                self._condition.wait()
            if self._halted:
                return None
            epoch = self._wake_epoch

            ready = [reference for reference in self._waiting if self._is_ready(reference)]
            if ready:
                ready_set = set(ready)
                self._waiting = [reference for reference in self._waiting if reference not in ready_set]
                self._waiting_set.difference_update(ready_set)
                for reference in ready:
                    self._submit_locked(reference)
                self._condition.notify_all()
            return ready, epoch

    # ------------------------------------------------------------------
    # Idle detection
    # ------------------------------------------------------------------
    def _is_idle(self) -> bool:
        if self._work or self._active:
            return False
        if not self._loaded and self._ever_loaded:
            # A reload is rebuilding the groups.
            return False
        return not any(self._is_ready(reference) for reference in self._waiting)

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Return ``True`` once nothing runnable is left, ``False`` on timeout.

        Before the first load a scheduler with nothing queued counts as idle.
        """

        deadline = None if timeout is None else time.monotonic() + timeout
        with self._condition:
            while not self._is_idle():
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._condition.wait(remaining)
            return True


__all__ = ["SubmitOutcome", "WorkScheduler", "WorkUnit"]
