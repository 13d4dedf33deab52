"""Background builder that enumerates the explorer tree on request."""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from PySide6.QtCore import QThreadPool

from ..config import (
    DEFAULT_WORKERS_PER_CORE,
    LOOP_JOIN_TIMEOUT_SEC,
    PATH_SEPARATOR,
    WORKER_DRAIN_TIMEOUT_MS,
)
from ..errors import InvalidStateError, PackageLoadError
from ..errors.handler import ErrorHandler, ErrorSeverity
from ..events.bus import EventBus
from ..events.explorer_events import (
    EnumerationFailedEvent,
    EnumerationFinishedEvent,
    PackageEnumeratedEvent,
    PackageGroupAddedEvent,
)
from ..package.group import PackageGroup
from ..settings.manager import SettingsManager
from ..utils.logging import get_logger
from .enumerator import EnumeratedReferences
from .reference import ItemReference, ReferenceState, VirtualItemReference
from .scheduler import WorkScheduler, WorkUnit
from .virtual_mapping import VirtualMappingTable
from .workers.enumeration_worker import EnumerationWorker

LOGGER = get_logger(__name__)

GroupLoader = Callable[[Path, str], PackageGroup]


def compute_worker_ceiling(workers_per_core: int, max_workers: int | None = None) -> int:
    """Return the maximum number of concurrently running workers."""

    if max_workers is not None:
        return max(1, int(max_workers))
    cores = os.cpu_count() or 1
    return max(1, cores * max(1, int(workers_per_core)))


class ExplorerBuilder:
    """Enumerate package groups lazily, one directory level per work unit.

    The builder owns two loop threads: the dispatch loop hands queued work
    units to a bounded :class:`QThreadPool`, the resubmission loop moves
    waiting references back to the work queue once their parent has been
    listed. Results collect in :attr:`enumerated_references` and
    notifications go out on the :class:`EventBus` from whichever thread
    produced them.
    """

    def __init__(
        self,
        settings: SettingsManager,
        *,
        event_bus: EventBus | None = None,
        error_handler: ErrorHandler | None = None,
        group_loader: GroupLoader | None = None,
        directory_source: Callable[[], Iterable[str]] | None = None,
        max_workers: int | None = None,
    ) -> None:
        self._settings = settings
        self._directory_source = directory_source
        self._events = event_bus or EventBus()
        self._errors = error_handler or ErrorHandler(LOGGER, self._events)
        self._group_loader: GroupLoader = group_loader or PackageGroup.from_directory
        self._separator: str = settings.get("explorer.path_separator", PATH_SEPARATOR)

        if max_workers is None:
            max_workers = settings.get("explorer.max_workers")
        self._max_workers = compute_worker_ceiling(
            settings.get("explorer.workers_per_core", DEFAULT_WORKERS_PER_CORE),
            max_workers,
        )

        self._scheduler = WorkScheduler()
        self._virtual_mappings = VirtualMappingTable()
        self.enumerated_references = EnumeratedReferences()

        self._pool = QThreadPool()
        self._pool.setMaxThreadCount(self._max_workers)
        self._workers: Dict[WorkUnit, EnumerationWorker] = {}
        self._workers_lock = threading.Lock()

        self._state_lock = threading.Lock()
        self._dispatch_thread: Optional[threading.Thread] = None
        self._resubmission_thread: Optional[threading.Thread] = None
        self._active = False
        self._disposed = False

        self._reload_lock = threading.Lock()
        self._reloading = False
        self._reload_thread: Optional[threading.Thread] = None
        self._reload_done = threading.Event()
        self._reload_done.set()

        self._cached_directories: List[str] = []
        self.package_groups: Dict[str, PackageGroup] = {}
        self.package_group_references: Dict[PackageGroup, VirtualItemReference] = {}

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def event_bus(self) -> EventBus:
        return self._events

    @property
    def error_handler(self) -> ErrorHandler:
        return self._errors

    @property
    def scheduler(self) -> WorkScheduler:
        return self._scheduler

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @property
    def separator(self) -> str:
        return self._separator

    @property
    def is_active(self) -> bool:
        """Whether the loops are currently accepting work."""

        return self._active

    @property
    def is_reloading(self) -> bool:
        return self._reloading

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Start the dispatch and resubmission loops."""

        with self._state_lock:
            if self._disposed:
                raise InvalidStateError("The explorer builder has been disposed.")
            if self._active:
                raise InvalidStateError("The enumeration loop has already been started.")
            self._active = True
            self._scheduler.resume()
            self._dispatch_thread = threading.Thread(
                target=self._dispatch_loop,
                name="everlook-dispatch",
                daemon=True,
            )
            self._resubmission_thread = threading.Thread(
                target=self._resubmission_loop,
                name="everlook-resubmission",
                daemon=True,
            )
            self._resubmission_thread.start()
            self._dispatch_thread.start()
        LOGGER.debug("Explorer builder started with %d worker slots", self._max_workers)

    def stop(self) -> None:
        """Ask both loops to exit; running workers finish their level."""

        with self._state_lock:
            if not self._active:
                raise InvalidStateError("The enumeration loop has not been started.")
            self._active = False
            self._scheduler.halt()
            threads = (self._dispatch_thread, self._resubmission_thread)
        for thread in threads:
            if thread is not None and thread is not threading.current_thread():
                thread.join(LOOP_JOIN_TIMEOUT_SEC)
        LOGGER.debug("Explorer builder stopped")

    def dispose(self) -> None:
        """Stop the loops, wait for in-flight workers and release resources."""

        if self._disposed:
            return
        if self._active:
            self.stop()
        reload_thread = self._reload_thread
        if reload_thread is not None and reload_thread is not threading.current_thread():
            reload_thread.join(LOOP_JOIN_TIMEOUT_SEC)
        if not self._pool.waitForDone(WORKER_DRAIN_TIMEOUT_MS):
            LOGGER.warning("Timed out waiting for enumeration workers to finish")
        with self._state_lock:
            self._disposed = True

    def __enter__(self) -> ExplorerBuilder:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    # ------------------------------------------------------------------
    # Reloading
    # ------------------------------------------------------------------
    def reload(self, *, blocking: bool = False) -> bool:
        """Rebuild the package groups if the configured directories changed.

        Returns ``False`` without doing anything while another reload is in
        progress. With ``blocking`` the reload runs on the calling thread,
        otherwise on a background thread.
        """

        with self._reload_lock:
            if self._reloading:
                return False
            self._reloading = True
            self._reload_done.clear()
            self._scheduler.set_loaded(False)

        if blocking:
            self._reload_implementation()
            return True

        self._reload_thread = threading.Thread(
            target=self._reload_implementation,
            name="everlook-reload",
            daemon=True,
        )
        self._reload_thread.start()
        return True

    def wait_for_reload(self, timeout: float | None = None) -> bool:
        return self._reload_done.wait(timeout)

    def configured_directories(self) -> List[str]:
        """Directories to load, from the settings unless a source was given."""

        if self._directory_source is not None:
            entries = self._directory_source()
        else:
            entries = self._settings.get("package_directories", [])
        return [os.fspath(entry) for entry in entries]

    def has_package_directory_changed(self) -> bool:
        """Whether the configured directories differ from the loaded ones."""

        return sorted(self._cached_directories) != sorted(self.configured_directories())

    def _reload_implementation(self) -> None:
        try:
            if self.has_package_directory_changed():
                self._rebuild(self.configured_directories())
        except Exception as exc:
            self._errors.handle(exc, ErrorSeverity.ERROR, {"operation": "reload"})
        finally:
            with self._reload_lock:
                self._reloading = False
                self._scheduler.set_loaded(True)
                self._reload_done.set()

    def _rebuild(self, directories: Iterable[str]) -> None:
        self._cached_directories = list(directories)
        generation = self._scheduler.reset()
        self.package_groups.clear()
        self.package_group_references.clear()
        self._virtual_mappings.clear()
        self.enumerated_references.clear()

        for directory in self._cached_directories:
            path = Path(directory)
            if not path.is_dir():
                LOGGER.warning("Skipping missing package directory %s", path)
                continue
            try:
                group = self._group_loader(path, self._separator)
            except PackageLoadError as exc:
                self._errors.handle(exc, ErrorSeverity.WARNING, {"directory": directory})
                continue
            self._register_group(group, generation)

        LOGGER.info("Loaded %d package groups", len(self.package_groups))

    def _register_group(self, group: PackageGroup, generation: int) -> None:
        key = group.name
        suffix = 2
        while key in self.package_groups:
            key = f"{group.name} ({suffix})"
            suffix += 1
        self.package_groups[key] = group

        # The group's own entry does not come from any listfile, so it is
        # enumerated from the start.
        group_reference = VirtualItemReference(group, ItemReference(group))
        group_reference.state = ReferenceState.ENUMERATED
        self.package_group_references[group] = group_reference
        self._events.publish(PackageGroupAddedEvent(reference=group_reference))

        for package_name in group.package_names():
            if self._scheduler.generation != generation:
                return
            package_reference = ItemReference(group, package_name, "", group_reference)
            group_reference.add_child(package_reference)
            self._events.publish(PackageEnumeratedEvent(reference=package_reference))
            self.submit_work(package_reference)

    # ------------------------------------------------------------------
    # Public work API
    # ------------------------------------------------------------------
    def submit_work(self, reference: ItemReference) -> None:
        """Request one level of *reference*; duplicates are ignored."""

        self._scheduler.submit(reference)

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Block until no reload is running and no runnable work remains."""

        if not self._reload_done.wait(timeout):
            return False
        return self._scheduler.wait_until_idle(timeout)

    def add_virtual_mapping(self, hard_reference: ItemReference, virtual_reference: VirtualItemReference) -> None:
        self._virtual_mappings.add(hard_reference, virtual_reference)

    def get_virtual_reference(self, hard_reference: ItemReference) -> Optional[VirtualItemReference]:
        return self._virtual_mappings.get(hard_reference)

    def overlay(
        self,
        hard_reference: ItemReference,
        parent_reference: Optional[ItemReference] = None,
    ) -> VirtualItemReference:
        """Merge *hard_reference* into the overlay for its path."""

        return self._virtual_mappings.overlay(hard_reference, parent_reference)

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------
    def _dispatch_loop(self) -> None:
        while True:
            unit = self._scheduler.next_unit(self._max_workers)
            if unit is None:
                return
            worker = EnumerationWorker(
                unit,
                on_batch=self._on_batch,
                on_finished=self._on_finished,
                on_failed=self._on_failed,
                on_done=self._on_done,
                separator=self._separator,
            )
            with self._workers_lock:
                self._workers[unit] = worker
            self._pool.start(worker)

    def _resubmission_loop(self) -> None:
        epoch = -1
        while True:
            result = self._scheduler.resubmit_ready(epoch)
            if result is None:
                return
            promoted, epoch = result
            if promoted:
                LOGGER.debug("Resubmitted %d waiting references", len(promoted))

    # ------------------------------------------------------------------
    # Worker callbacks (worker threads)
    # ------------------------------------------------------------------
    def _is_current(self, unit: WorkUnit) -> bool:
        return unit.generation == self._scheduler.generation

    def _on_batch(self, unit: WorkUnit, hard_reference: ItemReference, children: List[ItemReference]) -> None:
        if self._is_current(unit):
            self.enumerated_references.extend(children)

    def _on_finished(self, unit: WorkUnit, hard_reference: ItemReference) -> None:
        if self._is_current(unit):
            self._events.publish(EnumerationFinishedEvent(reference=hard_reference))

    def _on_failed(self, unit: WorkUnit, hard_reference: ItemReference, error: Exception) -> None:
        if not self._is_current(unit):
            return
        self._errors.handle(
            error,
            ErrorSeverity.ERROR,
            {"package": hard_reference.package_name, "path": hard_reference.item_path},
        )
        self._events.publish(EnumerationFailedEvent(reference=hard_reference, error=error))

    def _on_done(self, unit: WorkUnit) -> None:
        with self._workers_lock:
            self._workers.pop(unit, None)
        self._scheduler.finish(unit)


__all__ = ["ExplorerBuilder", "compute_worker_ceiling"]
