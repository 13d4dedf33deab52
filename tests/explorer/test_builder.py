"""Integration tests for the explorer builder with a real thread pool."""

from __future__ import annotations

import threading
import time
from typing import List

import pytest

from everlook.errors import InvalidStateError, MissingListfileError
from everlook.errors.handler import ErrorOccurredEvent
from everlook.events.explorer_events import (
    EnumerationFailedEvent,
    EnumerationFinishedEvent,
    PackageEnumeratedEvent,
    PackageGroupAddedEvent,
)
from everlook.explorer.builder import ExplorerBuilder, compute_worker_ceiling
from everlook.explorer.reference import ItemReference, ReferenceState, VirtualItemReference
from everlook.package.group import PackageGroup

TIMEOUT = 10


def _collect(builder: ExplorerBuilder, event_type) -> List:
    received: List = []
    builder.event_bus.subscribe(event_type, received.append)
    return received


def _loaded(builder: ExplorerBuilder) -> ExplorerBuilder:
    builder.start()
    assert builder.reload(blocking=True)
    assert builder.wait_until_idle(TIMEOUT)
    return builder


def _package(builder: ExplorerBuilder, group_name: str, package_name: str) -> ItemReference:
    group = builder.package_groups[group_name]
    for reference in builder.package_group_references[group].child_references:
        if reference.package_name == package_name:
            return reference
    raise AssertionError(f"{package_name} was not registered")


def _child(reference: ItemReference, item_path: str) -> ItemReference:
    for child in reference.child_references:
        if child.item_path == item_path:
            return child
    raise AssertionError(f"{item_path} is not a child of {reference!r}")


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

def test_start_twice_raises(make_builder):
    builder = make_builder()
    builder.start()
    with pytest.raises(InvalidStateError):
        builder.start()


def test_stop_without_start_raises(make_builder):
    builder = make_builder()
    with pytest.raises(InvalidStateError):
        builder.stop()


def test_stop_then_restart(make_builder):
    builder = make_builder()
    builder.start()
    builder.stop()
    assert not builder.is_active
    builder.start()
    assert builder.is_active


def test_dispose_is_idempotent(make_builder):
    builder = make_builder()
    builder.start()
    builder.dispose()
    builder.dispose()
    assert not builder.is_active
    with pytest.raises(InvalidStateError):
        builder.start()


def test_context_manager_disposes(settings, groups):
    with ExplorerBuilder(settings, group_loader=groups.load, max_workers=2) as builder:
        builder.start()
        assert builder.is_active
    assert not builder.is_active


# ---------------------------------------------------------------------------
# Worker ceiling
# ---------------------------------------------------------------------------

def test_worker_ceiling_scales_with_cores(monkeypatch):
    monkeypatch.setattr("everlook.explorer.builder.os.cpu_count", lambda: 3)
    assert compute_worker_ceiling(4) == 12
    assert compute_worker_ceiling(2) == 6
    assert compute_worker_ceiling(4, 5) == 5
    assert compute_worker_ceiling(4, 0) == 1


def test_worker_ceiling_from_settings(settings, make_builder):
    settings.set("explorer.max_workers", 3)
    builder = make_builder(max_workers=None)
    assert builder.max_workers == 3


def test_explicit_ceiling_overrides_settings(settings, make_builder):
    settings.set("explorer.max_workers", 3)
    builder = make_builder(max_workers=7)
    assert builder.max_workers == 7


# ---------------------------------------------------------------------------
# Reloading
# ---------------------------------------------------------------------------

def test_reload_registers_groups_and_packages(make_builder, groups):
    directory = groups.add(
        "World",
        {"base.zip": ["a\\b.txt", "c.txt"], "broken.zip": None, "patch.zip": ["d.txt"]},
    )
    builder = make_builder([directory])
    added = _collect(builder, PackageGroupAddedEvent)
    packages = _collect(builder, PackageEnumeratedEvent)

    _loaded(builder)

    assert list(builder.package_groups) == ["World"]
    group = builder.package_groups["World"]
    group_reference = builder.package_group_references[group]
    assert group_reference.state == ReferenceState.ENUMERATED
    assert [event.reference for event in added] == [group_reference]
    assert [event.reference.package_name for event in packages] == ["base.zip", "patch.zip"]
    assert [ref.package_name for ref in group_reference.child_references] == ["base.zip", "patch.zip"]
    for package in group_reference.child_references:
        assert package.parent_reference is group_reference
        assert package.state == ReferenceState.ENUMERATED


def test_packages_are_listed_after_reload(make_builder, groups):
    directory = groups.add("World", {"base.zip": ["a\\", "a\\b.txt", "c.txt"]})
    builder = _loaded(make_builder([directory]))

    package = _package(builder, "World", "base.zip")
    assert [child.item_path for child in package.child_references] == ["a\\", "c.txt"]
    assert [ref.item_path for ref in builder.enumerated_references.snapshot()] == ["a\\", "c.txt"]
    assert _child(package, "a\\").state == ReferenceState.NOT_ENUMERATED
    assert _child(package, "c.txt").state == ReferenceState.ENUMERATED


def test_directory_is_reported_before_its_contents(make_builder, groups):
    directory = groups.add("World", {"base.zip": ["x\\y.txt"]})
    builder = _loaded(make_builder([directory]))

    folder = _child(_package(builder, "World", "base.zip"), "x\\")
    builder.submit_work(folder)
    assert builder.wait_until_idle(TIMEOUT)

    paths = [ref.item_path for ref in builder.enumerated_references.drain()]
    assert paths.index("x\\") < paths.index("x\\y.txt")
    assert len(builder.enumerated_references) == 0


def test_missing_directory_is_skipped(make_builder, groups, tmp_path):
    directory = groups.add("World", {"base.zip": ["a.txt"]})
    builder = _loaded(make_builder([str(tmp_path / "missing"), directory]))

    assert list(builder.package_groups) == ["World"]
    assert [path.name for path in groups.load_calls] == ["World"]


def test_groups_with_the_same_name_get_distinct_keys(make_builder, groups, tmp_path):
    first = groups.add("World", {"base.zip": ["a.txt"]})
    second_dir = tmp_path / "other" / "World"
    second_dir.mkdir(parents=True)
    builder = _loaded(make_builder([first, str(second_dir)]))

    assert list(builder.package_groups) == ["World", "World (2)"]


def test_reload_is_ignored_while_running(make_builder, groups):
    directory = groups.add("World", {"base.zip": ["a.txt"]})
    builder = make_builder([directory])
    builder.start()
    groups.gate = threading.Event()

    assert builder.reload() is True
    assert builder.is_reloading
    assert builder.reload() is False
    assert builder.reload(blocking=True) is False

    groups.gate.set()
    assert builder.wait_for_reload(TIMEOUT)
    assert not builder.is_reloading
    assert len(groups.load_calls) == 1


def test_unchanged_directories_do_not_rebuild(make_builder, groups):
    directory = groups.add("World", {"base.zip": ["a.txt"]})
    builder = _loaded(make_builder([directory]))
    group = builder.package_groups["World"]

    assert not builder.has_package_directory_changed()
    assert builder.reload(blocking=True)

    assert builder.package_groups["World"] is group
    assert len(groups.load_calls) == 1


def test_changed_directories_rebuild(settings, make_builder, groups):
    first = groups.add("World", {"base.zip": ["a.txt"]})
    second = groups.add("Cinematics", {"movies.zip": ["intro.avi"]})
    builder = _loaded(make_builder([first]))
    old_group = builder.package_groups["World"]

    settings.set("package_directories", [first, second])
    assert builder.has_package_directory_changed()
    assert builder.reload(blocking=True)
    assert builder.wait_until_idle(TIMEOUT)

    assert sorted(builder.package_groups) == ["Cinematics", "World"]
    assert builder.package_groups["World"] is not old_group
    assert old_group not in builder.package_group_references
    assert sorted(ref.item_path for ref in builder.enumerated_references.snapshot()) == ["a.txt", "intro.avi"]


def test_directory_source_overrides_settings(make_builder, groups):
    configured = groups.add("World", {"base.zip": ["a.txt"]})
    chosen = groups.add("Other", {"other.zip": ["b.txt"]})
    builder = _loaded(make_builder([configured], directory_source=lambda: [chosen]))

    assert list(builder.package_groups) == ["Other"]


# ---------------------------------------------------------------------------
# Work submission
# ---------------------------------------------------------------------------

def test_waiting_child_runs_after_its_parent(make_builder, groups):
    directory = groups.add("World", {"base.zip": ["a\\b\\c.txt"]})
    builder = _loaded(make_builder([directory]))
    finished = _collect(builder, EnumerationFinishedEvent)

    package = _package(builder, "World", "base.zip")
    folder = _child(package, "a\\")
    nested = ItemReference(package.package_group, "base.zip", "a\\b\\", folder)

    builder.submit_work(nested)
    assert builder.scheduler.wait_queue() == [nested]
    builder.submit_work(folder)
    assert builder.wait_until_idle(TIMEOUT)

    assert [event.reference.item_path for event in finished] == ["a\\", "a\\b\\"]
    assert nested.state == ReferenceState.ENUMERATED
    assert [child.item_path for child in nested.child_references] == ["a\\b\\c.txt"]
    assert folder.child_references[0] is nested

    builder.submit_work(folder.child_references[0])
    builder.submit_work(ItemReference(package.package_group, "base.zip", "a\\b\\", folder))
    assert builder.wait_until_idle(TIMEOUT)
    assert len(finished) == 2


def test_duplicate_submissions_enumerate_once(make_builder, groups):
    directory = groups.add("World", {"base.zip": ["a\\one.txt", "a\\two.txt"]})
    builder = _loaded(make_builder([directory]))
    finished = _collect(builder, EnumerationFinishedEvent)

    folder = _child(_package(builder, "World", "base.zip"), "a\\")
    for _ in range(5):
        builder.submit_work(folder)
    assert builder.wait_until_idle(TIMEOUT)
    builder.submit_work(folder)
    assert builder.wait_until_idle(TIMEOUT)

    assert [event.reference for event in finished] == [folder]
    assert [child.item_path for child in folder.child_references] == ["a\\one.txt", "a\\two.txt"]


def test_failed_enumeration_is_reported(make_builder, groups):
    directory = groups.add("World", {"base.zip": ["a\\b.txt"]})
    builder = _loaded(make_builder([directory]))
    failed = _collect(builder, EnumerationFailedEvent)
    errors = _collect(builder, ErrorOccurredEvent)

    group = builder.package_groups["World"]
    ghost = ItemReference(group, "ghost.zip", "", builder.package_group_references[group])
    builder.submit_work(ghost)
    assert builder.wait_until_idle(TIMEOUT)

    assert len(failed) == 1
    assert failed[0].reference is ghost
    assert isinstance(failed[0].error, MissingListfileError)
    assert [type(event.error) for event in errors] == [MissingListfileError]
    assert ghost.state == ReferenceState.NOT_ENUMERATED

    folder = _child(_package(builder, "World", "base.zip"), "a\\")
    builder.submit_work(folder)
    assert builder.wait_until_idle(TIMEOUT)
    assert folder.state == ReferenceState.ENUMERATED


def test_virtual_reference_lists_every_package(make_builder, groups):
    directory = groups.add(
        "World",
        {"base.zip": ["a\\one.txt", "a\\shared.txt"], "patch.zip": ["a\\shared.txt", "a\\two.txt"]},
    )
    builder = _loaded(make_builder([directory]))
    group = builder.package_groups["World"]
    group_reference = builder.package_group_references[group]

    root = None
    for package in group_reference.child_references:
        root = builder.overlay(package, group_reference)
    assert root is not None
    assert root.state == ReferenceState.ENUMERATED
    for part in root.hard_references():
        for child in part.child_references:
            root.add_child(builder.overlay(child, root))

    assert len(root.child_references) == 1
    folder = root.child_references[0]
    assert [part.package_name for part in folder.hard_references()] == ["base.zip", "patch.zip"]
    assert builder.get_virtual_reference(folder.hard_reference) is folder

    builder.submit_work(folder)
    assert builder.wait_until_idle(TIMEOUT)

    assert folder.state == ReferenceState.ENUMERATED
    base, patch = folder.hard_references()
    assert [child.item_path for child in base.child_references] == ["a\\one.txt", "a\\shared.txt"]
    assert [child.item_path for child in patch.child_references] == ["a\\shared.txt", "a\\two.txt"]


def test_virtual_mapping_first_writer_wins(make_builder, groups):
    directory = groups.add("World", {"base.zip": ["a.txt"], "patch.zip": ["a.txt"]})
    builder = _loaded(make_builder([directory]))
    base = _child(_package(builder, "World", "base.zip"), "a.txt")
    patch = _child(_package(builder, "World", "patch.zip"), "a.txt")

    first = builder.overlay(base)
    builder.overlay(patch)
    builder.add_virtual_mapping(patch, VirtualItemReference(patch.package_group, patch))

    assert builder.get_virtual_reference(patch) is first
    assert first.display_reference is patch


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------

class CountingGroup(PackageGroup):
    """Package group that records how many listfile lookups overlap."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._lock = threading.Lock()
        self.current = 0
        self.peak = 0

    def get_listfile(self, package_name):
        with self._lock:
            self.current += 1
            self.peak = max(self.peak, self.current)
        try:
            time.sleep(0.002)
            return super().get_listfile(package_name)
        finally:
            with self._lock:
                self.current -= 1


def test_concurrency_stays_under_ceiling(make_builder, groups):
    groups.group_type = CountingGroup
    listfile = [f"d{index:03d}\\file.txt" for index in range(200)]
    directory = groups.add("World", {"base.zip": listfile})
    builder = _loaded(make_builder([directory], max_workers=2))
    failed = _collect(builder, EnumerationFailedEvent)

    package = _package(builder, "World", "base.zip")
    folders = list(package.child_references)
    assert len(folders) == 200
    for folder in folders:
        builder.submit_work(folder)
    assert builder.wait_until_idle(30)

    group = builder.package_groups["World"]
    assert 1 <= group.peak <= 2
    assert failed == []
    assert all(folder.state == ReferenceState.ENUMERATED for folder in folders)
    assert len(builder.enumerated_references) == 200 + 200


def test_idle_before_first_reload(make_builder, groups):
    builder = make_builder([groups.add("World", {"base.zip": ["a.txt"]})])
    assert builder.wait_until_idle(0.5)
