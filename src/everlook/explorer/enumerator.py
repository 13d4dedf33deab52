"""One-level expansion of hard references and the shared result buffer."""

from __future__ import annotations

import threading
from typing import Iterable, List

from ..config import PATH_SEPARATOR
from ..errors import MissingListfileError
from .reference import ItemReference, ReferenceState


class EnumeratedReferences:
    """Thread-safe, append-only buffer of newly discovered references.

    Each worker appends its discoveries as one batch so that the order inside
    a directory is preserved; batches of different workers may interleave.
    The UI periodically calls :meth:`drain` to take everything collected so far.
    """

    def __init__(self) -> None:
        self._items: List[ItemReference] = []
        self._lock = threading.Lock()

    def extend(self, references: Iterable[ItemReference]) -> None:
        batch = list(references)
        if not batch:
            return
        with self._lock:
            self._items.extend(batch)

    def drain(self) -> List[ItemReference]:
        with self._lock:
            items, self._items = self._items, []
        return items

    def snapshot(self) -> List[ItemReference]:
        with self._lock:
            return list(self._items)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


def enumerate_hard_reference(
    hard_reference: ItemReference,
    separator: str = PATH_SEPARATOR,
) -> List[ItemReference]:
    """List the immediate children of *hard_reference*.

    New directory children start out ``NOT_ENUMERATED``; new file children
    are ``ENUMERATED`` straight away because they have nothing to list.
    Children already known to the reference are not created twice, and a
    child reserved with :meth:`ItemReference.expect_child` is stored as that
    same object. The new children are appended to
    ``hard_reference.child_references`` and returned in listfile order. The
    state of *hard_reference* itself is left to the caller.

    Raises :class:`MissingListfileError` when the package has no listfile.
    """

    group = hard_reference.package_group
    listfile = group.get_listfile(hard_reference.package_name)
    if listfile is None:
        raise MissingListfileError(
            f"No listfile was found for package {hard_reference.package_name!r} "
            f"in group {group.name!r}"
        )

    prefix = hard_reference.item_path
    folded_prefix = prefix.casefold()
    discovered: List[ItemReference] = []

    for file_path in listfile:
        # Fold only the leading slice; casefold() may change the length.
        if file_path[:len(prefix)].casefold() != folded_prefix:
            continue

        remainder = file_path[len(prefix):]
        if not remainder:
            # The reference's own directory entry.
            continue

        slash_index = remainder.find(separator)
        is_file = slash_index < 0
        segment = remainder if is_file else remainder[:slash_index + 1]
        child = ItemReference(group, hard_reference.package_name, prefix + segment, hard_reference)
        if is_file:
            child.state = ReferenceState.ENUMERATED

        stored = hard_reference.add_child(child)
        if stored is None:
            continue
        if is_file and stored.state != ReferenceState.ENUMERATED:
            stored.state = ReferenceState.ENUMERATED
        discovered.append(stored)

    return discovered


__all__ = ["EnumeratedReferences", "enumerate_hard_reference"]
