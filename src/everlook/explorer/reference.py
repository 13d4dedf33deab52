"""Hard and virtual item references that make up the explorer tree."""

from __future__ import annotations

import threading
import weakref
from enum import IntEnum
from typing import TYPE_CHECKING, Hashable, Iterator, Optional

from ..errors import InvalidStateError

if TYPE_CHECKING:
    from ..package.group import PackageGroup


class ReferenceState(IntEnum):
    """Enumeration progress of a reference; values only ever increase."""

    NOT_ENUMERATED = 0
    ENUMERATING = 1
    ENUMERATED = 2


class ItemReference:
    """A concrete path inside one package of a package group.

    Equality and hashing only consider ``(package_group, package_name,
    item_path)`` so that an item discovered twice is the same reference.
    The parent is held weakly; the tree is owned top-down through
    :attr:`child_references`.
    """

    def __init__(
        self,
        package_group: PackageGroup,
        package_name: str = "",
        item_path: str = "",
        parent_reference: Optional[ItemReference] = None,
    ) -> None:
        self._package_group = package_group
        self._package_name = package_name
        self._item_path = item_path
        self._parent_ref = weakref.ref(parent_reference) if parent_reference is not None else None
        self._state = ReferenceState.NOT_ENUMERATED
        self.child_references: list[ItemReference] = []
        self._children: dict[Hashable, ItemReference] = {}
        self._expected: dict[Hashable, ItemReference] = {}
        self._children_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------
    @property
    def package_group(self) -> PackageGroup:
        return self._package_group

    @property
    def package_name(self) -> str:
        return self._package_name

    @property
    def item_path(self) -> str:
        return self._item_path

    @property
    def identity(self) -> tuple[Hashable, ...]:
        return (self._package_group, self._package_name, self._item_path)

    @property
    def parent_reference(self) -> Optional[ItemReference]:
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    @property
    def is_virtual(self) -> bool:
        return False

    @property
    def is_package(self) -> bool:
        """``True`` for the root reference of a package."""

        return bool(self._package_name) and not self._item_path

    @property
    def is_directory(self) -> bool:
        return not self._item_path or self._item_path[-1] in "\\/"

    @property
    def name(self) -> str:
        """Last path segment, falling back to the package or group name."""

        trimmed = self._item_path.rstrip("\\/")
        if trimmed:
            cut = max(trimmed.rfind("\\"), trimmed.rfind("/"))
            return trimmed[cut + 1:]
        return self._package_name or self._package_group.name

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def state(self) -> ReferenceState:
        return self._state

    @state.setter
    def state(self, value: ReferenceState) -> None:
        value = ReferenceState(value)
        if value < self._state:
            raise ValueError(
                f"{self!r} cannot move from {self._state.name} back to {value.name}"
            )
        self._state = value

    def reset(self) -> None:
        """Return an in-flight reference to ``NOT_ENUMERATED`` after a failure."""

        if self._state == ReferenceState.ENUMERATING:
            self._state = ReferenceState.NOT_ENUMERATED

    def hard_references(self) -> tuple[ItemReference, ...]:
        """The concrete references a worker has to list for this reference."""

        return (self,)

    # ------------------------------------------------------------------
    # Children
    # ------------------------------------------------------------------
    def add_child(self, child: ItemReference) -> Optional[ItemReference]:
        """Append *child* unless an equal reference is already present.

        If an equal reference was registered through :meth:`expect_child`,
        that object is stored instead of *child*. Returns the stored
        reference, or ``None`` when the child was already known.
        """

        key = child.identity
        with self._children_lock:
            if key in self._children:
                return None
            stored = self._expected.pop(key, child)
            self._children[key] = stored
            self.child_references.append(stored)
            return stored

    def expect_child(self, child: ItemReference) -> ItemReference:
        """Reserve *child* as the object to store once it is discovered.

        Returns the reference that represents this identity in the tree:
        the already stored child, an earlier reservation, or *child*.
        """

        key = child.identity
        with self._children_lock:
            stored = self._children.get(key)
            if stored is not None:
                return stored
            return self._expected.setdefault(key, child)

    def get_child(self, identity: Hashable) -> Optional[ItemReference]:
        with self._children_lock:
            return self._children.get(identity)

    def has_child(self, child: ItemReference) -> bool:
        with self._children_lock:
            return child.identity in self._children

    def iter_ancestors(self) -> Iterator[ItemReference]:
        parent = self.parent_reference
        while parent is not None:
            yield parent
            parent = parent.parent_reference

    # ------------------------------------------------------------------
    # Dunder helpers
    # ------------------------------------------------------------------
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ItemReference) or other.is_virtual != self.is_virtual:
            return NotImplemented
        return self.identity == other.identity

    def __hash__(self) -> int:
        return hash(self.identity)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(group={self._package_group.name!r}, "
            f"package={self._package_name!r}, path={self._item_path!r}, "
            f"state={self.state.name})"
        )


class VirtualItemReference(ItemReference):
    """Overlay for one logical path shared by several packages of a group.

    The primary :attr:`hard_reference` is the first package that registered
    the path; :attr:`overridden_hard_references` follow in registration
    order. The state is never stored: it is recomputed from the parts on
    every read.
    """

    def __init__(
        self,
        package_group: PackageGroup,
        hard_reference: ItemReference,
        parent_reference: Optional[ItemReference] = None,
    ) -> None:
        super().__init__(package_group, "", hard_reference.item_path, parent_reference)
        self.hard_reference = hard_reference
        self.overridden_hard_references: list[ItemReference] = []

    @property
    def identity(self) -> tuple[Hashable, ...]:
        return (self.package_group, None, self.item_path)

    @property
    def is_virtual(self) -> bool:
        return True

    @property
    def is_package(self) -> bool:
        return False

    @property
    def display_reference(self) -> ItemReference:
        """The part shown to the user; later-loaded packages win."""

        if self.overridden_hard_references:
            return self.overridden_hard_references[-1]
        return self.hard_reference

    def hard_references(self) -> tuple[ItemReference, ...]:
        return (self.hard_reference, *self.overridden_hard_references)

    def add_overridden(self, hard_reference: ItemReference) -> bool:
        """Register another package's reference for the same path.

        A virtual that is already ``ENUMERATED`` only accepts parts that are
        ``ENUMERATED`` too, so its state never moves backwards.
        """

        if hard_reference.is_virtual:
            raise TypeError("Only hard references can back a virtual reference")
        if hard_reference == self.hard_reference or hard_reference in self.overridden_hard_references:
            return False
        if self.state == ReferenceState.ENUMERATED and hard_reference.state != ReferenceState.ENUMERATED:
            raise InvalidStateError(
                f"{self!r} has already been listed; cannot add unlisted {hard_reference!r}"
            )
        self.overridden_hard_references.append(hard_reference)
        return True

    @property
    def state(self) -> ReferenceState:
        states = [part.state for part in self.hard_references()]
        if all(state == ReferenceState.ENUMERATED for state in states):
            return ReferenceState.ENUMERATED
        if any(state == ReferenceState.NOT_ENUMERATED for state in states):
            return ReferenceState.NOT_ENUMERATED
        return ReferenceState.ENUMERATING

    @state.setter
    def state(self, value: ReferenceState) -> None:
        value = ReferenceState(value)
        for part in self.hard_references():
            if part.state < value:
                part.state = value

    def reset(self) -> None:
        for part in self.hard_references():
            part.reset()


__all__ = ["ItemReference", "ReferenceState", "VirtualItemReference"]
