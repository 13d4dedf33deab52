"""Per-group table mapping item paths to their virtual overlay references."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Dict, Optional

from .reference import ItemReference, VirtualItemReference

if TYPE_CHECKING:
    from ..package.group import PackageGroup


class VirtualMappingTable:
    """Hold at most one :class:`VirtualItemReference` per ``(group, path)``."""

    def __init__(self) -> None:
        self._mappings: Dict[PackageGroup, Dict[str, VirtualItemReference]] = {}
        self._lock = threading.Lock()

    def add(self, hard_reference: ItemReference, virtual_reference: VirtualItemReference) -> bool:
        """Register *virtual_reference* for the hard reference's path.

        The first registration for a path wins; later calls return ``False``
        and leave the table untouched.
        """

        with self._lock:
            group_mapping = self._mappings.setdefault(hard_reference.package_group, {})
            if hard_reference.item_path in group_mapping:
                return False
            group_mapping[hard_reference.item_path] = virtual_reference
            return True

    def get(self, hard_reference: ItemReference) -> Optional[VirtualItemReference]:
        """Return the overlay for *hard_reference*, or ``None`` when there is none."""

        with self._lock:
            group_mapping = self._mappings.get(hard_reference.package_group)
            if group_mapping is None:
                return None
            return group_mapping.get(hard_reference.item_path)

    def overlay(
        self,
        hard_reference: ItemReference,
        parent_reference: Optional[ItemReference] = None,
    ) -> VirtualItemReference:
        """Return the overlay for *hard_reference*, creating or extending it."""

        with self._lock:
            group_mapping = self._mappings.setdefault(hard_reference.package_group, {})
            virtual = group_mapping.get(hard_reference.item_path)
            if virtual is None:
                virtual = VirtualItemReference(
                    hard_reference.package_group,
                    hard_reference,
                    parent_reference or hard_reference.parent_reference,
                )
                group_mapping[hard_reference.item_path] = virtual
            else:
                virtual.add_overridden(hard_reference)
            return virtual

    def clear(self) -> None:
        with self._lock:
            self._mappings.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(len(mapping) for mapping in self._mappings.values())


__all__ = ["VirtualMappingTable"]
