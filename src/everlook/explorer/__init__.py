"""Lazy, asynchronous enumeration of package groups."""

from .builder import ExplorerBuilder, compute_worker_ceiling
from .enumerator import EnumeratedReferences, enumerate_hard_reference
from .reference import ItemReference, ReferenceState, VirtualItemReference
from .scheduler import SubmitOutcome, WorkScheduler, WorkUnit
from .virtual_mapping import VirtualMappingTable

__all__ = [
    "EnumeratedReferences",
    "ExplorerBuilder",
    "ItemReference",
    "ReferenceState",
    "SubmitOutcome",
    "VirtualItemReference",
    "VirtualMappingTable",
    "WorkScheduler",
    "WorkUnit",
    "compute_worker_ceiling",
    "enumerate_hard_reference",
]
