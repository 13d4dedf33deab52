"""Background workers used by the explorer builder."""

from .enumeration_worker import EnumerationWorker

__all__ = ["EnumerationWorker"]
