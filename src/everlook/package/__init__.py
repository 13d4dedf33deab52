"""Package group collaborator consumed by the explorer."""

from .group import PackageGroup, normalise_listfile

__all__ = ["PackageGroup", "normalise_listfile"]
