"""Package groups: named sets of packages sharing one browsable namespace."""

from __future__ import annotations

import zipfile
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Sequence

from ..config import ARCHIVE_SUFFIXES, LISTFILE_SUFFIX, PATH_SEPARATOR
from ..errors import PackageLoadError
from ..utils.logging import get_logger

LOGGER = get_logger(__name__)


def normalise_listfile(entries: Iterable[str], separator: str = PATH_SEPARATOR) -> list[str]:
    """Return *entries* with unified separators, de-duplicated and sorted.

    Sorting is case-insensitive so that a directory always precedes the
    entries stored beneath it.
    """

    foreign = "/" if separator == "\\" else "\\"
    seen: set[str] = set()
    paths: list[str] = []
    for raw in entries:
        entry = raw.strip().replace(foreign, separator).lstrip(separator)
        if not entry or entry in seen:
            continue
        seen.add(entry)
        paths.append(entry)
    paths.sort(key=lambda item: (item.casefold(), item))
    return paths


class PackageGroup:
    """Immutable mapping of package name to its ordered listfile.

    A package whose listfile could not be read maps to ``None``; such packages
    are visible to callers but are never registered by the explorer builder.
    Groups compare and hash by identity because two loads of the same folder
    are different generations of the tree.
    """

    def __init__(
        self,
        name: str,
        path: Path | None = None,
        package_listfiles: Mapping[str, Optional[Sequence[str]]] | None = None,
    ) -> None:
        self._name = name
        self._path = path
        listfiles = {
            package: (tuple(paths) if paths is not None else None)
            for package, paths in (package_listfiles or {}).items()
        }
        self._listfiles: Mapping[str, Optional[tuple[str, ...]]] = MappingProxyType(listfiles)

    @property
    def name(self) -> str:
        return self._name

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def package_listfiles(self) -> Mapping[str, Optional[tuple[str, ...]]]:
        """Read-only view of every package, readable or not, in load order."""

        return self._listfiles

    def package_names(self) -> list[str]:
        """Names of the packages whose listfile is available, in load order."""

        return [name for name, paths in self._listfiles.items() if paths is not None]

    def get_listfile(self, package_name: str) -> Optional[tuple[str, ...]]:
        """Return the ordered paths of *package_name* or ``None``."""

        return self._listfiles.get(package_name)

    def __repr__(self) -> str:
        return f"PackageGroup(name={self._name!r}, packages={len(self._listfiles)})"

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    @classmethod
    def from_directory(cls, directory: Path, separator: str = PATH_SEPARATOR) -> PackageGroup:
        """Build a group from the packages stored directly in *directory*.

        ``*.zip`` archives contribute their member names and plain-text
        ``*.listfile`` files contribute one path per line. Nothing but the
        listing is read.
        """

        directory = Path(directory)
        if not directory.is_dir():
            raise PackageLoadError(f"Package directory does not exist: {directory}")

        try:
            candidates = sorted(
                (entry for entry in directory.iterdir() if entry.is_file()),
                key=lambda entry: entry.name.casefold(),
            )
        except OSError as exc:
            raise PackageLoadError(f"Cannot list {directory}: {exc}") from exc

        listfiles: dict[str, Optional[list[str]]] = {}
        for entry in candidates:
            suffix = entry.suffix.lower()
            if suffix in ARCHIVE_SUFFIXES:
                listfiles[entry.name] = _read_archive_listing(entry, separator)
            elif suffix == LISTFILE_SUFFIX:
                listfiles[entry.stem] = _read_plain_listfile(entry, separator)

        LOGGER.debug("Loaded %d packages from %s", len(listfiles), directory)
        return cls(directory.name, directory, listfiles)


def _read_archive_listing(path: Path, separator: str) -> Optional[list[str]]:
    try:
        with zipfile.ZipFile(path) as archive:
            names = archive.namelist()
    except (OSError, zipfile.BadZipFile) as exc:
        LOGGER.warning("Skipping unreadable package %s: %s", path, exc)
        return None
    return normalise_listfile(names, separator)


def _read_plain_listfile(path: Path, separator: str) -> Optional[list[str]]:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        LOGGER.warning("Skipping unreadable listfile %s: %s", path, exc)
        return None
    return normalise_listfile(text.splitlines(), separator)


__all__ = ["PackageGroup", "normalise_listfile"]
