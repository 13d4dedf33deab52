"""Default configuration values for the Everlook explorer."""

from __future__ import annotations

from typing import Final

# Internal archive paths use the Windows-style separator. Directory entries
# in a listfile end with it (``"Interface\\"``), file entries never do.
PATH_SEPARATOR: Final[str] = "\\"
SUPPORTED_SEPARATORS: Final[tuple[str, ...]] = ("\\", "/")

# Each worker only lists a single directory level, so the ceiling is a
# multiple of the core count.
DEFAULT_WORKERS_PER_CORE: Final[int] = 4

# Packages that the group loader recognises inside a package directory.
ARCHIVE_SUFFIXES: Final[tuple[str, ...]] = (".zip",)
LISTFILE_SUFFIX: Final[str] = ".listfile"

# Seconds the builder waits for its loop threads when disposing.
LOOP_JOIN_TIMEOUT_SEC: Final[float] = 5.0
# Milliseconds the builder waits for in-flight workers when disposing.
WORKER_DRAIN_TIMEOUT_MS: Final[int] = 30_000
