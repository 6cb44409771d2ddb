"""Path Store — the user-managed list of command search directories.

The store is an ordered, duplicate-free list of directories.  Earlier
entries shadow later ones when a command name is resolved, exactly like
the components of ``$PATH``.

It lives in two places:

    - **In memory** — the working copy the session mutates through the
      ``addToPath`` / ``removeFromPath`` builtins.
    - **On disk** — a plain text file, one directory per line, written
      back only when ``persist()`` is called.

At startup ``load()`` seeds the working copy from the file (in file
order) and then appends the inherited ``PATH`` entries that are not
already present.

Persistence is atomic: the new list is written to a temporary file in
the same directory and renamed over the old one, so a crash mid-write
leaves either the old list or the new one, never a truncated file.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from falsh.errors import PathStoreError
from falsh.logging import Logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

_SOURCE = "pathstore"


def split_search_path(value: str | None) -> list[str]:
    """Split a ``PATH``-style string into its non-empty entries."""
    if not value:
        return []
    return [entry for entry in value.split(os.pathsep) if entry]


class PathStore:
    """Ordered, duplicate-free list of search directories with a backing file."""

    def __init__(self, path_file: Path, *, logger: Logger | None = None) -> None:
        """Create an empty store backed by *path_file*.

        Args:
            path_file: The file ``load()`` reads and ``persist()`` writes.
            logger: Audit log for mutations (a private one if omitted).

        """
        self._path_file = path_file
        self._logger = logger if logger is not None else Logger()
        self._dirs: list[str] = []

    @property
    def path_file(self) -> Path:
        """Return the backing file location."""
        return self._path_file

    # -- lifecycle ---------------------------------------------------------

    def load(self, inherited: Iterable[str] | None = None) -> None:
        """Replace the working copy with the persisted list plus *inherited*.

        A missing backing file is an empty list, not an error.  Each
        newline-terminated line is one directory, taken byte for byte and
        decoded the way the OS decodes file names, so surrounding spaces and
        undecodable bytes survive a later ``persist()``.  Empty lines are
        skipped and repeated entries keep their first position.

        Args:
            inherited: Search directories from the parent environment,
                appended after the persisted ones when not already present.

        Raises:
            PathStoreError: If the backing file exists but cannot be read.

        """
        try:
            data = self._path_file.read_bytes()
        except FileNotFoundError:
            data = b""
        except OSError as e:
            msg = f"cannot read {self._path_file}: {e.strerror or e}"
            raise PathStoreError(msg) from e

        persisted = [os.fsdecode(line) for line in data.split(b"\n") if line]
        self._dirs = []
        self._extend(persisted)
        self._extend(inherited or [])
        self._logger.info(
            f"loaded {len(persisted)} persisted, {len(self._dirs)} total entries",
            source=_SOURCE,
        )

    def persist(self) -> None:
        """Atomically overwrite the backing file with the working copy.

        Raises:
            PathStoreError: If the file cannot be written.  The working
                copy is untouched and no temporary file is left behind.

        """
        target = self._path_file
        tmp_name: str | None = None
        try:
            content = b"".join(os.fsencode(directory) + b"\n" for directory in self._dirs)
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
            with os.fdopen(fd, "wb") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            Path(tmp_name).replace(target)
        except OSError as e:
            if tmp_name is not None:
                with contextlib.suppress(OSError):
                    Path(tmp_name).unlink()
            msg = f"cannot write {target}: {e.strerror or e}"
            self._logger.error(msg, source=_SOURCE)
            raise PathStoreError(msg) from e
        except UnicodeEncodeError as e:
            msg = f"cannot write {target}: {e.reason}"
            self._logger.error(msg, source=_SOURCE)
            raise PathStoreError(msg) from e
        self._logger.info(f"persisted {len(self._dirs)} entries to {target}", source=_SOURCE)

    # -- mutation ----------------------------------------------------------

    def add(self, directory: str) -> bool:
        """Append *directory* unless it is already in the list.

        The directory is not required to exist yet.

        Returns:
            True if the entry was added, False if it was already present.

        """
        if directory in self._dirs:
            self._logger.warning(f"{directory} is already in the search path", source=_SOURCE)
            return False
        self._dirs.append(directory)
        self._logger.info(f"added {directory}", source=_SOURCE)
        return True

    def remove(self, directory: str) -> None:
        """Remove *directory* from the list.

        Raises:
            PathStoreError: If *directory* is not in the list.

        """
        try:
            self._dirs.remove(directory)
        except ValueError:
            msg = f"{directory} is not in the search path"
            raise PathStoreError(msg) from None
        self._logger.info(f"removed {directory}", source=_SOURCE)

    # -- queries -----------------------------------------------------------

    def list(self) -> list[str]:
        """Return a snapshot of the entries in resolution order."""
        return list(self._dirs)

    def search_path(self) -> str:
        """Return the entries joined into a ``PATH`` value for children."""
        return os.pathsep.join(self._dirs)

    def _extend(self, directories: Iterable[str]) -> None:
        for directory in directories:
            if directory not in self._dirs:
                self._dirs.append(directory)

    def __contains__(self, directory: object) -> bool:
        """Return True if *directory* is in the list."""
        return directory in self._dirs

    def __iter__(self) -> Iterator[str]:
        """Iterate over a snapshot of the entries."""
        return iter(self.list())

    def __len__(self) -> int:
        """Return the number of entries."""
        return len(self._dirs)
