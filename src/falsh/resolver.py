"""Command resolver — map a command name to an executable file.

Resolution follows the usual Unix rules:

    - A name containing ``/`` (``./run.sh``, ``/bin/ls``) is a direct
      path.  It resolves to itself if it is an executable regular file.
    - A bare name (``ls``) is looked up in each Path Store directory in
      order; the first directory holding an executable regular file of
      that name wins.  An empty entry stands for the current directory.

The resolver never caches: the Path Store may change between any two
commands, and a directory added before it exists may be populated later.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from falsh.errors import CommandNotFoundError
from falsh.logging import Logger

if TYPE_CHECKING:
    from collections.abc import Iterator

    from falsh.pathstore import PathStore

_SOURCE = "resolver"


def is_executable(path: str) -> bool:
    """Return True if *path* is a regular file the user may execute."""
    return os.path.isfile(path) and os.access(path, os.X_OK)


class CommandResolver:
    """Resolve command names against a shared Path Store."""

    def __init__(self, store: PathStore, *, logger: Logger | None = None) -> None:
        """Create a resolver reading from *store*.

        Args:
            store: The session's Path Store (shared, never copied).
            logger: Audit log for resolutions.

        """
        self._store = store
        self._logger = logger if logger is not None else Logger()

    def resolve(self, name: str) -> str:
        """Return the executable path *name* refers to.

        Raises:
            CommandNotFoundError: If nothing executable matches.

        """
        path = next(self._candidates(name), None)
        if path is not None:
            self._logger.debug(f"{name} -> {path}", source=_SOURCE)
            return path
        self._logger.warning(f"{name}: command not found", source=_SOURCE)
        raise CommandNotFoundError(name)

    def resolve_all(self, name: str) -> list[str]:
        """Return every executable *name* could refer to, in shadowing order."""
        return list(self._candidates(name))

    def _candidates(self, name: str) -> Iterator[str]:
        if not name:
            return
        if os.sep in name:
            if is_executable(name):
                yield name
            return
        for directory in self._store.list():
            path = os.path.join(directory or os.curdir, name)
            if is_executable(path):
                yield path
