"""Child environment — the variables every spawned stage inherits.

In Unix, every process receives a block of ``KEY=VALUE`` strings from
its parent.  The shell keeps its own copy of that block, seeded from the
environment it was started with and modified by ``export``/``unset``.
Spawned stages receive a snapshot of it; changes a child makes are
never seen by the shell.

``PATH`` is the one variable the shell does not keep here: the search
path children see is materialised from the Path Store at spawn time, so
the store stays the single source of truth for command lookup.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

PATH_VARIABLE = "PATH"


class Environment:
    """A key-value store for the variables exported to child processes.

    Each instance is an independent copy — modifying one does not
    affect any other, nor the shell's own ``os.environ``.
    """

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        """Create an environment, optionally pre-populated.

        Args:
            initial: Starting variables (copied, not referenced).

        """
        self._vars: dict[str, str] = dict(initial) if initial else {}

    def get(self, key: str, default: str | None = None) -> str | None:
        """Return the value for *key*, or *default* if not set."""
        return self._vars.get(key, default)

    def set(self, key: str, value: str) -> None:
        """Set *key* to *value* (creates or overwrites)."""
        self._vars[key] = value

    def delete(self, key: str) -> None:
        """Remove *key* from the environment.

        Raises:
            KeyError: If *key* does not exist.

        """
        del self._vars[key]

    def items(self) -> list[tuple[str, str]]:
        """Return all (key, value) pairs."""
        return list(self._vars.items())

    def for_child(self, search_path: str) -> dict[str, str]:
        """Return the environment block for a spawned stage.

        Args:
            search_path: The ``PATH`` value materialised from the Path Store.

        Returns:
            A fresh dict suitable for ``subprocess.Popen(env=...)``.

        """
        block = dict(self._vars)
        block[PATH_VARIABLE] = search_path
        return block

    def __contains__(self, key: object) -> bool:
        """Return True if *key* is set."""
        return key in self._vars

    def __len__(self) -> int:
        """Return the number of variables."""
        return len(self._vars)
