"""Shell configuration.

A ``ShellConfig`` is an immutable bundle of the knobs that shape a
session: where the Path Store lives on disk, when it is written back,
and whether the inherited ``PATH`` seeds the search list.

Values come from keyword arguments (tests, embedding) or from the
process environment via ``ShellConfig.from_environ()``:

    - ``FALSH_PATH_FILE`` — location of the Path Store file.
    - ``FALSH_AUTOSAVE`` — persist after every path mutation (``1``/``0``).
    - ``FALSH_PERSIST_ON_EXIT`` — persist once more at shutdown.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

PATH_FILE_NAME = ".falsh_path"

_TRUE_WORDS = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS = frozenset({"0", "false", "no", "off"})


def default_path_file() -> Path:
    """Return ``~/.falsh_path``, falling back to the cwd without a home."""
    try:
        home = Path.home()
    except RuntimeError:
        home = Path()
    return home / PATH_FILE_NAME


def _parse_flag(raw: str | None, *, default: bool) -> bool:
    """Interpret an environment flag, keeping *default* for unknown words."""
    if raw is None:
        return default
    word = raw.strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    return default


@dataclass(frozen=True)
class ShellConfig:
    """Configuration for one shell session.

    Attributes:
        path_file: Backing file of the persisted Path Store.
        autosave: Persist the Path Store after each add/remove builtin.
        persist_on_exit: Persist the Path Store when the shell shuts down.
        inherit_path: Append the inherited ``PATH`` entries at load time.
        prompt_template: Prompt format; ``{cwd}`` is the working directory.

    """

    path_file: Path = field(default_factory=default_path_file)
    autosave: bool = True
    persist_on_exit: bool = False
    inherit_path: bool = True
    prompt_template: str = "{cwd}> "

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> ShellConfig:
        """Build a configuration from ``FALSH_*`` environment variables.

        Args:
            environ: Variables to read (defaults to ``os.environ``).

        Returns:
            A configuration with unset variables left at their defaults.

        """
        env = os.environ if environ is None else environ
        raw_file = env.get("FALSH_PATH_FILE")
        path_file = Path(raw_file).expanduser() if raw_file else default_path_file()
        return cls(
            path_file=path_file,
            autosave=_parse_flag(env.get("FALSH_AUTOSAVE"), default=True),
            persist_on_exit=_parse_flag(env.get("FALSH_PERSIST_ON_EXIT"), default=False),
        )
