"""falsh — the command-execution core of an interactive shell.

Re-exports public symbols so callers can write::

    from falsh import Shell, ShellConfig
"""

from falsh.config import ShellConfig
from falsh.errors import (
    CommandNotFoundError,
    PathStoreError,
    RedirectionError,
    ShellError,
    ShellSyntaxError,
    SpawnError,
    UnsupportedError,
)
from falsh.pathstore import PathStore
from falsh.resolver import CommandResolver
from falsh.shell import Shell, ShellState
from falsh.supervisor import ExecutionResult, StageFailure

__all__ = [
    "CommandNotFoundError",
    "CommandResolver",
    "ExecutionResult",
    "PathStore",
    "PathStoreError",
    "RedirectionError",
    "Shell",
    "ShellConfig",
    "ShellError",
    "ShellState",
    "ShellSyntaxError",
    "SpawnError",
    "StageFailure",
    "UnsupportedError",
]
