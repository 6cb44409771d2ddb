"""Error taxonomy for the command-execution core.

Every failure the core can report is a subclass of ``ShellError``.  The
shell catches these at its boundary and turns them into a one-line
message plus an exit status, so a malformed command never takes the
shell itself down.

The hierarchy:
    - **ShellSyntaxError** — malformed quoting, operators or redirection
      placement.  Raised before any process exists.
    - **CommandNotFoundError** — a stage's command name resolved to
      nothing.  Only that stage aborts.
    - **SpawnError** — the operating system refused to start a stage.
      Treated like ``CommandNotFoundError`` for the aggregate result.
    - **RedirectionError** — a ``<``/``>``/``>>`` target could not be
      opened.  Aborts the whole pipeline before anything is spawned.
    - **PathStoreError** — duplicate or missing search directory, or an
      unwritable store file.
    - **UnsupportedError** — a configuration the core deliberately
      rejects (a builtin inside a multi-stage pipeline).
"""

# Exit statuses for stages that never ran (bash conventions).
STATUS_NOT_FOUND = 127
STATUS_CANNOT_EXECUTE = 126

# Exit statuses for errors detected by the shell itself.
STATUS_FAILURE = 1
STATUS_USAGE = 2

# A line abandoned by Ctrl+C before its pipeline ran (128 + SIGINT).
STATUS_INTERRUPTED = 130


class ShellError(Exception):
    """Base class for every error the core reports to the user."""

    status: int = STATUS_FAILURE


class ShellSyntaxError(ShellError):
    """Raise when a command line cannot be tokenized or parsed."""

    status = STATUS_USAGE


class UnsupportedError(ShellError):
    """Raise when a command line uses a deliberately unsupported shape."""

    status = STATUS_USAGE


class CommandNotFoundError(ShellError):
    """Raise when a command name matches no executable."""

    status = STATUS_NOT_FOUND

    def __init__(self, name: str) -> None:
        """Create the error for the command *name*."""
        super().__init__(f"{name}: command not found")
        self.name = name


class SpawnError(ShellError):
    """Raise when the operating system refuses to create a process."""

    status = STATUS_CANNOT_EXECUTE

    def __init__(self, name: str, reason: str) -> None:
        """Create the error for the command *name* with an OS *reason*."""
        super().__init__(f"{name}: {reason}")
        self.name = name
        self.reason = reason


class RedirectionError(ShellError):
    """Raise when a redirection target cannot be opened."""

    def __init__(self, path: str, reason: str) -> None:
        """Create the error for the file *path* with an OS *reason*."""
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class PathStoreError(ShellError):
    """Raise when a Path Store operation cannot be completed."""
