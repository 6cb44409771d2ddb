"""Shell audit log.

The logger records structured entries for the events the core performs
on the user's behalf: processes spawned and reaped, builtins run, search
directories added or removed, and errors reported.  It is the shell's
equivalent of a ``dmesg`` buffer and is printed by the ``log`` builtin.

- **LogLevel** — severity levels ordered for filtering (DEBUG < ERROR).
- **LogEntry** — a single structured record (level, message, source, pid).
- **Logger** — an append-only log with filtering and clearing.

Design choices:
    - **IntEnum for levels** so they compare naturally with ``<``.
    - **Frozen dataclass for entries** — log records are immutable.
    - **One logger per shell** — the Path Store, resolver, supervisor
      and builtins all receive the shell's logger, so the whole session
      shares a single ordered trail.
"""

from dataclasses import dataclass
from enum import IntEnum


class LogLevel(IntEnum):
    """Severity levels for log entries."""

    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3


@dataclass(frozen=True)
class LogEntry:
    """A single structured log record.

    Attributes:
        level: The severity of this event.
        message: A human-readable description of what happened.
        source: The component that generated the event (e.g. "supervisor").
        pid: The child process the event concerns, if any.

    """

    level: LogLevel
    message: str
    source: str
    pid: int | None = None

    def __str__(self) -> str:
        """Format as ``[LEVEL] source: message`` with an optional pid."""
        where = self.source if self.pid is None else f"{self.source}[{self.pid}]"
        return f"[{self.level.name}] {where}: {self.message}"


class Logger:
    """Append-only log buffer with filtering."""

    def __init__(self) -> None:
        """Create an empty logger."""
        self._entries: list[LogEntry] = []

    @property
    def entries(self) -> list[LogEntry]:
        """Return all log entries in chronological order."""
        return list(self._entries)

    def log(
        self,
        level: LogLevel,
        message: str,
        *,
        source: str,
        pid: int | None = None,
    ) -> None:
        """Append a new entry to the log.

        Args:
            level: Severity of the event.
            message: Human-readable event description.
            source: Component that generated the event.
            pid: Child process associated with the event.

        """
        self._entries.append(LogEntry(level=level, message=message, source=source, pid=pid))

    def debug(self, message: str, *, source: str, pid: int | None = None) -> None:
        """Append a DEBUG entry."""
        self.log(LogLevel.DEBUG, message, source=source, pid=pid)

    def info(self, message: str, *, source: str, pid: int | None = None) -> None:
        """Append an INFO entry."""
        self.log(LogLevel.INFO, message, source=source, pid=pid)

    def warning(self, message: str, *, source: str, pid: int | None = None) -> None:
        """Append a WARNING entry."""
        self.log(LogLevel.WARNING, message, source=source, pid=pid)

    def error(self, message: str, *, source: str, pid: int | None = None) -> None:
        """Append an ERROR entry."""
        self.log(LogLevel.ERROR, message, source=source, pid=pid)

    def filter(
        self,
        *,
        min_level: LogLevel | None = None,
        source: str | None = None,
    ) -> list[LogEntry]:
        """Return entries matching the given criteria.

        Args:
            min_level: If set, only return entries at or above this level.
            source: If set, only return entries from this source.

        Returns:
            A filtered list of log entries.

        """
        result = self._entries
        if min_level is not None:
            result = [e for e in result if e.level >= min_level]
        if source is not None:
            result = [e for e in result if e.source == source]
        return result if result is not self._entries else list(result)
