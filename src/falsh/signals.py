"""Terminal ownership and interrupt forwarding for running pipelines.

Every pipeline runs in its own **process group**, with the first stage
as the group leader.  Two things follow from that:

    - **Terminal ownership.**  Only the terminal's *foreground* process
      group may read from it; anyone else who tries is stopped with
      SIGTTIN.  While a pipeline runs, ``TerminalControl`` hands the
      terminal to the pipeline's group and takes it back afterwards.
      Taking it back from the background sends the shell SIGTTOU, which
      is ignored for the duration of the ``tcsetpgrp`` call.
    - **Interrupts.**  Ctrl+C on a terminal reaches the foreground group
      (the pipeline) directly.  A SIGINT that reaches the shell instead
      — no terminal, or sent with ``kill`` — is forwarded to the
      pipeline's group by ``InterruptForwarder``, so the pipeline is
      aborted and the shell survives to wait for it.
"""

from __future__ import annotations

import contextlib
import os
import signal
import sys
import threading
from typing import TYPE_CHECKING, Any

from falsh.logging import Logger

if TYPE_CHECKING:
    from collections.abc import Iterator
    from types import FrameType, TracebackType

_SOURCE = "signals"


@contextlib.contextmanager
def _ignoring(signum: int) -> Iterator[None]:
    previous = signal.signal(signum, signal.SIG_IGN)
    try:
        yield
    finally:
        signal.signal(signum, previous)


def _in_main_thread() -> bool:
    return threading.current_thread() is threading.main_thread()


class TerminalControl:
    """Move the controlling terminal between the shell and a pipeline.

    Disabled (every call a no-op) when standard input is not a terminal,
    when the shell is not in the terminal's foreground group, or when
    running outside the main thread.
    """

    def __init__(self, tty_fd: int | None = None, *, logger: Logger | None = None) -> None:
        """Create terminal control for *tty_fd* (None disables it).

        Args:
            tty_fd: Descriptor of the controlling terminal.
            logger: The shell's audit log.

        """
        self._tty_fd = tty_fd
        self._logger = logger if logger is not None else Logger()

    @classmethod
    def for_stdin(cls, *, logger: Logger | None = None) -> TerminalControl:
        """Return terminal control for the shell's standard input."""
        try:
            fd = sys.stdin.fileno()
        except (AttributeError, OSError, ValueError):
            return cls(None, logger=logger)
        if not os.isatty(fd) or not _in_main_thread():
            return cls(None, logger=logger)
        try:
            foreground = os.tcgetpgrp(fd) == os.getpgrp()
        except OSError:
            foreground = False
        return cls(fd if foreground else None, logger=logger)

    @property
    def enabled(self) -> bool:
        """Return True if the shell owns a terminal it can hand over."""
        return self._tty_fd is not None

    def give(self, pgid: int) -> None:
        """Make *pgid* the terminal's foreground process group."""
        self._set_foreground(pgid)

    def take(self) -> None:
        """Make the shell's own process group the foreground again."""
        self._set_foreground(os.getpgrp())

    @contextlib.contextmanager
    def foreground(self, pgid: int | None) -> Iterator[None]:
        """Hand the terminal to *pgid* for the duration of the block."""
        if pgid is None or not self.enabled:
            yield
            return
        self.give(pgid)
        try:
            yield
        finally:
            self.take()

    def _set_foreground(self, pgid: int) -> None:
        if self._tty_fd is None:
            return
        try:
            with _ignoring(signal.SIGTTOU):
                os.tcsetpgrp(self._tty_fd, pgid)
        except OSError as e:
            self._logger.warning(
                f"cannot move process group {pgid} to the foreground: {e.strerror}",
                source=_SOURCE,
            )


class InterruptForwarder:
    """Forward SIGINT received by the shell to a pipeline's process group.

    Use as a context manager around spawning and waiting.  The target
    group is only known once the first stage has started, so an
    interrupt that arrives earlier is held and delivered as soon as
    ``target`` is set.
    """

    def __init__(self, *, logger: Logger | None = None) -> None:
        """Create an inactive forwarder."""
        self._logger = logger if logger is not None else Logger()
        self._pgid: int | None = None
        self._pending: list[int] = []
        self._previous: Any = None
        self._installed = False

    @property
    def target(self) -> int | None:
        """Return the process group interrupts are forwarded to."""
        return self._pgid

    @target.setter
    def target(self, pgid: int) -> None:
        self._pgid = pgid
        pending, self._pending = self._pending, []
        for signum in pending:
            self._forward(signum)

    @property
    def pending(self) -> list[int]:
        """Return interrupts received before a target was set."""
        return list(self._pending)

    def __enter__(self) -> InterruptForwarder:
        """Install the SIGINT handler (main thread only)."""
        if _in_main_thread():
            self._previous = signal.signal(signal.SIGINT, self._handle)
            self._installed = True
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Restore the previous SIGINT handler."""
        if self._installed:
            previous = signal.SIG_DFL if self._previous is None else self._previous
            signal.signal(signal.SIGINT, previous)
            self._installed = False

    def _handle(self, signum: int, _frame: FrameType | None) -> None:
        if self._pgid is None:
            self._pending.append(signum)
            return
        self._forward(signum)

    def _forward(self, signum: int) -> None:
        if self._pgid is None:
            return
        self._logger.info(
            f"forwarding {signal.Signals(signum).name} to process group {self._pgid}",
            source=_SOURCE,
        )
        with contextlib.suppress(ProcessLookupError, PermissionError):
            os.killpg(self._pgid, signum)
