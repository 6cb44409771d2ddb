"""The shell — turn one line of input into a finished command.

``Shell.execute(line)`` runs the whole core in order:

    line → tokenize → parse (with glob expansion) → supervise → result

The shell owns the session state that outlives a single line — the
Path Store, the child environment and the audit log — and hands the
*same* objects to the resolver, the builtins and the supervisor, so a
``cd`` or ``addToPath`` is seen by the very next command.

Design choices:
    - **Errors never escape ``execute``.**  Every ``ShellError`` becomes
      a one-line ``falsh: ...`` message on stderr and an exit status.
      Only the ``exit`` builtin ends the session, and it does so by
      setting ``exit_requested`` on the result, not by killing the
      process, so callers decide how to leave.
    - **Ctrl+C abandons the line.**  A ``KeyboardInterrupt`` raised
      before the pipeline is running ends the line with status 130 and
      the session carries on.
    - **The caller owns I/O.**  The shell reads nothing itself; a line
      editor (see ``falsh.repl``) feeds it one line at a time.
"""

from __future__ import annotations

import os
import sys
from enum import StrEnum
from typing import TYPE_CHECKING, TextIO

from falsh.builtins import BuiltinDispatcher, ShellExit
from falsh.config import ShellConfig
from falsh.env import PATH_VARIABLE, Environment
from falsh.errors import STATUS_INTERRUPTED, PathStoreError, ShellError
from falsh.lexer import End, Word, tokenize
from falsh.logging import Logger
from falsh.parser import expand_word, parse
from falsh.pathstore import PathStore, split_search_path
from falsh.resolver import CommandResolver
from falsh.signals import TerminalControl
from falsh.supervisor import ExecutionResult, ProcessSupervisor

if TYPE_CHECKING:
    from collections.abc import Mapping

_SOURCE = "shell"


class ShellState(StrEnum):
    """Lifecycle of a shell session."""

    RUNNING = "running"
    SHUTDOWN = "shutdown"


class Shell:
    """Command interpreter for one interactive session."""

    def __init__(
        self,
        *,
        config: ShellConfig | None = None,
        environ: Mapping[str, str] | None = None,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
        terminal: TerminalControl | None = None,
    ) -> None:
        """Create a shell and load its Path Store.

        Args:
            config: Session configuration (read from ``FALSH_*`` variables
                if omitted).
            environ: Environment the session starts from (``os.environ``
                if omitted).  Its ``PATH`` seeds the Path Store.
            stdout: Stream for builtin output (``sys.stdout`` if omitted).
            stderr: Stream for diagnostics (``sys.stderr`` if omitted).
            terminal: Terminal hand-over for pipelines (disabled if omitted).

        Raises:
            PathStoreError: If the Path Store file exists but is unreadable.

        """
        self._config = config if config is not None else ShellConfig.from_environ()
        self._out = stdout
        self._err = stderr
        self._logger = Logger()
        self._env = Environment(initial=os.environ if environ is None else environ)

        inherited = split_search_path(self._env.get(PATH_VARIABLE))
        if PATH_VARIABLE in self._env:
            self._env.delete(PATH_VARIABLE)

        self._store = PathStore(self._config.path_file, logger=self._logger)
        self._store.load(inherited if self._config.inherit_path else None)

        self._resolver = CommandResolver(self._store, logger=self._logger)
        self._builtins = BuiltinDispatcher(
            store=self._store,
            resolver=self._resolver,
            env=self._env,
            config=self._config,
            logger=self._logger,
        )
        self._supervisor = ProcessSupervisor(
            resolver=self._resolver,
            store=self._store,
            env=self._env,
            builtins=self._builtins,
            logger=self._logger,
            terminal=terminal,
            stdout=stdout,
            stderr=stderr,
        )
        self._state = ShellState.RUNNING
        self._last_status = 0
        self._logger.info("session started", source=_SOURCE)

    # -- accessors -------------------------------------------------------------

    @property
    def config(self) -> ShellConfig:
        """Return the session configuration."""
        return self._config

    @property
    def path_store(self) -> PathStore:
        """Return the session's Path Store."""
        return self._store

    @property
    def resolver(self) -> CommandResolver:
        """Return the command resolver."""
        return self._resolver

    @property
    def environment(self) -> Environment:
        """Return the variables exported to child processes."""
        return self._env

    @property
    def logger(self) -> Logger:
        """Return the session audit log."""
        return self._logger

    @property
    def builtin_names(self) -> frozenset[str]:
        """Return the names of the builtin commands."""
        return self._builtins.names

    @property
    def state(self) -> ShellState:
        """Return whether the session is running."""
        return self._state

    @property
    def last_status(self) -> int:
        """Return the exit status of the most recent command line."""
        return self._last_status

    @property
    def stderr(self) -> TextIO:
        """Return the diagnostics stream."""
        return self._err if self._err is not None else sys.stderr

    # -- execution -------------------------------------------------------------

    def execute(self, line: str) -> ExecutionResult:
        """Run one command line.

        A blank or comment-only line does nothing and returns status 0
        without changing ``last_status``.  Ctrl+C while the line is
        being tokenized, expanded or parsed abandons it with status 130.

        Args:
            line: The raw line from the line editor.

        Returns:
            The aggregate result; ``exit_requested`` is set after ``exit``.

        """
        if self._state is not ShellState.RUNNING:
            msg = "Shell has been shut down"
            raise RuntimeError(msg)

        try:
            tokens = tokenize(line)
            if isinstance(tokens[0], End):
                return ExecutionResult()
            pipeline = parse(tokens, expander=self._expand, builtins=self._builtins.names)
            result = self._supervisor.run(pipeline)
        except ShellExit as e:
            self._logger.info(f"exit requested with status {e.status}", source=_SOURCE)
            self.shutdown()
            return self._finish(ExecutionResult(status=e.status, exit_requested=True))
        except ShellError as e:
            self._report(str(e))
            return self._finish(ExecutionResult(status=e.status, error=str(e)))
        except KeyboardInterrupt:
            self._logger.warning("line interrupted", source=_SOURCE)
            return self._finish(ExecutionResult(status=STATUS_INTERRUPTED))

        for failure in result.failures:
            self._report(failure.reason)
        return self._finish(result)

    def shutdown(self) -> None:
        """End the session, persisting the Path Store if configured to."""
        if self._state is ShellState.SHUTDOWN:
            return
        if self._config.persist_on_exit:
            try:
                self._store.persist()
            except PathStoreError as e:
                self._report(str(e))
        self._state = ShellState.SHUTDOWN
        self._logger.info("session ended", source=_SOURCE)

    # -- helpers ---------------------------------------------------------------

    def _expand(self, word: Word) -> list[str]:
        return expand_word(word, cwd=os.getcwd())

    def _finish(self, result: ExecutionResult) -> ExecutionResult:
        self._last_status = result.status
        return result

    def _report(self, message: str) -> None:
        self._logger.error(message, source=_SOURCE)
        print(f"falsh: {message}", file=self.stderr)
        self.stderr.flush()
