"""Process supervisor — run a parsed pipeline as real processes.

For a pipeline of N external stages the supervisor:

    1. Opens the redirection files.  A failure here aborts the whole
       pipeline before anything is spawned, so stream wiring is always
       complete before the first process starts.
    2. Creates exactly N - 1 pipes.
    3. Resolves and spawns every stage with ``subprocess.Popen``, bound
       to its pipe ends / redirection files.  Unbound streams (and every
       stage's stderr) inherit the shell's own.
    4. Closes the shell's copy of each descriptor as soon as the stage
       it was meant for has been spawned (or has failed to spawn).  A
       forgotten write end would keep the next stage waiting for an EOF
       that never comes.
    5. Waits for every spawned process and collects its exit status.

A stage that cannot start (unknown command, or the OS refuses) is
recorded as a failure; its siblings still run and are still waited
for, so no zombies are left behind.  The pipe ends of a failed stage are
closed like any other, which gives its neighbours EOF / SIGPIPE.

Every pipeline runs in its own process group (the first stage to start
is the leader).  While it runs, the terminal belongs to that group and
SIGINT reaching the shell is forwarded to it (see ``falsh.signals``).

A single builtin stage is run in-process through the Builtin
Dispatcher, with its output sent to the redirection file if there is
one.
"""

from __future__ import annotations

import contextlib
import os
import signal
import subprocess
import sys
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TextIO

from falsh.errors import (
    CommandNotFoundError,
    RedirectionError,
    SpawnError,
    UnsupportedError,
)
from falsh.logging import Logger
from falsh.signals import InterruptForwarder, TerminalControl

if TYPE_CHECKING:
    from falsh.builtins import BuiltinDispatcher
    from falsh.env import Environment
    from falsh.parser import OutputRedirect, Pipeline, Stage
    from falsh.pathstore import PathStore
    from falsh.resolver import CommandResolver

_SOURCE = "supervisor"
_SIGNAL_STATUS_BASE = 128
_FILE_MODE = 0o666


@dataclass(frozen=True)
class StageFailure:
    """A stage that never started.

    Attributes:
        index: Position of the stage in the pipeline.
        name: The stage's command name.
        reason: One-line description for the user.
        status: Exit status reported for the stage (127 or 126).

    """

    index: int
    name: str
    reason: str
    status: int

    def __str__(self) -> str:
        """Return the user-facing reason."""
        return self.reason


@dataclass
class ExecutionResult:
    """The outcome of running one command line.

    Attributes:
        status: The last stage's exit status, or the non-start status of
            the first stage that failed to start.
        stage_statuses: Exit status per stage in stage order; None for a
            stage that never started.
        pids: Process ids of the spawned stages, in spawn order.
        pipe_count: Number of inter-stage pipes created.
        failures: Stages that failed to start.
        exit_requested: True if the ``exit`` builtin ran.
        error: Message of an error that stopped the line before it ran.

    """

    status: int = 0
    stage_statuses: list[int | None] = field(default_factory=list)
    pids: list[int] = field(default_factory=list)
    pipe_count: int = 0
    failures: list[StageFailure] = field(default_factory=list)
    exit_requested: bool = False
    error: str | None = None

    @property
    def failed_to_start(self) -> bool:
        """Return True if any stage failed to start."""
        return bool(self.failures)

    @property
    def failed_stage(self) -> str | None:
        """Return the name of the first stage that failed to start."""
        return self.failures[0].name if self.failures else None


def shell_status(returncode: int) -> int:
    """Convert a ``Popen`` return code to a shell exit status.

    A process killed by signal N reports ``-N``; shells report ``128 + N``.
    """
    if returncode < 0:
        return _SIGNAL_STATUS_BASE - returncode
    return returncode


class _Descriptors:
    """The descriptors the shell holds for one pipeline run.

    Each descriptor is closed exactly once, either when it has been
    handed to its stage or by ``close_all()`` on the way out.
    """

    def __init__(self) -> None:
        self._open: set[int] = set()

    def adopt(self, fd: int) -> int:
        self._open.add(fd)
        return fd

    def pipe(self) -> tuple[int, int]:
        read_end, write_end = os.pipe()
        return self.adopt(read_end), self.adopt(write_end)

    def close(self, fd: int | None) -> None:
        if fd is None or fd not in self._open:
            return
        self._open.discard(fd)
        os.close(fd)

    def close_all(self) -> None:
        for fd in sorted(self._open):
            with contextlib.suppress(OSError):
                os.close(fd)
        self._open.clear()


class ProcessSupervisor:
    """Spawn, wire and reap the processes of a pipeline."""

    def __init__(
        self,
        *,
        resolver: CommandResolver,
        store: PathStore,
        env: Environment,
        builtins: BuiltinDispatcher,
        logger: Logger | None = None,
        terminal: TerminalControl | None = None,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        """Create a supervisor.

        Args:
            resolver: Maps command names to executables.
            store: Source of the ``PATH`` exported to children.
            env: Variables exported to children.
            builtins: Runs single builtin stages.
            logger: The shell's audit log.
            terminal: Terminal hand-over (disabled if omitted).
            stdout: Builtin output stream (``sys.stdout`` if omitted).
            stderr: Builtin diagnostics stream (``sys.stderr`` if omitted).

        """
        self._resolver = resolver
        self._store = store
        self._env = env
        self._builtins = builtins
        self._logger = logger if logger is not None else Logger()
        self._terminal = terminal if terminal is not None else TerminalControl(None)
        self._out = stdout
        self._err = stderr

    @property
    def stdout(self) -> TextIO:
        """Return the stream builtins write to."""
        return self._out if self._out is not None else sys.stdout

    @property
    def stderr(self) -> TextIO:
        """Return the stream builtins report errors to."""
        return self._err if self._err is not None else sys.stderr

    def run(self, pipeline: Pipeline) -> ExecutionResult:
        """Run *pipeline* to completion.

        Args:
            pipeline: A parsed pipeline.

        Returns:
            The aggregate result.

        Raises:
            RedirectionError: If a redirection file cannot be opened
                (nothing has been spawned).
            UnsupportedError: If a builtin is part of a multi-stage pipeline.
            ShellExit: If the pipeline is the ``exit`` builtin.

        """
        if len(pipeline) > 1 and pipeline.builtin_count:
            msg = "builtin in pipeline position"
            raise UnsupportedError(msg)

        fds = _Descriptors()
        try:
            stdin_fd = self._open_input(pipeline.input_source, fds)
            stdout_fd = self._open_output(pipeline.output_sink, fds)
            first = pipeline.stages[0]
            if first.is_builtin:
                return self._run_builtin(first, stdout_fd)
            return self._run_external(pipeline, fds, stdin_fd, stdout_fd)
        finally:
            fds.close_all()

    # -- redirections ---------------------------------------------------------

    def _open_input(self, path: str | None, fds: _Descriptors) -> int | None:
        if path is None:
            return None
        return fds.adopt(self._open_file(path, os.O_RDONLY))

    def _open_output(self, target: OutputRedirect | None, fds: _Descriptors) -> int | None:
        if target is None:
            return None
        flags = os.O_WRONLY | os.O_CREAT | (os.O_APPEND if target.append else os.O_TRUNC)
        return fds.adopt(self._open_file(target.path, flags))

    def _open_file(self, path: str, flags: int) -> int:
        try:
            return os.open(path, flags | os.O_CLOEXEC, _FILE_MODE)
        except OSError as e:
            error = RedirectionError(path, e.strerror or str(e))
            self._logger.error(str(error), source=_SOURCE)
            raise error from e

    # -- builtins -------------------------------------------------------------

    def _run_builtin(self, stage: Stage, stdout_fd: int | None) -> ExecutionResult:
        if stdout_fd is None:
            status = self._builtins.run(stage.name, stage.args, out=self.stdout, err=self.stderr)
        else:
            with open(stdout_fd, "w", closefd=False) as out:  # noqa: PTH123
                status = self._builtins.run(stage.name, stage.args, out=out, err=self.stderr)
        return ExecutionResult(status=status, stage_statuses=[status])

    # -- external stages ------------------------------------------------------

    def _run_external(
        self,
        pipeline: Pipeline,
        fds: _Descriptors,
        stdin_fd: int | None,
        stdout_fd: int | None,
    ) -> ExecutionResult:
        stages = pipeline.stages
        last = len(stages) - 1
        pipes = [fds.pipe() for _ in range(pipeline.pipe_count)]
        result = ExecutionResult(pipe_count=len(pipes), stage_statuses=[None] * len(stages))
        child_env = self._env.for_child(self._store.search_path())
        spawned: list[tuple[int, subprocess.Popen[bytes]]] = []
        self._flush_streams()

        with contextlib.ExitStack() as stack:
            forwarder = stack.enter_context(InterruptForwarder(logger=self._logger))
            try:
                for index, stage in enumerate(stages):
                    stage_in = stdin_fd if index == 0 else pipes[index - 1][0]
                    stage_out = stdout_fd if index == last else pipes[index][1]
                    pgid = forwarder.target
                    try:
                        proc = self._spawn(stage, stage_in, stage_out, child_env, pgid)
                    except (CommandNotFoundError, SpawnError) as e:
                        failure = StageFailure(index, stage.name, str(e), e.status)
                        result.failures.append(failure)
                        self._logger.error(failure.reason, source=_SOURCE)
                    else:
                        spawned.append((index, proc))
                        result.pids.append(proc.pid)
                        if pgid is None:
                            forwarder.target = proc.pid
                            stack.enter_context(self._terminal.foreground(proc.pid))
                    finally:
                        fds.close(stage_in)
                        fds.close(stage_out)
            finally:
                for index, proc in spawned:
                    result.stage_statuses[index] = self._wait(proc)

        if result.failures:
            result.status = result.failures[0].status
        else:
            last_status = result.stage_statuses[last]
            result.status = last_status if last_status is not None else 0
        return result

    def _spawn(
        self,
        stage: Stage,
        stdin_fd: int | None,
        stdout_fd: int | None,
        env: dict[str, str],
        pgid: int | None,
    ) -> subprocess.Popen[bytes]:
        """Resolve and start one stage.

        Raises:
            CommandNotFoundError: If the name resolves to nothing.
            SpawnError: If the OS refuses to create the process.

        """
        executable = self._resolver.resolve(stage.name)
        try:
            proc = subprocess.Popen(  # noqa: S603
                stage.argv,
                executable=executable,
                stdin=stdin_fd,
                stdout=stdout_fd,
                env=env,
                close_fds=True,
                process_group=0 if pgid is None else pgid,
            )
        except (OSError, subprocess.SubprocessError) as e:
            reason = e.strerror if isinstance(e, OSError) and e.strerror else str(e)
            raise SpawnError(stage.name, reason) from e
        self._logger.info(f"spawned {executable}", source=_SOURCE, pid=proc.pid)
        return proc

    def _wait(self, proc: subprocess.Popen[bytes]) -> int:
        """Wait for *proc* to terminate and return its shell exit status.

        There is no job control: a stage that gets stopped (Ctrl+Z,
        SIGTTIN) is continued so the wait can finish.
        """
        while proc.returncode is None:
            try:
                _, status = os.waitpid(proc.pid, os.WUNTRACED)
            except ChildProcessError:
                proc.wait()
                break
            if os.WIFSTOPPED(status):
                self._logger.warning("stopped; continuing", source=_SOURCE, pid=proc.pid)
                with contextlib.suppress(ProcessLookupError):
                    os.kill(proc.pid, signal.SIGCONT)
                continue
            proc.returncode = os.waitstatus_to_exitcode(status)

        status = shell_status(proc.returncode)
        self._logger.info(f"exited with status {status}", source=_SOURCE, pid=proc.pid)
        return status

    def _flush_streams(self) -> None:
        """Flush buffered shell output so it precedes the children's."""
        for stream in (self.stdout, self.stderr, sys.stdout, sys.stderr):
            with contextlib.suppress(OSError, ValueError):
                stream.flush()
