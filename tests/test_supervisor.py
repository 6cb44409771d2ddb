"""Tests for the process supervisor.

These run real processes: ``echo``, ``cat``, ``wc``, ``true``, ``false``
and ``sh`` from the host's PATH.  They check pipe wiring, redirection,
exit status aggregation and that no descriptor outlives a run.
"""

import os
import signal
import subprocess
from pathlib import Path
from typing import Any

import pytest

from falsh import supervisor as supervisor_module
from falsh.builtins import BuiltinDispatcher
from falsh.config import ShellConfig
from falsh.env import Environment
from falsh.errors import RedirectionError, UnsupportedError
from falsh.lexer import tokenize
from falsh.logging import Logger
from falsh.parser import Pipeline, Stage, StageKind, parse
from falsh.pathstore import PathStore, split_search_path
from falsh.resolver import CommandResolver
from falsh.supervisor import ExecutionResult, ProcessSupervisor, shell_status

_HOST_PATH = os.environ.get("PATH", "/usr/bin:/bin")

type _Rig = tuple[ProcessSupervisor, BuiltinDispatcher, Environment]


def _supervisor(tmp_path: Path) -> _Rig:
    """Create a supervisor resolving against the host PATH."""
    logger = Logger()
    store = PathStore(tmp_path / "paths", logger=logger)
    store.load(split_search_path(_HOST_PATH))
    resolver = CommandResolver(store, logger=logger)
    env = Environment({"HOME": str(tmp_path)})
    builtins = BuiltinDispatcher(
        store=store,
        resolver=resolver,
        env=env,
        config=ShellConfig(path_file=tmp_path / "paths", autosave=False),
        logger=logger,
    )
    supervisor = ProcessSupervisor(
        resolver=resolver, store=store, env=env, builtins=builtins, logger=logger
    )
    return supervisor, builtins, env


def _run(supervisor: ProcessSupervisor, builtins: BuiltinDispatcher, line: str) -> ExecutionResult:
    """Parse *line* and run it."""
    return supervisor.run(parse(tokenize(line), builtins=builtins.names))


def _open_fds() -> int:
    """Count the descriptors this process holds open."""
    return len(os.listdir("/proc/self/fd"))


@pytest.fixture
def rig(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> _Rig:
    """Create a supervisor working inside *tmp_path*."""
    monkeypatch.chdir(tmp_path)
    return _supervisor(tmp_path)


class TestShellStatus:
    """Verify return code conversion."""

    def test_normal_exit(self) -> None:
        """A normal exit code is kept."""
        assert shell_status(0) == 0
        assert shell_status(3) == 3

    def test_signal_death(self) -> None:
        """Death by signal N becomes 128 + N."""
        assert shell_status(-signal.SIGTERM) == 128 + signal.SIGTERM


class TestPipelines:
    """Verify stage wiring."""

    def test_pipe_carries_data(self, rig: _Rig, capfd: pytest.CaptureFixture[str]) -> None:
        """The first stage's output reaches the second, not the terminal."""
        result = _run(rig[0], rig[1], "echo hello | wc -c")
        out = capfd.readouterr().out
        assert result.status == 0
        assert result.stage_statuses == [0, 0]
        assert out.strip() == "6"
        assert "hello" not in out

    @pytest.mark.parametrize("stages", [1, 2, 3, 5])
    def test_pipe_and_spawn_counts(
        self, rig: _Rig, monkeypatch: pytest.MonkeyPatch, stages: int
    ) -> None:
        """N external stages get N - 1 pipes and N processes."""
        created: list[tuple[int, int]] = []
        real_pipe = supervisor_module._Descriptors.pipe

        def counting_pipe(self: Any) -> tuple[int, int]:
            ends = real_pipe(self)
            created.append(ends)
            return ends

        monkeypatch.setattr(supervisor_module._Descriptors, "pipe", counting_pipe)
        result = _run(rig[0], rig[1], " | ".join(["true"] * stages))
        assert len(created) == stages - 1
        assert result.pipe_count == stages - 1
        assert len(result.pids) == stages

    def test_last_stage_status(self, rig: _Rig) -> None:
        """The pipeline reports the last stage's status."""
        assert _run(rig[0], rig[1], "true | false").status == 1
        assert _run(rig[0], rig[1], "false | true").status == 0

    def test_signal_status(self, rig: _Rig) -> None:
        """A stage killed by a signal reports 128 + N."""
        result = _run(rig[0], rig[1], "sh -c 'kill -TERM $$'")
        assert result.status == 128 + signal.SIGTERM

    def test_shared_process_group(self, rig: _Rig, monkeypatch: pytest.MonkeyPatch) -> None:
        """The first stage leads a new group and the rest join it."""
        groups: list[int] = []
        real_popen = subprocess.Popen

        def recording_popen(*args: Any, **kwargs: Any) -> Any:
            groups.append(kwargs["process_group"])
            return real_popen(*args, **kwargs)

        monkeypatch.setattr(supervisor_module.subprocess, "Popen", recording_popen)
        result = _run(rig[0], rig[1], "true | true | true")
        leader = result.pids[0]
        assert groups == [0, leader, leader]


class TestInterrupts:
    """Verify Ctrl+C while a pipeline is running."""

    def test_interrupt_stops_every_stage(self, rig: _Rig) -> None:
        """SIGINT to the shell ends each stage with 130 and the shell goes on."""
        supervisor, builtins, _ = rig
        interrupt_handler = signal.getsignal(signal.SIGINT)

        def ctrl_c(_signum: int, _frame: Any) -> None:
            signal.raise_signal(signal.SIGINT)

        previous = signal.signal(signal.SIGALRM, ctrl_c)
        try:
            signal.setitimer(signal.ITIMER_REAL, 0.3)
            result = _run(supervisor, builtins, "sleep 30 | sleep 30")
        finally:
            signal.setitimer(signal.ITIMER_REAL, 0)
            signal.signal(signal.SIGALRM, previous)

        assert result.stage_statuses == [130, 130]
        assert result.status == 130
        assert signal.getsignal(signal.SIGINT) is interrupt_handler
        assert _run(supervisor, builtins, "true").status == 0


class TestStartFailures:
    """Verify stages that cannot start."""

    def test_missing_middle_stage(self, rig: _Rig, capfd: pytest.CaptureFixture[str]) -> None:
        """Siblings of a missing command still run and are reaped."""
        result = _run(rig[0], rig[1], "echo hi | no-such-cmd-xyz | cat")
        capfd.readouterr()
        assert result.status == 127
        assert result.failed_to_start
        assert result.failed_stage == "no-such-cmd-xyz"
        assert result.failures[0].index == 1
        assert len(result.pids) == 2
        assert result.stage_statuses[0] is not None
        assert result.stage_statuses[1] is None
        assert result.stage_statuses[2] == 0

    def test_exec_format_error(self, rig: _Rig, tmp_path: Path) -> None:
        """An executable the OS cannot run reports status 126."""
        bogus = tmp_path / "bogus"
        bogus.write_bytes(b"\x00\x01\x02 not a program")
        bogus.chmod(0o755)
        result = _run(rig[0], rig[1], str(bogus))
        assert result.status == 126
        assert result.failures[0].name == str(bogus)

    def test_descriptors_released_on_failure(self, rig: _Rig) -> None:
        """A failed stage does not leak its pipe ends."""
        before = _open_fds()
        _run(rig[0], rig[1], "true | no-such-cmd-xyz | true")
        assert _open_fds() == before


class TestRedirections:
    """Verify file redirection."""

    def test_output_truncates(self, rig: _Rig, tmp_path: Path) -> None:
        """``>`` replaces the file's content."""
        (tmp_path / "out.txt").write_text("old content\n")
        _run(rig[0], rig[1], "echo hello > out.txt")
        assert (tmp_path / "out.txt").read_text() == "hello\n"

    def test_output_appends(self, rig: _Rig, tmp_path: Path) -> None:
        """``>>`` appends."""
        _run(rig[0], rig[1], "echo one >> log.txt")
        _run(rig[0], rig[1], "echo two >> log.txt")
        assert (tmp_path / "log.txt").read_text() == "one\ntwo\n"

    def test_input(self, rig: _Rig, tmp_path: Path, capfd: pytest.CaptureFixture[str]) -> None:
        """``<`` feeds the first stage."""
        (tmp_path / "in.txt").write_text("b\na\n")
        result = _run(rig[0], rig[1], "cat < in.txt | sort")
        assert result.status == 0
        assert capfd.readouterr().out == "a\nb\n"

    def test_missing_input_spawns_nothing(
        self, rig: _Rig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """An unopenable input aborts before any process starts."""

        def no_spawn(*_args: Any, **_kwargs: Any) -> Any:
            pytest.fail("nothing should be spawned")

        monkeypatch.setattr(supervisor_module.subprocess, "Popen", no_spawn)
        with pytest.raises(RedirectionError, match=r"missing\.txt"):
            _run(rig[0], rig[1], "cat < missing.txt | wc")

    def test_output_created_for_missing_command(self, rig: _Rig, tmp_path: Path) -> None:
        """The output file is opened even if the command is not found."""
        result = _run(rig[0], rig[1], "no-such-cmd-xyz > out.txt")
        assert result.status == 127
        assert (tmp_path / "out.txt").read_text() == ""

    def test_failing_command_still_creates_output(
        self, rig: _Rig, tmp_path: Path, capfd: pytest.CaptureFixture[str]
    ) -> None:
        """A command that runs and fails leaves the created file behind."""
        result = _run(rig[0], rig[1], "cat nonexistent.txt > out.txt")
        capfd.readouterr()
        assert result.status != 0
        assert not result.failed_to_start
        assert (tmp_path / "out.txt").exists()

    def test_no_descriptor_leak(self, rig: _Rig, tmp_path: Path) -> None:
        """Every descriptor the run opened is closed afterwards."""
        (tmp_path / "in.txt").write_text("x\n")
        before = _open_fds()
        _run(rig[0], rig[1], "cat < in.txt | cat | cat > out.txt")
        assert _open_fds() == before


class TestEnvironment:
    """Verify what children inherit."""

    def test_path_comes_from_store(self, rig: _Rig, capfd: pytest.CaptureFixture[str]) -> None:
        """Children see the Path Store as their PATH."""
        _run(rig[0], rig[1], "sh -c 'echo $PATH'")
        expected = ":".join(dict.fromkeys(split_search_path(_HOST_PATH)))
        assert capfd.readouterr().out.strip() == expected

    def test_exported_variable(self, rig: _Rig, capfd: pytest.CaptureFixture[str]) -> None:
        """Exported variables reach the child."""
        rig[2].set("GREETING", "howdy")
        _run(rig[0], rig[1], "sh -c 'echo $GREETING'")
        assert capfd.readouterr().out == "howdy\n"


class TestBuiltinStages:
    """Verify builtins run through the supervisor."""

    def test_builtin_redirected(self, rig: _Rig, tmp_path: Path) -> None:
        """A lone builtin writes to its output file."""
        result = _run(rig[0], rig[1], "help > help.txt")
        assert result.status == 0
        assert result.pids == []
        assert "Builtins:" in (tmp_path / "help.txt").read_text()

    def test_builtin_in_pipeline_rejected(self, rig: _Rig) -> None:
        """A hand-built pipeline mixing a builtin is refused."""
        pipeline = Pipeline(
            stages=[Stage("help", kind=StageKind.BUILTIN), Stage("cat")],
        )
        with pytest.raises(UnsupportedError):
            rig[0].run(pipeline)
