"""Parser — build a Pipeline AST from the token stream.

The parser groups tokens into **stages** by splitting on ``|``:

    ls -l *.py | grep test > out.txt

    stage 0: name="ls",   args=["-l", "a.py", "b.py"]
    stage 1: name="grep", args=["test"], stdout=out.txt

Each ``Word`` is passed through the glob expander as it is consumed, so
the stages already hold their final argument vectors.  Redirections
attach to the stage they appear in, and only at the ends of the
pipeline: ``<`` in the first stage, ``>``/``>>`` in the last.

Each stage is tagged ``EXTERNAL`` or ``BUILTIN`` here, once, so later
components never need to look the name up again.  Builtins run inside
the shell and have no stream descriptors of their own, so a builtin in a
pipeline of two or more stages is rejected rather than run with its
piped data dropped.
"""

from __future__ import annotations

from collections.abc import Callable, Collection
from dataclasses import dataclass, field
from enum import StrEnum
from typing import NoReturn

from falsh.errors import ShellSyntaxError, UnsupportedError
from falsh.globbing import expand
from falsh.lexer import End, Pipe, RedirectIn, RedirectOut, Token, Word

type Expander = Callable[[Word], list[str]]


class StageKind(StrEnum):
    """How a stage is executed."""

    EXTERNAL = "external"
    BUILTIN = "builtin"


@dataclass(frozen=True)
class OutputRedirect:
    """An output redirection target."""

    path: str
    append: bool = False


@dataclass
class Stage:
    """One command within a pipeline.

    Attributes:
        name: The command name (first word after expansion).
        args: The remaining words after expansion.
        kind: Whether the stage spawns a process or runs in the shell.
        stdin: Stage-level ``<`` target, if any.
        stdout: Stage-level ``>``/``>>`` target, if any.

    """

    name: str
    args: list[str] = field(default_factory=list)
    kind: StageKind = StageKind.EXTERNAL
    stdin: str | None = None
    stdout: OutputRedirect | None = None

    @property
    def argv(self) -> list[str]:
        """Return the full argument vector, command name first."""
        return [self.name, *self.args]

    @property
    def is_builtin(self) -> bool:
        """Return True if the stage runs inside the shell."""
        return self.kind is StageKind.BUILTIN


@dataclass
class Pipeline:
    """An ordered chain of stages joined by pipes."""

    stages: list[Stage]

    @property
    def input_source(self) -> str | None:
        """Return the file the first stage reads from, if redirected."""
        return self.stages[0].stdin

    @property
    def output_sink(self) -> OutputRedirect | None:
        """Return the file the last stage writes to, if redirected."""
        return self.stages[-1].stdout

    @property
    def pipe_count(self) -> int:
        """Return the number of inter-stage connections (N - 1)."""
        return len(self.stages) - 1

    @property
    def builtin_count(self) -> int:
        """Return the number of stages that run in the shell."""
        return sum(1 for stage in self.stages if stage.is_builtin)

    def __len__(self) -> int:
        """Return the number of stages."""
        return len(self.stages)


def expand_word(word: Word, *, cwd: str | None = None) -> list[str]:
    """Return the arguments a word stands for after glob expansion."""
    if word.pattern is None:
        return [word.text]
    return expand(word.pattern, cwd=cwd)


def parse(
    tokens: list[Token],
    *,
    expander: Expander = expand_word,
    builtins: Collection[str] = (),
) -> Pipeline:
    """Build a pipeline from *tokens*.

    Args:
        tokens: Output of ``lexer.tokenize``.
        expander: Maps each word to its arguments (glob expansion).
        builtins: Command names that run inside the shell.

    Returns:
        A pipeline of at least one stage.

    Raises:
        ShellSyntaxError: On an empty line, a dangling or doubled ``|``,
            a stage with no command, or a misplaced redirection.
        UnsupportedError: If a builtin appears in a multi-stage pipeline.

    """
    groups = _split_stages(tokens)
    last = len(groups) - 1
    stages = [
        _build_stage(group, index, last, expander, builtins) for index, group in enumerate(groups)
    ]

    if len(stages) > 1 and any(stage.is_builtin for stage in stages):
        msg = "builtin in pipeline position"
        raise UnsupportedError(msg)
    return Pipeline(stages=stages)


def _split_stages(tokens: list[Token]) -> list[list[Token]]:
    """Split the token stream on ``Pipe`` into non-empty groups."""
    groups: list[list[Token]] = [[]]
    for token in tokens:
        if isinstance(token, End):
            break
        if isinstance(token, Pipe):
            if not groups[-1]:
                msg = "unexpected '|'"
                raise ShellSyntaxError(msg)
            groups.append([])
        else:
            groups[-1].append(token)

    if len(groups) == 1 and not groups[0]:
        msg = "empty command"
        raise ShellSyntaxError(msg)
    if not groups[-1]:
        msg = "missing command after '|'"
        raise ShellSyntaxError(msg)
    return groups


def _build_stage(
    group: list[Token],
    index: int,
    last: int,
    expander: Expander,
    builtins: Collection[str],
) -> Stage:
    words: list[str] = []
    stdin: str | None = None
    stdout: OutputRedirect | None = None

    for token in group:
        if isinstance(token, Word):
            words.extend(expander(token))
        elif isinstance(token, RedirectIn):
            if index != 0:
                _misplaced_redirection()
            stdin = token.target
        elif isinstance(token, RedirectOut):
            if index != last:
                _misplaced_redirection()
            stdout = OutputRedirect(token.target, append=token.append)

    if not words:
        msg = "missing command"
        raise ShellSyntaxError(msg)

    name, *args = words
    kind = StageKind.BUILTIN if name in builtins else StageKind.EXTERNAL
    return Stage(name=name, args=args, kind=kind, stdin=stdin, stdout=stdout)


def _misplaced_redirection() -> NoReturn:
    msg = "redirection only valid at pipeline ends"
    raise ShellSyntaxError(msg)
