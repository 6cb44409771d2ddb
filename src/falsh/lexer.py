"""Tokenizer — split a command line into typed tokens.

The lexer is the first stage of the shell's miniature compiler.  It
walks the line one character at a time and emits:

    - ``Word`` — a command name, argument or filename.
    - ``Pipe`` — the ``|`` operator.
    - ``RedirectIn`` — ``< target``.
    - ``RedirectOut`` — ``> target`` or ``>> target`` (append).
    - ``End`` — always the last token.

Quoting rules:
    - Inside ``'...'`` every character is literal.
    - Inside ``"..."`` every character is literal except ``\\"`` and
      ``\\\\``, which stand for a quote and a backslash.
    - Outside quotes a backslash makes the next character literal.
    - Quoted and unquoted runs with no whitespace between them join
      into a single word (``a"b c"d`` is the word ``ab cd``).

Wildcards only count when they appear unquoted and unescaped.  Such
words carry a ``pattern`` — their text with every *literal* wildcard
and backslash escaped — which the glob expander consumes.
"""

from dataclasses import dataclass

from falsh.errors import ShellSyntaxError
from falsh.globbing import escape

_OPERATOR_CHARS = frozenset("|<>")
_WILDCARDS = frozenset("*?")
_DQUOTE_ESCAPABLE = frozenset('"\\')
_COMMENT = "#"


@dataclass(frozen=True)
class Word:
    """A word token.

    Attributes:
        text: The literal value after quote removal.
        pattern: Glob pattern for words with unquoted wildcards, else None.

    """

    text: str
    pattern: str | None = None

    @property
    def expandable(self) -> bool:
        """Return True if the glob expander should treat this as a pattern."""
        return self.pattern is not None


@dataclass(frozen=True)
class Pipe:
    """The ``|`` operator."""


@dataclass(frozen=True)
class RedirectIn:
    """``< target`` — read the stage's standard input from *target*."""

    target: str


@dataclass(frozen=True)
class RedirectOut:
    """``> target`` (truncate) or ``>> target`` (append)."""

    target: str
    append: bool = False


@dataclass(frozen=True)
class End:
    """End of the token stream."""


type Token = Word | Pipe | RedirectIn | RedirectOut | End


def tokenize(line: str) -> list[Token]:
    """Split *line* into tokens.

    Args:
        line: One complete command line.

    Returns:
        The tokens in input order, terminated by ``End``.

    Raises:
        ShellSyntaxError: On an unterminated quote or a redirection
            operator with no target, or when the line holds a
            NUL byte.

    """
    if "\x00" in line:
        msg = "embedded null byte"
        raise ShellSyntaxError(msg)
    tokens: list[Token] = []
    pos = 0
    length = len(line)
    while True:
        pos = _skip_whitespace(line, pos)
        if pos >= length or line[pos] == _COMMENT:
            break
        char = line[pos]
        if char == "|":
            tokens.append(Pipe())
            pos += 1
        elif char == "<":
            target, pos = _read_target(line, pos + 1)
            tokens.append(RedirectIn(target))
        elif char == ">":
            append = line.startswith(">>", pos)
            target, pos = _read_target(line, pos + (2 if append else 1))
            tokens.append(RedirectOut(target, append=append))
        else:
            word, pos = _read_word(line, pos)
            tokens.append(word)
    tokens.append(End())
    return tokens


def _skip_whitespace(line: str, pos: int) -> int:
    while pos < len(line) and line[pos].isspace():
        pos += 1
    return pos


def _read_target(line: str, pos: int) -> tuple[str, int]:
    """Read the filename that follows a redirection operator."""
    pos = _skip_whitespace(line, pos)
    if pos >= len(line) or line[pos] in _OPERATOR_CHARS or line[pos] == _COMMENT:
        msg = "missing redirection target"
        raise ShellSyntaxError(msg)
    word, pos = _read_word(line, pos)
    return word.text, pos


def _read_word(line: str, pos: int) -> tuple[Word, int]:
    """Read one word starting at *pos*, handling quotes and escapes.

    Two buffers are built side by side: ``text`` (the literal value) and
    ``pattern`` (the same value with literal wildcards escaped).  The
    pattern is kept only if an unquoted wildcard was seen.
    """
    text: list[str] = []
    pattern: list[str] = []
    magic = False
    length = len(line)

    while pos < length:
        char = line[pos]
        if char.isspace() or char in _OPERATOR_CHARS:
            break
        if char == "'":
            end = line.find("'", pos + 1)
            if end == -1:
                msg = "unterminated quote"
                raise ShellSyntaxError(msg)
            literal = line[pos + 1 : end]
            pos = end + 1
        elif char == '"':
            literal, pos = _read_double_quoted(line, pos + 1)
        elif char == "\\":
            if pos + 1 < length:
                literal = line[pos + 1]
                pos += 2
            else:
                literal = "\\"
                pos += 1
        else:
            text.append(char)
            pattern.append(char)
            magic = magic or char in _WILDCARDS
            pos += 1
            continue
        text.append(literal)
        pattern.append(escape(literal))

    return Word("".join(text), "".join(pattern) if magic else None), pos


def _read_double_quoted(line: str, pos: int) -> tuple[str, int]:
    """Read the body of a ``"..."`` span; *pos* is just past the quote."""
    chars: list[str] = []
    length = len(line)
    while pos < length:
        char = line[pos]
        if char == '"':
            return "".join(chars), pos + 1
        if char == "\\" and pos + 1 < length and line[pos + 1] in _DQUOTE_ESCAPABLE:
            chars.append(line[pos + 1])
            pos += 2
            continue
        chars.append(char)
        pos += 1
    msg = "unterminated quote"
    raise ShellSyntaxError(msg)
