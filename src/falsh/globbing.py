"""Glob expander — turn wildcard words into matching pathnames.

A word such as ``src/*.py`` is a **pattern**.  The expander walks the
filesystem one path segment at a time:

    1. Literal segments (``src``) are joined on without listing anything.
    2. Wildcard segments (``*.py``) are matched against the entries of
       every directory reached so far.
    3. Non-final segments only keep directories, so the walk can descend.

Rules:
    - ``*`` matches any run of characters, including none; ``?`` matches
      exactly one.  Neither ever matches ``/``.
    - Names starting with ``.`` are hidden: a wildcard only reaches them
      when the pattern segment itself starts with a literal ``.``.
    - Results are sorted so the same directory always expands the same
      way, whatever order the OS lists it in.
    - No match at all expands to the pattern text itself, so a command
      never silently loses an argument.

Inside a pattern, a backslash makes the next character literal.  The
lexer relies on this to protect quoted wildcards (``"*"*.txt``).
"""

import functools
import os
import re

_WILDCARDS = frozenset("*?")
_SEPARATOR = "/"
_HIDDEN_PREFIX = "."


def escape(text: str) -> str:
    """Return *text* with wildcards and backslashes made literal."""
    return "".join("\\" + c if c in _WILDCARDS or c == "\\" else c for c in text)


def unescape(pattern: str) -> str:
    """Return the literal text a pattern stands for when nothing matches."""
    chars: list[str] = []
    escaped = False
    for char in pattern:
        if escaped:
            chars.append(char)
            escaped = False
        elif char == "\\":
            escaped = True
        else:
            chars.append(char)
    if escaped:
        chars.append("\\")
    return "".join(chars)


def has_magic(pattern: str) -> bool:
    """Return True if *pattern* contains an unescaped ``*`` or ``?``."""
    escaped = False
    for char in pattern:
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char in _WILDCARDS:
            return True
    return False


@functools.lru_cache(maxsize=256)
def _segment_regex(segment: str) -> re.Pattern[str]:
    """Compile one path segment of a pattern into an anchored regex."""
    parts: list[str] = []
    escaped = False
    for char in segment:
        if escaped:
            parts.append(re.escape(char))
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    if escaped:
        parts.append(re.escape("\\"))
    return re.compile("".join(parts), re.DOTALL)


def _shows_hidden(segment: str) -> bool:
    return segment.startswith((_HIDDEN_PREFIX, "\\" + _HIDDEN_PREFIX))


def _join(prefix: str, name: str) -> str:
    """Join a display prefix and an entry name the way the user typed it."""
    if not prefix:
        return name
    if prefix.endswith(_SEPARATOR):
        return prefix + name
    return prefix + _SEPARATOR + name


def _list_dir(directory: str) -> list[str]:
    """Return the entries of *directory*, or nothing if it cannot be read."""
    try:
        return os.listdir(directory)
    except OSError:
        return []


def _match_segment(segment: str, directory: str) -> list[str]:
    """Return the names in *directory* matched by one wildcard segment."""
    regex = _segment_regex(segment)
    hidden_ok = _shows_hidden(segment)
    return [
        name
        for name in _list_dir(directory)
        if (hidden_ok or not name.startswith(_HIDDEN_PREFIX)) and regex.fullmatch(name)
    ]


def glob(pattern: str, *, cwd: str | None = None) -> list[str]:
    """Return every existing path matched by *pattern*, sorted.

    Args:
        pattern: The pattern, with backslash escapes for literal characters.
        cwd: Directory relative patterns are matched against
            (defaults to the process working directory).

    Returns:
        Matching paths spelled with the pattern's own prefix.  Empty if
        nothing matches.

    """
    root = os.getcwd() if cwd is None else cwd
    absolute = pattern.startswith(_SEPARATOR)
    segments = pattern.split(_SEPARATOR)
    if absolute:
        segments = segments[1:]
    candidates = [_SEPARATOR if absolute else ""]

    def on_disk(display: str) -> str:
        return os.path.join(root, display) if display else root

    for index, segment in enumerate(segments):
        last = index == len(segments) - 1
        reached: list[str] = []
        for prefix in candidates:
            if has_magic(segment):
                names = _match_segment(segment, on_disk(prefix))
            else:
                names = [unescape(segment)]
            for name in names:
                path = _join(prefix, name)
                if last:
                    if os.path.lexists(on_disk(path)):
                        reached.append(path)
                elif os.path.isdir(on_disk(path)):
                    reached.append(path)
        candidates = reached
        if not candidates:
            break

    return sorted(candidates)


def expand(pattern: str, *, cwd: str | None = None) -> list[str]:
    """Expand one word into the arguments it stands for.

    Args:
        pattern: A glob pattern (see ``glob``) or plain escaped text.
        cwd: Directory relative patterns are matched against.

    Returns:
        The sorted matches, or the literal text as the only element
        when the word has no wildcards or nothing matches.

    """
    if not has_magic(pattern):
        return [unescape(pattern)]
    return glob(pattern, cwd=cwd) or [unescape(pattern)]
