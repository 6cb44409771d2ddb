"""Tests for command resolution.

Bare names are looked up in Path Store order; names containing ``/``
are checked directly.  Only executable regular files count.
"""

from pathlib import Path

import pytest

from falsh.errors import STATUS_NOT_FOUND, CommandNotFoundError
from falsh.pathstore import PathStore
from falsh.resolver import CommandResolver, is_executable


def _script(directory: Path, name: str, *, mode: int = 0o755) -> Path:
    """Create a small shell script called *name* in *directory*."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text("#!/bin/sh\nexit 0\n")
    path.chmod(mode)
    return path


def _resolver(tmp_path: Path, *dirs: Path) -> tuple[CommandResolver, PathStore]:
    """Create a resolver over a store holding *dirs* in order."""
    store = PathStore(tmp_path / "paths")
    for directory in dirs:
        store.add(str(directory))
    return CommandResolver(store), store


class TestResolve:
    """Verify lookup through the Path Store."""

    def test_first_directory_wins(self, tmp_path: Path) -> None:
        """An earlier directory shadows a later one."""
        first = _script(tmp_path / "one", "tool")
        _script(tmp_path / "two", "tool")
        resolver, _ = _resolver(tmp_path, tmp_path / "one", tmp_path / "two")
        assert resolver.resolve("tool") == str(first)

    def test_skips_non_executable(self, tmp_path: Path) -> None:
        """A file without execute permission is passed over."""
        _script(tmp_path / "one", "tool", mode=0o644)
        second = _script(tmp_path / "two", "tool")
        resolver, _ = _resolver(tmp_path, tmp_path / "one", tmp_path / "two")
        assert resolver.resolve("tool") == str(second)

    def test_skips_directories(self, tmp_path: Path) -> None:
        """A directory with the command's name is not a match."""
        (tmp_path / "one" / "tool").mkdir(parents=True)
        second = _script(tmp_path / "two", "tool")
        resolver, _ = _resolver(tmp_path, tmp_path / "one", tmp_path / "two")
        assert resolver.resolve("tool") == str(second)

    def test_not_found(self, tmp_path: Path) -> None:
        """No match raises with the command name and status 127."""
        resolver, _ = _resolver(tmp_path, tmp_path / "empty")
        with pytest.raises(CommandNotFoundError) as info:
            resolver.resolve("ghost")
        assert info.value.name == "ghost"
        assert info.value.status == STATUS_NOT_FOUND
        assert str(info.value) == "ghost: command not found"

    def test_empty_name_not_found(self, tmp_path: Path) -> None:
        """An empty command name never resolves."""
        resolver, _ = _resolver(tmp_path, tmp_path)
        with pytest.raises(CommandNotFoundError):
            resolver.resolve("")

    def test_sees_store_changes(self, tmp_path: Path) -> None:
        """Resolution reads the store fresh on every call."""
        tool = _script(tmp_path / "late", "tool")
        resolver, store = _resolver(tmp_path)
        with pytest.raises(CommandNotFoundError):
            resolver.resolve("tool")
        store.add(str(tmp_path / "late"))
        assert resolver.resolve("tool") == str(tool)

    def test_directory_populated_after_add(self, tmp_path: Path) -> None:
        """A directory added before it exists is searched once it does."""
        resolver, _ = _resolver(tmp_path, tmp_path / "future")
        tool = _script(tmp_path / "future", "tool")
        assert resolver.resolve("tool") == str(tool)

    def test_empty_entry_is_current_directory(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """An empty store entry searches the working directory."""
        _script(tmp_path / "here", "tool")
        monkeypatch.chdir(tmp_path / "here")
        store = PathStore(tmp_path / "paths")
        store.add("")
        assert CommandResolver(store).resolve("tool") == "./tool"


class TestDirectPaths:
    """Verify names containing a separator."""

    def test_absolute_path(self, tmp_path: Path) -> None:
        """An executable absolute path resolves to itself."""
        tool = _script(tmp_path / "bin", "tool")
        resolver, _ = _resolver(tmp_path)
        assert resolver.resolve(str(tool)) == str(tool)

    def test_relative_path_ignores_store(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """``./name`` is never looked up in the store."""
        _script(tmp_path / "bin", "tool")
        monkeypatch.chdir(tmp_path)
        resolver, _ = _resolver(tmp_path, tmp_path / "bin")
        with pytest.raises(CommandNotFoundError):
            resolver.resolve("./tool")
        assert resolver.resolve("./bin/tool") == "./bin/tool"

    def test_non_executable_path(self, tmp_path: Path) -> None:
        """A direct path to a plain file is not found."""
        tool = _script(tmp_path / "bin", "tool", mode=0o644)
        resolver, _ = _resolver(tmp_path)
        assert not is_executable(str(tool))
        with pytest.raises(CommandNotFoundError):
            resolver.resolve(str(tool))


class TestResolveAll:
    """Verify listing every candidate."""

    def test_all_in_shadowing_order(self, tmp_path: Path) -> None:
        """Every executable match is listed, first one first."""
        first = _script(tmp_path / "one", "tool")
        _script(tmp_path / "mid", "tool", mode=0o600)
        last = _script(tmp_path / "two", "tool")
        resolver, _ = _resolver(tmp_path, tmp_path / "one", tmp_path / "mid", tmp_path / "two")
        assert resolver.resolve_all("tool") == [str(first), str(last)]

    def test_none(self, tmp_path: Path) -> None:
        """No match gives an empty list, not an error."""
        resolver, _ = _resolver(tmp_path, tmp_path)
        assert resolver.resolve_all("ghost") == []
