"""Builtin dispatcher — commands that run inside the shell process.

Some commands cannot be separate programs because their whole purpose
is to change the shell's own state: a child that calls ``chdir`` changes
*its* directory, not the shell's.  These run synchronously on the shell's
control path and their effects are visible to the very next command.

The fixed table:

    cd [dir]                       change the working directory
    pwd                            print the working directory
    addToPath [--temp] <dir>       add a search directory
    removeFromPath [--temp] <dir>  remove a search directory
    listPaths                      print the search directories
    which <name>...                show what a command name resolves to
    export [KEY=VALUE...]          set or list child environment variables
    unset <KEY>                    remove a child environment variable
    log                            print the shell's audit log
    help                           list the builtins
    exit [status]                  leave the shell

Path mutations are written back to the Path Store file straight away
when the configuration asks for it, unless ``--temp`` is given.

Handlers write to the ``out``/``err`` streams they are handed (so
``listPaths > paths.txt`` works) and return an exit status.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from falsh.env import PATH_VARIABLE
from falsh.errors import STATUS_FAILURE, STATUS_USAGE, PathStoreError
from falsh.logging import Logger

if TYPE_CHECKING:
    from falsh.config import ShellConfig
    from falsh.env import Environment
    from falsh.pathstore import PathStore
    from falsh.resolver import CommandResolver

type _Handler = Callable[[list[str], TextIO, TextIO], int]

_SOURCE = "builtin"
_TEMP_FLAG = "--temp"
_EXIT_STATUS_MASK = 0xFF


class ShellExit(Exception):  # noqa: N818
    """Raised by the ``exit`` builtin to end the session."""

    def __init__(self, status: int = 0) -> None:
        """Request termination with *status*."""
        super().__init__(f"exit {status}")
        self.status = status


class BuiltinDispatcher:
    """Run builtin commands against the shell's shared state.

    The dispatcher holds references (never copies) to the Path Store,
    resolver and child environment, so a mutation here is what the next
    command resolves against and inherits.
    """

    def __init__(
        self,
        *,
        store: PathStore,
        resolver: CommandResolver,
        env: Environment,
        config: ShellConfig,
        logger: Logger | None = None,
    ) -> None:
        """Create the dispatcher.

        Args:
            store: The session's Path Store.
            resolver: Resolver used by ``which``.
            env: Variables exported to child processes.
            config: Session configuration (autosave policy).
            logger: The shell's audit log.

        """
        self._store = store
        self._resolver = resolver
        self._env = env
        self._config = config
        self._logger = logger if logger is not None else Logger()

        # Command dispatch table: builtin name to handler method.
        self._commands: dict[str, _Handler] = {
            "cd": self._cmd_cd,
            "pwd": self._cmd_pwd,
            "addToPath": self._cmd_add_to_path,
            "removeFromPath": self._cmd_remove_from_path,
            "listPaths": self._cmd_list_paths,
            "which": self._cmd_which,
            "export": self._cmd_export,
            "unset": self._cmd_unset,
            "log": self._cmd_log,
            "help": self._cmd_help,
            "exit": self._cmd_exit,
        }

    @property
    def names(self) -> frozenset[str]:
        """Return the reserved command names."""
        return frozenset(self._commands)

    def __contains__(self, name: object) -> bool:
        """Return True if *name* is a builtin."""
        return name in self._commands

    def run(self, name: str, args: list[str], *, out: TextIO, err: TextIO) -> int:
        """Run the builtin *name*.

        Args:
            name: A reserved command name.
            args: Arguments after the name.
            out: Stream for normal output.
            err: Stream for diagnostics.

        Returns:
            The builtin's exit status.

        Raises:
            KeyError: If *name* is not a builtin.
            ShellExit: If the builtin is ``exit``.

        """
        handler = self._commands[name]
        self._logger.info(" ".join([name, *args]), source=_SOURCE)
        try:
            return handler(args, out, err)
        finally:
            out.flush()
            err.flush()

    # -- Command handlers ------------------------------------------------

    def _cmd_cd(self, args: list[str], out: TextIO, err: TextIO) -> int:
        """Change the shell's working directory."""
        if len(args) > 1:
            print("cd: too many arguments", file=err)
            return STATUS_USAGE

        if not args:
            target = self._env.get("HOME")
            if not target:
                print("cd: HOME not set", file=err)
                return STATUS_FAILURE
        elif args[0] == "-":
            target = self._env.get("OLDPWD")
            if not target:
                print("cd: OLDPWD not set", file=err)
                return STATUS_FAILURE
            print(target, file=out)
        else:
            target = os.path.expanduser(args[0])

        previous = os.getcwd()
        try:
            os.chdir(target)
        except OSError as e:
            print(f"cd: {target}: {e.strerror}", file=err)
            return STATUS_FAILURE
        self._env.set("OLDPWD", previous)
        self._env.set("PWD", os.getcwd())
        return 0

    def _cmd_pwd(self, _args: list[str], out: TextIO, _err: TextIO) -> int:
        """Print the working directory."""
        print(os.getcwd(), file=out)
        return 0

    def _cmd_add_to_path(self, args: list[str], _out: TextIO, err: TextIO) -> int:
        """Add a directory to the search path."""
        temporary, rest = _split_temp_flag(args)
        if len(rest) != 1:
            print(f"usage: addToPath [{_TEMP_FLAG}] <dir>", file=err)
            return STATUS_USAGE

        directory = rest[0]
        candidate = Path(directory)
        if candidate.is_file():
            directory = str(candidate.parent)
        elif not candidate.exists():
            print(f"addToPath: warning: {directory} does not exist", file=err)

        if not self._store.add(directory):
            print(f"addToPath: {directory} is already in the search path", file=err)
            return 0
        return self._autosave(temporary=temporary, err=err)

    def _cmd_remove_from_path(self, args: list[str], _out: TextIO, err: TextIO) -> int:
        """Remove a directory from the search path."""
        temporary, rest = _split_temp_flag(args)
        if len(rest) != 1:
            print(f"usage: removeFromPath [{_TEMP_FLAG}] <dir>", file=err)
            return STATUS_USAGE
        try:
            self._store.remove(rest[0])
        except PathStoreError as e:
            print(f"removeFromPath: {e}", file=err)
            return STATUS_FAILURE
        return self._autosave(temporary=temporary, err=err)

    def _cmd_list_paths(self, _args: list[str], out: TextIO, _err: TextIO) -> int:
        """Print the search path, one directory per line."""
        for directory in self._store.list():
            print(directory, file=out)
        return 0

    def _cmd_which(self, args: list[str], out: TextIO, err: TextIO) -> int:
        """Print every file each name resolves to, in shadowing order."""
        if not args:
            print("usage: which <name>...", file=err)
            return STATUS_USAGE
        status = 0
        for name in args:
            if name in self._commands:
                print(f"{name}: shell builtin", file=out)
                continue
            matches = self._resolver.resolve_all(name)
            if not matches:
                print(f"which: no {name} in search path", file=err)
                status = STATUS_FAILURE
            for match in matches:
                print(match, file=out)
        return status

    def _cmd_export(self, args: list[str], out: TextIO, err: TextIO) -> int:
        """Set child environment variables, or list them with no arguments.

        The listing is the block a child would receive, so it includes the
        ``PATH`` built from the Path Store.
        """
        if not args:
            block = self._env.for_child(self._store.search_path())
            for key, value in sorted(block.items()):
                print(f"{key}={value}", file=out)
            return 0

        status = 0
        for assignment in args:
            key, sep, value = assignment.partition("=")
            if not sep or not key:
                print(f"export: invalid syntax '{assignment}', expected VAR=VALUE", file=err)
                status = STATUS_FAILURE
            elif key == PATH_VARIABLE:
                print("export: PATH is managed with addToPath/removeFromPath", file=err)
                status = STATUS_FAILURE
            else:
                self._env.set(key, value)
        return status

    def _cmd_unset(self, args: list[str], _out: TextIO, err: TextIO) -> int:
        """Remove a child environment variable."""
        if len(args) != 1:
            print("usage: unset <KEY>", file=err)
            return STATUS_USAGE
        try:
            self._env.delete(args[0])
        except KeyError:
            print(f"unset: {args[0]}: not set", file=err)
            return STATUS_FAILURE
        return 0

    def _cmd_log(self, _args: list[str], out: TextIO, _err: TextIO) -> int:
        """Print the audit log."""
        for entry in self._logger.entries:
            print(entry, file=out)
        return 0

    def _cmd_help(self, _args: list[str], out: TextIO, _err: TextIO) -> int:
        """List the builtins."""
        print("Builtins: " + ", ".join(sorted(self._commands)), file=out)
        return 0

    def _cmd_exit(self, args: list[str], _out: TextIO, err: TextIO) -> int:
        """End the session with an optional numeric status."""
        if len(args) > 1:
            print("exit: too many arguments", file=err)
            return STATUS_USAGE
        status = 0
        if args:
            try:
                status = int(args[0]) & _EXIT_STATUS_MASK
            except ValueError:
                print(f"exit: {args[0]}: numeric argument required", file=err)
                status = STATUS_USAGE
        raise ShellExit(status)

    # -- helpers ------------------------------------------------------------

    def _autosave(self, *, temporary: bool, err: TextIO) -> int:
        """Persist the Path Store after a mutation when configured to."""
        if temporary or not self._config.autosave:
            return 0
        try:
            self._store.persist()
        except PathStoreError as e:
            print(f"falsh: {e}", file=err)
            return STATUS_FAILURE
        return 0


def _split_temp_flag(args: list[str]) -> tuple[bool, list[str]]:
    """Return whether ``--temp`` was given, and the other arguments."""
    rest = [arg for arg in args if arg != _TEMP_FLAG]
    return len(rest) != len(args), rest
