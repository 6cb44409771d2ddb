"""Interactive REPL (Read-Eval-Print Loop) for falsh.

The REPL is the thin I/O layer in front of the shell core:

    1. **Read** — display a prompt and read one line.
    2. **Eval** — pass the line to ``shell.execute()``.
    3. **Print** — children write straight to the terminal; the shell
       itself only prints builtin output and error messages.
    4. **Loop** — repeat until ``exit`` or Ctrl+D.

Line editing and history come from Python's ``readline`` module via
``input()``; the core never sees keystrokes.

``falsh -c 'command'`` runs a single line and exits with its status.
"""

import argparse
import os
import readline  # noqa: F401  (enables line editing for input())
import sys
from pathlib import Path

from falsh.config import ShellConfig
from falsh.errors import STATUS_FAILURE, ShellError
from falsh.shell import Shell, ShellState
from falsh.signals import TerminalControl


def build_prompt(config: ShellConfig, cwd: str | None = None) -> str:
    """Build the prompt, abbreviating the home directory to ``~``.

    Args:
        config: Session configuration holding the prompt template.
        cwd: Directory to show (defaults to the current one).

    Returns:
        A prompt string like ``~/src> ``.

    """
    here = os.getcwd() if cwd is None else cwd
    home = str(Path.home())
    if here == home:
        here = "~"
    elif here.startswith(home + os.sep):
        here = "~" + here[len(home) :]
    return config.prompt_template.format(cwd=here)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="falsh", description="A small command shell.")
    parser.add_argument("-c", dest="command", metavar="COMMAND", help="run one command and exit")
    return parser


def run(argv: list[str] | None = None) -> int:
    """Run the shell and return its exit status.

    This handles:
    - One-shot ``-c`` execution.
    - The read-eval-print loop.
    - Ctrl+C at the prompt (abandons the line) and Ctrl+D (leaves).
    - Clean shutdown.
    """
    args = _build_parser().parse_args(argv)
    config = ShellConfig.from_environ()
    try:
        shell = Shell(config=config, terminal=TerminalControl.for_stdin())
    except ShellError as e:
        print(f"falsh: {e}", file=sys.stderr)  # noqa: T201
        return STATUS_FAILURE

    try:
        if args.command is not None:
            return shell.execute(args.command).status

        while shell.state is ShellState.RUNNING:
            try:
                line = input(build_prompt(config))
            except EOFError:
                # Ctrl+D: graceful exit
                print()  # noqa: T201
                break
            except KeyboardInterrupt:
                print("^C")  # noqa: T201
                continue

            result = shell.execute(line)
            if result.exit_requested:
                break
        return shell.last_status
    finally:
        shell.shutdown()


def main() -> None:
    """Console-script entry point."""
    sys.exit(run())
