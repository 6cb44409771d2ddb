"""Allow ``python -m falsh``."""

from falsh.repl import main

main()
