"""Allow ``python -m bankdocs.cli`` execution."""

from bankdocs.cli.commands import main

main()
