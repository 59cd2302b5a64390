"""Command-line interface for bankdocs.

``python -m bankdocs.cli`` exposes ``ingest``, ``ask``, ``sources`` and
``stats`` subcommands; see :mod:`bankdocs.cli.commands`.
"""
