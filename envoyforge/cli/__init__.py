"""envoyforge CLI: Typer-based command-line interface.

Provides the ``envoyforge`` command with subcommands for running the
pipeline, rendering its generated files, and managing retained
artifacts. All output uses Rich for formatted terminal display.
"""
