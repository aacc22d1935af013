"""Command line interface."""

from accessgap.cli.main import cli

__all__ = ["cli"]
