"""Command-line interface for ovsx-sync."""

from .main import cli

__all__ = ["cli"]
