"""CLI display and formatting utilities."""

from .formatters import (
    display_batch_result,
    display_report,
    display_resolution,
    display_upgrade_result,
)

__all__ = [
    "display_batch_result",
    "display_report",
    "display_resolution",
    "display_upgrade_result",
]
