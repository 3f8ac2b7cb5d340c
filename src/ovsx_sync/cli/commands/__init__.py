"""CLI command modules."""

from .init import init_driver, init_github, init_marketplaces, init_store
from .publish import publish_command
from .report import report_command
from .resolve import resolve_command
from .upgrade import upgrade_command

__all__ = [
    "init_driver",
    "init_github",
    "init_marketplaces",
    "init_store",
    "publish_command",
    "report_command",
    "resolve_command",
    "upgrade_command",
]
