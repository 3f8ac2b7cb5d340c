"""Service construction shared by the CLI commands.

- init_store() -> StoreService
- init_marketplaces() -> (primary, secondary) MarketplaceService
- init_github() -> GitHubService
- init_driver() -> BatchDriver
"""

import logging
from pathlib import Path
from typing import Optional, Tuple

from ...config import Config
from ...core.sync import (
    BatchDriver,
    PublishSupervisor,
    ResolutionPolicy,
    StatLedger,
)
from ...services import GitHubService, MarketplaceService, StoreService

logger = logging.getLogger(__name__)


def init_store(config: Config, store_path: Optional[Path] = None) -> StoreService:
    """Open the tracked-package store, the configured one unless overridden."""
    return StoreService(store_path or config.store_path)


def init_marketplaces(config: Config) -> Tuple[MarketplaceService, MarketplaceService]:
    """Create the primary and secondary gallery clients."""
    primary = MarketplaceService(
        config.ms_gallery_url,
        name="MS marketplace",
        max_retries=config.max_retries,
        timeout=config.http_timeout,
    )
    secondary = MarketplaceService(
        config.open_gallery_url,
        name="Open VSX",
        max_retries=config.max_retries,
        timeout=config.http_timeout,
    )
    return primary, secondary


def init_github(config: Config) -> GitHubService:
    """Create the GitHub release enumerator."""
    if not config.github_token:
        logger.debug("GITHUB_TOKEN is not set, using the anonymous rate limit")
    return GitHubService(
        api_url=config.github_api_url,
        token=config.github_token,
        max_retries=config.max_retries,
        timeout=config.http_timeout,
    )


def init_driver(
    config: Config, dry_run: bool = False, max_workers: Optional[int] = None
) -> BatchDriver:
    """Wire up a BatchDriver from configuration.

    Args:
        config: Application configuration
        dry_run: Resolve only, never publish
        max_workers: Override of the configured parallelism

    Returns:
        BatchDriver ready to run
    """
    primary, secondary = init_marketplaces(config)
    policy = ResolutionPolicy(init_github(config), staleness_days=config.staleness_days)
    supervisor = PublishSupervisor(
        work_root=config.work_dir,
        registry_url=config.registry_url,
        ovsx_command=config.ovsx_command,
    )
    ledger = StatLedger(
        known_publishers=config.known_publishers,
        recent_window_days=config.recent_window_days,
        hit_window_days=config.hit_window_days,
    )
    return BatchDriver(
        ms_oracle=primary,
        ovsx_oracle=secondary,
        policy=policy,
        supervisor=supervisor,
        ledger=ledger,
        dry_run=dry_run,
        max_workers=max_workers or config.max_workers,
        default_timeout_minutes=config.default_timeout_minutes,
    )
