"""Configuration management for the ovsx-sync application."""

import os
import tempfile
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Load .env file from config directory or project root
config_env = Path(__file__).parent.parent.parent / "config" / ".env"
if config_env.exists():
    load_dotenv(config_env)
else:
    # Fallback to project root .env
    load_dotenv()


DEFAULT_KNOWN_PUBLISHERS = (
    "ms-python",
    "ms-toolsai",
    "ms-vscode",
    "dbaeumer",
    "GitHub",
    "Tyriar",
    "ms-azuretools",
    "msjsdiag",
    "ms-mssql",
    "vscjava",
    "ms-vsts",
)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


def _env_list(name: str) -> Optional[List[str]]:
    """Parse a comma separated environment variable, None when unset."""
    value = os.getenv(name)
    if not value:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    """Application configuration."""

    def __init__(self) -> None:
        """Initialize configuration from environment variables."""
        # Registry credentials
        self.ovsx_pat = os.getenv("OVSX_PAT")
        self.github_token = os.getenv("GITHUB_TOKEN")

        # Endpoints
        self.registry_url = os.getenv("OVSX_REGISTRY_URL", "https://open-vsx.org")
        self.ms_gallery_url = os.getenv(
            "OVSX_SYNC_MS_GALLERY_URL",
            "https://marketplace.visualstudio.com/_apis/public/gallery",
        )
        self.open_gallery_url = os.getenv(
            "OVSX_SYNC_OPEN_GALLERY_URL", "https://open-vsx.org/vscode/gallery"
        )
        self.github_api_url = os.getenv(
            "OVSX_SYNC_GITHUB_API_URL", "https://api.github.com"
        )
        self.ovsx_command = os.getenv("OVSX_SYNC_OVSX_COMMAND", "ovsx")

        # Files
        self.store_path = Path(os.getenv("OVSX_SYNC_STORE_PATH", "extensions.json"))
        self.report_path = Path(os.getenv("OVSX_SYNC_REPORT_PATH", "/tmp/stat.json"))
        self.failed_log_path = Path(
            os.getenv("OVSX_SYNC_FAILED_LOG_PATH", "/tmp/failed-extensions.log")
        )
        self.work_dir = Path(
            os.getenv(
                "OVSX_SYNC_WORK_DIR", str(Path(tempfile.gettempdir()) / "ovsx-sync")
            )
        )

        # Sync policy settings
        self.default_timeout_minutes = _env_int(
            "OVSX_SYNC_DEFAULT_TIMEOUT_MINUTES", 5
        )
        self.staleness_days = _env_int("OVSX_SYNC_STALENESS_DAYS", 30)
        self.recent_window_days = _env_int("OVSX_SYNC_RECENT_WINDOW_DAYS", 30)
        self.hit_window_days = _env_int("OVSX_SYNC_HIT_WINDOW_DAYS", 2)
        self.known_publishers = frozenset(
            _env_list("OVSX_SYNC_KNOWN_PUBLISHERS") or DEFAULT_KNOWN_PUBLISHERS
        )

        # Network settings
        self.max_retries = _env_int("OVSX_SYNC_MAX_RETRIES", 5)
        self.http_timeout = _env_int("OVSX_SYNC_HTTP_TIMEOUT", 30)

        # Run settings
        self.max_workers = max(1, _env_int("OVSX_SYNC_MAX_WORKERS", 1))
        self.dry_run = bool(os.getenv("DRY_RUN"))
        self.failed_extensions = _env_list("FAILED_EXTENSIONS")

        # Ensure directories exist
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        """Ensure required directories exist."""
        self.work_dir.mkdir(parents=True, exist_ok=True)


def get_config() -> Config:
    """Get application configuration."""
    return Config()
