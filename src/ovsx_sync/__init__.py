"""ovsx-sync.

Keeps an Open VSX registry in sync with the Visual Studio Marketplace by
resolving which upstream artifact matches the marketplace version of every
tracked extension and publishing it in an isolated, time-bounded worker.
"""

__version__ = "1.0.0"

from .config import Config
from .models import PackageStore, TrackedPackage, VersionRecord

__all__ = [
    "Config",
    "PackageStore",
    "TrackedPackage",
    "VersionRecord",
]
