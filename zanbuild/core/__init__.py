"""
Core functionality for zanbuild.

This package contains the foundational modules the provisioning and build
layers depend on.
"""

from .exceptions import (
    ZanbuildError,
    ConfigError,
    FilesystemError,
    CacheLockTimeout,
    DownloadError,
    ExtractionError,
    InsecureArchiveError,
    SourceFetchError,
    ToolSetupError,
    OptionalToolError,
    ToolchainNotFoundError,
    GenerateError,
    BuildError,
)

from .fallback import (
    Strategy,
    StrategyUnavailable,
    StrategiesExhausted,
    first_success,
)

from .download import Downloader
from .filesystem import ArchiveExtractor, safe_rmtree
from .locking import cache_lock

__all__ = [
    # Exceptions
    "ZanbuildError",
    "ConfigError",
    "FilesystemError",
    "CacheLockTimeout",
    "DownloadError",
    "ExtractionError",
    "InsecureArchiveError",
    "SourceFetchError",
    "ToolSetupError",
    "OptionalToolError",
    "ToolchainNotFoundError",
    "GenerateError",
    "BuildError",
    # Fallback chains
    "Strategy",
    "StrategyUnavailable",
    "StrategiesExhausted",
    "first_success",
    # Components
    "Downloader",
    "ArchiveExtractor",
    "safe_rmtree",
    "cache_lock",
]
