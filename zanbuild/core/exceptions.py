"""
Centralized exception hierarchy for zanbuild.

Every error raised by the build pipeline derives from ZanbuildError so the
top-level CLI wrapper can report it uniformly. Exceptions carry the subject
they are about (URL, archive, tool) as attributes.
"""

from pathlib import Path
from typing import Optional, Union


# ============================================================================
# Base Exceptions
# ============================================================================


class ZanbuildError(Exception):
    """Base exception for all zanbuild errors."""

    pass


class ConfigError(ZanbuildError):
    """Configuration parsing or validation error."""

    pass


class FilesystemError(ZanbuildError):
    """Base exception for filesystem operations."""

    pass


class CacheLockTimeout(ZanbuildError):
    """Raised when the cache-root lock is held by another process."""

    pass


# ============================================================================
# Acquisition Exceptions
# ============================================================================


class DownloadError(ZanbuildError):
    """Raised when every transport strategy failed to fetch a URL."""

    def __init__(self, url: str, message: Optional[str] = None):
        self.url = url
        super().__init__(message or f"Failed to download {url}")


class ExtractionError(ZanbuildError):
    """Raised when every extraction strategy failed for an archive."""

    def __init__(self, archive: Union[str, Path], message: Optional[str] = None):
        self.archive = Path(archive)
        super().__init__(message or f"Failed to extract {self.archive}")


class InsecureArchiveError(ExtractionError):
    """Archive member attempts to escape the extraction directory."""

    pass


class SourceFetchError(ZanbuildError):
    """Raised when the engine source could not be obtained."""

    pass


# ============================================================================
# Provisioning Exceptions
# ============================================================================


class ToolSetupError(ZanbuildError):
    """Raised when a tool's marker is still missing after provisioning."""

    def __init__(self, tool: str, message: Optional[str] = None):
        self.tool = tool
        super().__init__(message or f"Failed to set up {tool}")


class OptionalToolError(ZanbuildError):
    """
    Provisioning of an optional tool failed.

    Raised only for specs marked optional. Callers log it as a warning and
    continue with the tool's paths left unresolved.
    """

    def __init__(self, tool: str, message: Optional[str] = None):
        self.tool = tool
        super().__init__(message or f"Optional tool {tool} is unavailable")


# ============================================================================
# Toolchain and Build Exceptions
# ============================================================================


class ToolchainNotFoundError(ZanbuildError):
    """No suitable native compiler suite was found. Non-fatal."""

    pass


class GenerateError(ZanbuildError):
    """The build-file generator exited with a non-zero status."""

    pass


class BuildError(ZanbuildError):
    """The build driver exited with a non-zero status."""

    pass
