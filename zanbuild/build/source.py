"""
Engine source acquisition.

The upstream repository is Mercurial. A clone is preferred; when hg is not
installed or the clone fails, the repository's ZIP snapshot is downloaded
and unpacked instead.
"""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Optional

from zanbuild.core.download import Downloader
from zanbuild.core.exceptions import (
    DownloadError,
    ExtractionError,
    SourceFetchError,
)
from zanbuild.core.filesystem import ArchiveExtractor, safe_rmtree
from zanbuild.core.process import run_command
from zanbuild.tools.layout import LayoutMismatch, SingleRoot

logger = logging.getLogger(__name__)

SOURCE_MARKER = "CMakeLists.txt"


class SourceFetcher:
    """
    Make sure the engine source tree is present.

    Attributes:
        hg_url: Mercurial repository URL
        zip_url: Snapshot archive URL used as a fallback
    """

    def __init__(
        self,
        hg_url: str,
        zip_url: str,
        downloader: Optional[Downloader] = None,
        extractor: Optional[ArchiveExtractor] = None,
    ):
        self.hg_url = hg_url
        self.zip_url = zip_url
        self.downloader = downloader or Downloader()
        self.extractor = extractor or ArchiveExtractor()

    def ensure(self, source_root: Path) -> Path:
        """
        Return source_root, fetching the source first if needed.

        Raises:
            SourceFetchError: If neither the clone nor the snapshot worked
        """
        source_root = Path(source_root)
        if (source_root / SOURCE_MARKER).is_file():
            logger.info(f"Engine source present at {source_root}")
            return source_root

        if self._clone(source_root):
            return source_root

        self._download_snapshot(source_root)
        if not (source_root / SOURCE_MARKER).is_file():
            raise SourceFetchError(
                f"Engine source at {source_root} has no {SOURCE_MARKER}"
            )
        return source_root

    def _clone(self, source_root: Path) -> bool:
        hg = shutil.which("hg")
        if not hg:
            logger.warning("Mercurial not found, falling back to ZIP snapshot")
            return False

        logger.info(f"Cloning {self.hg_url}")
        existed = source_root.exists()
        source_root.parent.mkdir(parents=True, exist_ok=True)
        try:
            result = run_command([hg, "clone", self.hg_url, source_root])
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"hg clone failed: {e}")
            return False

        if result.returncode != 0 or not (source_root / SOURCE_MARKER).is_file():
            logger.warning(f"hg clone failed with exit code {result.returncode}")
            # Only a directory the clone created is removed
            if not existed:
                safe_rmtree(source_root, require_prefix=source_root.parent)
            return False
        return True

    def _download_snapshot(self, source_root: Path) -> None:
        parent = source_root.parent
        archive = parent / f"{source_root.name}-snapshot.zip"
        staging = parent / f".{source_root.name}-staging"

        try:
            self.downloader.fetch(self.zip_url, archive)
            safe_rmtree(staging, require_prefix=parent)
            self.extractor.extract(archive, staging)
            SingleRoot()(staging, source_root)
        except (DownloadError, ExtractionError, LayoutMismatch) as e:
            raise SourceFetchError(f"Could not obtain engine source: {e}") from e
        finally:
            if archive.exists():
                archive.unlink()
            safe_rmtree(staging, require_prefix=parent)
