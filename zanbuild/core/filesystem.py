"""
File system utilities for zanbuild.

This module provides:
- Archive extraction with an ordered fallback chain (bundled 7-Zip, Python
  decompressors, system 7-Zip)
- Directory-traversal validation of archive members
- Safe deletion and move/copy helpers used by layout normalization and
  artifact collection
"""

import logging
import os
import shutil
import sys
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import py7zr

from zanbuild.core.exceptions import (
    ExtractionError,
    FilesystemError,
    InsecureArchiveError,
)
from zanbuild.core.fallback import (
    StrategiesExhausted,
    Strategy,
    StrategyUnavailable,
    first_success,
)
from zanbuild.core.process import IS_WINDOWS, run_command

logger = logging.getLogger(__name__)

TAR_SUFFIXES = {
    ".tar": "r:",
    ".tar.gz": "r:gz",
    ".tgz": "r:gz",
    ".tar.xz": "r:xz",
    ".tar.bz2": "r:bz2",
    ".tbz2": "r:bz2",
}

# Compressed tarballs need two 7-Zip passes: outer stream, then the tar
TWO_STAGE_SUFFIXES = (".tar.gz", ".tgz", ".tar.xz", ".tar.bz2", ".tbz2")

SEVEN_ZIP_LOCATIONS = [
    Path(r"C:\Program Files\7-Zip\7z.exe"),
    Path(r"C:\Program Files (x86)\7-Zip\7z.exe"),
]


# ============================================================================
# Path Helpers
# ============================================================================


def is_relative_to(path: Path, parent: Path) -> bool:
    """
    Check if path is under parent directory.

    Example:
        >>> is_relative_to(Path("/home/user/project/file.txt"), Path("/home/user"))
        True
    """
    try:
        path.relative_to(parent)
        return True
    except ValueError:
        return False


def archive_suffix(archive_path: Path) -> str:
    """
    Return the archive's format suffix, including double suffixes.

    Example:
        >>> archive_suffix(Path("opus-1.3.1.tar.gz"))
        '.tar.gz'
    """
    name = archive_path.name.lower()
    for suffix in TWO_STAGE_SUFFIXES:
        if name.endswith(suffix):
            return suffix
    return archive_path.suffix.lower()


def _validate_archive_path(path: str, destination: Path) -> None:
    """
    Validate that an archive member path is safe to extract.

    Raises:
        InsecureArchiveError: If path attempts directory traversal
    """
    member_path = (destination / path).resolve()
    if not is_relative_to(member_path, destination.resolve()):
        raise InsecureArchiveError(
            path,
            f"Archive member '{path}' attempts directory traversal. "
            "Extraction has been blocked.",
        )


# ============================================================================
# Extraction Strategies
# ============================================================================


def extract_builtin(archive_path: Path, destination: Path) -> None:
    """
    Extract with Python's own decompressors.

    Supported: .zip, .tar, .tar.gz/.tgz, .tar.xz, .tar.bz2/.tbz2, .7z

    Raises:
        StrategyUnavailable: For other formats (e.g. .exe installers)
        InsecureArchiveError: If a member escapes the destination
    """
    suffix = archive_suffix(archive_path)

    if suffix == ".zip":
        with zipfile.ZipFile(archive_path, "r") as zf:
            members = zf.namelist()
            for member in members:
                _validate_archive_path(member, destination)
            zf.extractall(destination)

    elif suffix in TAR_SUFFIXES:
        with tarfile.open(archive_path, TAR_SUFFIXES[suffix]) as tar:
            for member in tar.getmembers():
                _validate_archive_path(member.name, destination)
            if sys.version_info >= (3, 12):
                tar.extractall(destination, filter="data")
            else:
                tar.extractall(destination)

    elif suffix == ".7z":
        with py7zr.SevenZipFile(archive_path, "r") as archive:
            for member in archive.getnames():
                _validate_archive_path(member, destination)
            archive.extractall(destination)

    else:
        raise StrategyUnavailable(f"No built-in decompressor for '{suffix}'")


def _run_seven_zip(seven_zip: Path, archive_path: Path, destination: Path) -> None:
    result = run_command(
        [seven_zip, "x", archive_path, f"-o{destination}", "-y"],
        capture_output=True,
    )
    if result.returncode != 0:
        raise RuntimeError(
            f"7-Zip exited with {result.returncode}: {result.stderr.strip()}"
        )


def extract_with_seven_zip(
    seven_zip: Path, archive_path: Path, destination: Path
) -> None:
    """
    Extract with a 7-Zip executable.

    Compressed tarballs get two passes; the intermediate .tar is written to
    a temporary directory next to the destination and removed afterwards.
    """
    if archive_suffix(archive_path) not in TWO_STAGE_SUFFIXES:
        _run_seven_zip(seven_zip, archive_path, destination)
        return

    intermediate_dir = Path(
        tempfile.mkdtemp(prefix=".zanbuild-unpack-", dir=destination.parent)
    )
    try:
        _run_seven_zip(seven_zip, archive_path, intermediate_dir)
        tars = sorted(intermediate_dir.glob("*.tar"))
        if not tars:
            raise RuntimeError(f"No tar stream inside {archive_path.name}")
        _run_seven_zip(seven_zip, tars[0], destination)
    finally:
        shutil.rmtree(intermediate_dir, ignore_errors=True)


def find_system_seven_zip() -> Optional[Path]:
    """Locate 7z/7za on PATH or in the standard install directories."""
    for name in ("7z", "7za"):
        found = shutil.which(name)
        if found:
            return Path(found)

    if IS_WINDOWS:
        for candidate in SEVEN_ZIP_LOCATIONS:
            if candidate.exists():
                return candidate

    return None


# ============================================================================
# ArchiveExtractor
# ============================================================================


class ArchiveExtractor:
    """
    Extract archives using the first strategy that works.

    Order: the bundled 7-Zip executable, Python's built-in decompressors,
    then a system-installed 7-Zip.

    Attributes:
        bundled_archiver: Path to the bundled 7za.exe (may not exist)
        strategies: Ordered extraction strategies
    """

    def __init__(
        self,
        bundled_archiver: Optional[Path] = None,
        strategies: Optional[Sequence[Strategy]] = None,
        system_locator: Callable[[], Optional[Path]] = find_system_seven_zip,
    ):
        self.bundled_archiver = Path(bundled_archiver) if bundled_archiver else None
        self._system_locator = system_locator
        self.strategies: List[Strategy] = (
            list(strategies)
            if strategies is not None
            else [
                Strategy("bundled", self._extract_bundled),
                Strategy("builtin", extract_builtin),
                Strategy("system", self._extract_system),
            ]
        )

    def use_archiver(self, archiver: Path) -> None:
        """Switch the bundled strategy to a different 7-Zip executable."""
        logger.debug(f"Using bundled archiver {archiver}")
        self.bundled_archiver = Path(archiver)

    def _extract_bundled(self, archive_path: Path, destination: Path) -> None:
        if not self.bundled_archiver or not self.bundled_archiver.is_file():
            raise StrategyUnavailable("No bundled archiver present")
        extract_with_seven_zip(self.bundled_archiver, archive_path, destination)

    def _extract_system(self, archive_path: Path, destination: Path) -> None:
        seven_zip = self._system_locator()
        if seven_zip is None:
            raise StrategyUnavailable("7-Zip not found on this system")
        extract_with_seven_zip(seven_zip, archive_path, destination)

    def extract(
        self, archive_path: Union[str, Path], destination: Union[str, Path]
    ) -> None:
        """
        Extract archive_path into destination (created if missing).

        Raises:
            ExtractionError: If the archive is missing or every strategy failed
            InsecureArchiveError: If the archive contains traversal paths
        """
        archive_path = Path(archive_path)
        destination = Path(destination)

        if not archive_path.exists():
            raise ExtractionError(archive_path, f"Archive not found: {archive_path}")

        destination.mkdir(parents=True, exist_ok=True)
        logger.info(f"Extracting {archive_path.name}")

        try:
            name, _ = first_success(
                self.strategies,
                archive_path,
                destination,
                fatal=(InsecureArchiveError,),
            )
        except StrategiesExhausted as e:
            raise ExtractionError(
                archive_path, f"Failed to extract {archive_path.name}: {e}"
            ) from e.last_error

        logger.debug(f"Extracted {archive_path.name} via {name}")


# ============================================================================
# Safe File Operations
# ============================================================================


def safe_rmtree(
    path: Union[str, Path], require_prefix: Optional[Union[str, Path]] = None
) -> None:
    """
    Safely remove a directory tree with safeguards.

    Args:
        path: Directory to remove
        require_prefix: If specified, path must be under this directory

    Raises:
        ValueError: If path is not under require_prefix
        FilesystemError: If deletion fails

    Example:
        >>> safe_rmtree('build/x64', require_prefix='build')
    """
    path = Path(path).resolve()

    if require_prefix is not None:
        require_prefix = Path(require_prefix).resolve()
        if not is_relative_to(path, require_prefix):
            raise ValueError(
                f"Refusing to delete '{path}': not under required prefix '{require_prefix}'"
            )

    if not path.exists():
        return

    if not path.is_dir():
        raise FilesystemError(f"Path is not a directory: {path}")

    try:
        if IS_WINDOWS:

            def handle_remove_readonly(func, path, exc):
                """Error handler for Windows read-only files."""
                if not os.access(path, os.W_OK):
                    os.chmod(path, 0o777)
                    func(path)
                else:
                    raise

            shutil.rmtree(path, onerror=handle_remove_readonly)
        else:
            shutil.rmtree(path)

    except Exception as e:
        raise FilesystemError(f"Failed to remove directory '{path}': {e}") from e


def move_tree(source: Path, destination: Path) -> None:
    """
    Move a directory to destination, merging into it if it already exists.
    """
    if not destination.exists():
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source), str(destination))
        return

    for item in source.iterdir():
        target = destination / item.name
        if item.is_dir() and target.is_dir():
            move_tree(item, target)
        else:
            if target.is_dir():
                shutil.rmtree(target)
            elif target.exists():
                target.unlink()
            shutil.move(str(item), str(target))
    source.rmdir()


def copy_if_absent(source: Path, destination: Path) -> bool:
    """
    Copy a file unless destination already exists.

    Returns:
        True if the file was copied
    """
    if destination.exists():
        return False
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, destination)
    return True
