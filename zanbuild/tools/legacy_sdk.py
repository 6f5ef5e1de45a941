"""
Synthesized legacy DirectX SDK.

The engine's CMake scripts still look for the June 2010 DirectX SDK through
the DXSDK_DIR environment variable. The import libraries it needs ship with
every Windows 10 SDK, so a directory with the legacy layout is assembled
from the installed Windows Kits instead of downloading the old SDK.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_WINDOWS_KITS = Path(r"C:\Program Files (x86)\Windows Kits\10")
LEGACY_SDK_DIR = "dxsdk"
LEGACY_SDK_ENV = "DXSDK_DIR"
IMPORT_LIBRARIES = ("d3d9.lib", "dinput8.lib", "dxguid.lib", "dsound.lib")
MARKER = Path("Lib") / "x64" / "dxguid.lib"


def _version_key(path: Path):
    return tuple(int(part) if part.isdigit() else 0 for part in path.name.split("."))


def find_um_libraries(windows_kits_root: Path) -> Optional[Path]:
    """
    Return the newest Lib/<version>/um/x64 directory of a Windows 10 SDK.
    """
    lib_root = Path(windows_kits_root) / "Lib"
    if not lib_root.is_dir():
        return None

    candidates = [
        version_dir / "um" / "x64"
        for version_dir in lib_root.iterdir()
        if (version_dir / "um" / "x64").is_dir()
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda p: _version_key(p.parent.parent))


def existing_legacy_sdk(cache_root: Path) -> Optional[Path]:
    """Return the synthesized SDK directory if an earlier run created it."""
    sdk_dir = Path(cache_root) / LEGACY_SDK_DIR
    return sdk_dir.resolve() if (sdk_dir / MARKER).is_file() else None


def synthesize_legacy_sdk(
    cache_root: Path, windows_kits_root: Path = DEFAULT_WINDOWS_KITS
) -> Optional[Path]:
    """
    Assemble a legacy-SDK directory under the cache root.

    Args:
        cache_root: Cache directory
        windows_kits_root: Windows 10 SDK installation root

    Returns:
        The synthesized directory, or None if no Windows SDK is installed
    """
    existing = existing_legacy_sdk(cache_root)
    if existing is not None:
        logger.debug(f"Legacy SDK already present at {existing}")
        return existing

    um_libraries = find_um_libraries(windows_kits_root)
    if um_libraries is None:
        logger.warning(
            f"Windows SDK not found under {windows_kits_root}; "
            f"{LEGACY_SDK_ENV} will not be set"
        )
        return None

    sdk_dir = Path(cache_root) / LEGACY_SDK_DIR
    lib_dir = sdk_dir / "Lib" / "x64"
    lib_dir.mkdir(parents=True, exist_ok=True)
    (sdk_dir / "Include").mkdir(parents=True, exist_ok=True)

    for name in IMPORT_LIBRARIES:
        source = um_libraries / name
        if source.is_file():
            shutil.copy2(source, lib_dir / name)
        else:
            logger.warning(f"{name} missing from {um_libraries}")

    if not (sdk_dir / MARKER).is_file():
        logger.warning(f"Legacy SDK at {sdk_dir} is incomplete")
        return None

    logger.info(f"Synthesized legacy SDK from {um_libraries}")
    return sdk_dir.resolve()


def export_legacy_sdk(sdk_dir: Path) -> None:
    """Advertise the synthesized SDK to the generator."""
    os.environ[LEGACY_SDK_ENV] = str(sdk_dir) + os.sep
    logger.debug(f"{LEGACY_SDK_ENV}={os.environ[LEGACY_SDK_ENV]}")
