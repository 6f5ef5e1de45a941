"""
zanbuild/toolchain/locator.py

Visual Studio C++ toolchain discovery.

Uses vswhere.exe to find an installation with the x64 C++ tools. When none
is found, an unattended Build Tools install through Chocolatey can be
attempted, after which vswhere is queried once more. Failure to find a
toolchain is not fatal: CMake may still succeed if the environment already
points at a usable compiler.
"""

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Callable, List, Optional

from zanbuild.core.exceptions import ToolchainNotFoundError
from zanbuild.core.process import IS_WINDOWS, run_command

logger = logging.getLogger(__name__)

VSWHERE_PATH = Path(
    "C:/Program Files (x86)/Microsoft Visual Studio/Installer/vswhere.exe"
)
REQUIRED_COMPONENT = "Microsoft.VisualStudio.Component.VC.Tools.x86.x64"
BUILD_TOOLS_PACKAGE = "visualstudio2022buildtools"
BUILD_TOOLS_COMPONENTS = (
    "Microsoft.VisualStudio.Workload.VCTools",
    "Microsoft.VisualStudio.Component.VC.Tools.x86.x64",
    "Microsoft.VisualStudio.Component.Windows10SDK.19041",
)
INSTALL_TIMEOUT = 3600


def refresh_path_from_registry() -> None:
    """
    Reload PATH from the machine and user registry keys (Windows only).

    Installers update the registry, not the environment of running
    processes.
    """
    if not IS_WINDOWS:
        return

    import winreg

    locations = [
        (
            winreg.HKEY_LOCAL_MACHINE,
            r"SYSTEM\CurrentControlSet\Control\Session Manager\Environment",
        ),
        (winreg.HKEY_CURRENT_USER, r"Environment"),
    ]
    parts: List[str] = []
    for hive, subkey in locations:
        try:
            with winreg.OpenKey(hive, subkey) as key:
                value, _ = winreg.QueryValueEx(key, "Path")
                parts.append(os.path.expandvars(value))
        except OSError as e:
            logger.debug(f"Could not read PATH from registry: {e}")

    if parts:
        os.environ["PATH"] = os.pathsep.join(parts)
        logger.debug("Refreshed PATH from registry")


class ToolchainLocator:
    """
    Locate (and optionally install) Visual Studio with C++ tools.

    Attributes:
        vswhere_path: Location of vswhere.exe
        auto_install: Attempt a Chocolatey install when nothing is found
    """

    def __init__(
        self,
        vswhere_path: Path = VSWHERE_PATH,
        auto_install: bool = True,
        refresh_environment: Callable[[], None] = refresh_path_from_registry,
    ):
        self.vswhere_path = Path(vswhere_path)
        self.auto_install = auto_install
        self._refresh_environment = refresh_environment

    def locate(self) -> Optional[Path]:
        """
        Find a Visual Studio installation with the required component.

        Returns:
            Installation root, or None if no toolchain is available
        """
        install_path = self.query()
        if install_path is not None:
            logger.info(f"Found Visual Studio at {install_path}")
            return install_path

        if not self.auto_install:
            return None

        logger.warning("No Visual Studio C++ toolchain found, attempting install")
        if not self.install():
            return None

        self._refresh_environment()
        install_path = self.query()
        if install_path is not None:
            logger.info(f"Found Visual Studio at {install_path}")
        return install_path

    def require(self) -> Path:
        """
        Like locate(), but raise when nothing is found.

        Raises:
            ToolchainNotFoundError: If no toolchain is available
        """
        install_path = self.locate()
        if install_path is None:
            raise ToolchainNotFoundError(
                "No Visual Studio installation with the C++ tools was found"
            )
        return install_path

    def query(self) -> Optional[Path]:
        """Ask vswhere for the latest installation with the C++ tools."""
        if not self.vswhere_path.exists():
            logger.debug(f"vswhere not found at {self.vswhere_path}")
            return None

        try:
            result = run_command(
                [
                    self.vswhere_path,
                    "-latest",
                    "-products",
                    "*",
                    "-requires",
                    REQUIRED_COMPONENT,
                    "-property",
                    "installationPath",
                ],
                capture_output=True,
                timeout=30,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"vswhere query failed: {e}")
            return None

        if result.returncode != 0:
            logger.debug(f"vswhere returned {result.returncode}")
            return None

        for line in result.stdout.splitlines():
            if line.strip():
                return Path(line.strip())
        return None

    def install(self) -> bool:
        """
        Install the Build Tools through Chocolatey and wait for completion.

        Returns:
            True if the installer reported success
        """
        choco = shutil.which("choco")
        if not choco:
            logger.warning("Chocolatey not found; cannot install Build Tools")
            return False

        package_parameters = " ".join(
            f"--add {component}" for component in BUILD_TOOLS_COMPONENTS
        )
        cmd = [
            choco,
            "install",
            BUILD_TOOLS_PACKAGE,
            "-y",
            "--no-progress",
            "--package-parameters",
            f"{package_parameters} --includeRecommended",
        ]

        logger.info(f"Installing {BUILD_TOOLS_PACKAGE} (this can take a while)")
        try:
            result = run_command(cmd, timeout=INSTALL_TIMEOUT)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Build Tools install failed: {e}")
            return False

        if result.returncode != 0:
            logger.warning(f"Build Tools install exited with {result.returncode}")
            return False
        return True

    @staticmethod
    def msbuild_path(install_path: Optional[Path]) -> Optional[Path]:
        """MSBuild.exe inside an installation, if present."""
        if install_path is None:
            return None
        msbuild = Path(install_path) / "MSBuild" / "Current" / "Bin" / "MSBuild.exe"
        return msbuild if msbuild.exists() else None
