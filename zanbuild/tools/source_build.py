"""
Build hooks for dependencies that ship only as source.

The hook runs after extraction and layout normalization. It drives the same
generator/build-driver pair as the main build (BuildInvocation), or MSBuild
directly when the source tree only carries a Visual Studio solution, and
then copies the static library and headers into the tool's install dir.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from zanbuild.build.invocation import BuildInvocation, build_command
from zanbuild.core.exceptions import ToolSetupError
from zanbuild.core.process import run_command, scoped_environ

logger = logging.getLogger(__name__)

BUILD_CONFIGURATION = "Release"


@dataclass(frozen=True)
class SourceBuildContext:
    """Toolchain facts a from-source build needs."""

    cmake: Optional[Path] = None
    generator: str = "Visual Studio 17 2022"
    platform: str = "x64"
    msbuild: Optional[Path] = None


@dataclass(frozen=True)
class CMakeSourceBuild:
    """
    Build a static library from an extracted source tree.

    Attributes:
        library: File name of the library to produce (e.g. "opus.lib")
        headers: Header directory relative to the source tree
        source_subdir: Where layout normalization put the sources
    """

    library: str
    headers: str = "include"
    source_subdir: str = "source"

    def __call__(self, name: str, install_dir: Path, context: SourceBuildContext) -> None:
        source_dir = install_dir / self.source_subdir
        build_dir = install_dir / "build"

        kind, descriptor = self.find_descriptor(name, source_dir)
        logger.info(f"Building {name} from source ({descriptor.name})")

        env_path = [context.cmake.parent] if context.cmake else []
        try:
            with scoped_environ(env_path, LC_ALL="C", VSLANG="1033"):
                if kind == "cmake":
                    self._build_with_cmake(name, source_dir, build_dir, context)
                else:
                    self._build_with_msbuild(name, descriptor, context)
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            raise ToolSetupError(name, f"Could not build {name}: {e}") from e

        self._install(name, install_dir, source_dir)

    def find_descriptor(self, name: str, source_dir: Path) -> Tuple[str, Path]:
        """
        Locate the build descriptor, preferring CMake over a solution file.

        Raises:
            ToolSetupError: If neither is present
        """
        cmake_lists = source_dir / "CMakeLists.txt"
        if cmake_lists.is_file():
            return "cmake", cmake_lists

        solutions = sorted((source_dir / "win32").glob("**/*.sln"))
        if solutions:
            return "msbuild", solutions[-1]

        raise ToolSetupError(name, f"No CMakeLists.txt or solution file in {source_dir}")

    def _build_with_cmake(
        self, name: str, source_dir: Path, build_dir: Path, context: SourceBuildContext
    ) -> None:
        cmake = str(context.cmake) if context.cmake else "cmake"
        invocation = BuildInvocation(
            generator=context.generator,
            platform=context.platform,
            configuration=BUILD_CONFIGURATION,
            definitions=(
                ("CMAKE_BUILD_TYPE", BUILD_CONFIGURATION),
                ("BUILD_SHARED_LIBS", "OFF"),
                ("BUILD_TESTING", "OFF"),
            ),
            source_dir=source_dir,
            build_dir=build_dir,
        )

        result = run_command(invocation.command(cmake))
        if result.returncode != 0:
            raise ToolSetupError(
                name, f"Configuring {name} failed with exit code {result.returncode}"
            )

        result = run_command(build_command(build_dir, BUILD_CONFIGURATION, cmake))
        if result.returncode != 0:
            raise ToolSetupError(
                name, f"Building {name} failed with exit code {result.returncode}"
            )

    def _build_with_msbuild(
        self, name: str, solution: Path, context: SourceBuildContext
    ) -> None:
        if context.msbuild is None:
            raise ToolSetupError(name, f"MSBuild is required to build {solution.name}")

        result = run_command(
            [
                context.msbuild,
                solution,
                "/m",
                f"/p:Configuration={BUILD_CONFIGURATION}",
                f"/p:Platform={context.platform}",
            ],
            cwd=solution.parent,
        )
        if result.returncode != 0:
            raise ToolSetupError(
                name, f"MSBuild failed for {name} with exit code {result.returncode}"
            )

    def _install(self, name: str, install_dir: Path, source_dir: Path) -> None:
        lib_dir = install_dir / "lib"
        candidates: List[Path] = sorted(
            p for p in install_dir.rglob(self.library) if lib_dir not in p.parents
        )
        if not candidates:
            raise ToolSetupError(name, f"Build finished but {self.library} was not produced")

        lib_dir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(candidates[0], lib_dir / self.library)

        include_dir = install_dir / "include" / name
        include_dir.mkdir(parents=True, exist_ok=True)
        for header in sorted((source_dir / self.headers).glob("*.h")):
            shutil.copy2(header, include_dir / header.name)

        logger.info(f"Installed {self.library} to {lib_dir}")
