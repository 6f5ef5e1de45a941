"""
CMake generate/build driver for the engine.
"""

import logging
import shutil
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from zanbuild.build.invocation import BuildInvocation, build_command
from zanbuild.core.exceptions import BuildError, GenerateError
from zanbuild.core.filesystem import copy_if_absent
from zanbuild.core.process import run_command
from zanbuild.tools.provisioner import ProvisionedTool

logger = logging.getLogger(__name__)


class BuildOrchestrator:
    """
    Run the generator and build driver, then gather run-time files.

    Attributes:
        generator: CMake generator name
        cmake: CMake executable (a provisioned one, or "cmake" from PATH)
    """

    def __init__(self, generator: str, cmake: Optional[Path] = None):
        self.generator = generator
        self.cmake = str(cmake) if cmake else "cmake"

    def generate(
        self,
        source_dir: Path,
        build_dir: Path,
        platform: str,
        configuration: str,
        tools: Iterable[ProvisionedTool],
    ) -> BuildInvocation:
        """
        Configure the build directory.

        Tools whose include or library paths were not both resolved add no
        definitions.

        Returns:
            The invocation that was run

        Raises:
            GenerateError: If CMake is missing or exits non-zero
        """
        invocation = BuildInvocation.from_tools(
            generator=self.generator,
            platform=platform,
            configuration=configuration,
            source_dir=source_dir,
            build_dir=build_dir,
            tools=tools,
        )
        Path(build_dir).mkdir(parents=True, exist_ok=True)

        logger.info(f"Generating {self.generator} ({platform}, {configuration})")
        try:
            result = run_command(invocation.command(self.cmake), cwd=source_dir)
        except FileNotFoundError as e:
            raise GenerateError(f"CMake not found: {self.cmake}") from e

        if result.returncode != 0:
            raise GenerateError(
                f"CMake generation failed with exit code {result.returncode}"
            )
        return invocation

    def build(self, build_dir: Path, configuration: str) -> None:
        """
        Build the generated project, letting the driver parallelize.

        Raises:
            BuildError: If CMake is missing or the build exits non-zero
        """
        logger.info(f"Building {configuration}")
        try:
            result = run_command(build_command(build_dir, configuration, self.cmake))
        except FileNotFoundError as e:
            raise BuildError(f"CMake not found: {self.cmake}") from e

        if result.returncode != 0:
            raise BuildError(f"Build failed with exit code {result.returncode}")

    def collect_artifacts(
        self,
        build_dir: Path,
        configuration: str,
        tools: Iterable[ProvisionedTool],
        payload_dir: Path,
        data_files: Sequence[str],
    ) -> List[Path]:
        """
        Copy run-time files next to the built executable.

        Shared libraries on each tool's allow-list are copied (refreshing any
        older copy) when present. Data files come from the payload dir and are
        only copied when the output dir does not already have them.

        Returns:
            Paths written into the output directory
        """
        output_dir = Path(build_dir) / configuration
        output_dir.mkdir(parents=True, exist_ok=True)
        copied: List[Path] = []

        for tool in tools:
            if tool.runtime_dir is None:
                continue
            for name in tool.spec.runtime_files:
                source = tool.runtime_dir / name
                if not source.is_file():
                    logger.debug(f"{tool.name}: {name} not found, skipping")
                    continue
                destination = output_dir / name
                shutil.copy2(source, destination)
                copied.append(destination)

        for name in data_files:
            source = Path(payload_dir) / name
            destination = output_dir / name
            if destination.exists():
                logger.debug(f"{name} already present in {output_dir}")
                continue
            if not source.is_file():
                logger.warning(f"Data file {name} missing from {payload_dir}")
                continue
            copy_if_absent(source, destination)
            copied.append(destination)

        logger.info(f"Collected {len(copied)} run-time file(s) into {output_dir}")
        return copied
