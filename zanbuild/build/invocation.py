"""
Generator and build-driver command lines.

A BuildInvocation describes one CMake configure step. It is built fresh on
every run from the provisioned tools and is never persisted.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

Definition = Tuple[str, str]


@dataclass(frozen=True)
class BuildInvocation:
    """
    One generator invocation.

    Attributes:
        generator: CMake generator name (e.g. "Visual Studio 17 2022")
        platform: Target platform passed as -A (e.g. "x64")
        configuration: "Debug" or "Release"
        definitions: Ordered -D key/value pairs
        source_dir: Source tree containing CMakeLists.txt
        build_dir: Binary directory
    """

    generator: str
    platform: str
    configuration: str
    definitions: Tuple[Definition, ...]
    source_dir: Path
    build_dir: Path

    @classmethod
    def from_tools(
        cls,
        generator: str,
        platform: str,
        configuration: str,
        source_dir: Path,
        build_dir: Path,
        tools: Iterable,
        extra: Iterable[Definition] = (),
    ) -> "BuildInvocation":
        """
        Collect definitions from provisioned tools.

        Each tool contributes through its definitions() method; tools whose
        paths are only partly resolved contribute nothing.
        """
        definitions: List[Definition] = [("CMAKE_BUILD_TYPE", configuration)]
        for tool in tools:
            definitions.extend(tool.definitions().items())
        definitions.extend(extra)

        return cls(
            generator=generator,
            platform=platform,
            configuration=configuration,
            definitions=tuple(definitions),
            source_dir=Path(source_dir),
            build_dir=Path(build_dir),
        )

    def definition(self, key: str) -> Optional[str]:
        """Value of a definition, or None if it is not set."""
        for name, value in self.definitions:
            if name == key:
                return value
        return None

    def command(self, cmake: str = "cmake") -> List[str]:
        """Render the configure command line."""
        cmd = [
            str(cmake),
            "-G",
            self.generator,
            "-A",
            self.platform,
            "-S",
            str(self.source_dir),
            "-B",
            str(self.build_dir),
        ]
        cmd.extend(f"-D{key}={value}" for key, value in self.definitions)
        return cmd


def build_command(
    build_dir: Path,
    configuration: str,
    cmake: str = "cmake",
    target: Optional[str] = None,
) -> List[str]:
    """Render the build-driver command line (parallel build)."""
    cmd = [str(cmake), "--build", str(build_dir), "--config", configuration]
    if target:
        cmd.extend(["--target", target])
    cmd.append("--parallel")
    return cmd
