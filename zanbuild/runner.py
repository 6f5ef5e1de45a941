"""
End-to-end build sequence.

BuildRun ties the components together:

1. Optionally clean build/<platform>
2. Locate the Visual Studio toolchain (warning only if absent)
3. Provision the tool table under the cache lock, or resolve it from
   markers when dependencies are skipped
4. Synthesize (or reuse) the legacy DirectX SDK and export DXSDK_DIR
5. Make sure the engine source is present
6. Generate, build and collect run-time files
7. Verify the executable was produced

Every collaborator can be injected, which is how the tests drive it.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from zanbuild.build.invocation import BuildInvocation
from zanbuild.build.orchestrator import BuildOrchestrator
from zanbuild.build.source import SourceFetcher
from zanbuild.config.settings import BuildSettings
from zanbuild.core.exceptions import BuildError, ToolchainNotFoundError
from zanbuild.core.filesystem import safe_rmtree
from zanbuild.core.locking import cache_lock
from zanbuild.toolchain.locator import ToolchainLocator
from zanbuild.tools.legacy_sdk import (
    DEFAULT_WINDOWS_KITS,
    existing_legacy_sdk,
    export_legacy_sdk,
    synthesize_legacy_sdk,
)
from zanbuild.tools.provisioner import ProvisionResult, ToolProvisioner
from zanbuild.tools.source_build import SourceBuildContext
from zanbuild.tools.specs import ToolSpec

logger = logging.getLogger(__name__)

PLATFORMS = ("x64",)
CONFIGURATIONS = ("Debug", "Release")


@dataclass(frozen=True)
class BuildOptions:
    """Command-line choices for one run."""

    platform: str = "x64"
    configuration: str = "Release"
    clean: bool = False
    skip_deps: bool = False


@dataclass
class RunResult:
    """What a successful run produced."""

    output_dir: Path
    executable: Path
    invocation: BuildInvocation
    artifacts: List[Path] = field(default_factory=list)
    failed_optional: List[str] = field(default_factory=list)


class BuildRun:
    """
    One complete build.

    Attributes:
        settings: Loaded BuildSettings
        options: BuildOptions from the command line
        specs: Tool table to provision (default: settings.tool_specs())
    """

    def __init__(
        self,
        settings: BuildSettings,
        options: BuildOptions,
        locator: Optional[ToolchainLocator] = None,
        provisioner: Optional[ToolProvisioner] = None,
        source_fetcher: Optional[SourceFetcher] = None,
        orchestrator: Optional[BuildOrchestrator] = None,
        specs: Optional[Sequence[ToolSpec]] = None,
        windows_kits_root: Path = DEFAULT_WINDOWS_KITS,
    ):
        self.settings = settings
        self.options = options
        self.locator = locator or ToolchainLocator(
            auto_install=settings.auto_install_toolchain and not options.skip_deps
        )
        self._provisioner = provisioner
        self._source_fetcher = source_fetcher
        self._orchestrator = orchestrator
        self.specs = list(specs) if specs is not None else settings.tool_specs()
        self.windows_kits_root = Path(windows_kits_root)

    @property
    def build_dir(self) -> Path:
        return self.settings.platform_build_dir(self.options.platform)

    @property
    def output_dir(self) -> Path:
        return self.build_dir / self.options.configuration

    def run(self) -> RunResult:
        """
        Execute the sequence.

        Raises:
            ZanbuildError: Any unrecoverable failure (optional tools excepted)
        """
        settings = self.settings
        options = self.options
        logger.info(
            f"Building {settings.executable_name} "
            f"({options.platform}, {options.configuration})"
        )

        if options.clean:
            self.clean()

        install_path = self.locate_toolchain()
        provisioner = self._provisioner or self._default_provisioner(install_path)

        tools = self.provision(provisioner)
        if tools.legacy_sdk is not None:
            export_legacy_sdk(tools.legacy_sdk)

        fetcher = self._source_fetcher or SourceFetcher(
            settings.hg_url,
            settings.source_zip_url,
            downloader=provisioner.downloader,
            extractor=provisioner.extractor,
        )
        source_dir = fetcher.ensure(settings.source_root)

        orchestrator = self._orchestrator or BuildOrchestrator(
            settings.generator, cmake=tools.executable("cmake")
        )
        provisioned = list(tools.tools.values())
        invocation = orchestrator.generate(
            source_dir,
            self.build_dir,
            options.platform,
            options.configuration,
            provisioned,
        )
        orchestrator.build(self.build_dir, options.configuration)
        artifacts = orchestrator.collect_artifacts(
            self.build_dir,
            options.configuration,
            provisioned,
            settings.payload_dir,
            settings.data_files,
        )

        executable = self.output_dir / settings.executable_name
        if not executable.is_file():
            raise BuildError(f"Build finished but {executable} does not exist")

        if tools.failed_optional:
            logger.warning(
                f"Built without optional tool(s): {', '.join(tools.failed_optional)}"
            )
        logger.info(f"Build complete: {executable}")

        return RunResult(
            output_dir=self.output_dir,
            executable=executable,
            invocation=invocation,
            artifacts=artifacts,
            failed_optional=list(tools.failed_optional),
        )

    def clean(self) -> None:
        """Remove build/<platform> (never anything outside the build root)."""
        logger.info(f"Cleaning {self.build_dir}")
        safe_rmtree(self.build_dir, require_prefix=self.settings.build_root)

    def locate_toolchain(self) -> Optional[Path]:
        try:
            return self.locator.require()
        except ToolchainNotFoundError as e:
            logger.warning(f"{e}; continuing in case the environment provides one")
            return None

    def provision(self, provisioner: ToolProvisioner) -> ProvisionResult:
        """Provision (or, with skip_deps, resolve) the tool table."""
        specs = self.specs
        cache_root = self.settings.cache_root

        if self.options.skip_deps:
            logger.info("Skipping dependency provisioning")
            result = provisioner.resolve_all(specs)
            result.legacy_sdk = existing_legacy_sdk(cache_root)
            return result

        with cache_lock(cache_root):
            result = provisioner.provision_all(specs)
            result.legacy_sdk = synthesize_legacy_sdk(
                cache_root, self.windows_kits_root
            )
        return result

    def _default_provisioner(self, install_path: Optional[Path]) -> ToolProvisioner:
        context = SourceBuildContext(
            generator=self.settings.generator,
            platform=self.options.platform,
            msbuild=ToolchainLocator.msbuild_path(install_path),
        )
        return ToolProvisioner(
            self.settings.cache_root,
            self.settings.payload_dir,
            build_context=context,
        )
