"""
Tool provisioning.

One generic routine turns a ToolSpec into a ProvisionedTool:

1. If the tool's marker file exists, derive its paths and stop (no network,
   no extraction). Repeated runs are therefore cheap.
2. Otherwise download the archive (or copy it from the payload dir).
3. Extract it into a staging directory.
4. Apply the ToolSpec's layout rules, first match wins.
5. Run the from-source build hook, if any.
6. Remove the temporary archive and staging directory.
7. Verify the marker now exists.

The marker is trusted as proof of a complete installation; a directory left
behind by an interrupted run that happens to contain the marker is not
detected.
"""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from zanbuild.core.download import Downloader
from zanbuild.core.exceptions import OptionalToolError, ToolSetupError, ZanbuildError
from zanbuild.core.fallback import StrategiesExhausted, Strategy, first_success
from zanbuild.core.filesystem import ArchiveExtractor, safe_rmtree
from zanbuild.tools.source_build import SourceBuildContext
from zanbuild.tools.specs import ToolSpec

logger = logging.getLogger(__name__)

ARCHIVER_TOOL = "7zip"
STAGING_DIR = ".staging"
DOWNLOADS_DIR = ".downloads"


def _existing(path: Optional[Path]) -> Optional[Path]:
    return path if path is not None and path.exists() else None


@dataclass(frozen=True)
class ProvisionedTool:
    """
    Resolved on-disk locations of a provisioned tool.

    Paths that do not exist on disk are None.
    """

    spec: ToolSpec
    root: Path
    executable: Optional[Path] = None
    include_dir: Optional[Path] = None
    library_dir: Optional[Path] = None
    runtime_dir: Optional[Path] = None

    @classmethod
    def from_install(cls, spec: ToolSpec, cache_root: Path) -> "ProvisionedTool":
        root = spec.install_dir(cache_root).resolve()

        def sub(relative: Optional[str]) -> Optional[Path]:
            return _existing(root / relative) if relative else None

        return cls(
            spec=spec,
            root=root,
            executable=sub(spec.executable),
            include_dir=sub(spec.include_subdir),
            library_dir=sub(spec.library_subdir),
            runtime_dir=sub(spec.runtime_subdir),
        )

    @property
    def name(self) -> str:
        return self.spec.name

    def definitions(self) -> Dict[str, str]:
        """
        Generator definitions contributed by this tool.

        Returns an empty dict unless every path the templates reference was
        resolved, so a half-installed library never reaches the generator.
        """
        values = {
            "root": self.root,
            "include": self.include_dir,
            "lib": self.library_dir,
            "exe": self.executable,
        }
        if any(values.get(name) is None for name in self.spec.placeholders()):
            return {}

        formatted = {k: v.as_posix() for k, v in values.items() if v is not None}
        return {
            key: template.format(**formatted)
            for key, template in self.spec.definitions.items()
        }


@dataclass
class ProvisionResult:
    """Outcome of provisioning the whole tool table."""

    tools: Dict[str, ProvisionedTool] = field(default_factory=dict)
    failed_optional: List[str] = field(default_factory=list)
    legacy_sdk: Optional[Path] = None

    def get(self, name: str) -> Optional[ProvisionedTool]:
        return self.tools.get(name)

    def executable(self, name: str) -> Optional[Path]:
        tool = self.tools.get(name)
        return tool.executable if tool else None


class ToolProvisioner:
    """
    Provision tools into a cache root.

    Attributes:
        cache_root: Directory holding one subdirectory per tool
        payload_dir: Directory with pre-committed archives
        downloader: Downloader used for remote archives
        extractor: ArchiveExtractor used for every archive
        build_context: Toolchain facts handed to from-source builds
    """

    def __init__(
        self,
        cache_root: Path,
        payload_dir: Path,
        downloader: Optional[Downloader] = None,
        extractor: Optional[ArchiveExtractor] = None,
        build_context: Optional[SourceBuildContext] = None,
    ):
        self.cache_root = Path(cache_root)
        self.payload_dir = Path(payload_dir)
        self.downloader = downloader or Downloader()
        self.extractor = extractor or ArchiveExtractor(
            bundled_archiver=self.payload_dir / "7za.exe"
        )
        self.build_context = build_context or SourceBuildContext()
        self._provisioned: Dict[str, ProvisionedTool] = {}

    def resolve(self, spec: ToolSpec) -> Optional[ProvisionedTool]:
        """
        Return the tool if its marker exists, without doing any work.
        """
        if spec.name in self._provisioned:
            return self._provisioned[spec.name]
        if not spec.marker_path(self.cache_root).exists():
            return None
        return self._remember(ProvisionedTool.from_install(spec, self.cache_root))

    def provision(self, spec: ToolSpec) -> ProvisionedTool:
        """
        Make sure a tool is installed and return its paths.

        Raises:
            DownloadError: If the archive could not be fetched
            ExtractionError: If the archive could not be unpacked
            ToolSetupError: If the marker is missing after provisioning
            OptionalToolError: Instead of any of the above, for optional specs
        """
        existing = self.resolve(spec)
        if existing is not None:
            logger.info(f"{spec.name} {spec.version} already provisioned")
            return existing

        logger.info(f"Provisioning {spec.name} {spec.version}")
        try:
            self._install(spec)
        except Exception as e:
            if spec.optional:
                raise OptionalToolError(
                    spec.name, f"Optional tool {spec.name} could not be provisioned: {e}"
                ) from e
            if isinstance(e, ZanbuildError):
                raise
            raise ToolSetupError(spec.name, f"Failed to set up {spec.name}: {e}") from e

        tool = self._remember(ProvisionedTool.from_install(spec, self.cache_root))
        logger.info(f"{spec.name} {spec.version} ready at {tool.root}")
        return tool

    def provision_all(self, specs: Iterable[ToolSpec]) -> ProvisionResult:
        """
        Provision specs in order.

        Optional tools that fail are logged and recorded; any other failure
        propagates and stops the sequence.
        """
        result = ProvisionResult()
        for spec in specs:
            try:
                result.tools[spec.name] = self.provision(spec)
            except OptionalToolError as e:
                logger.warning(f"{e}; continuing without it")
                result.failed_optional.append(spec.name)
        return result

    def resolve_all(self, specs: Iterable[ToolSpec]) -> ProvisionResult:
        """Collect already-provisioned tools; missing ones are left out."""
        result = ProvisionResult()
        for spec in specs:
            tool = self.resolve(spec)
            if tool is None:
                logger.warning(f"{spec.name} is not provisioned (marker missing)")
            else:
                result.tools[spec.name] = tool
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _remember(self, tool: ProvisionedTool) -> ProvisionedTool:
        self._provisioned[tool.name] = tool
        if tool.name == ARCHIVER_TOOL and tool.executable is not None:
            self.extractor.use_archiver(tool.executable)
        return tool

    def _source_build_context(self) -> SourceBuildContext:
        cmake = self._provisioned.get("cmake")
        if cmake is not None and cmake.executable is not None:
            return replace(self.build_context, cmake=cmake.executable)
        return self.build_context

    def _fetch_archive(self, spec: ToolSpec) -> Path:
        if spec.local_archive:
            source = self.payload_dir / spec.archive_name()
            if not source.is_file():
                raise ToolSetupError(
                    spec.name, f"Payload archive not found: {source}"
                )
            return source

        archive = self.cache_root / DOWNLOADS_DIR / spec.archive_name()
        return self.downloader.fetch_first(spec.resolved_urls(), archive)

    def _install(self, spec: ToolSpec) -> None:
        install_dir = spec.install_dir(self.cache_root)
        staging = self.cache_root / STAGING_DIR / spec.name

        archive = self._fetch_archive(spec)
        try:
            safe_rmtree(staging, require_prefix=self.cache_root)
            staging.mkdir(parents=True)
            self.extractor.extract(archive, staging)
            self._normalize(spec, staging, install_dir)
            if spec.source_build is not None:
                spec.source_build(spec.name, install_dir, self._source_build_context())
        finally:
            if not spec.local_archive and archive.exists():
                archive.unlink()
            safe_rmtree(staging, require_prefix=self.cache_root)

        if not spec.marker_path(self.cache_root).exists():
            raise ToolSetupError(
                spec.name,
                f"{spec.name}: {spec.marker} not found after provisioning",
            )

    def _normalize(self, spec: ToolSpec, staging: Path, install_dir: Path) -> None:
        rules = [Strategy(type(rule).__name__, rule) for rule in spec.layout]
        try:
            name, _ = first_success(rules, staging, install_dir)
        except StrategiesExhausted as e:
            raise ToolSetupError(
                spec.name, f"Unrecognized layout for {spec.name}: {e}"
            ) from e.last_error
        logger.debug(f"{spec.name}: applied layout rule {name}")
