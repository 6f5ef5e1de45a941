"""
Tool specifications.

One ToolSpec per external dependency, all defined up front. The provisioner
is a single generic routine driven by this table; per-tool differences live
in the data (URLs, marker, layout rules) plus the rare from-source hook.
"""

import string
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from zanbuild.tools.layout import Flat, Relocate, ScanFor, SingleRoot, has_subdirs, named
from zanbuild.tools.source_build import CMakeSourceBuild

LayoutRule = Callable[[Path, Path], None]


@dataclass(frozen=True)
class ToolSpec:
    """
    Everything needed to provision one external dependency.

    Attributes:
        name: Tool name; also the install directory under the cache root
        version: Version identifier. URLs and local_archive may use {version},
            {short_version} (first two dotted parts) and {compact_version}
            (dots removed)
        urls: Mirror URLs tried in order
        local_archive: Archive file name template in the payload dir, used
            instead of urls
        marker: File (relative to the install dir) whose existence means
            "provisioned"
        layout: Normalization rules tried in order after extraction
        include_subdir: Header directory relative to the install dir
        library_subdir: Import-library directory relative to the install dir
        executable: Main executable relative to the install dir
        runtime_subdir: Directory holding run-time shared libraries
        runtime_files: Shared libraries copied next to the built binary
        definitions: Generator variables; templates may use {root},
            {include}, {lib} and {exe}
        optional: Provisioning failures are tolerated
        source_build: Hook that builds the tool after extraction
    """

    name: str
    version: str
    marker: str
    urls: Tuple[str, ...] = ()
    local_archive: Optional[str] = None
    layout: Tuple[LayoutRule, ...] = (Flat(),)
    include_subdir: Optional[str] = None
    library_subdir: Optional[str] = None
    executable: Optional[str] = None
    runtime_subdir: Optional[str] = None
    runtime_files: Tuple[str, ...] = ()
    definitions: Mapping[str, str] = field(default_factory=dict)
    optional: bool = False
    source_build: Optional[Callable] = None

    def install_dir(self, cache_root: Path) -> Path:
        return Path(cache_root) / self.name

    def marker_path(self, cache_root: Path) -> Path:
        return self.install_dir(cache_root) / self.marker

    def version_fields(self) -> Dict[str, str]:
        """Values for the version placeholders in URL and archive templates."""
        return {
            "version": self.version,
            "short_version": ".".join(self.version.split(".")[:2]),
            "compact_version": self.version.replace(".", ""),
        }

    def resolved_urls(self) -> List[str]:
        """URLs with the version placeholders substituted."""
        fields = self.version_fields()
        return [url.format(**fields) for url in self.urls]

    def archive_name(self) -> str:
        """File name used for the downloaded archive."""
        if self.local_archive:
            return self.local_archive.format(**self.version_fields())
        if not self.urls:
            raise ValueError(f"Tool {self.name} has neither urls nor local_archive")
        return self.resolved_urls()[0].rstrip("/").rsplit("/", 1)[-1]

    def placeholders(self) -> set:
        """Placeholders referenced by the definition templates."""
        names = set()
        for template in self.definitions.values():
            for _, name, _, _ in string.Formatter().parse(template):
                if name:
                    names.add(name)
        return names

    def with_overrides(
        self, version: Optional[str] = None, urls: Optional[Sequence[str]] = None
    ) -> "ToolSpec":
        """Return a copy with a different version and/or mirror list."""
        changes: Dict[str, object] = {}
        if version is not None:
            changes["version"] = str(version)
        if urls is not None:
            changes["urls"] = tuple(urls)
        return replace(self, **changes)


# ============================================================================
# Default tool table
# ============================================================================

SEVEN_ZIP = ToolSpec(
    name="7zip",
    version="24.07",
    urls=(
        "https://www.7-zip.org/a/7z{compact_version}-extra.7z",
        "https://github.com/ip7z/7zip/releases/download/{version}/7z{compact_version}-extra.7z",
    ),
    marker="x64/7za.exe",
    executable="x64/7za.exe",
)

CMAKE = ToolSpec(
    name="cmake",
    version="3.29.3",
    urls=(
        "https://github.com/Kitware/CMake/releases/download/v{version}/cmake-{version}-windows-x86_64.zip",
        "https://cmake.org/files/v{short_version}/cmake-{version}-windows-x86_64.zip",
    ),
    marker="bin/cmake.exe",
    executable="bin/cmake.exe",
    layout=(SingleRoot("cmake-"),),
)

NASM = ToolSpec(
    name="nasm",
    version="2.16.03",
    urls=(
        "https://www.nasm.us/pub/nasm/releasebuilds/{version}/win64/nasm-{version}-win64.zip",
    ),
    marker="nasm.exe",
    executable="nasm.exe",
    layout=(SingleRoot("nasm-"), Flat()),
    definitions={"CMAKE_ASM_NASM_COMPILER": "{exe}"},
)

PYTHON = ToolSpec(
    name="python",
    version="3.12.4",
    urls=(
        "https://www.python.org/ftp/python/{version}/python-{version}-embed-amd64.zip",
    ),
    marker="python.exe",
    executable="python.exe",
    definitions={"Python_EXECUTABLE": "{exe}"},
)

OPENSSL = ToolSpec(
    name="openssl",
    version="3.3.1",
    urls=("https://download.firedaemon.com/FireDaemon-OpenSSL/openssl-{version}.zip",),
    marker="include/openssl/ssl.h",
    layout=(
        Relocate("openssl-3/x64"),
        ScanFor(has_subdirs("include", "lib")),
    ),
    include_subdir="include",
    library_subdir="lib",
    runtime_subdir="bin",
    runtime_files=("libcrypto-3-x64.dll", "libssl-3-x64.dll"),
    definitions={
        "OPENSSL_ROOT_DIR": "{root}",
        "OPENSSL_INCLUDE_DIR": "{include}",
        "OPENSSL_CRYPTO_LIBRARY": "{lib}/libcrypto.lib",
        "OPENSSL_SSL_LIBRARY": "{lib}/libssl.lib",
    },
)

FMODEX = ToolSpec(
    name="fmodex",
    version="44464",
    urls=(
        "https://zdoom.org/files/fmod/fmodapi{version}win-installer.exe",
        "https://www.fmod.org/download/fmodex/api/Win/fmodapi{version}win-installer.exe",
    ),
    marker="api/inc/fmod.h",
    # Installer payloads do not have a stable top-level directory name
    layout=(
        Relocate("FMOD Programmers API Windows/api", "api"),
        ScanFor(named("api"), "api"),
        ScanFor(has_subdirs("inc", "lib"), "api"),
    ),
    include_subdir="api/inc",
    library_subdir="api/lib",
    runtime_subdir="api",
    runtime_files=("fmodex64.dll",),
    definitions={
        "FMOD_INCLUDE_DIR": "{include}",
        "FMOD_LIBRARY": "{lib}/fmodex64_vc.lib",
    },
)

OPUS = ToolSpec(
    name="opus",
    version="1.3.1",
    local_archive="opus-{version}.tar.gz",
    marker="lib/opus.lib",
    layout=(SingleRoot("opus-", "source"),),
    include_subdir="include",
    library_subdir="lib",
    definitions={
        "OPUS_INCLUDE_DIR": "{include}",
        "OPUS_LIBRARIES": "{lib}/opus.lib",
    },
    optional=True,
    source_build=CMakeSourceBuild(library="opus.lib", headers="include"),
)

# Order matters: the archiver comes first so later extractions can use it,
# and cmake precedes anything built from source.
DEFAULT_TOOLS: Tuple[ToolSpec, ...] = (
    SEVEN_ZIP,
    CMAKE,
    NASM,
    PYTHON,
    OPENSSL,
    FMODEX,
    OPUS,
)


def default_tool_table() -> Dict[str, ToolSpec]:
    """Default specs keyed by name, in provisioning order."""
    return {spec.name: spec for spec in DEFAULT_TOOLS}
