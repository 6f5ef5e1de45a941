"""
End-to-end tests for BuildRun with fake collaborators.

Downloads come from FakeDownloader, extraction uses Python decompressors,
and CMake is replaced by a fake that "builds" the executable. Everything
else (provisioning, layout, legacy SDK, source fetch, artifact collection)
is the real code running against tmp_path.
"""

import os
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from filelock import FileLock

from zanbuild.config.settings import DEFAULT_DATA_FILES, BuildSettings
from zanbuild.core.exceptions import (
    BuildError,
    CacheLockTimeout,
    ToolchainNotFoundError,
    ToolSetupError,
)
from zanbuild.core.locking import LOCK_FILE_NAME
from zanbuild.runner import BuildOptions, BuildRun
from zanbuild.tools.layout import ScanFor, SingleRoot, has_subdirs
from zanbuild.tools.legacy_sdk import IMPORT_LIBRARIES, LEGACY_SDK_ENV
from zanbuild.tools.provisioner import ToolProvisioner
from zanbuild.tools.specs import ToolSpec

CMAKE_URL = "https://example.com/cmake-3.29.3.zip"
SSL_URL = "https://example.com/ssl-3.zip"
ZIP_URL = "https://example.com/zandronum-default.zip"

ARCHIVES = {
    CMAKE_URL: {"cmake-3.29.3/bin/cmake.exe": b"MZ"},
    SSL_URL: {
        "pkg/x64/include/ssl.h": b"/* ssl */",
        "pkg/x64/lib/ssl.lib": b"lib",
        "pkg/x64/bin/ssl.dll": b"dll",
    },
    ZIP_URL: {"zandronum-default/CMakeLists.txt": b"project(zandronum)"},
}


def build_codec(name, install_dir, context):
    (install_dir / "lib").mkdir(parents=True, exist_ok=True)
    (install_dir / "lib" / "codec.lib").write_bytes(b"lib")
    (install_dir / "include").mkdir(parents=True, exist_ok=True)
    (install_dir / "include" / "codec.h").write_text("/* codec */")


def broken_codec_build(name, install_dir, context):
    raise ToolSetupError(name, "MSBuild failed for codec with exit code 1")


def make_specs(codec_build=build_codec):
    return [
        ToolSpec(
            name="cmake",
            version="3.29.3",
            urls=(CMAKE_URL,),
            marker="bin/cmake.exe",
            executable="bin/cmake.exe",
            layout=(SingleRoot("cmake-"),),
        ),
        ToolSpec(
            name="ssl",
            version="3",
            urls=(SSL_URL,),
            marker="include/ssl.h",
            layout=(ScanFor(has_subdirs("include", "lib")),),
            include_subdir="include",
            library_subdir="lib",
            runtime_subdir="bin",
            runtime_files=("ssl.dll",),
            definitions={"SSL_INCLUDE_DIR": "{include}", "SSL_LIBRARY": "{lib}/ssl.lib"},
        ),
        ToolSpec(
            name="codec",
            version="1.0",
            local_archive="codec-1.0.zip",
            marker="lib/codec.lib",
            layout=(SingleRoot("codec-", "source"),),
            include_subdir="include",
            library_subdir="lib",
            definitions={
                "CODEC_INCLUDE_DIR": "{include}",
                "CODEC_LIBRARIES": "{lib}/codec.lib",
            },
            optional=True,
            source_build=codec_build,
        ),
    ]


class FakeCMake:
    """Records commands; the build step produces the executable."""

    def __init__(self, produce=True):
        self.commands = []
        self.produce = produce

    def __call__(self, cmd, **kwargs):
        cmd = [str(part) for part in cmd]
        self.commands.append(cmd)
        if "--build" in cmd and self.produce:
            build_dir = Path(cmd[cmd.index("--build") + 1])
            configuration = cmd[cmd.index("--config") + 1]
            output = build_dir / configuration
            output.mkdir(parents=True, exist_ok=True)
            (output / "zandronum.exe").write_bytes(b"MZ")
        return SimpleNamespace(returncode=0, stdout="", stderr="")


class NoToolchain:
    def require(self):
        raise ToolchainNotFoundError("No Visual Studio installation found")


@pytest.fixture
def workspace(tmp_path, make_zip, monkeypatch):
    """Project root with payloads and a fake Windows SDK."""
    # setenv first so the variable is removed again on teardown
    monkeypatch.setenv(LEGACY_SDK_ENV, "")
    monkeypatch.delenv(LEGACY_SDK_ENV)
    payload = tmp_path / "payload"
    make_zip(payload / "codec-1.0.zip", {"codec-1.0/CMakeLists.txt": b"project(codec)"})
    for name in DEFAULT_DATA_FILES:
        (payload / name).write_text(name)

    kits = tmp_path / "kits"
    um = kits / "Lib" / "10.0.19041.0" / "um" / "x64"
    um.mkdir(parents=True)
    for name in IMPORT_LIBRARIES:
        (um / name).write_text(name)

    settings = BuildSettings(
        project_root=tmp_path,
        cache_root=tmp_path / "deps",
        source_root=tmp_path / "src" / "zandronum",
        build_root=tmp_path / "build",
        payload_dir=payload,
        hg_url="https://hg.example.org/zandronum",
        source_zip_url=ZIP_URL,
    )
    return SimpleNamespace(root=tmp_path, settings=settings, kits=kits)


def execute(workspace, fake_downloader, counting_extractor, options=None,
            specs=None, cmake=None):
    """Run a build with fakes; returns (result, fake cmake)."""
    settings = workspace.settings
    cmake = cmake or FakeCMake()
    provisioner = ToolProvisioner(
        settings.cache_root,
        settings.payload_dir,
        downloader=fake_downloader,
        extractor=counting_extractor,
    )
    run = BuildRun(
        settings,
        options or BuildOptions(),
        locator=NoToolchain(),
        provisioner=provisioner,
        specs=specs if specs is not None else make_specs(),
        windows_kits_root=workspace.kits,
    )
    with patch("zanbuild.build.orchestrator.run_command", side_effect=cmake), patch(
        "zanbuild.build.source.shutil.which", return_value=None
    ):
        result = run.run()
    return result, cmake


class TestScenarioFullRun:
    """Empty cache, no source: everything is provisioned and built."""

    def test_produces_executable_and_data_files(
        self, workspace, fake_downloader, counting_extractor
    ):
        fake_downloader.archives.update(ARCHIVES)

        result, cmake = execute(workspace, fake_downloader, counting_extractor)

        output = workspace.root / "build" / "x64" / "Release"
        assert result.output_dir == output
        assert result.executable == output / "zandronum.exe"
        assert result.executable.is_file()
        for name in DEFAULT_DATA_FILES:
            assert (output / name).read_text() == name
        assert (output / "ssl.dll").exists()
        assert result.failed_optional == []

    def test_generator_receives_tool_definitions(
        self, workspace, fake_downloader, counting_extractor
    ):
        fake_downloader.archives.update(ARCHIVES)

        result, cmake = execute(workspace, fake_downloader, counting_extractor)

        deps = (workspace.root / "deps").resolve()
        invocation = result.invocation
        assert invocation.definition("CMAKE_BUILD_TYPE") == "Release"
        assert invocation.definition("SSL_INCLUDE_DIR") == (deps / "ssl" / "include").as_posix()
        assert invocation.definition("CODEC_LIBRARIES") == (deps / "codec" / "lib").as_posix() + "/codec.lib"
        assert cmake.commands[0][0] == str(deps / "cmake" / "bin" / "cmake.exe")

    def test_legacy_sdk_exported(self, workspace, fake_downloader, counting_extractor):
        fake_downloader.archives.update(ARCHIVES)

        execute(workspace, fake_downloader, counting_extractor)

        sdk_dir = (workspace.root / "deps" / "dxsdk").resolve()
        assert os.environ[LEGACY_SDK_ENV] == str(sdk_dir) + os.sep
        assert (sdk_dir / "Lib" / "x64" / "dxguid.lib").exists()

    def test_missing_executable_is_build_error(
        self, workspace, fake_downloader, counting_extractor
    ):
        fake_downloader.archives.update(ARCHIVES)

        with pytest.raises(BuildError, match="does not exist"):
            execute(
                workspace, fake_downloader, counting_extractor,
                cmake=FakeCMake(produce=False),
            )

    def test_cache_locked_by_another_run(
        self, workspace, fake_downloader, counting_extractor
    ):
        cache_root = workspace.settings.cache_root
        cache_root.mkdir()

        with FileLock(str(cache_root / LOCK_FILE_NAME)):
            with pytest.raises(CacheLockTimeout):
                execute(workspace, fake_downloader, counting_extractor)

        assert fake_downloader.calls == []


class TestScenarioSkipDeps:
    """Markers and source present, provisioning skipped."""

    def test_only_generate_and_build_run(
        self, workspace, fake_downloader, counting_extractor
    ):
        fake_downloader.archives.update(ARCHIVES)
        first, _ = execute(workspace, fake_downloader, counting_extractor)
        downloads = len(fake_downloader.calls)
        extractions = len(counting_extractor.calls)

        second, cmake = execute(
            workspace, fake_downloader, counting_extractor,
            options=BuildOptions(skip_deps=True),
        )

        assert len(fake_downloader.calls) == downloads
        assert len(counting_extractor.calls) == extractions
        assert len(cmake.commands) == 2
        assert "--build" in cmake.commands[1]
        assert second.invocation == first.invocation
        assert second.executable == first.executable
        assert sorted(p.name for p in second.output_dir.iterdir()) == sorted(
            p.name for p in first.output_dir.iterdir()
        )

    def test_default_locator_does_not_install(self, workspace):
        run = BuildRun(
            workspace.settings, BuildOptions(skip_deps=True), specs=make_specs()
        )

        assert run.locator.auto_install is False

    def test_missing_markers_are_left_out(
        self, workspace, fake_downloader, counting_extractor
    ):
        workspace.settings.source_root.mkdir(parents=True)
        (workspace.settings.source_root / "CMakeLists.txt").write_text("project(z)")

        result, cmake = execute(
            workspace, fake_downloader, counting_extractor,
            options=BuildOptions(skip_deps=True),
        )

        assert fake_downloader.calls == []
        assert result.invocation.definitions == (("CMAKE_BUILD_TYPE", "Release"),)
        assert cmake.commands[0][0] == "cmake"


class TestScenarioOptionalFailure:
    """The optional codec fails to build; the run still completes."""

    def test_build_continues_without_codec(
        self, workspace, fake_downloader, counting_extractor
    ):
        fake_downloader.archives.update(ARCHIVES)

        result, cmake = execute(
            workspace, fake_downloader, counting_extractor,
            specs=make_specs(codec_build=broken_codec_build),
        )

        assert result.failed_optional == ["codec"]
        assert result.executable.is_file()
        assert result.invocation.definition("CODEC_INCLUDE_DIR") is None
        assert result.invocation.definition("CODEC_LIBRARIES") is None
        assert result.invocation.definition("SSL_INCLUDE_DIR") is not None
        assert not any("CODEC" in arg for arg in cmake.commands[0])
        assert len(cmake.commands) == 2


class TestClean:
    def test_clean_removes_previous_build(
        self, workspace, fake_downloader, counting_extractor
    ):
        fake_downloader.archives.update(ARCHIVES)
        stale = workspace.root / "build" / "x64" / "manual.txt"
        stale.parent.mkdir(parents=True)
        stale.write_text("left over")
        sibling = workspace.root / "build" / "other.txt"
        sibling.write_text("keep")

        execute(
            workspace, fake_downloader, counting_extractor,
            options=BuildOptions(clean=True),
        )

        assert not stale.exists()
        assert sibling.exists()

    def test_without_clean_files_survive(
        self, workspace, fake_downloader, counting_extractor
    ):
        fake_downloader.archives.update(ARCHIVES)
        kept = workspace.root / "build" / "x64" / "manual.txt"
        kept.parent.mkdir(parents=True)
        kept.write_text("left over")

        execute(workspace, fake_downloader, counting_extractor)

        assert kept.exists()
