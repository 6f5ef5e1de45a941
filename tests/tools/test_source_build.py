"""
Unit tests for the from-source build hook.
"""

import os
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from zanbuild.core.exceptions import ToolSetupError
from zanbuild.tools.source_build import CMakeSourceBuild, SourceBuildContext


@pytest.fixture
def opus_dir(tmp_path):
    """Install dir with extracted sources under source/."""
    install_dir = tmp_path / "deps" / "opus"
    source = install_dir / "source"
    (source / "include").mkdir(parents=True)
    (source / "include" / "opus.h").write_text("/* opus */")
    (source / "include" / "opus_types.h").write_text("/* types */")
    return install_dir


def _ok(returncode=0):
    return SimpleNamespace(returncode=returncode, stdout="", stderr="")


class TestFindDescriptor:
    def test_prefers_cmake(self, opus_dir):
        (opus_dir / "source" / "CMakeLists.txt").write_text("project(opus)")
        (opus_dir / "source" / "win32" / "VS2015").mkdir(parents=True)
        (opus_dir / "source" / "win32" / "VS2015" / "opus.sln").write_text("")

        kind, path = CMakeSourceBuild("opus.lib").find_descriptor("opus", opus_dir / "source")

        assert kind == "cmake"
        assert path.name == "CMakeLists.txt"

    def test_solution_fallback(self, opus_dir):
        (opus_dir / "source" / "win32" / "VS2015").mkdir(parents=True)
        (opus_dir / "source" / "win32" / "VS2015" / "opus.sln").write_text("")

        kind, path = CMakeSourceBuild("opus.lib").find_descriptor("opus", opus_dir / "source")

        assert kind == "msbuild"
        assert path.name == "opus.sln"

    def test_nothing_to_build(self, opus_dir):
        with pytest.raises(ToolSetupError, match="No CMakeLists.txt"):
            CMakeSourceBuild("opus.lib").find_descriptor("opus", opus_dir / "source")


class TestCMakeBuild:
    def test_builds_and_installs(self, opus_dir, tmp_path, monkeypatch):
        """Configure, build, then copy the library and headers."""
        (opus_dir / "source" / "CMakeLists.txt").write_text("project(opus)")
        cmake = tmp_path / "deps" / "cmake" / "bin" / "cmake.exe"
        monkeypatch.setenv("PATH", "original")
        monkeypatch.delenv("LC_ALL", raising=False)
        commands = []
        environments = []

        def fake_run(cmd, **kwargs):
            commands.append([str(part) for part in cmd])
            environments.append(
                (os.environ.get("LC_ALL"), os.environ.get("VSLANG"), os.environ["PATH"])
            )
            if "--build" in commands[-1]:
                output = opus_dir / "build" / "Release"
                output.mkdir(parents=True)
                (output / "opus.lib").write_bytes(b"lib")
            return _ok()

        context = SourceBuildContext(cmake=cmake)
        with patch("zanbuild.tools.source_build.run_command", side_effect=fake_run):
            CMakeSourceBuild("opus.lib")("opus", opus_dir, context)

        configure, build = commands
        assert configure[0] == str(cmake)
        assert "-DBUILD_SHARED_LIBS=OFF" in configure
        assert ["-A", "x64"] == configure[3:5]
        assert build[1:3] == ["--build", str(opus_dir / "build")]
        assert "Release" in build

        assert environments[0][0] == "C"
        assert environments[0][1] == "1033"
        assert environments[0][2].startswith(str(cmake.parent))
        assert os.environ["PATH"] == "original"
        assert "LC_ALL" not in os.environ

        assert (opus_dir / "lib" / "opus.lib").read_bytes() == b"lib"
        assert (opus_dir / "include" / "opus" / "opus.h").exists()
        assert (opus_dir / "include" / "opus" / "opus_types.h").exists()

    def test_configure_failure(self, opus_dir):
        (opus_dir / "source" / "CMakeLists.txt").write_text("project(opus)")

        with patch("zanbuild.tools.source_build.run_command", return_value=_ok(1)):
            with pytest.raises(ToolSetupError, match="Configuring opus failed"):
                CMakeSourceBuild("opus.lib")("opus", opus_dir, SourceBuildContext())

    def test_missing_cmake_binary(self, opus_dir):
        (opus_dir / "source" / "CMakeLists.txt").write_text("project(opus)")

        with patch(
            "zanbuild.tools.source_build.run_command", side_effect=FileNotFoundError("cmake")
        ):
            with pytest.raises(ToolSetupError) as exc_info:
                CMakeSourceBuild("opus.lib")("opus", opus_dir, SourceBuildContext())

        assert exc_info.value.tool == "opus"

    def test_library_not_produced(self, opus_dir):
        (opus_dir / "source" / "CMakeLists.txt").write_text("project(opus)")

        with patch("zanbuild.tools.source_build.run_command", return_value=_ok()):
            with pytest.raises(ToolSetupError, match="was not produced"):
                CMakeSourceBuild("opus.lib")("opus", opus_dir, SourceBuildContext())


class TestMSBuild:
    def _solution(self, opus_dir):
        solution_dir = opus_dir / "source" / "win32" / "VS2015"
        solution_dir.mkdir(parents=True)
        solution = solution_dir / "opus.sln"
        solution.write_text("")
        return solution

    def test_requires_msbuild(self, opus_dir):
        self._solution(opus_dir)

        with pytest.raises(ToolSetupError, match="MSBuild is required"):
            CMakeSourceBuild("opus.lib")("opus", opus_dir, SourceBuildContext())

    def test_runs_msbuild(self, opus_dir, tmp_path):
        solution = self._solution(opus_dir)
        msbuild = tmp_path / "MSBuild.exe"
        commands = []

        def fake_run(cmd, **kwargs):
            commands.append(cmd)
            output = solution.parent / "x64" / "Release"
            output.mkdir(parents=True)
            (output / "opus.lib").write_bytes(b"lib")
            return _ok()

        context = SourceBuildContext(msbuild=msbuild)
        with patch("zanbuild.tools.source_build.run_command", side_effect=fake_run):
            CMakeSourceBuild("opus.lib")("opus", opus_dir, context)

        cmd = commands[0]
        assert cmd[0] == msbuild
        assert cmd[1] == solution
        assert "/p:Configuration=Release" in cmd
        assert "/p:Platform=x64" in cmd
        assert (opus_dir / "lib" / "opus.lib").exists()
