"""YAML settings for zanbuild.

Settings come from an optional zanbuild.yaml at the project root. Every key
is optional; a missing or empty file yields the defaults below.

Example zanbuild.yaml:

    cache_root: deps
    generator: Visual Studio 17 2022
    log_level: DEBUG
    tools:
      cmake:
        version: 3.30.0
        urls:
          - https://mirror.example.org/cmake-{version}-windows-x86_64.zip
"""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from zanbuild.core.exceptions import ConfigError
from zanbuild.tools.specs import ToolSpec, default_tool_table

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "zanbuild.yaml"

DEFAULT_HG_URL = "https://foss.heptapod.net/zandronum/zandronum-stable"
DEFAULT_SOURCE_ZIP_URL = (
    "https://foss.heptapod.net/zandronum/zandronum-stable/-/archive/"
    "branch/default/zandronum-stable-branch-default.zip"
)
DEFAULT_DATA_FILES = ("skulltag_actors_1-1-1.pk3", "skulltag_data_126.pk3")

PATH_FIELDS = ("cache_root", "source_root", "build_root", "payload_dir")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ToolOverride:
    """Per-tool version and mirror overrides."""

    version: Optional[str] = None
    urls: Optional[List[str]] = None


@dataclass
class BuildSettings:
    """Complete zanbuild settings. Paths are absolute after loading."""

    project_root: Path = field(default_factory=Path.cwd)
    cache_root: Path = Path("deps")
    source_root: Path = Path("src/zandronum")
    build_root: Path = Path("build")
    payload_dir: Path = Path("payload")
    generator: str = "Visual Studio 17 2022"
    executable_name: str = "zandronum.exe"
    data_files: Tuple[str, ...] = DEFAULT_DATA_FILES
    hg_url: str = DEFAULT_HG_URL
    source_zip_url: str = DEFAULT_SOURCE_ZIP_URL
    auto_install_toolchain: bool = True
    log_level: str = "INFO"
    tools: Dict[str, ToolOverride] = field(default_factory=dict)

    def platform_build_dir(self, platform: str) -> Path:
        """build/<platform>"""
        return self.build_root / platform

    def tool_specs(self) -> List[ToolSpec]:
        """Default tool table with configured overrides applied, in order."""
        table = default_tool_table()
        for name, override in self.tools.items():
            table[name] = table[name].with_overrides(
                version=override.version, urls=override.urls
            )
        return list(table.values())


def load_settings(project_root: Optional[Path] = None) -> BuildSettings:
    """
    Load settings from <project_root>/zanbuild.yaml.

    Args:
        project_root: Directory holding the config file (default: cwd)

    Returns:
        Settings with relative paths resolved against project_root

    Raises:
        ConfigError: If the file is not valid YAML or has invalid values
    """
    project_root = Path(project_root or Path.cwd()).resolve()
    config_path = project_root / CONFIG_FILE_NAME

    data: Dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if loaded is not None:
            if not isinstance(loaded, dict):
                raise ConfigError(f"{config_path} must contain a mapping")
            data = loaded
        logger.debug(f"Loaded settings from {config_path}")

    return _parse_settings(data, project_root)


def _parse_settings(data: Dict[str, Any], project_root: Path) -> BuildSettings:
    known = {f.name for f in fields(BuildSettings)} - {"project_root"}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown setting(s): {', '.join(unknown)}")

    settings = BuildSettings(project_root=project_root)

    for name in PATH_FIELDS:
        value = data.get(name, getattr(settings, name))
        if not isinstance(value, (str, Path)):
            raise ConfigError(f"'{name}' must be a path")
        path = Path(value)
        setattr(settings, name, path if path.is_absolute() else project_root / path)

    for name in ("generator", "executable_name", "hg_url", "source_zip_url"):
        if name in data:
            if not isinstance(data[name], str) or not data[name]:
                raise ConfigError(f"'{name}' must be a non-empty string")
            setattr(settings, name, data[name])

    if "data_files" in data:
        files = data["data_files"]
        if not isinstance(files, list) or not all(isinstance(f, str) for f in files):
            raise ConfigError("'data_files' must be a list of file names")
        settings.data_files = tuple(files)

    if "auto_install_toolchain" in data:
        if not isinstance(data["auto_install_toolchain"], bool):
            raise ConfigError("'auto_install_toolchain' must be true or false")
        settings.auto_install_toolchain = data["auto_install_toolchain"]

    if "log_level" in data:
        level = str(data["log_level"]).upper()
        if level not in LOG_LEVELS:
            raise ConfigError(
                f"Invalid log_level '{data['log_level']}'. "
                f"Must be one of: {', '.join(LOG_LEVELS)}"
            )
        settings.log_level = level

    settings.tools = _parse_tool_overrides(data.get("tools") or {})
    return settings


def _parse_tool_overrides(data: Any) -> Dict[str, ToolOverride]:
    if not isinstance(data, dict):
        raise ConfigError("'tools' must be a mapping of tool name to overrides")

    table = default_tool_table()
    overrides: Dict[str, ToolOverride] = {}
    for name, values in data.items():
        if name not in table:
            raise ConfigError(
                f"Unknown tool '{name}'. Known tools: {', '.join(table)}"
            )
        if not isinstance(values, dict):
            raise ConfigError(f"Overrides for '{name}' must be a mapping")

        extra = sorted(set(values) - {"version", "urls"})
        if extra:
            raise ConfigError(f"Unknown override(s) for '{name}': {', '.join(extra)}")

        urls = values.get("urls")
        if urls is not None:
            if isinstance(urls, str):
                urls = [urls]
            if not isinstance(urls, list) or not all(isinstance(u, str) for u in urls):
                raise ConfigError(f"'tools.{name}.urls' must be a list of URLs")

        version = values.get("version")
        overrides[name] = ToolOverride(
            version=str(version) if version is not None else None,
            urls=urls,
        )
    return overrides
