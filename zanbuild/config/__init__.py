"""
Configuration for zanbuild.
"""

from .settings import BuildSettings, ToolOverride, load_settings

__all__ = ["BuildSettings", "ToolOverride", "load_settings"]
