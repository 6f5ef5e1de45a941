"""
Native compiler toolchain discovery.
"""

from .locator import ToolchainLocator, refresh_path_from_registry

__all__ = ["ToolchainLocator", "refresh_path_from_registry"]
