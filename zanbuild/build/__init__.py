"""
Engine build: source acquisition, generator and build-driver invocation.
"""

from .invocation import BuildInvocation, build_command

__all__ = ["BuildInvocation", "build_command"]
