"""
Tool provisioning: the ToolSpec table and the generic provisioner.
"""

from .specs import ToolSpec, DEFAULT_TOOLS, default_tool_table
from .provisioner import ProvisionedTool, ProvisionResult, ToolProvisioner

__all__ = [
    "ToolSpec",
    "DEFAULT_TOOLS",
    "default_tool_table",
    "ProvisionedTool",
    "ProvisionResult",
    "ToolProvisioner",
]
