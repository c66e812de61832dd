"""Tools available to agents.

``registry`` pulls in every built-in tool; import it directly::

    from codeswarm.tools.registry import create_default_registry
"""

from codeswarm.tools.base import BaseTool, PermissionKind, SideEffect, ToolContext, ToolResult
from codeswarm.tools.guards import GuardConfig, GuardError, PathGuards

__all__ = [
    "BaseTool",
    "GuardConfig",
    "GuardError",
    "PathGuards",
    "PermissionKind",
    "SideEffect",
    "ToolContext",
    "ToolResult",
]
