from .context import ToolContext
from .registry import TOOL_SPECS, TOOLS_BY_NAME, ToolSpec

__all__ = [
    "ToolContext",
    "ToolSpec",
    "TOOL_SPECS",
    "TOOLS_BY_NAME",
]
