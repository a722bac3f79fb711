"""Tool registry, declaration gating and the search_tools capability."""

from .names import GREP_TOOL_NAME, READ_FILE_TOOL_NAME, SEARCH_TOOLS_TOOL_NAME, SHELL_TOOL_NAME
from .registry import ToolDeclaration, ToolEntry, ToolOrigin, ToolRegistry, ToolVisibility
from .search import ToolResult, build_search_tool

__all__ = [
    "GREP_TOOL_NAME",
    "READ_FILE_TOOL_NAME",
    "SEARCH_TOOLS_TOOL_NAME",
    "SHELL_TOOL_NAME",
    "ToolDeclaration",
    "ToolEntry",
    "ToolOrigin",
    "ToolRegistry",
    "ToolResult",
    "ToolVisibility",
    "build_search_tool",
]
