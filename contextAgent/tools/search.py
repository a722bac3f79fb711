"""search_tools: recover tool declarations hidden by the registry."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field

from contextAgent.utils.error_handler import safe_tool_call

from .names import SEARCH_TOOLS_TOOL_NAME

SEARCH_TOOLS_DESCRIPTION = (
    "Search for available tools that are not currently loaded in the context. "
    "Use this to find tools for specific tasks."
)


@dataclass(frozen=True)
class ToolResult:
    """Result of a tool-facing operation.

    llm_content goes back to the model, return_display to the user.
    """

    llm_content: str
    return_display: str = ""


class SearchToolsInput(BaseModel):
    query: str = Field(description="The search query to find relevant tools.")


SearchCallback = Callable[[str], Awaitable[ToolResult]]


def build_search_tool(search_callback: SearchCallback) -> StructuredTool:
    """Wrap a registry's search callback as a LangChain tool.

    Args:
        search_callback: Coroutine returning a ToolResult for a query

    Returns:
        StructuredTool named `search_tools` with a required `query` argument
    """

    @safe_tool_call(SEARCH_TOOLS_TOOL_NAME)
    async def _search_tools(query: str) -> str:
        result = await search_callback(query)
        return result.llm_content

    return StructuredTool.from_function(
        coroutine=_search_tools,
        name=SEARCH_TOOLS_TOOL_NAME,
        description=SEARCH_TOOLS_DESCRIPTION,
        args_schema=SearchToolsInput,
    )
