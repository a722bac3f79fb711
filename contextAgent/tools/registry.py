"""Tool registration and declaration exposure.

Discovered tools (MCP servers, extensions) can carry very long descriptions.
When their combined description size would blow the prompt budget, their
declarations are hidden and the model gets `search_tools` instead. A tool
becomes Active, and stays visible for the rest of the session, once it is
found by search or fetched by name for execution.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from langchain_core.tools import BaseTool
from langchain_core.utils.function_calling import convert_to_openai_function

from contextAgent.config.settings import ToolSearchSettings

from .names import SEARCH_TOOLS_TOOL_NAME
from .search import ToolResult, build_search_tool

LOGGER = logging.getLogger(__name__)


class ToolOrigin(str, Enum):
    NATIVE = "native"
    DISCOVERED = "discovered"


class ToolVisibility(str, Enum):
    HIDDEN = "hidden"
    VISIBLE = "visible"
    ACTIVE = "active"


@dataclass(frozen=True)
class ToolDeclaration:
    """Function declaration attached to a model request."""

    name: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "parameters": self.parameters}


@dataclass(frozen=True)
class ToolEntry:
    """A registered tool capability."""

    name: str
    description: str
    schema: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})
    origin: ToolOrigin = ToolOrigin.NATIVE
    tool: Optional[BaseTool] = None

    @classmethod
    def from_langchain_tool(cls, tool: BaseTool, origin: ToolOrigin = ToolOrigin.NATIVE) -> "ToolEntry":
        function = convert_to_openai_function(tool)
        return cls(
            name=function["name"],
            description=function.get("description", "") or "",
            schema=function.get("parameters") or {"type": "object", "properties": {}},
            origin=origin,
            tool=tool,
        )

    def declaration(self) -> ToolDeclaration:
        return ToolDeclaration(name=self.name, description=self.description, parameters=self.schema)


class ToolRegistry:
    """Tracks tool entries and their visibility for one session.

    Activation is a set insert: monotonic, idempotent and safe to perform from
    concurrent tool executions without an exclusive lock.
    """

    def __init__(self, settings: Optional[ToolSearchSettings] = None) -> None:
        self.settings = settings or ToolSearchSettings()
        self._entries: Dict[str, ToolEntry] = {}
        self._active: set[str] = set()
        self._search_tool = build_search_tool(self.search_tools)
        self._search_entry = ToolEntry.from_langchain_tool(self._search_tool, ToolOrigin.NATIVE)

    def register_tool(self, entry: ToolEntry) -> None:
        if entry.name == SEARCH_TOOLS_TOOL_NAME:
            raise ValueError(f"'{SEARCH_TOOLS_TOOL_NAME}' is reserved")
        if entry.name in self._entries:
            LOGGER.warning(f"Tool '{entry.name}' is already registered, replacing it")
        self._entries[entry.name] = entry

    def register_langchain_tool(self, tool: BaseTool, origin: ToolOrigin = ToolOrigin.NATIVE) -> ToolEntry:
        entry = ToolEntry.from_langchain_tool(tool, origin)
        self.register_tool(entry)
        return entry

    def list_entries(self) -> List[ToolEntry]:
        return list(self._entries.values())

    @property
    def search_tool(self) -> BaseTool:
        return self._search_tool

    def discovered_description_chars(self) -> int:
        return sum(
            len(entry.description)
            for entry in self._entries.values()
            if entry.origin == ToolOrigin.DISCOVERED
        )

    def is_gated(self) -> bool:
        """True when discovered declarations must be hidden behind search."""
        if not self.settings.enabled:
            return False
        return self.discovered_description_chars() > self.settings.description_char_threshold

    def visibility(self, name: str) -> Optional[ToolVisibility]:
        entry = self._entries.get(name)
        if entry is None:
            return None
        if name in self._active:
            return ToolVisibility.ACTIVE
        if entry.origin == ToolOrigin.NATIVE or not self.is_gated():
            return ToolVisibility.VISIBLE
        return ToolVisibility.HIDDEN

    def activate(self, name: str) -> bool:
        """Mark a registered tool Active. Returns False for unknown names."""
        if name not in self._entries:
            return False
        if name not in self._active:
            self._active.add(name)
            LOGGER.info(f"Tool activated: {name}")
        return True

    def get_function_declarations(self) -> List[ToolDeclaration]:
        """Declarations to attach to the next model request, in registration order."""
        if not self.is_gated():
            return [entry.declaration() for entry in self._entries.values()]

        declarations = [
            entry.declaration()
            for entry in self._entries.values()
            if entry.origin == ToolOrigin.NATIVE or entry.name in self._active
        ]
        declarations.append(self._search_entry.declaration())

        hidden = len(self._entries) - len(declarations) + 1
        LOGGER.debug(
            f"Tool search enabled: {self.discovered_description_chars():,} description chars "
            f"(> {self.settings.description_char_threshold:,}), {hidden} tools hidden"
        )
        return declarations

    def get_tool(self, name: str) -> Optional[ToolEntry]:
        """Fetch a tool for execution. Fetching a hidden tool activates it."""
        if name == SEARCH_TOOLS_TOOL_NAME:
            return self._search_entry

        entry = self._entries.get(name)
        if entry is None:
            return None

        if entry.origin == ToolOrigin.DISCOVERED:
            self.activate(name)
        return entry

    def search(self, query: str) -> List[ToolEntry]:
        """Case-insensitive match of the query against discovered tools."""
        needle = (query or "").strip().lower()
        if not needle:
            return []
        keywords = needle.split()

        matches = []
        for entry in self._entries.values():
            if entry.origin != ToolOrigin.DISCOVERED:
                continue
            haystack = f"{entry.name}\n{entry.description}".lower()
            if needle in haystack or all(word in haystack for word in keywords):
                matches.append(entry)
        return matches

    async def search_tools(self, query: str) -> ToolResult:
        """Callback behind the `search_tools` capability."""
        matches = self.search(query)
        if not matches:
            LOGGER.info(f"search_tools found nothing for {query!r}")
            return ToolResult(
                llm_content=f"Found 0 tools: no available tools match '{query}'.",
                return_display="No tools found",
            )

        for entry in matches:
            self.activate(entry.name)

        names = [entry.name for entry in matches]
        lines = [f"Found {len(matches)} tools: {', '.join(names)}", ""]
        for entry in matches:
            summary = entry.description.strip().splitlines()[0] if entry.description.strip() else ""
            lines.append(f"- {entry.name}: {summary[:200]}")
        lines.append("")
        lines.append("These tools are now available and can be called directly.")

        LOGGER.info(f"search_tools {query!r} activated: {names}")
        return ToolResult(
            llm_content="\n".join(lines),
            return_display=f"Found {len(matches)} tools",
        )


__all__ = [
    "ToolDeclaration",
    "ToolEntry",
    "ToolOrigin",
    "ToolRegistry",
    "ToolVisibility",
]
