"""Runtime assembly for a context-managed agent session."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from langchain_core.tools import BaseTool

from contextAgent.config.settings import Settings, get_settings
from contextAgent.context.manager import ContextManager
from contextAgent.telemetry.tracing import configure_tracing
from contextAgent.tools.registry import ToolOrigin, ToolRegistry

from .session import ContextSession

LOGGER = logging.getLogger(__name__)


def _create_tool_registry(
    settings: Settings,
    native_tools: Iterable[BaseTool],
    discovered_tools: Iterable[BaseTool],
) -> ToolRegistry:
    """Register built-in tools as native and externally loaded ones (MCP, extensions) as discovered.

    Returns:
        Populated ToolRegistry
    """
    registry = ToolRegistry(settings.tool_search)

    native_count = 0
    for tool in native_tools:
        registry.register_langchain_tool(tool, ToolOrigin.NATIVE)
        native_count += 1
    LOGGER.info(f"  - Registered {native_count} native tools")

    discovered_count = 0
    for tool in discovered_tools:
        registry.register_langchain_tool(tool, ToolOrigin.DISCOVERED)
        discovered_count += 1
    LOGGER.info(f"  - Registered {discovered_count} discovered tools")

    if registry.is_gated():
        LOGGER.info(
            f"  - Discovered tool descriptions total {registry.discovered_description_chars():,} chars, "
            f"declarations hidden behind search_tools"
        )
    return registry


def build_context_session(
    settings: Optional[Settings] = None,
    *,
    native_tools: Iterable[BaseTool] = (),
    discovered_tools: Iterable[BaseTool] = (),
    **session_kwargs,
) -> tuple[ContextSession, ContextManager]:
    """Assemble a session and its context manager.

    Args:
        settings: Application settings (defaults to the cached singleton)
        native_tools: Built-in tools, never hidden
        discovered_tools: External tools subject to declaration gating
        **session_kwargs: Forwarded to ContextSession (session_id, estimator, summarizer, ...)

    Returns:
        (session, manager) tuple
    """
    settings = settings or get_settings()
    configure_tracing(settings.observability)

    registry = _create_tool_registry(settings, native_tools, discovered_tools)
    session = ContextSession(settings, tool_registry=registry, **session_kwargs)

    LOGGER.info(f"Context session ready: {session.session_id[:16]}...")
    return session, ContextManager(session)
