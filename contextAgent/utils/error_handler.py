"""Unified error handling for the context budget pipeline."""

from __future__ import annotations

import asyncio
import functools
import json
import logging
from typing import Any, Callable

from langchain_core.messages import SystemMessage

LOGGER = logging.getLogger(__name__)


class ContextAgentError(Exception):
    """Base exception for contextAgent errors."""

    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message


class ConfigurationError(ContextAgentError):
    """A budget cannot be evaluated because configuration is missing."""
    pass


class OffloadError(ContextAgentError):
    """Writing an offloaded observation or tool output failed."""

    def __init__(self, message: str, path: str = None, user_message: str = None):
        super().__init__(message, user_message)
        self.path = path


class SummarizationError(ContextAgentError):
    """The model could not produce a state snapshot."""
    pass


def with_error_boundary(node_name: str):
    """Decorator to add an error boundary to graph nodes.

    Configuration errors are fatal to the turn and propagate. Everything else
    is logged and converted into a SystemMessage so the loop can continue.

    Args:
        node_name: Name of the node for logging and error messages
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def async_wrapper(state: dict) -> dict:
            try:
                return await func(state)
            except (ConfigurationError, asyncio.CancelledError):
                raise
            except ContextAgentError as e:
                LOGGER.error(f"{node_name} failed: {e}")
                return {
                    "messages": [SystemMessage(
                        content=f"Context management skipped this turn: {e.user_message}"
                    )]
                }
            except Exception as e:
                LOGGER.exception(f"{node_name} unexpected error", exc_info=e)
                return {
                    "messages": [SystemMessage(
                        content="Context management skipped this turn due to an internal error."
                    )]
                }

        @functools.wraps(func)
        def sync_wrapper(state: dict) -> dict:
            try:
                return func(state)
            except ConfigurationError:
                raise
            except ContextAgentError as e:
                LOGGER.error(f"{node_name} failed: {e}")
                return {
                    "messages": [SystemMessage(
                        content=f"Context management skipped this turn: {e.user_message}"
                    )]
                }
            except Exception as e:
                LOGGER.exception(f"{node_name} unexpected error", exc_info=e)
                return {
                    "messages": [SystemMessage(
                        content="Context management skipped this turn due to an internal error."
                    )]
                }

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


def safe_tool_call(tool_name: str):
    """Decorator for tool-facing callables that must always return a string.

    Works for both sync and async callables.

    Args:
        tool_name: Name of the tool for logging

    Example:
        @safe_tool_call("search_tools")
        async def _search(query: str) -> str:
            ...
    """
    def _error_payload(e: Exception) -> str:
        return json.dumps({
            "ok": False,
            "error": f"Tool {tool_name} failed: {str(e)}"
        }, ensure_ascii=False)

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> str:
            try:
                return await func(*args, **kwargs)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                LOGGER.exception(f"Tool {tool_name} failed", exc_info=e)
                return _error_payload(e)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> str:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                LOGGER.exception(f"Tool {tool_name} failed", exc_info=e)
                return _error_payload(e)

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return wrapper
    return decorator


def describe_model_error(error: Exception) -> str:
    """Convert summarizer invocation errors to a short reason string.

    Args:
        error: Exception raised during model invocation

    Returns:
        Human-readable reason
    """
    error_str = str(error).lower()

    if "rate_limit" in error_str or "429" in error_str:
        return "rate limited by the model provider"

    if "timeout" in error_str:
        return "model request timed out"

    if "context_length" in error_str or "maximum context" in error_str:
        return "history to summarize exceeds the model context"

    if "invalid_api_key" in error_str or "authentication" in error_str:
        return "invalid API credentials"

    return f"model unavailable: {str(error)}"
