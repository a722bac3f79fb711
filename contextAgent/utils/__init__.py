"""Shared utilities."""

from .error_handler import (
    ConfigurationError,
    ContextAgentError,
    OffloadError,
    SummarizationError,
    safe_tool_call,
    with_error_boundary,
)
from .logging_utils import setup_logging

__all__ = [
    "ConfigurationError",
    "ContextAgentError",
    "OffloadError",
    "SummarizationError",
    "safe_tool_call",
    "setup_logging",
    "with_error_boundary",
]
