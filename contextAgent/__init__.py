"""Top-level package exports for contextAgent."""

from .runtime.app import build_context_session
from .runtime.session import ContextSession

__all__ = ["ContextSession", "build_context_session"]
