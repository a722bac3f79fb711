"""Session assembly."""

from .app import build_context_session
from .session import ContextSession, random_suffix

__all__ = ["ContextSession", "build_context_session", "random_suffix"]
