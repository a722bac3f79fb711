"""Graph integration exports."""

from .nodes import build_context_budget_node
from .state import AppState

__all__ = ["AppState", "build_context_budget_node"]
