"""Graph nodes exports."""

from .context_budget import build_context_budget_node

__all__ = ["build_context_budget_node"]
