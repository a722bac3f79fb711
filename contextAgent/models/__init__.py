"""Model wiring."""

from .summarizer import build_summarizer_model

__all__ = ["build_summarizer_model"]
