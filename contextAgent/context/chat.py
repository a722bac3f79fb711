"""Chat session state consumed by the compression engine."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from langchain_core.messages import AIMessage

from .history import History, Turn
from .token_tracker import TokenTracker

LOGGER = logging.getLogger(__name__)


class ChatSession:
    """Holds the live conversation history of one agent loop.

    The history is stored as a tuple and replaced wholesale by `set_history`,
    so references handed out by `get_history` never change under the caller.
    """

    def __init__(self, history: Optional[Iterable[Turn]] = None, last_prompt_token_count: int = 0) -> None:
        self._history: History = tuple(history or ())
        self.last_prompt_token_count = last_prompt_token_count
        self.has_failed_compression_attempt = False

    def get_history(self) -> History:
        return self._history

    def set_history(self, history: Iterable[Turn]) -> None:
        self._history = tuple(history)

    def add_turn(self, turn: Turn) -> None:
        self._history = self._history + (turn,)

    def record_response(self, response: AIMessage, tracker: TokenTracker) -> None:
        """Update the prompt token count from the API-reported usage."""
        usage = tracker.extract_token_usage(response)
        if usage is None:
            return
        self.last_prompt_token_count = usage.prompt_tokens
        LOGGER.debug(f"Prompt tokens reported by {usage.model_name}: {usage.prompt_tokens:,}")
