"""Summarizer model wiring.

Builds the ChatOpenAI instance that writes state snapshots during compression
from the `models` and `context` settings groups. Any OpenAI-compatible
endpoint works through `MODEL_BASE_URL`.
"""

from __future__ import annotations

import logging

from langchain_openai import ChatOpenAI

from contextAgent.config.settings import Settings

LOGGER = logging.getLogger(__name__)


def build_summarizer_model(settings: Settings) -> ChatOpenAI:
    """Create the chat model used for state snapshots.

    Args:
        settings: Application settings

    Returns:
        ChatOpenAI configured with the base model slot
    """
    models = settings.models
    LOGGER.info(f"Building summarizer model: {models.base}")
    return ChatOpenAI(
        model=models.base,
        api_key=models.base_api_key,
        base_url=models.base_base_url,
        max_tokens=settings.context.summary_max_tokens,
        temperature=models.summary_temperature,
    )
