"""Shared state definition for the LangGraph flow."""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Optional, TypedDict

from langchain_core.messages import BaseMessage
from langgraph.graph import add_messages


class AppState(TypedDict, total=False):
    """Conversation state read and written by the context budget node."""

    # ========== Messages ==========
    messages: Annotated[List[BaseMessage], add_messages]

    # ========== Session context ==========
    thread_id: Optional[str]  # Session identifier for persistence

    # ========== Context management ==========
    last_prompt_tokens: int  # Prompt tokens reported for the last model call
    compact_count: int  # Number of times history has been compressed
    masked_count: int  # Observations masked over the session
    compression_failed: bool  # Last unforced compression attempt failed, suppress retries
    force_compression: bool  # Compress on the next pass regardless of the threshold
    tool_declarations: List[Dict[str, Any]]  # Declarations to bind for the next model call
