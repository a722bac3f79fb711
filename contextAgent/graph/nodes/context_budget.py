"""Context budget node: masking, compression and tool gating before each model call."""

from __future__ import annotations

import logging
from typing import List

from langchain_core.messages import BaseMessage, RemoveMessage
from langgraph.graph.message import REMOVE_ALL_MESSAGES

from contextAgent.context.chat import ChatSession
from contextAgent.context.manager import ContextManager
from contextAgent.context.messages import history_to_messages, messages_to_history
from contextAgent.graph.state import AppState
from contextAgent.utils.error_handler import with_error_boundary
from contextAgent.utils.logging_utils import log_node_entry, log_node_exit

LOGGER = logging.getLogger("contextAgent.context_budget")


def build_context_budget_node(*, manager: ContextManager, model_name: str):
    """Build the node that brings the conversation within budget.

    Place it in front of the agent node. When masking or compression changed
    the history, the message list is replaced wholesale; otherwise only the
    tool declarations for the next call are written.
    """

    @with_error_boundary("context_budget")
    async def context_budget_node(state: AppState) -> dict:
        log_node_entry(LOGGER, "context_budget", state)

        messages: List[BaseMessage] = list(state.get("messages", []))
        system, history = messages_to_history(messages)

        chat = ChatSession(history, last_prompt_token_count=state.get("last_prompt_tokens", 0))
        chat.has_failed_compression_attempt = state.get("compression_failed", False)

        thread_id = state.get("thread_id") or manager.session.session_id
        report = await manager.prepare_turn(
            chat,
            prompt_id=f"{thread_id}#{len(messages)}",
            model_name=model_name,
            force_compression=state.get("force_compression", False),
        )

        updates = {
            "tool_declarations": [d.to_dict() for d in report.declarations],
            "compression_failed": chat.has_failed_compression_attempt,
            "force_compression": False,
        }

        if report.actions:
            LOGGER.info(f"Context budget actions: {', '.join(report.actions)}")
            updates["messages"] = [RemoveMessage(id=REMOVE_ALL_MESSAGES)] + history_to_messages(
                report.history, system
            )
            updates["last_prompt_tokens"] = chat.last_prompt_token_count
            updates["masked_count"] = state.get("masked_count", 0) + report.masking.masked_count
            if report.compression.compressed:
                updates["compact_count"] = state.get("compact_count", 0) + 1

        log_node_exit(LOGGER, "context_budget", updates)
        return updates

    return context_budget_node
