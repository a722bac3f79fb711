"""Conversion between LangChain messages and the turn/part history model.

- HumanMessage      → user turn with text (and inline image) parts
- AIMessage         → model turn with text and function-call parts
- ToolMessage(s)    → one user turn of function-response parts (consecutive
                      tool messages are grouped, as providers expect)
- SystemMessage     → kept aside; system prompts are not part of history
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Sequence, Tuple

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

from .history import (
    FunctionCallPart,
    FunctionResponsePart,
    History,
    InlineDataPart,
    Part,
    Role,
    TextPart,
    Turn,
    serialize_payload,
)


def _content_parts(content: Any) -> List[Part]:
    if isinstance(content, str):
        return [TextPart(content)] if content else []

    parts: List[Part] = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(TextPart(block))
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(TextPart(block.get("text", "")))
        elif isinstance(block, dict) and block.get("type") == "image_url":
            url = block.get("image_url", {})
            url = url.get("url", "") if isinstance(url, dict) else str(url)
            mime_type = url[5:].split(";", 1)[0] if url.startswith("data:") else "image/url"
            parts.append(InlineDataPart(mime_type=mime_type, data=url))
    return parts


def tool_payload(content: Any) -> Dict[str, Any]:
    """Payload of a ToolMessage: a JSON object as-is, anything else under "output"."""
    if isinstance(content, str):
        try:
            parsed = json.loads(content)
        except ValueError:
            return {"output": content}
        if isinstance(parsed, dict):
            return parsed
        return {"output": content}
    if isinstance(content, dict):
        return content
    return {"output": content}


def messages_to_history(messages: Sequence[BaseMessage]) -> Tuple[List[SystemMessage], History]:
    """Split LangChain messages into system messages and a turn history."""
    system: List[SystemMessage] = []
    turns: List[Turn] = []

    for msg in messages:
        if isinstance(msg, SystemMessage):
            system.append(msg)
        elif isinstance(msg, ToolMessage):
            part = FunctionResponsePart(
                name=msg.name or "unknown_tool",
                call_id=msg.tool_call_id,
                response=tool_payload(msg.content),
            )
            last = turns[-1] if turns else None
            if last is not None and last.role == Role.USER and last.parts and all(
                isinstance(p, FunctionResponsePart) for p in last.parts
            ):
                turns[-1] = Turn(Role.USER, last.parts + (part,))
            else:
                turns.append(Turn(Role.USER, (part,)))
        elif isinstance(msg, AIMessage):
            parts = _content_parts(msg.content)
            for call in msg.tool_calls or []:
                parts.append(FunctionCallPart(
                    name=call.get("name", ""),
                    args=call.get("args") or {},
                    call_id=call.get("id"),
                ))
            turns.append(Turn(Role.MODEL, tuple(parts)))
        elif isinstance(msg, HumanMessage):
            turns.append(Turn(Role.USER, tuple(_content_parts(msg.content))))

    return system, tuple(turns)


def _response_content(part: FunctionResponsePart) -> str:
    response = part.response or {}
    if set(response) == {"output"} and isinstance(response["output"], str):
        return response["output"]
    return serialize_payload(response)


def history_to_messages(history: History, system: Sequence[SystemMessage] = ()) -> List[BaseMessage]:
    """Rebuild LangChain messages from a turn history."""
    messages: List[BaseMessage] = list(system)

    for turn in history:
        if turn.role == Role.MODEL:
            tool_calls = [
                {"name": p.name, "args": dict(p.args), "id": p.call_id}
                for p in turn.parts if isinstance(p, FunctionCallPart)
            ]
            messages.append(AIMessage(content=turn.text, tool_calls=tool_calls))
            continue

        text_blocks: List[Any] = []
        for part in turn.parts:
            if isinstance(part, FunctionResponsePart):
                messages.append(ToolMessage(
                    content=_response_content(part),
                    tool_call_id=part.call_id or "",
                    name=part.name,
                ))
            elif isinstance(part, TextPart):
                text_blocks.append(part.text)
            elif isinstance(part, InlineDataPart):
                text_blocks.append({"type": "image_url", "image_url": {"url": part.data}})

        if text_blocks:
            if all(isinstance(b, str) for b in text_blocks):
                messages.append(HumanMessage(content="".join(text_blocks)))
            else:
                messages.append(HumanMessage(content=[
                    {"type": "text", "text": b} if isinstance(b, str) else b for b in text_blocks
                ]))

    return messages
