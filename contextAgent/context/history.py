"""Conversation history model.

History is an immutable tuple of turns. Each transform (masking, compression)
builds a new tuple with `replace_part` instead of editing turns in place, so a
caller holding the previous history can always compare before and after.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple, Union


class Role(str, Enum):
    USER = "user"
    MODEL = "model"


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class FunctionCallPart:
    name: str
    args: Mapping[str, Any] = field(default_factory=dict)
    call_id: Optional[str] = None


@dataclass(frozen=True)
class FunctionResponsePart:
    """A tool result. `response` is an opaque JSON-like payload."""

    name: str
    call_id: Optional[str] = None
    response: Optional[Mapping[str, Any]] = None


@dataclass(frozen=True)
class InlineDataPart:
    mime_type: str
    data: str


Part = Union[TextPart, FunctionCallPart, FunctionResponsePart, InlineDataPart]


@dataclass(frozen=True)
class Turn:
    role: Role
    parts: Tuple[Part, ...] = ()

    def __post_init__(self) -> None:
        # Accept lists from callers, store a tuple
        if not isinstance(self.parts, tuple):
            object.__setattr__(self, "parts", tuple(self.parts))

    def replace_part(self, index: int, part: Part) -> "Turn":
        parts = list(self.parts)
        parts[index] = part
        return replace(self, parts=tuple(parts))

    def has_function_response(self) -> bool:
        return any(isinstance(p, FunctionResponsePart) for p in self.parts)

    def has_function_call(self) -> bool:
        return any(isinstance(p, FunctionCallPart) for p in self.parts)

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))


History = Tuple[Turn, ...]


def user_text(text: str) -> Turn:
    return Turn(Role.USER, (TextPart(text),))


def model_text(text: str) -> Turn:
    return Turn(Role.MODEL, (TextPart(text),))


def iter_function_responses(history: History) -> Iterator[Tuple[int, int, FunctionResponsePart]]:
    """Yield (turn_index, part_index, part) for every function response, oldest first."""
    for i, turn in enumerate(history):
        for j, part in enumerate(turn.parts):
            if isinstance(part, FunctionResponsePart):
                yield i, j, part


def _json_default(value: Any) -> Any:
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def serialize_payload(payload: Any) -> str:
    """Pretty-printed JSON form of a tool payload (the observation)."""
    return json.dumps(payload, indent=2, ensure_ascii=False, default=_json_default)


def serialize_observation(part: FunctionResponsePart) -> Optional[str]:
    """Return the observation text for a function response, or None when empty."""
    if part.response is None:
        return None
    return serialize_payload(part.response)


def part_to_dict(part: Part) -> Dict[str, Any]:
    if isinstance(part, TextPart):
        return {"text": part.text}
    if isinstance(part, FunctionCallPart):
        return {"functionCall": {"name": part.name, "id": part.call_id, "args": dict(part.args)}}
    if isinstance(part, FunctionResponsePart):
        return {
            "functionResponse": {
                "name": part.name,
                "id": part.call_id,
                "response": part.response,
            }
        }
    if isinstance(part, InlineDataPart):
        return {"inlineData": {"mimeType": part.mime_type, "data": part.data}}
    raise TypeError(f"Unsupported part type: {type(part).__name__}")


def turn_to_dict(turn: Turn) -> Dict[str, Any]:
    return {"role": turn.role.value, "parts": [part_to_dict(p) for p in turn.parts]}


def serialize_part(part: Part) -> str:
    """Compact JSON used for token estimation of a single part."""
    return json.dumps(part_to_dict(part), ensure_ascii=False, default=_json_default)


def serialize_turn(turn: Turn) -> str:
    return json.dumps(turn_to_dict(turn), ensure_ascii=False, default=_json_default)
