"""Token estimation.

The estimator is treated as an opaque, deterministic function from text to an
integer. Every threshold in this package is expressed in its units, and a
session uses exactly one estimator for all counts.
"""

from __future__ import annotations

import math
from typing import Callable

from .history import History, Part, serialize_part, serialize_turn

TokenEstimator = Callable[[str], int]

# ASCII text averages ~4 chars/token; CJK and other non-ASCII ~1.3 tokens/char
ASCII_TOKENS_PER_CHAR = 0.25
NON_ASCII_TOKENS_PER_CHAR = 1.3


def estimate_tokens(text: str) -> int:
    """Cheap character-weighted token estimate."""
    if not text:
        return 0
    ascii_chars = sum(1 for ch in text if ord(ch) < 128)
    other_chars = len(text) - ascii_chars
    return math.ceil(ascii_chars * ASCII_TOKENS_PER_CHAR + other_chars * NON_ASCII_TOKENS_PER_CHAR)


def estimate_part_tokens(part: Part, estimator: TokenEstimator = estimate_tokens) -> int:
    return estimator(serialize_part(part))


def estimate_history_tokens(history: History, estimator: TokenEstimator = estimate_tokens) -> int:
    return sum(estimator(serialize_turn(turn)) for turn in history)
