"""
历史压缩器

负责：
1. 判断对话是否超过按模型上限缩放的 token 阈值
2. 将历史切分为早期区域（摘要）和尾部（原样保留）
3. 摘要前截断两个区域中过大的工具响应
4. 调用 LLM 生成状态快照，替换早期区域
5. 降级策略：摘要出现任何问题时返回原始历史
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, List, Optional

from langchain_core.messages import HumanMessage, SystemMessage

from contextAgent.telemetry.events import ChatCompressionEvent
from contextAgent.utils.error_handler import SummarizationError, describe_model_error

from .chat import ChatSession
from .history import (
    FunctionCallPart,
    FunctionResponsePart,
    History,
    InlineDataPart,
    Role,
    TextPart,
    model_text,
    serialize_observation,
    serialize_turn,
    user_text,
)
from .tokens import estimate_history_tokens
from .truncator import ToolOutputTruncator

if TYPE_CHECKING:
    from contextAgent.runtime.session import ContextSession

logger = logging.getLogger(__name__)


class CompressionStatus(str, Enum):
    NOOP = "noop"
    COMPRESSED = "compressed"
    COMPRESSION_FAILED_INFLATED_TOKEN_COUNT = "compression_failed_inflated_token_count"
    COMPRESSION_FAILED_EMPTY_SUMMARY = "compression_failed_empty_summary"
    COMPRESSION_FAILED_MODEL_ERROR = "compression_failed_model_error"
    COMPRESSION_CANCELLED = "compression_cancelled"

    @property
    def failed(self) -> bool:
        return self not in (CompressionStatus.NOOP, CompressionStatus.COMPRESSED)


@dataclass
class CompressionInfo:
    original_token_count: int
    new_token_count: int
    compression_status: CompressionStatus
    truncated_count: int = 0


@dataclass(frozen=True)
class CompressionSnapshot:
    """The summary that replaced the early region"""
    summary_text: str
    truncation_id: int


@dataclass
class ChatCompressionResult:
    new_history: History
    info: CompressionInfo
    snapshot: Optional[CompressionSnapshot] = None

    @property
    def compressed(self) -> bool:
        return self.info.compression_status == CompressionStatus.COMPRESSED


class CompressionCancelled(Exception):
    """The caller's signal fired while the snapshot was being generated."""


# ===== Prompt templates =====

STATE_SNAPSHOT_PROMPT = """You are the component that compresses an AI coding agent's conversation history into a structured state snapshot.

When the conversation grows too long, the history you are given is replaced by your snapshot. The agent will only see the snapshot plus the most recent turns, so the snapshot must contain EVERYTHING needed to continue the task.

**Snapshot requirements:**

1. **Overall goal**: the user's high-level objective, in one or two sentences
2. **Key knowledge**: facts, conventions, constraints and decisions established so far
3. **File system state**: files created, read, modified or deleted, with the relevant detail
4. **Recent actions**: the last significant tool calls and what they returned
5. **Saved outputs**: every path mentioned as "Full output saved to" or "file_path" — keep them verbatim, they are the only way to recover truncated tool output
6. **Current plan**: remaining steps, marking what is done, in progress and to do

**Output format:**

First reason privately in a <scratchpad>. Then output exactly one block:

<state_snapshot>
    <overall_goal></overall_goal>
    <key_knowledge></key_knowledge>
    <file_system_state></file_system_state>
    <recent_actions></recent_actions>
    <saved_outputs></saved_outputs>
    <current_plan></current_plan>
</state_snapshot>

Be dense. Omit pleasantries and anything that does not help the agent continue.
"""

SNAPSHOT_REQUEST = "First, reason in your scratchpad. Then, generate the <state_snapshot>."

SNAPSHOT_ACKNOWLEDGEMENT = "Got it. Thanks for the additional context!"


def find_compress_split_point(history: History, fraction: float) -> int:
    """
    Index where the early region ends.

    Walks forward until `fraction` of the total characters lies before the
    cursor; only user turns that do not carry function responses are valid
    split points, so a tool call and its response are never separated.

    Returns:
        Number of leading turns to compress (0 means nothing to compress)
    """
    if fraction <= 0 or fraction >= 1:
        raise ValueError("fraction must be between 0 and 1")

    char_counts = [len(serialize_turn(turn)) for turn in history]
    target = sum(char_counts) * fraction

    last_split_point = 0
    cumulative = 0
    for i, turn in enumerate(history):
        if turn.role == Role.USER and not turn.has_function_response():
            if cumulative >= target:
                return i
            last_split_point = i
        cumulative += char_counts[i]

    # A conversation that ends on a plain model answer can be compressed whole
    if history and history[-1].role == Role.MODEL and not history[-1].has_function_call():
        return len(history)
    return last_split_point


class ChatCompressionService:
    """History compressor"""

    async def compress(
        self,
        chat: ChatSession,
        prompt_id: str,
        force: bool,
        model_name: str,
        session: "ContextSession",
        quiet: bool = False,
        signal: Optional[asyncio.Event] = None,
    ) -> ChatCompressionResult:
        """
        Compress the chat history if it is over the threshold.

        Args:
            chat: Chat session holding history and the last prompt token count
            prompt_id: Identifier of the prompt being prepared (tracing metadata)
            force: Compress regardless of the threshold
            model_name: Model whose token limit scales the threshold
            session: Session providing settings, estimator, storage and summarizer
            quiet: Log progress at DEBUG instead of INFO
            signal: Optional cancellation event; when set, the original history is kept

        Returns:
            ChatCompressionResult. `new_history` is the original history
            unless the status is COMPRESSED.

        Raises:
            ConfigurationError: model token limit is not configured
        """
        log = logger.debug if quiet else logger.info
        context_settings = session.settings.context
        history = chat.get_history()

        original_token_count = chat.last_prompt_token_count or estimate_history_tokens(
            history, session.estimator
        )

        def _result(status: CompressionStatus, new_token_count: int = original_token_count,
                    truncated_count: int = 0) -> ChatCompressionResult:
            return ChatCompressionResult(
                new_history=history,
                info=CompressionInfo(
                    original_token_count=original_token_count,
                    new_token_count=new_token_count,
                    compression_status=status,
                    truncated_count=truncated_count,
                ),
            )

        if not history:
            return _result(CompressionStatus.NOOP, 0)

        if not force:
            if not context_settings.enabled or chat.has_failed_compression_attempt:
                return _result(CompressionStatus.NOOP)

            threshold = context_settings.compression_threshold
            usage_ratio = session.token_tracker.usage_ratio(original_token_count, model_name)
            if usage_ratio <= threshold:
                logger.debug(f"No compression needed: {usage_ratio:.1%} <= {threshold:.0%} of {model_name} limit")
                return _result(CompressionStatus.NOOP)
            log(f"Compression triggered: {usage_ratio:.1%} of {model_name} limit (> {threshold:.0%})")

        split = find_compress_split_point(history, 1 - context_settings.preserve_fraction)
        to_compress, to_keep = history[:split], history[split:]
        if not to_compress:
            return _result(CompressionStatus.NOOP)

        truncator = ToolOutputTruncator(session.settings)
        early = await truncator.truncate_history(to_compress, session)
        tail = await truncator.truncate_history(to_keep, session)
        truncated_count = early.truncated_count + tail.truncated_count

        log(
            f"Compressing {len(to_compress)} turns, keeping {len(to_keep)} "
            f"(~{original_token_count:,} tokens, {truncated_count} tool responses truncated)"
        )

        try:
            summary = await self._summarize(early.history, session, prompt_id, signal)
        except CompressionCancelled:
            logger.warning("Compression cancelled, keeping the original history")
            return _result(CompressionStatus.COMPRESSION_CANCELLED, truncated_count=truncated_count)
        except SummarizationError as e:
            logger.error(f"State snapshot generation failed: {e}")
            chat.has_failed_compression_attempt = True
            self._record(session, original_token_count, original_token_count,
                         CompressionStatus.COMPRESSION_FAILED_MODEL_ERROR, truncated_count)
            return _result(CompressionStatus.COMPRESSION_FAILED_MODEL_ERROR, truncated_count=truncated_count)

        if not summary.strip():
            logger.warning("Summarizer returned an empty state snapshot, keeping the original history")
            chat.has_failed_compression_attempt = True
            return _result(CompressionStatus.COMPRESSION_FAILED_EMPTY_SUMMARY, truncated_count=truncated_count)

        new_history = (user_text(summary), model_text(SNAPSHOT_ACKNOWLEDGEMENT)) + tail.history
        new_token_count = estimate_history_tokens(new_history, session.estimator)

        if new_token_count > original_token_count:
            logger.warning(
                f"Compression inflated the token count ({original_token_count:,} → {new_token_count:,}), "
                f"keeping the original history"
            )
            chat.has_failed_compression_attempt = True
            self._record(session, original_token_count, new_token_count,
                         CompressionStatus.COMPRESSION_FAILED_INFLATED_TOKEN_COUNT, truncated_count)
            return _result(
                CompressionStatus.COMPRESSION_FAILED_INFLATED_TOKEN_COUNT,
                new_token_count,
                truncated_count,
            )

        chat.has_failed_compression_attempt = False
        log(f"Compression complete: ~{original_token_count:,} → ~{new_token_count:,} tokens")
        self._record(session, original_token_count, new_token_count,
                     CompressionStatus.COMPRESSED, truncated_count)

        return ChatCompressionResult(
            new_history=new_history,
            info=CompressionInfo(
                original_token_count=original_token_count,
                new_token_count=new_token_count,
                compression_status=CompressionStatus.COMPRESSED,
                truncated_count=truncated_count,
            ),
            snapshot=CompressionSnapshot(summary_text=summary, truncation_id=session.truncation_id),
        )

    async def _summarize(
        self,
        history: History,
        session: "ContextSession",
        prompt_id: str,
        signal: Optional[asyncio.Event],
    ) -> str:
        """
        Ask the summarizer model for a state snapshot.

        Raises:
            CompressionCancelled: the signal fired before the model answered
            SummarizationError: the model call failed
        """
        if signal is not None and signal.is_set():
            raise CompressionCancelled()

        messages = [
            SystemMessage(content=STATE_SNAPSHOT_PROMPT),
            HumanMessage(content=f"{self._format_history_for_summary(history)}\n\n{SNAPSHOT_REQUEST}"),
        ]
        config = {
            "run_name": "state_snapshot",
            "metadata": {"prompt_id": prompt_id, "session_id": session.session_id},
        }

        try:
            model = session.summarizer
            invoke = asyncio.ensure_future(model.ainvoke(messages, config=config))
            if signal is None:
                response = await invoke
            else:
                waiter = asyncio.ensure_future(signal.wait())
                try:
                    done, _ = await asyncio.wait({invoke, waiter}, return_when=asyncio.FIRST_COMPLETED)
                finally:
                    for task in (invoke, waiter):
                        if not task.done():
                            task.cancel()
                if invoke not in done:
                    raise CompressionCancelled()
                response = invoke.result()
        except (CompressionCancelled, asyncio.CancelledError):
            raise
        except Exception as e:
            raise SummarizationError(str(e), user_message=describe_model_error(e)) from e

        return _message_text(response.content).strip()

    def _format_history_for_summary(self, history: History) -> str:
        """Render turns as a transcript for the summarizer"""
        formatted = []

        for turn in history:
            role = turn.role.value
            for part in turn.parts:
                if isinstance(part, TextPart):
                    formatted.append(f"[{role}] {part.text}")
                elif isinstance(part, FunctionCallPart):
                    args = json.dumps(dict(part.args), ensure_ascii=False, default=str)
                    formatted.append(f"[{role}] called tool: {part.name}({args})")
                elif isinstance(part, FunctionResponsePart):
                    formatted.append(f"[tool:{part.name}] {serialize_observation(part) or ''}")
                elif isinstance(part, InlineDataPart):
                    formatted.append(f"[{role}] <inline data: {part.mime_type}>")

        return "\n\n".join(formatted)

    def _record(
        self,
        session: "ContextSession",
        tokens_before: int,
        tokens_after: int,
        status: CompressionStatus,
        truncated_count: int,
    ) -> None:
        session.telemetry.record(
            ChatCompressionEvent(
                tokens_before=tokens_before,
                tokens_after=tokens_after,
                compression_status=status.value,
                truncated_count=truncated_count,
            ),
            session_id=session.session_id,
        )


def _message_text(content: Any) -> str:
    """Flatten LangChain message content (str or content blocks) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        chunks: List[str] = []
        for block in content:
            if isinstance(block, str):
                chunks.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                chunks.append(block.get("text", ""))
        return "".join(chunks)
    return str(content or "")
