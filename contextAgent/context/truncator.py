"""
工具输出截断器（压缩过程中使用）

负责：
1. 找出超过单条响应 token 预算的工具响应
2. 修改前先把完整内容写入磁盘
3. 按内容形态替换为摘录，并附上保存文件的路径

形态：
- lines: 多行短文本 → 保留首尾若干行
- wide:  结构化内容（含单行 JSON）或超宽行 → 格式化后按宽度截断每行
- raw:   单个巨大的非结构化字符串 → 只保留字符数说明
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Tuple

from contextAgent.persistence.offload import OffloadedFile, safe_filename_component
from contextAgent.tools.names import GREP_TOOL_NAME, READ_FILE_TOOL_NAME
from contextAgent.utils.error_handler import OffloadError

from .history import FunctionResponsePart, History, iter_function_responses, serialize_observation, serialize_payload
from .masking import is_already_masked
from .tokens import estimate_part_tokens

if TYPE_CHECKING:
    from contextAgent.runtime.session import ContextSession

logger = logging.getLogger(__name__)

TRUNCATED_OUTPUT_MARKER = "<truncated_tool_output"


class TruncationShape(str, Enum):
    LINES = "lines"
    WIDE = "wide"
    RAW = "raw"


@dataclass
class TruncationReport:
    """Result of truncating one history region"""
    history: History
    truncated_count: int
    shapes: List[TruncationShape]


def is_already_truncated(content: str) -> bool:
    return TRUNCATED_OUTPUT_MARKER in content


def primary_text(payload: Any) -> str:
    """The text a tool actually produced.

    A payload holding a single string (e.g. {"output": "..."}) yields that
    string; anything else yields its pretty-printed JSON.
    """
    if isinstance(payload, Mapping) and len(payload) == 1:
        (value,) = payload.values()
        if isinstance(value, str):
            return value
    if isinstance(payload, str):
        return payload
    return serialize_payload(payload)


class ToolOutputTruncator:
    """Truncate oversized function responses, keeping them recoverable from disk"""

    def __init__(self, settings):
        self.settings = settings
        self.context_settings = settings.context

    def classify(self, text: str) -> TruncationShape:
        """Pick a strategy from the shape of the serialized content."""
        lines = text.split("\n")
        if len(lines) == 1:
            # Minified JSON still pretty-prints into a readable excerpt
            try:
                if isinstance(json.loads(text), (dict, list)):
                    return TruncationShape.WIDE
            except ValueError:
                pass
            if len(text) >= self.context_settings.raw_string_char_threshold:
                return TruncationShape.RAW
            return TruncationShape.WIDE
        if max(len(line) for line in lines) > self.context_settings.truncate_line_width:
            return TruncationShape.WIDE
        return TruncationShape.LINES

    async def truncate_history(self, history: History, session: "ContextSession") -> TruncationReport:
        """
        Truncate every function response over the token budget.

        Args:
            history: History region to process (not modified)
            session: Session providing estimator, storage and truncation ids

        Returns:
            TruncationReport with the new history and what was truncated
        """
        budget = self.context_settings.function_response_token_budget
        turns = list(history)
        shapes: List[TruncationShape] = []
        dir_ready = False

        for i, j, part in iter_function_responses(history):
            serialized = serialize_observation(part)
            if not serialized or is_already_truncated(serialized) or is_already_masked(serialized):
                continue

            tokens = estimate_part_tokens(part, session.estimator)
            if tokens <= budget:
                continue

            if not dir_ready:
                try:
                    await session.offload_store.ensure_dir(session.storage.tool_outputs_dir)
                except OSError as e:
                    logger.warning(f"Cannot create tool output directory, skipping truncation: {e}")
                    return TruncationReport(history=history, truncated_count=0, shapes=[])
                dir_ready = True

            truncated = await self._truncate_part(part, tokens, session)
            if truncated is None:
                continue

            new_part, shape = truncated
            turns[i] = turns[i].replace_part(j, new_part)
            shapes.append(shape)

        if shapes:
            logger.info(
                f"Truncated {len(shapes)} oversized tool responses "
                f"(budget {budget:,} tokens): {[s.value for s in shapes]}"
            )
        return TruncationReport(history=tuple(turns), truncated_count=len(shapes), shapes=shapes)

    async def _truncate_part(
        self,
        part: FunctionResponsePart,
        tokens: int,
        session: "ContextSession",
    ) -> Optional[Tuple[FunctionResponsePart, TruncationShape]]:
        text = primary_text(part.response)
        shape = self.classify(text)

        truncation_id = session.next_truncation_id()
        file_name = f"{safe_filename_component(part.name or 'unknown_tool')}_{truncation_id}.txt"
        try:
            saved = await session.offload_store.write(session.storage.tool_outputs_dir, file_name, text)
        except OffloadError as e:
            # Without a saved copy the content would be lost, so leave it intact
            logger.warning(f"Keeping {part.name} response untruncated, could not save it: {e}")
            return None

        if shape == TruncationShape.LINES:
            body = self._format_lines(text.split("\n"))
            summary = f"Showing the first and last lines of {saved.line_count:,} lines."
        elif shape == TruncationShape.WIDE:
            body = self._format_wide(part.response, text)
            summary = (
                f"Content was pretty-printed and each line cut to "
                f"{self.context_settings.truncate_line_width:,} characters."
            )
        else:
            body = ""
            summary = (
                f"The output was a single unstructured string of {len(text):,} characters "
                f"and has been removed from the context."
            )

        formatted = self._format_block(part, saved, tokens, summary, body)
        new_part = FunctionResponsePart(name=part.name, call_id=part.call_id, response={"output": formatted})
        return new_part, shape

    def _head_tail(self, lines: List[str]) -> List[str]:
        head = self.context_settings.truncate_head_lines
        tail = self.context_settings.truncate_tail_lines
        if len(lines) <= head + tail:
            return lines
        omitted = len(lines) - head - tail
        kept = lines[:head] + [f"... [{omitted:,} lines omitted] ..."]
        if tail:
            kept += lines[-tail:]
        return kept

    def _format_lines(self, lines: List[str]) -> str:
        return "\n".join(self._head_tail(lines))

    def _format_wide(self, payload: Any, text: str) -> str:
        try:
            pretty = serialize_payload(json.loads(text))
        except ValueError:
            pretty = serialize_payload(payload)

        width = self.context_settings.truncate_line_width
        cut = []
        for line in pretty.split("\n"):
            if len(line) > width:
                line = f"{line[:width]}... [{len(line) - width:,} more characters]"
            cut.append(line)
        return "\n".join(self._head_tail(cut))

    def _format_block(
        self,
        part: FunctionResponsePart,
        saved: OffloadedFile,
        tokens: int,
        summary: str,
        body: str,
    ) -> str:
        content = f"\n{body}\n" if body else "\n"
        return (
            f'{TRUNCATED_OUTPUT_MARKER} tool_name="{part.name}" call_id="{part.call_id or ""}">\n'
            f"Output too large ({tokens:,} estimated tokens). {summary}\n"
            f"Full output saved to: {saved.path} ({saved.size_mb}MB, {saved.line_count:,} lines)\n"
            f"Use '{GREP_TOOL_NAME}' or '{READ_FILE_TOOL_NAME}' to inspect it."
            f"{content}"
            f"</truncated_tool_output>"
        )
