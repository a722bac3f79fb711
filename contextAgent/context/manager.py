"""
上下文管理器 - 统一入口

负责（每轮严格按顺序执行）：
1. 对当前历史执行观察结果遮蔽（observation masking）
2. 超过阈值时执行历史压缩
3. 为本次请求选择工具声明
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional
from langchain_core.messages import AIMessage
import logging

from contextAgent.tools.registry import ToolDeclaration

from .chat import ChatSession
from .compressor import ChatCompressionResult, ChatCompressionService
from .history import History
from .masking import MaskingResult, ObservationMaskingService

if TYPE_CHECKING:
    from contextAgent.runtime.session import ContextSession

logger = logging.getLogger(__name__)


@dataclass
class ContextManagementReport:
    """上下文管理操作报告（单轮）"""
    history: History
    masking: MaskingResult
    compression: ChatCompressionResult
    declarations: List[ToolDeclaration] = field(default_factory=list)

    @property
    def actions(self) -> List[str]:
        actions = []
        if self.masking.masked_count:
            actions.append("masking")
        if self.compression.compressed:
            actions.append("compression")
        return actions


class ContextManager:
    """
    上下文管理器 - 统一入口

    自身不保存状态：历史在 ChatSession 中，其余都在 ContextSession 中。
    """

    def __init__(self, session: "ContextSession"):
        self.session = session
        self.masker = ObservationMaskingService()
        self.compressor = ChatCompressionService()

    async def prepare_turn(
        self,
        chat: ChatSession,
        prompt_id: str,
        model_name: str,
        force_compression: bool = False,
        quiet: bool = False,
        signal: Optional[asyncio.Event] = None,
    ) -> ContextManagementReport:
        """
        Bring the chat within budget before a model call.

        Args:
            chat: Chat session (its history is replaced, never edited in place)
            prompt_id: Identifier of the upcoming request
            model_name: Model the request goes to
            force_compression: Compress regardless of the threshold
            quiet: Quieter logging
            signal: Optional cancellation event for the summarizer call

        Returns:
            ContextManagementReport with the history to send and the declarations
        """
        # 1. Observation masking
        masking = await self.masker.mask(chat.get_history(), self.session)
        if masking.masked_count:
            chat.set_history(masking.new_history)
            if chat.last_prompt_token_count:
                chat.last_prompt_token_count = max(0, chat.last_prompt_token_count - masking.tokens_saved)

        # 2. History compression
        compression = await self.compressor.compress(
            chat,
            prompt_id,
            force_compression,
            model_name,
            self.session,
            quiet=quiet,
            signal=signal,
        )
        if compression.compressed:
            chat.set_history(compression.new_history)
            chat.last_prompt_token_count = compression.info.new_token_count

        # 3. Tool declarations
        declarations = self.session.tool_registry.get_function_declarations()

        report = ContextManagementReport(
            history=chat.get_history(),
            masking=masking,
            compression=compression,
            declarations=declarations,
        )
        logger.debug(
            f"Turn {prompt_id} prepared: actions={report.actions or ['none']}, "
            f"turns={len(report.history)}, tools={[d.name for d in declarations]}"
        )
        return report

    def record_response(self, chat: ChatSession, response: AIMessage) -> None:
        """Feed the API-reported prompt size back into the chat session."""
        chat.record_response(response, self.session.token_tracker)

    def format_compression_report(self, result: ChatCompressionResult) -> str:
        """
        User-visible compression report.

        Returns:
            Formatted report text
        """
        info = result.info
        saved = info.original_token_count - info.new_token_count
        ratio = info.new_token_count / info.original_token_count if info.original_token_count else 1.0

        return f"""Context compressed

Before: ~{info.original_token_count:,} tokens
After: ~{info.new_token_count:,} tokens
Status: {info.compression_status.value}
Truncated tool responses: {info.truncated_count}
Saved: ~{saved:,} tokens ({(1 - ratio):.1%})
""".strip()
