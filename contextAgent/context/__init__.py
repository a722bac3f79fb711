"""
上下文预算管理模块

让每次请求保持在模型的 token 上限内，同时被移除的内容可以找回，支持：
- 观察结果遮蔽：旧的大体积工具输出写入磁盘，替换为有限长度的预览
- 历史压缩：早期轮次替换为 LLM 生成的状态快照，过大的工具响应截断并指向完整内容
- 降级策略：摘要失败时历史保持不变
"""

from .chat import ChatSession
from .compressor import (
    ChatCompressionResult,
    ChatCompressionService,
    CompressionInfo,
    CompressionSnapshot,
    CompressionStatus,
    find_compress_split_point,
)
from .history import (
    FunctionCallPart,
    FunctionResponsePart,
    History,
    InlineDataPart,
    Role,
    TextPart,
    Turn,
)
from .manager import ContextManagementReport, ContextManager
from .masking import MaskedRecord, MaskingResult, ObservationMaskingService
from .messages import history_to_messages, messages_to_history
from .token_tracker import TokenTracker, TokenUsage
from .tokens import estimate_tokens
from .truncator import ToolOutputTruncator, TruncationShape

__all__ = [
    "ChatCompressionResult",
    "ChatCompressionService",
    "ChatSession",
    "CompressionInfo",
    "CompressionSnapshot",
    "CompressionStatus",
    "ContextManagementReport",
    "ContextManager",
    "FunctionCallPart",
    "FunctionResponsePart",
    "History",
    "InlineDataPart",
    "MaskedRecord",
    "MaskingResult",
    "ObservationMaskingService",
    "Role",
    "TextPart",
    "TokenTracker",
    "TokenUsage",
    "ToolOutputTruncator",
    "TruncationShape",
    "Turn",
    "estimate_tokens",
    "find_compress_split_point",
    "history_to_messages",
    "messages_to_history",
]
