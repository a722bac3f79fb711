"""
Token 追踪和模型上下文上限

负责：
1. 解析模型的 token 上限（先精确匹配，再前缀匹配）
2. 从 API 响应提取精确的 prompt token 使用量
3. 计算触发压缩的使用率
"""

from dataclasses import dataclass
from typing import Dict, Optional
from langchain_core.messages import AIMessage
import logging

from contextAgent.utils.error_handler import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class TokenUsage:
    """Token usage of a single API call"""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    model_name: str


# Model token limits (extend through ContextSettings.model_token_limits)
MODEL_TOKEN_LIMITS: Dict[str, int] = {
    # Gemini
    "gemini-1.5-pro": 2_097_152,
    "gemini-1.5-flash": 1_048_576,
    "gemini-2.0-flash": 1_048_576,
    "gemini-2.5-pro": 1_048_576,
    "gemini-2.5-flash": 1_048_576,

    # DeepSeek
    "deepseek-chat": 128_000,
    "deepseek-reasoner": 128_000,

    # Kimi (Moonshot)
    "moonshot-v1-8k": 8_000,
    "moonshot-v1-32k": 32_000,
    "moonshot-v1-128k": 128_000,

    # GLM
    "glm-4": 128_000,

    # OpenAI
    "gpt-4": 8_192,
    "gpt-4-32k": 32_768,
    "gpt-4-turbo": 128_000,
    "gpt-4o": 128_000,
    "gpt-4o-mini": 128_000,

    # Claude
    "claude-3-opus": 200_000,
    "claude-3-5-sonnet": 200_000,
    "claude-3.5-sonnet": 200_000,

    # Fallback
    "default": 128_000
}


class TokenTracker:
    """Token limit lookup and usage extraction"""

    def __init__(self, settings):
        self.settings = settings
        self.context_settings = settings.context

    def _limits(self) -> Dict[str, int]:
        limits = dict(MODEL_TOKEN_LIMITS)
        limits.update(self.context_settings.model_token_limits or {})
        return limits

    def get_context_window(self, model_id: str) -> int:
        """
        Return the model's token limit.

        Exact match first, then the longest prefix match
        ("gemini-2.5-pro-preview" → "gemini-2.5-pro"), then "default".

        Raises:
            ConfigurationError: no limit can be resolved for the model
        """
        limits = self._limits()

        if model_id in limits:
            window = limits[model_id]
        else:
            prefixes = [key for key in limits if key != "default" and model_id and model_id.startswith(key)]
            if prefixes:
                window = limits[max(prefixes, key=len)]
            elif "default" in limits:
                logger.warning(
                    f"Unknown model '{model_id}', using default token limit {limits['default']:,}"
                )
                window = limits["default"]
            else:
                raise ConfigurationError(f"No token limit configured for model '{model_id}'")

        if not window or window <= 0:
            raise ConfigurationError(f"Invalid token limit {window!r} for model '{model_id}'")
        return window

    def usage_ratio(self, prompt_tokens: int, model_id: str) -> float:
        return prompt_tokens / self.get_context_window(model_id)

    def extract_token_usage(self, response: AIMessage) -> Optional[TokenUsage]:
        """
        Extract token usage from an API response.

        Reads LangChain's normalized `usage_metadata` first, then the
        provider's `response_metadata` ("token_usage" or "usage").

        Returns:
            TokenUsage, or None when the response carries no usage
        """
        usage_metadata = getattr(response, "usage_metadata", None)
        if usage_metadata:
            return TokenUsage(
                prompt_tokens=usage_metadata.get("input_tokens", 0),
                completion_tokens=usage_metadata.get("output_tokens", 0),
                total_tokens=usage_metadata.get("total_tokens", 0),
                model_name=response.response_metadata.get("model_name", "unknown"),
            )

        metadata = response.response_metadata or {}
        usage = metadata.get("token_usage") or metadata.get("usage")

        if not usage:
            logger.debug("No token usage found in response metadata")
            return None

        return TokenUsage(
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            total_tokens=usage.get("total_tokens", 0),
            model_name=metadata.get("model_name", "unknown")
        )
