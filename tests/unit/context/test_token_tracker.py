"""
TokenTracker unit tests
"""

import pytest
from langchain_core.messages import AIMessage
from pydantic_settings import BaseSettings

from contextAgent.context.chat import ChatSession
from contextAgent.context.token_tracker import MODEL_TOKEN_LIMITS, TokenTracker
from contextAgent.context.tokens import estimate_tokens
from contextAgent.utils.error_handler import ConfigurationError


# Mock Settings
class MockContextSettings(BaseSettings):
    compression_threshold: float = 0.5
    model_token_limits: dict = {}

    class Config:
        extra = "ignore"


class MockSettings:
    def __init__(self, **context):
        self.context = MockContextSettings(**context)


@pytest.fixture
def tracker():
    """TokenTracker over the built-in limits"""
    return TokenTracker(MockSettings())


class TestTokenUsageExtraction:
    """Token usage extraction"""

    def test_extract_from_usage_metadata(self, tracker):
        """LangChain's normalized usage wins"""
        response = AIMessage(
            content="Test response",
            usage_metadata={"input_tokens": 1200, "output_tokens": 80, "total_tokens": 1280},
            response_metadata={"model_name": "gpt-4o"},
        )

        usage = tracker.extract_token_usage(response)

        assert usage is not None
        assert usage.prompt_tokens == 1200
        assert usage.completion_tokens == 80
        assert usage.model_name == "gpt-4o"

    def test_extract_from_standard_response(self, tracker):
        """token_usage in response_metadata"""
        response = AIMessage(
            content="Test response",
            response_metadata={
                "token_usage": {
                    "prompt_tokens": 100,
                    "completion_tokens": 50,
                    "total_tokens": 150
                },
                "model_name": "deepseek-chat"
            }
        )

        usage = tracker.extract_token_usage(response)

        assert usage is not None
        assert usage.prompt_tokens == 100
        assert usage.completion_tokens == 50
        assert usage.total_tokens == 150
        assert usage.model_name == "deepseek-chat"

    def test_extract_with_usage_key(self, tracker):
        """Some APIs use 'usage' instead of 'token_usage'"""
        response = AIMessage(
            content="Test",
            response_metadata={
                "usage": {
                    "prompt_tokens": 200,
                    "completion_tokens": 100,
                    "total_tokens": 300
                },
                "model_name": "gpt-4"
            }
        )

        usage = tracker.extract_token_usage(response)

        assert usage is not None
        assert usage.prompt_tokens == 200
        assert usage.completion_tokens == 100

    def test_extract_no_usage_data(self, tracker):
        response = AIMessage(
            content="Test",
            response_metadata={"model_name": "test"}
        )

        assert tracker.extract_token_usage(response) is None

    def test_chat_session_records_reported_prompt_tokens(self, tracker):
        chat = ChatSession(last_prompt_token_count=10)
        response = AIMessage(
            content="ok",
            response_metadata={"token_usage": {"prompt_tokens": 4321, "completion_tokens": 1, "total_tokens": 4322}},
        )

        chat.record_response(response, tracker)
        assert chat.last_prompt_token_count == 4321

        chat.record_response(AIMessage(content="no usage"), tracker)
        assert chat.last_prompt_token_count == 4321


class TestContextWindowLookup:
    """Model token limit lookup"""

    def test_exact_match(self, tracker):
        assert tracker.get_context_window("deepseek-chat") == 128_000
        assert tracker.get_context_window("gpt-4") == 8_192
        assert tracker.get_context_window("gemini-2.5-pro") == 1_048_576

    def test_longest_prefix_match(self, tracker):
        assert tracker.get_context_window("deepseek-chat-v2") == 128_000
        assert tracker.get_context_window("gpt-4-0125-preview") == 8_192
        assert tracker.get_context_window("gpt-4-32k-0613") == 32_768
        assert tracker.get_context_window("gemini-2.5-pro-preview-05-06") == 1_048_576

    def test_unknown_model_returns_default(self, tracker):
        assert tracker.get_context_window("unknown-model") == MODEL_TOKEN_LIMITS["default"]

    def test_settings_override_builtin_limits(self):
        tracker = TokenTracker(MockSettings(model_token_limits={"my-local-model": 32_000, "gpt-4": 16_000}))

        assert tracker.get_context_window("my-local-model") == 32_000
        assert tracker.get_context_window("gpt-4") == 16_000

    def test_invalid_limit_is_a_configuration_error(self):
        tracker = TokenTracker(MockSettings(model_token_limits={"broken-model": 0}))

        with pytest.raises(ConfigurationError):
            tracker.get_context_window("broken-model")

    def test_usage_ratio(self, tracker):
        assert tracker.usage_ratio(64_000, "deepseek-chat") == pytest.approx(0.5)


class TestEstimator:
    """Character-weighted token estimate"""

    def test_empty_text(self):
        assert estimate_tokens("") == 0

    def test_ascii_text(self):
        assert estimate_tokens("a" * 400) == 100

    def test_non_ascii_weighs_more(self):
        assert estimate_tokens("你好" * 10) > estimate_tokens("ab" * 10)

    def test_deterministic(self):
        text = "def main():\n    return 42\n"
        assert estimate_tokens(text) == estimate_tokens(text)
