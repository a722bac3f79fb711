"""
History compression unit tests

Coverage:
1. Split point selection
2. Shape-dependent truncation of tool output (line / wide / raw scenarios)
3. Snapshot replacement and the preserved tail
4. Fail-soft paths: model error, empty summary, inflation, cancellation
5. Threshold trigger and retry suppression
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from langchain_core.language_models import FakeListChatModel
from pydantic import ValidationError

from contextAgent.config.settings import ContextSettings
from contextAgent.context.chat import ChatSession
from contextAgent.context.compressor import (
    SNAPSHOT_ACKNOWLEDGEMENT,
    ChatCompressionService,
    CompressionStatus,
    find_compress_split_point,
)
from contextAgent.context.history import (
    FunctionCallPart,
    FunctionResponsePart,
    Role,
    Turn,
    model_text,
    user_text,
)
from contextAgent.context.truncator import TRUNCATED_OUTPUT_MARKER
from contextAgent.utils.error_handler import ConfigurationError

SNAPSHOT = "<state_snapshot><overall_goal>Inspect the build</overall_goal></state_snapshot>"


# ========== Helpers ==========

def tool_history(response, tool="run_tool", early_chars=None):
    """A long early conversation followed by one tool exchange in the tail."""
    tool_chars = len(str(response))
    early_chars = early_chars or tool_chars * 4
    return (
        user_text("U" * early_chars),
        model_text("M" * 10),
        user_text("Run the tool"),
        Turn(Role.MODEL, (FunctionCallPart(name=tool, args={}, call_id="c1"),)),
        Turn(Role.USER, (FunctionResponsePart(name=tool, call_id="c1", response=response),)),
        model_text("done"),
        user_text("continue"),
    )


def response_of(history, call_id="c1"):
    for turn in history:
        for part in turn.parts:
            if isinstance(part, FunctionResponsePart) and part.call_id == call_id:
                return part
    raise AssertionError(f"no response for {call_id}")


class HangingSummarizer:
    """Sets the cancellation signal, then never answers."""

    def __init__(self, signal):
        self.signal = signal

    async def ainvoke(self, messages, config=None):
        self.signal.set()
        await asyncio.sleep(60)


@pytest.fixture
def compressor():
    return ChatCompressionService()


@pytest.fixture
def compression_session(make_session, make_settings):
    def _make(summarizer=None, budget=1000, **context):
        settings = make_settings(context=ContextSettings(function_response_token_budget=budget, **context))
        summarizer = summarizer or FakeListChatModel(responses=[SNAPSHOT])
        return make_session(settings, summarizer=summarizer)
    return _make


# ========== Split point ==========

class TestSplitPoint:
    """Where the early region ends"""

    def test_fraction_out_of_range(self):
        with pytest.raises(ValueError):
            find_compress_split_point((user_text("a"),), 0)
        with pytest.raises(ValueError):
            find_compress_split_point((user_text("a"),), 1)

    def test_splits_on_user_turn_after_target(self):
        history = (
            user_text("a" * 1000),
            model_text("b" * 1000),
            user_text("c" * 10),
            model_text("d" * 10),
            user_text("e" * 10),
        )
        assert find_compress_split_point(history, 0.7) == 2

    def test_never_splits_on_function_response(self):
        history = tool_history({"output": "x" * 100})
        split = find_compress_split_point(history, 0.7)

        assert history[split].role == Role.USER
        assert not history[split].has_function_response()

    def test_trailing_model_answer_compresses_everything(self):
        history = (user_text("a" * 100), model_text("b" * 100))
        assert find_compress_split_point(history, 0.7) == 2


# ========== Shape scenarios ==========

class TestTruncationScenarios:
    """Oversized tool output in the preserved tail"""

    @pytest.mark.asyncio
    async def test_multiline_output_keeps_head_and_tail_lines(self, compressor, compression_session):
        text = "\n".join(f"line {i}: " + "x" * 40 for i in range(100))
        history = tool_history({"output": text})
        chat = ChatSession(history, last_prompt_token_count=1_000_000)
        session = compression_session()

        result = await compressor.compress(chat, "p1", True, "gpt-4o", session)

        assert result.info.compression_status == CompressionStatus.COMPRESSED
        assert result.info.truncated_count == 1
        output = response_of(result.new_history).response["output"]
        assert len(output) < len(text)
        assert "lines omitted" in output
        saved = session.storage.tool_outputs_dir / "run_tool_1.txt"
        assert f"Full output saved to: {saved}" in output
        assert saved.read_text(encoding="utf-8") == text

    @pytest.mark.asyncio
    async def test_wide_structured_output_is_width_truncated(self, compressor, compression_session):
        history = tool_history({"data": {"blob": "y" * 5000}})
        chat = ChatSession(history, last_prompt_token_count=1_000_000)

        result = await compressor.compress(chat, "p1", True, "gpt-4o", compression_session())

        output = response_of(result.new_history).response["output"]
        assert TRUNCATED_OUTPUT_MARKER in output
        assert "more characters]" in output
        assert "lines omitted" not in output

    @pytest.mark.asyncio
    async def test_raw_string_is_replaced_with_description(self, compressor, compression_session):
        history = tool_history({"output": "z" * 40_000})
        chat = ChatSession(history, last_prompt_token_count=1_000_000)

        result = await compressor.compress(chat, "p1", True, "gpt-4o", compression_session())

        output = response_of(result.new_history).response["output"]
        assert "40,000 characters" in output
        assert "z" * 50 not in output
        assert "more characters]" not in output


# ========== Snapshot ==========

class TestSnapshotReplacement:
    """Early region becomes a snapshot, the tail is kept in order"""

    @pytest.mark.asyncio
    async def test_new_history_layout(self, compressor, compression_session):
        history = tool_history({"output": "small"}, early_chars=5000)
        chat = ChatSession(history, last_prompt_token_count=1_000_000)
        session = compression_session()

        result = await compressor.compress(chat, "p1", True, "gpt-4o", session)

        assert result.compressed
        assert result.new_history[0] == user_text(SNAPSHOT)
        assert result.new_history[1] == model_text(SNAPSHOT_ACKNOWLEDGEMENT)
        assert result.new_history[2:] == history[2:]
        assert result.snapshot.summary_text == SNAPSHOT
        assert result.info.new_token_count < result.info.original_token_count

    @pytest.mark.asyncio
    async def test_input_history_is_not_modified(self, compressor, compression_session):
        history = tool_history({"output": "z" * 40_000})
        chat = ChatSession(history, last_prompt_token_count=1_000_000)

        await compressor.compress(chat, "p1", True, "gpt-4o", compression_session())

        assert chat.get_history() is history
        assert response_of(history).response == {"output": "z" * 40_000}

    @pytest.mark.asyncio
    async def test_summarizer_sees_early_region_only(self, compressor, compression_session):
        summarizer = Mock()
        summarizer.ainvoke = AsyncMock(return_value=Mock(content=SNAPSHOT))
        history = tool_history({"output": "tail-only-marker"}, early_chars=5000)
        chat = ChatSession(history, last_prompt_token_count=1_000_000)

        await compressor.compress(chat, "p1", True, "gpt-4o", compression_session(summarizer))

        messages = summarizer.ainvoke.call_args.args[0]
        transcript = messages[-1].content
        assert "U" * 100 in transcript
        assert "tail-only-marker" not in transcript
        assert summarizer.ainvoke.call_args.kwargs["config"]["metadata"]["prompt_id"] == "p1"

    @pytest.mark.asyncio
    async def test_records_compression_telemetry(self, compressor, compression_session):
        history = tool_history({"output": "small"}, early_chars=5000)
        chat = ChatSession(history, last_prompt_token_count=1_000_000)
        session = compression_session()

        await compressor.compress(chat, "p1", True, "gpt-4o", session)

        assert [e["compression_status"] for e in session.telemetry.events] == ["compressed"]


# ========== Fail soft ==========

class TestFailSoft:
    """Any summarization problem leaves the original history"""

    @pytest.mark.asyncio
    async def test_model_error_returns_original_history(self, compressor, compression_session):
        summarizer = Mock()
        summarizer.ainvoke = AsyncMock(side_effect=RuntimeError("429 rate_limit"))
        history = tool_history({"output": "z" * 40_000})
        chat = ChatSession(history, last_prompt_token_count=1_000_000)

        result = await compressor.compress(chat, "p1", True, "gpt-4o", compression_session(summarizer))

        assert result.info.compression_status == CompressionStatus.COMPRESSION_FAILED_MODEL_ERROR
        assert result.new_history is history
        assert not result.compressed
        assert chat.has_failed_compression_attempt

    @pytest.mark.asyncio
    async def test_empty_summary_returns_original_history(self, compressor, compression_session):
        history = tool_history({"output": "small"}, early_chars=5000)
        chat = ChatSession(history, last_prompt_token_count=1_000_000)

        result = await compressor.compress(
            chat, "p1", True, "gpt-4o", compression_session(FakeListChatModel(responses=["   "]))
        )

        assert result.info.compression_status == CompressionStatus.COMPRESSION_FAILED_EMPTY_SUMMARY
        assert result.new_history is history

    @pytest.mark.asyncio
    async def test_inflated_result_is_rejected(self, compressor, compression_session):
        history = tool_history({"output": "small"}, early_chars=5000)
        chat = ChatSession(history, last_prompt_token_count=10)

        result = await compressor.compress(chat, "p1", True, "gpt-4o", compression_session())

        assert result.info.compression_status == CompressionStatus.COMPRESSION_FAILED_INFLATED_TOKEN_COUNT
        assert result.new_history is history
        assert result.info.new_token_count > result.info.original_token_count

    @pytest.mark.asyncio
    async def test_signal_set_before_call_cancels(self, compressor, compression_session):
        signal = asyncio.Event()
        signal.set()
        history = tool_history({"output": "small"}, early_chars=5000)
        chat = ChatSession(history, last_prompt_token_count=1_000_000)

        result = await compressor.compress(chat, "p1", True, "gpt-4o", compression_session(), signal=signal)

        assert result.info.compression_status == CompressionStatus.COMPRESSION_CANCELLED
        assert result.new_history is history
        assert not chat.has_failed_compression_attempt

    @pytest.mark.asyncio
    async def test_signal_during_model_call_cancels(self, compressor, compression_session):
        signal = asyncio.Event()
        history = tool_history({"output": "small"}, early_chars=5000)
        chat = ChatSession(history, last_prompt_token_count=1_000_000)
        session = compression_session(HangingSummarizer(signal))

        result = await asyncio.wait_for(
            compressor.compress(chat, "p1", True, "gpt-4o", session, signal=signal),
            timeout=5,
        )

        assert result.info.compression_status == CompressionStatus.COMPRESSION_CANCELLED
        assert result.new_history is history


# ========== Trigger ==========

class TestTrigger:
    """Threshold, retry suppression and configuration"""

    @pytest.mark.asyncio
    async def test_empty_history_is_noop(self, compressor, compression_session):
        result = await compressor.compress(ChatSession(), "p1", True, "gpt-4o", compression_session())

        assert result.info.compression_status == CompressionStatus.NOOP
        assert result.new_history == ()

    @pytest.mark.asyncio
    async def test_below_threshold_is_noop(self, compressor, compression_session):
        history = tool_history({"output": "small"}, early_chars=5000)
        chat = ChatSession(history, last_prompt_token_count=10_000)  # ~8% of 128k

        result = await compressor.compress(chat, "p1", False, "gpt-4o", compression_session())

        assert result.info.compression_status == CompressionStatus.NOOP
        assert result.new_history is history

    @pytest.mark.asyncio
    async def test_above_threshold_compresses(self, compressor, compression_session):
        history = tool_history({"output": "small"}, early_chars=5000)
        chat = ChatSession(history, last_prompt_token_count=100_000)  # ~78% of 128k

        result = await compressor.compress(chat, "p1", False, "gpt-4o", compression_session())

        assert result.info.compression_status == CompressionStatus.COMPRESSED

    @pytest.mark.asyncio
    async def test_failed_attempt_suppresses_unforced_retry(self, compressor, compression_session):
        history = tool_history({"output": "small"}, early_chars=5000)
        chat = ChatSession(history, last_prompt_token_count=100_000)
        chat.has_failed_compression_attempt = True
        session = compression_session()

        skipped = await compressor.compress(chat, "p1", False, "gpt-4o", session)
        forced = await compressor.compress(chat, "p2", True, "gpt-4o", session)

        assert skipped.info.compression_status == CompressionStatus.NOOP
        assert forced.info.compression_status == CompressionStatus.COMPRESSED
        assert not chat.has_failed_compression_attempt

    @pytest.mark.asyncio
    async def test_invalid_model_limit_is_fatal(self, compressor, compression_session):
        history = tool_history({"output": "small"}, early_chars=5000)
        chat = ChatSession(history, last_prompt_token_count=100_000)
        session = compression_session(model_token_limits={"broken-model": 0})

        with pytest.raises(ConfigurationError):
            await compressor.compress(chat, "p1", False, "broken-model", session)

    def test_zero_preserve_fraction_is_rejected(self):
        with pytest.raises(ValidationError):
            ContextSettings(preserve_fraction=0.0)

    @pytest.mark.asyncio
    async def test_small_preserve_fraction_compresses(self, compressor, compression_session):
        history = tool_history({"output": "small"}, early_chars=5000)
        chat = ChatSession(history, last_prompt_token_count=100_000)
        session = compression_session(preserve_fraction=0.01)

        result = await compressor.compress(chat, "p1", True, "gpt-4o", session)

        assert result.info.compression_status == CompressionStatus.COMPRESSED
        assert result.new_history[-1] == user_text("continue")
