# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Tests for LLM summarization (Tier 3)."""

import asyncio
from typing import List

import pytest
from agent_context.models import Message
from agent_context.schemas.content import MessageRole, TextBlock, ThinkingBlock
from agent_context.services.compaction.errors import SummarizationError
from agent_context.services.compaction.summarizer import (
    _chunk_messages_by_max_tokens,
    _compute_adaptive_chunk_ratio,
    _messages_to_text,
    build_summary_message,
    extract_summary,
    find_summary_cutoff,
    summarize_chunks,
    summarize_oldest_span,
)
from agent_context.services.prompts.base import (
    SUMMARIZATION_SYSTEM_PROMPT,
    SUMMARY_CLOSE_TAG,
    SUMMARY_OPEN_TAG,
)

# ---------------------------------------------------------------------------
# Common helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def span_log(user_message, assistant_call, tool_message):
    """Three user/call/result triples followed by four protected messages."""
    msgs: List[Message] = []
    for turn in range(3):
        msgs.append(user_message(f"please run step {turn}", turn=turn))
        msgs.append(assistant_call("bash", {"cmd": f"step {turn}"}, call_id=f"c{turn}", turn=turn))
        msgs.append(tool_message(f"step {turn} done", call_id=f"c{turn}", turn=turn))
    msgs += [user_message("recent", turn=3) for _ in range(4)]
    return msgs


# ---------------------------------------------------------------------------
# _messages_to_text
# ---------------------------------------------------------------------------


class TestMessagesToText:
    """Tests for _messages_to_text serialization."""

    def test_labels(self, user_message, assistant_call, tool_message):
        """Verify each block kind is rendered with its label."""
        msgs = [
            user_message("fix the bug"),
            assistant_call("edit", {"path": "a.py"}, text="on it"),
            tool_message("boom", tool_name="edit", is_error=True),
            tool_message("fine", tool_name="bash"),
        ]
        text = _messages_to_text(msgs)
        assert "[User]: fix the bug" in text
        assert "[Assistant]: on it" in text
        assert '[Tool call]: edit({"path": "a.py"})' in text
        assert "[Tool error (edit)]: boom" in text
        assert "[Tool result (bash)]: fine" in text

    def test_thinking_abbreviated(self):
        """Verify thinking blocks are labelled and abbreviated."""
        msg = Message(role=MessageRole.ASSISTANT, content=[ThinkingBlock(thinking="t" * 2_000)])
        text = _messages_to_text([msg])
        assert text.startswith("[Assistant thinking]: ")
        assert "... [truncated]" in text
        assert len(text) < 1_000

    def test_long_text_clipped(self, user_message):
        """Verify long blocks are clipped to the per-message cap."""
        text = _messages_to_text([user_message("x" * 5_000)], max_chars_per_message=100)
        assert text == "[User]: " + "x" * 100 + "... [truncated]"

    def test_sections_separated(self, user_message):
        """Verify entries are separated by blank lines."""
        assert _messages_to_text([user_message("a"), user_message("b")]) == "[User]: a\n\n[User]: b"


# ---------------------------------------------------------------------------
# find_summary_cutoff
# ---------------------------------------------------------------------------


class TestFindSummaryCutoff:
    """Tests for find_summary_cutoff."""

    def test_protected_boundary(self, span_log):
        """Verify the span ends at the protected window."""
        assert find_summary_cutoff(span_log, 4) == 9

    def test_never_splits_call_and_result(self, span_log):
        """Verify a tool result at the boundary moves the cutoff earlier."""
        # Boundary lands on the tool result of the last triple.
        cutoff = find_summary_cutoff(span_log, 5)
        assert cutoff == 7
        assert span_log[cutoff].role == MessageRole.ASSISTANT

    def test_everything_protected(self, span_log):
        """Verify nothing is eligible when the window covers the log."""
        assert find_summary_cutoff(span_log, 100) == 0


# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------


class TestChunkMessagesByMaxTokens:
    """Tests for _chunk_messages_by_max_tokens."""

    def test_empty(self, accountant):
        """Verify empty input yields no chunks."""
        assert _chunk_messages_by_max_tokens([], 100, accountant) == []

    def test_splits_by_budget(self, accountant, user_message):
        """Verify messages are grouped within the token budget."""
        # Each message: 25 + 4 = 29 tokens.
        msgs = [user_message("x" * 100) for _ in range(5)]
        chunks = _chunk_messages_by_max_tokens(msgs, 60, accountant)
        assert [len(c) for c in chunks] == [2, 2, 1]

    def test_oversized_message_own_chunk(self, accountant, user_message):
        """Verify a message above the budget forms its own chunk."""
        msgs = [user_message("a"), user_message("x" * 1_000), user_message("b")]
        chunks = _chunk_messages_by_max_tokens(msgs, 50, accountant)
        assert [len(c) for c in chunks] == [1, 1, 1]


class TestComputeAdaptiveChunkRatio:
    """Tests for _compute_adaptive_chunk_ratio."""

    def test_empty(self, accountant, small_settings):
        """Verify empty input returns the base chunk ratio."""
        s = small_settings()
        assert _compute_adaptive_chunk_ratio([], s, accountant) == s.base_chunk_ratio

    def test_small_messages(self, accountant, small_settings, user_message):
        """Verify small messages keep the base ratio."""
        s = small_settings()
        assert _compute_adaptive_chunk_ratio([user_message()], s, accountant) == s.base_chunk_ratio

    def test_large_messages_reduce_ratio(self, accountant, small_settings, user_message):
        """Verify large average messages reduce the ratio but not below the minimum."""
        s = small_settings()
        msgs = [user_message("x" * 10_000) for _ in range(5)]
        ratio = _compute_adaptive_chunk_ratio(msgs, s, accountant)
        assert s.min_chunk_ratio <= ratio < s.base_chunk_ratio


# ---------------------------------------------------------------------------
# Summary message format
# ---------------------------------------------------------------------------


class TestSummaryMessage:
    """Tests for build_summary_message and extract_summary."""

    def test_build(self):
        """Verify the summary message is a synthetic user message in tags."""
        msg = build_summary_message("did things", turn=7)
        assert msg.synthetic is True
        assert msg.role == MessageRole.USER
        assert msg.turn == 7
        assert f"{SUMMARY_OPEN_TAG}\ndid things\n{SUMMARY_CLOSE_TAG}" in msg.plain_text

    def test_extract_round_trip(self):
        """Verify the summary text can be read back."""
        assert extract_summary(build_summary_message("did things", turn=1)) == "did things"

    def test_extract_ignores_ordinary_messages(self, user_message):
        """Verify ordinary messages carry no summary, even with the tags."""
        msg = user_message(f"{SUMMARY_OPEN_TAG}fake{SUMMARY_CLOSE_TAG}")
        assert extract_summary(msg) is None


# ---------------------------------------------------------------------------
# summarize_chunks
# ---------------------------------------------------------------------------


class TestSummarizeChunks:
    """Tests for summarize_chunks iterative chunk summarization."""

    @pytest.mark.asyncio
    async def test_basic(self, accountant, small_settings, mock_provider, user_message):
        """Verify basic chunk summarization returns the provider response."""
        provider = mock_provider("chunk summary")
        result = await summarize_chunks(
            [user_message("hello")], provider, "m", small_settings(), accountant, 10_000
        )
        assert result == "chunk summary"

    @pytest.mark.asyncio
    async def test_multiple_chunks_update_running_summary(
        self, accountant, small_settings, mock_provider, user_message
    ):
        """Verify each chunk after the first updates the previous result."""
        provider = mock_provider(side_effect=["first", "second", "third"])
        msgs = [user_message("x" * 1_000) for _ in range(3)]

        result = await summarize_chunks(msgs, provider, "m", small_settings(), accountant, 300)

        assert result == "third"
        assert provider.complete.call_count == 3
        second_prompt = provider.complete.call_args_list[1][0][0]
        assert "<previous-summary>\nfirst\n</previous-summary>" in second_prompt

    @pytest.mark.asyncio
    async def test_previous_summary_in_prompt(
        self, accountant, small_settings, mock_provider, user_message
    ):
        """Verify a previous summary is included in the prompt."""
        provider = mock_provider("updated")
        await summarize_chunks(
            [user_message()],
            provider,
            "m",
            small_settings(),
            accountant,
            10_000,
            previous_summary="old summary",
        )
        assert "old summary" in provider.complete.call_args[0][0]


# ---------------------------------------------------------------------------
# summarize_oldest_span
# ---------------------------------------------------------------------------


class TestSummarizeOldestSpan:
    """Tests for summarize_oldest_span."""

    @pytest.mark.asyncio
    async def test_success(self, accountant, small_settings, mock_provider, span_log):
        """Verify the span before the protected window is summarized."""
        provider = mock_provider("## Task State\nworking")

        result = await summarize_oldest_span(
            span_log, small_settings(), accountant, provider, "cheap-model"
        )

        assert result is not None
        assert result.messages_summarized == 9
        assert result.model_id == "cheap-model"
        assert result.summary_message.synthetic is True
        assert result.summary_message.turn == 2
        assert extract_summary(result.summary_message) == "## Task State\nworking"
        assert result.summary_tokens == accountant.estimate(result.summary_message)

        args, kwargs = provider.complete.call_args
        assert args[1] == "cheap-model"
        assert kwargs["system"] == SUMMARIZATION_SYSTEM_PROMPT
        assert "[User]: please run step 0" in args[0]
        assert "recent" not in args[0]

    @pytest.mark.asyncio
    async def test_does_not_mutate_log(self, accountant, small_settings, mock_provider, span_log):
        """Verify the log is left for the caller to splice."""
        before = list(span_log)
        await summarize_oldest_span(span_log, small_settings(), accountant, mock_provider(), "m")
        assert all(a is b for a, b in zip(span_log, before))
        assert len(span_log) == len(before)

    @pytest.mark.asyncio
    async def test_resummarizes_previous_summary(
        self, accountant, small_settings, mock_provider, user_message
    ):
        """Verify a leading summary seeds an incremental update."""
        provider = mock_provider("merged")
        msgs = [build_summary_message("old summary", turn=1)]
        msgs += [user_message(f"new {i}", turn=2) for i in range(2)]
        msgs += [user_message("recent", turn=3) for _ in range(4)]

        result = await summarize_oldest_span(msgs, small_settings(), accountant, provider, "m")

        assert result.messages_summarized == 3
        prompt = provider.complete.call_args[0][0]
        assert "<previous-summary>\nold summary\n</previous-summary>" in prompt
        assert "[User]: new 0" in prompt
        assert SUMMARY_OPEN_TAG not in prompt

    @pytest.mark.asyncio
    async def test_lone_previous_summary(self, accountant, small_settings, mock_provider, user_message):
        """Verify a span holding only a summary is left alone."""
        provider = mock_provider()
        msgs = [build_summary_message("old", turn=1)]
        msgs += [user_message("recent", turn=3) for _ in range(4)]

        result = await summarize_oldest_span(msgs, small_settings(), accountant, provider, "m")

        assert result is None
        provider.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_span(self, accountant, small_settings, mock_provider, user_message):
        """Verify nothing happens when every message is protected."""
        provider = mock_provider()
        msgs = [user_message() for _ in range(4)]
        assert await summarize_oldest_span(msgs, small_settings(), accountant, provider, "m") is None
        provider.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_provider(self, accountant, small_settings, span_log):
        """Verify a missing provider is a summarization error."""
        with pytest.raises(SummarizationError):
            await summarize_oldest_span(span_log, small_settings(), accountant, None, "m")

    @pytest.mark.asyncio
    async def test_no_model(self, accountant, small_settings, mock_provider, span_log):
        """Verify an empty model id fails before the provider is called."""
        provider = mock_provider()
        with pytest.raises(SummarizationError, match="no summarization model"):
            await summarize_oldest_span(span_log, small_settings(), accountant, provider, "")
        provider.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_provider_failure(self, accountant, small_settings, mock_provider, span_log):
        """Verify provider exceptions surface as SummarizationError."""
        provider = mock_provider(side_effect=ConnectionError("network down"))

        with pytest.raises(SummarizationError) as exc_info:
            await summarize_oldest_span(span_log, small_settings(), accountant, provider, "m")

        assert exc_info.value.model_id == "m"
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", ["", "   \n", None])
    async def test_malformed_response(
        self, accountant, small_settings, mock_provider, span_log, response
    ):
        """Verify empty or non-text responses are rejected."""
        provider = mock_provider(side_effect=[response])
        with pytest.raises(SummarizationError):
            await summarize_oldest_span(span_log, small_settings(), accountant, provider, "m")

    @pytest.mark.asyncio
    async def test_cancellation_propagates(
        self, accountant, small_settings, mock_provider, span_log
    ):
        """Verify cancellation is not converted into a summarization error."""
        provider = mock_provider(side_effect=asyncio.CancelledError())
        with pytest.raises(asyncio.CancelledError):
            await summarize_oldest_span(span_log, small_settings(), accountant, provider, "m")

    @pytest.mark.asyncio
    async def test_empty_text_span(self, accountant, small_settings, mock_provider, user_message):
        """Verify blocks with no renderable text are not sent as an empty prompt."""
        provider = mock_provider()
        msgs = [Message(role=MessageRole.ASSISTANT, content=[TextBlock(text="")])]
        msgs += [user_message("recent") for _ in range(4)]
        with pytest.raises(SummarizationError):
            await summarize_oldest_span(msgs, small_settings(), accountant, provider, "m")
        provider.complete.assert_not_called()
