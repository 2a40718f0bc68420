# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Tests for the message log and session state models."""

import pytest
from agent_context.models import CompactionState, Conversation, Message
from agent_context.schemas.content import MessageRole, TextBlock, ToolResultBlock
from pydantic import ValidationError


class TestMessage:
    """Tests for Message helpers."""

    def test_text(self):
        """Verify the text constructor builds a single text block."""
        msg = Message.text(MessageRole.USER, "hi", turn=3)
        assert msg.plain_text == "hi"
        assert msg.turn == 3
        assert not msg.synthetic

    def test_tool_result(self):
        """Verify the tool result constructor."""
        msg = Message.tool_result("bash", "boom", is_error=True, tool_call_id="c1")
        assert msg.role == MessageRole.TOOL
        block = msg.tool_results()[0]
        assert block.tool_name == "bash"
        assert block.is_error
        assert block.tool_call_id == "c1"

    def test_frozen(self):
        """Verify messages cannot be modified."""
        msg = Message.text(MessageRole.USER, "hi")
        with pytest.raises(ValidationError):
            msg.turn = 5

    def test_with_content(self):
        """Verify with_content keeps everything but the blocks."""
        msg = Message(role=MessageRole.ASSISTANT, content=[TextBlock(text="a")], turn=2, synthetic=True)
        copy = msg.with_content([TextBlock(text="b")])
        assert copy.plain_text == "b"
        assert copy.role == MessageRole.ASSISTANT
        assert copy.turn == 2
        assert copy.synthetic
        assert msg.plain_text == "a"

    def test_helpers_filter_blocks(self, assistant_call):
        """Verify tool_calls and tool_results pick their block types."""
        msg = assistant_call("read", {"path": "a.py"}, text="reading")
        assert [c.name for c in msg.tool_calls()] == ["read"]
        assert msg.tool_results() == []
        assert msg.plain_text == "reading"


class TestConversation:
    """Tests for Conversation mutation rules."""

    def test_append_and_iterate(self, user_message):
        """Verify appended messages keep their order."""
        conversation = Conversation([user_message("a", turn=1)])
        conversation.append(user_message("b", turn=1))
        assert [m.plain_text for m in conversation] == ["a", "b"]
        assert conversation.last_turn == 1

    def test_append_rejects_older_turn(self, user_message):
        """Verify turn indices never go backwards."""
        conversation = Conversation([user_message("a", turn=5)])
        with pytest.raises(ValueError):
            conversation.append(user_message("b", turn=4))

    def test_messages_is_snapshot(self, user_message):
        """Verify mutating the snapshot leaves the log untouched."""
        conversation = Conversation([user_message("a")])
        snapshot = conversation.messages
        snapshot.clear()
        assert len(conversation) == 1

    def test_empty_last_turn(self):
        """Verify an empty log reports turn zero."""
        assert Conversation().last_turn == 0

    def test_replace_message(self, tool_message):
        """Verify an in-place rewrite keeping role and turn."""
        conversation = Conversation([tool_message("long output", turn=2)])
        rewritten = conversation[0].with_content(
            [ToolResultBlock(tool_name="bash", content="short")]
        )
        conversation.replace_message(0, rewritten)
        assert conversation[0] is rewritten

    def test_replace_message_rejects_role_change(self, user_message, tool_message):
        """Verify a rewrite may not change the role."""
        conversation = Conversation([tool_message("x")])
        with pytest.raises(ValueError):
            conversation.replace_message(0, user_message("x"))

    def test_replace_message_rejects_turn_change(self, user_message):
        """Verify a rewrite may not change the turn."""
        conversation = Conversation([user_message("x", turn=1)])
        with pytest.raises(ValueError):
            conversation.replace_message(0, user_message("x", turn=2))

    def test_replace_prefix(self, user_message):
        """Verify a prefix collapses into one message."""
        conversation = Conversation([user_message(str(i)) for i in range(5)])
        summary = user_message("summary")
        conversation.replace_prefix(3, summary)
        assert [m.plain_text for m in conversation] == ["summary", "3", "4"]

    @pytest.mark.parametrize("count", [0, -1, 4])
    def test_replace_prefix_bounds(self, user_message, count):
        """Verify invalid prefix lengths are rejected."""
        conversation = Conversation([user_message(str(i)) for i in range(3)])
        with pytest.raises(ValueError):
            conversation.replace_prefix(count, user_message("s"))

    def test_commit_rewrites_counts_changes(self, user_message):
        """Verify only changed positions are written."""
        conversation = Conversation([user_message("a"), user_message("b")])
        rewritten = conversation.messages
        rewritten[1] = rewritten[1].with_content([TextBlock(text="B")])

        assert conversation.commit_rewrites(rewritten) == 1
        assert conversation[1] is rewritten[1]
        assert conversation.commit_rewrites(conversation.messages) == 0

    def test_commit_rewrites_length_mismatch(self, user_message):
        """Verify in-place tiers may not change the message count."""
        conversation = Conversation([user_message("a"), user_message("b")])
        with pytest.raises(ValueError):
            conversation.commit_rewrites(conversation.messages[:1])


class TestCompactionState:
    """Tests for CompactionState."""

    def test_defaults(self):
        """Verify a fresh state has compacted nothing."""
        state = CompactionState()
        assert not state.has_compacted_at_least_once
        assert state.compaction_count == 0
        assert state.consecutive_summarization_failures == 0

    def test_advance_turn(self):
        """Verify the turn counter is monotonic."""
        state = CompactionState()
        assert state.advance_turn() == 1
        assert state.advance_turn() == 2
        assert state.turn_counter == 2
