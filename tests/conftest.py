# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Shared test fixtures for the agent-context test suite."""

from typing import Any, Dict, Optional
from unittest.mock import AsyncMock

import pytest
from agent_context.models import Message
from agent_context.schemas.content import (
    MessageRole,
    TextBlock,
    ToolCallBlock,
    ToolResultBlock,
)
from agent_context.services.compaction.settings import CompactionSettings
from agent_context.services.compaction.tokens import TokenAccountant

# ---------------------------------------------------------------------------
# Token accounting
# ---------------------------------------------------------------------------


@pytest.fixture
def accountant() -> TokenAccountant:
    """Deterministic chars/4 accountant (1 token = 4 characters)."""
    return TokenAccountant.heuristic(4)


@pytest.fixture
def small_settings():
    """Factory fixture for compact settings with a small context window."""

    def _factory(**overrides) -> CompactionSettings:
        values: Dict[str, Any] = dict(
            context_window_tokens=11_000,
            output_reserve_tokens=1_000,
            protected_messages=4,
            max_tool_output_tokens=200,
            truncate_keep_tokens=40,
        )
        values.update(overrides)
        return CompactionSettings(**values)

    return _factory


# ---------------------------------------------------------------------------
# Message factories
# ---------------------------------------------------------------------------


@pytest.fixture
def user_message():
    """Factory fixture for user text messages."""

    def _factory(text: str = "hello", turn: int = 0) -> Message:
        return Message.text(MessageRole.USER, text, turn=turn)

    return _factory


@pytest.fixture
def assistant_call():
    """Factory fixture for assistant messages holding a single tool call."""

    def _factory(
        name: str = "bash",
        arguments: Optional[Dict[str, Any]] = None,
        call_id: str = "call_1",
        text: str = "",
        turn: int = 0,
    ) -> Message:
        blocks = []
        if text:
            blocks.append(TextBlock(text=text))
        blocks.append(ToolCallBlock(id=call_id, name=name, arguments=arguments or {}))
        return Message(role=MessageRole.ASSISTANT, content=blocks, turn=turn)

    return _factory


@pytest.fixture
def tool_message():
    """Factory fixture for tool-role result messages."""

    def _factory(
        content: str = "ok",
        tool_name: str = "bash",
        is_error: bool = False,
        call_id: str = "call_1",
        turn: int = 0,
    ) -> Message:
        return Message(
            role=MessageRole.TOOL,
            content=[
                ToolResultBlock(
                    tool_call_id=call_id,
                    tool_name=tool_name,
                    content=content,
                    is_error=is_error,
                )
            ],
            turn=turn,
        )

    return _factory


# ---------------------------------------------------------------------------
# Model provider mock
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_provider():
    """Factory fixture for a mocked ModelProvider."""

    def _factory(response: str = "Summary of conversation.", side_effect=None) -> AsyncMock:
        provider = AsyncMock()
        if side_effect is not None:
            provider.complete = AsyncMock(side_effect=side_effect)
        else:
            provider.complete = AsyncMock(return_value=response)
        return provider

    return _factory
