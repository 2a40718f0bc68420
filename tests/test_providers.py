# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Tests for the LangChain model provider adapter."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from agent_context.services.compaction.errors import ProviderError
from agent_context.services.providers.llm import (
    LangChainModelProvider,
    ModelProvider,
    _response_text,
)
from langchain_core.messages import HumanMessage, SystemMessage


def _mock_llm(response_text="Summary of conversation.") -> AsyncMock:
    """Create a mock async chat model that returns the given content."""
    llm = AsyncMock()
    result = MagicMock()
    result.content = response_text
    llm.ainvoke.return_value = result
    return llm


class TestResponseText:
    """Tests for _response_text content extraction."""

    def test_string(self):
        """Verify plain string content is returned as is."""
        assert _response_text("hello") == "hello"

    def test_parts(self):
        """Verify text parts are joined and other parts skipped."""
        content = [
            {"type": "text", "text": "a"},
            {"type": "image_url", "image_url": "x"},
            "b",
        ]
        assert _response_text(content) == "a\nb"

    def test_other(self):
        """Verify unknown content yields an empty string."""
        assert _response_text(None) == ""


class TestLangChainModelProvider:
    """Tests for LangChainModelProvider."""

    def test_satisfies_protocol(self):
        """Verify the adapter implements the provider contract."""
        assert isinstance(LangChainModelProvider(lambda model_id: _mock_llm()), ModelProvider)

    @pytest.mark.asyncio
    async def test_complete(self):
        """Verify the prompt and system prompt are sent as chat messages."""
        llm = _mock_llm("done")
        provider = LangChainModelProvider(lambda model_id: llm)

        result = await provider.complete("summarize", "m", system="be brief")

        assert result == "done"
        sent = llm.ainvoke.call_args[0][0]
        assert isinstance(sent[0], SystemMessage)
        assert sent[0].content == "be brief"
        assert isinstance(sent[1], HumanMessage)
        assert sent[1].content == "summarize"

    @pytest.mark.asyncio
    async def test_models_cached_per_id(self):
        """Verify the factory is called once per model id."""
        factory = MagicMock(side_effect=lambda model_id: _mock_llm(model_id))
        provider = LangChainModelProvider(factory)

        assert await provider.complete("p", "a") == "a"
        assert await provider.complete("p", "a") == "a"
        assert await provider.complete("p", "b") == "b"
        assert factory.call_count == 2

    @pytest.mark.asyncio
    async def test_failure_wrapped(self):
        """Verify invocation errors are raised as ProviderError."""
        llm = AsyncMock()
        llm.ainvoke.side_effect = RuntimeError("rate limited")
        provider = LangChainModelProvider(lambda model_id: llm)

        with pytest.raises(ProviderError, match="rate limited"):
            await provider.complete("p", "m")
