# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Model provider client used by LLM summarization.

The compaction core only needs ``complete(prompt, model_id) -> text``.
:class:`LangChainModelProvider` adapts any LangChain chat model to that
contract; the chat model for a given id comes from a caller-supplied
factory so transport and credentials stay outside the core.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional, Protocol, runtime_checkable

from agent_context.services.compaction.errors import ProviderError
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

logger = logging.getLogger(__name__)


@runtime_checkable
class ModelProvider(Protocol):
    """Completion contract required by the summarizer."""

    async def complete(
        self,
        prompt: str,
        model_id: str,
        *,
        system: Optional[str] = None,
    ) -> str:
        """Return the model's text completion for *prompt*.

        Raises:
            ProviderError: If the provider call fails.
        """
        ...


def _response_text(content) -> str:
    """Extract text from a chat model response ``content``.

    Handles both plain strings and lists of content parts
    (``{"type": "text", "text": ...}``).
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "\n".join(parts)
    return ""


class LangChainModelProvider:
    """:class:`ModelProvider` backed by LangChain chat models.

    Args:
        factory (Callable[[str], BaseChatModel]): Builds the chat model for
            a model id. Instances are cached per id.
    """

    def __init__(self, factory: Callable[[str], BaseChatModel]) -> None:
        self._factory = factory
        self._models: Dict[str, BaseChatModel] = {}

    def _model(self, model_id: str) -> BaseChatModel:
        if model_id not in self._models:
            self._models[model_id] = self._factory(model_id)
        return self._models[model_id]

    async def complete(
        self,
        prompt: str,
        model_id: str,
        *,
        system: Optional[str] = None,
    ) -> str:
        """Run a single completion.

        Args:
            prompt (str): User prompt.
            model_id (str): Model to run.
            system (Optional[str]): Optional system prompt.

        Returns:
            str: Response text (may be empty).

        Raises:
            ProviderError: If building the model or invoking it fails.
        """
        messages = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(HumanMessage(content=prompt))
        try:
            response = await self._model(model_id).ainvoke(messages)
        except Exception as e:
            raise ProviderError(f"{model_id}: {e}") from e
        return _response_text(getattr(response, "content", None))
