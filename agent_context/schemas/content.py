# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Conversation content schemas.

A message carries an ordered list of typed content blocks. Blocks are
immutable; compaction tiers replace a block by building a new one.
"""

import json
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


class MessageRole(str, Enum):
    """Message role enumeration.

    Attributes:
        USER (str): User role.
        ASSISTANT (str): Assistant role.
        TOOL (str): Tool result role.
    """

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class BlockType(str, Enum):
    """Content block discriminator values."""

    TEXT = "text"
    THINKING = "thinking"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"


class _ContentBlockBase(BaseModel):
    """Shared behaviour for content blocks.

    Token estimates are cached on the instance, keyed by the name of the
    accountant that produced them.
    """

    model_config = ConfigDict(frozen=True)

    _token_cache: Dict[str, int] = PrivateAttr(default_factory=dict)

    def accounting_text(self) -> str:
        """Text that the token accountant measures for this block."""
        raise NotImplementedError

    def cached_tokens(self, key: str) -> Optional[int]:
        return self._token_cache.get(key)

    def cache_tokens(self, key: str, tokens: int) -> None:
        self._token_cache[key] = tokens


class TextBlock(_ContentBlockBase):
    """Plain text content.

    Attributes:
        type (Literal["text"]): Block discriminator.
        text (str): The text value.
    """

    type: Literal["text"] = "text"
    text: str

    def accounting_text(self) -> str:
        return self.text


class ThinkingBlock(_ContentBlockBase):
    """Model reasoning content.

    Attributes:
        type (Literal["thinking"]): Block discriminator.
        thinking (str): The reasoning text.
    """

    type: Literal["thinking"] = "thinking"
    thinking: str

    def accounting_text(self) -> str:
        return self.thinking


class ToolCallBlock(_ContentBlockBase):
    """A tool invocation emitted by the assistant.

    Attributes:
        type (Literal["tool_call"]): Block discriminator.
        id (str): Identifier correlating the call with its result.
        name (str): Name of the tool.
        arguments (Dict[str, Any]): Parsed call arguments.
    """

    type: Literal["tool_call"] = "tool_call"
    id: str = ""
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)

    def arguments_json(self) -> str:
        try:
            return json.dumps(self.arguments, ensure_ascii=False, sort_keys=True)
        except (TypeError, ValueError):
            return str(self.arguments)

    def accounting_text(self) -> str:
        return f"{self.name} {self.arguments_json()}"


class ToolResultBlock(_ContentBlockBase):
    """Output of a tool execution.

    ``is_error`` is set by the tool execution layer and is the only signal
    the failure tracker trusts.

    Attributes:
        type (Literal["tool_result"]): Block discriminator.
        tool_call_id (Optional[str]): Identifier of the originating call.
        tool_name (str): Name of the tool that produced the result.
        content (str): Result body.
        is_error (bool): Whether the tool layer flagged the result as an error.
    """

    type: Literal["tool_result"] = "tool_result"
    tool_call_id: Optional[str] = None
    tool_name: str
    content: str
    is_error: bool = False

    def accounting_text(self) -> str:
        return self.content

    def with_content(self, content: str) -> "ToolResultBlock":
        """Copy of this block carrying a different body."""
        return ToolResultBlock(
            tool_call_id=self.tool_call_id,
            tool_name=self.tool_name,
            content=content,
            is_error=self.is_error,
        )


ContentBlock = Annotated[
    Union[TextBlock, ThinkingBlock, ToolCallBlock, ToolResultBlock],
    Field(discriminator="type"),
]
