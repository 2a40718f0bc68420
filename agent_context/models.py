# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Shared models for the compaction core."""

from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence

from agent_context.schemas.content import (
    ContentBlock,
    MessageRole,
    TextBlock,
    ToolCallBlock,
    ToolResultBlock,
)
from pydantic import BaseModel, ConfigDict, Field


class Message(BaseModel):
    """Message model.

    Messages are immutable once appended to a conversation. Compaction
    replaces a message with a rewritten copy at the same position.

    Attributes:
        role (MessageRole): The role of the message sender.
        content (List[ContentBlock]): Ordered content blocks.
        turn (int): Monotonic turn index the message belongs to.
        synthetic (bool): ``True`` for the summary message inserted by
            LLM summarization.
    """

    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: List[ContentBlock] = Field(default_factory=list)
    turn: int = 0
    synthetic: bool = False

    @classmethod
    def text(cls, role: MessageRole, text: str, turn: int = 0) -> "Message":
        """Build a message holding a single text block."""
        return cls(role=role, content=[TextBlock(text=text)], turn=turn)

    @classmethod
    def tool_result(
        cls,
        tool_name: str,
        content: str,
        *,
        is_error: bool = False,
        tool_call_id: Optional[str] = None,
        turn: int = 0,
    ) -> "Message":
        """Build a tool-role message holding a single result block."""
        block = ToolResultBlock(
            tool_call_id=tool_call_id,
            tool_name=tool_name,
            content=content,
            is_error=is_error,
        )
        return cls(role=MessageRole.TOOL, content=[block], turn=turn)

    @property
    def plain_text(self) -> str:
        """Concatenated text of all text blocks."""
        return "\n".join(b.text for b in self.content if isinstance(b, TextBlock))

    def tool_calls(self) -> List[ToolCallBlock]:
        return [b for b in self.content if isinstance(b, ToolCallBlock)]

    def tool_results(self) -> List[ToolResultBlock]:
        return [b for b in self.content if isinstance(b, ToolResultBlock)]

    def with_content(self, content: List[ContentBlock]) -> "Message":
        """Copy of this message with its blocks replaced."""
        return Message(role=self.role, content=content, turn=self.turn, synthetic=self.synthetic)


class Conversation:
    """Append-only, ordered message log owned by a session.

    Compaction may only rewrite a message in place or replace a
    contiguous prefix with a single message. Messages are never reordered.
    """

    def __init__(self, messages: Optional[Sequence[Message]] = None) -> None:
        self._messages: List[Message] = []
        for msg in messages or []:
            self.append(msg)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    @property
    def messages(self) -> List[Message]:
        """Snapshot of the current log."""
        return list(self._messages)

    @property
    def last_turn(self) -> int:
        return self._messages[-1].turn if self._messages else 0

    def append(self, message: Message) -> None:
        """Append a message.

        Args:
            message (Message): Message to append.

        Raises:
            ValueError: If the message's turn index is lower than the last
                message's turn index.
        """
        if self._messages and message.turn < self._messages[-1].turn:
            raise ValueError(
                f"turn index {message.turn} precedes last turn {self._messages[-1].turn}"
            )
        self._messages.append(message)

    def replace_message(self, index: int, message: Message) -> None:
        """Rewrite the message at *index* in place."""
        current = self._messages[index]
        if message.role != current.role or message.turn != current.turn:
            raise ValueError("in-place rewrite must keep role and turn")
        self._messages[index] = message

    def replace_prefix(self, count: int, message: Message) -> None:
        """Replace the first *count* messages with a single message."""
        if count <= 0 or count > len(self._messages):
            raise ValueError(f"invalid prefix length {count} for {len(self._messages)} messages")
        self._messages[:count] = [message]

    def commit_rewrites(self, rewritten: Sequence[Message]) -> int:
        """Commit the output of an in-place tier.

        Only positions whose message object changed are written.

        Args:
            rewritten (Sequence[Message]): Same-length message list produced
                by a tier from :attr:`messages`.

        Returns:
            int: Number of positions rewritten.
        """
        if len(rewritten) != len(self._messages):
            raise ValueError("in-place tiers must preserve the message count")
        changed = 0
        for i, msg in enumerate(rewritten):
            if msg is not self._messages[i]:
                self.replace_message(i, msg)
                changed += 1
        return changed


@dataclass
class CompactionState:
    """Per-session compaction counters.

    Attributes:
        has_compacted_at_least_once (bool): Set the first time any tier
            mutates the log. Gates the recent-failures prompt section.
        turn_counter (int): Monotonic turn counter that survives
            compaction. Used instead of wall-clock time for ordering.
        compaction_count (int): Number of cycles that mutated the log.
        consecutive_summarization_failures (int): Summarization failures
            since the last successful summarization.
    """

    has_compacted_at_least_once: bool = False
    turn_counter: int = 0
    compaction_count: int = 0
    consecutive_summarization_failures: int = 0

    def advance_turn(self) -> int:
        """Increment and return the turn counter."""
        self.turn_counter += 1
        return self.turn_counter


class ModelInfo(BaseModel):
    """Capability metadata for a model registered with a provider.

    Attributes:
        id (str): Model identifier passed to the provider.
        provider (str): Provider the model belongs to.
        input_price (Optional[float]): Price per million input tokens.
            ``None`` when pricing is unknown.
        context_window (int): Context window in tokens, 0 if unknown.
        released (Optional[str]): ISO release date, used to prefer newer
            models among equally priced ones.
    """

    id: str
    provider: str
    input_price: Optional[float] = None
    context_window: int = 0
    released: Optional[str] = None
