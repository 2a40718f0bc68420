# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Token accounting.

Counts tokens with tiktoken (``cl100k_base`` by default) and falls back to a
chars-per-token heuristic when the encoding cannot be loaded. Every
estimate rounds up: over-counting only makes compaction more aggressive,
while under-counting can push a request past the provider's hard limit.

Per-message cost = sum of block costs + a fixed structural overhead.
Block costs are cached on the block instance, so the repeated
measurements made by each tier are cheap.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import tiktoken

from agent_context.models import Message
from agent_context.schemas.content import MessageRole
from agent_context.services.compaction.errors import TokenEstimationError

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "cl100k_base"
CHARS_PER_TOKEN_FALLBACK = 4
MESSAGE_OVERHEAD_TOKENS = 4


@dataclass
class TokenCount:
    """Aggregated token count across messages.

    Attributes:
        total (int): Total tokens including per-message overhead.
        by_role (Dict[MessageRole, int]): Totals per message role.
        tool_output_tokens (int): Tokens held in tool result bodies.
        message_count (int): Number of messages counted.
    """

    total: int = 0
    by_role: Dict[MessageRole, int] = field(default_factory=dict)
    tool_output_tokens: int = 0
    message_count: int = 0


class TokenAccountant:
    """Estimates token cost of messages and texts.

    Args:
        encoding_name (Optional[str]): tiktoken encoding to use. ``None``
            selects the heuristic estimator directly.
        chars_per_token (int): Characters per token for the heuristic.
    """

    def __init__(
        self,
        encoding_name: Optional[str] = DEFAULT_ENCODING,
        chars_per_token: int = CHARS_PER_TOKEN_FALLBACK,
    ) -> None:
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        self.chars_per_token = chars_per_token
        self._encoding = None
        if encoding_name:
            try:
                self._encoding = tiktoken.get_encoding(encoding_name)
            except Exception as e:
                logger.warning(
                    "tiktoken encoding %s unavailable (%s), using chars/%d heuristic",
                    encoding_name,
                    e,
                    chars_per_token,
                )
        self.name = encoding_name if self._encoding is not None else f"chars/{chars_per_token}"

    @classmethod
    def heuristic(cls, chars_per_token: int = CHARS_PER_TOKEN_FALLBACK) -> "TokenAccountant":
        """Accountant that never loads a tokenizer."""
        return cls(encoding_name=None, chars_per_token=chars_per_token)

    @property
    def uses_tokenizer(self) -> bool:
        return self._encoding is not None

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    def _encode(self, text: str) -> List[int]:
        try:
            return self._encoding.encode(text, disallowed_special=())
        except Exception as e:
            raise TokenEstimationError(str(e)) from e

    def count_text(self, text: str) -> int:
        """Estimate the token count of *text*, rounding up.

        Args:
            text (str): Text to measure.

        Returns:
            int: Estimated token count. When the tokenizer fails the UTF-8
                byte length is returned as the worst case.
        """
        if not text:
            return 0
        if self._encoding is None:
            return math.ceil(len(text) / self.chars_per_token)
        try:
            return len(self._encode(text))
        except TokenEstimationError as e:
            logger.warning("Token estimation failed, assuming worst case: %s", e)
            return len(text.encode("utf-8"))

    def head(self, text: str, tokens: int) -> str:
        """First *tokens* tokens of *text*."""
        if tokens <= 0:
            return ""
        if self._encoding is None:
            return text[: tokens * self.chars_per_token]
        try:
            ids = self._encode(text)
        except TokenEstimationError:
            return text[:tokens]
        return self._encoding.decode(ids[:tokens])

    def tail(self, text: str, tokens: int) -> str:
        """Last *tokens* tokens of *text*."""
        if tokens <= 0:
            return ""
        if self._encoding is None:
            return text[-tokens * self.chars_per_token :]
        try:
            ids = self._encode(text)
        except TokenEstimationError:
            return text[-tokens:]
        return self._encoding.decode(ids[-tokens:])

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def estimate_block(self, block) -> int:
        """Token cost of a single content block (cached)."""
        cached = block.cached_tokens(self.name)
        if cached is not None:
            return cached
        tokens = self.count_text(block.accounting_text())
        block.cache_tokens(self.name, tokens)
        return tokens

    def estimate(self, message: Message) -> int:
        """Estimate the token cost of a single message.

        Args:
            message (Message): Message to measure.

        Returns:
            int: Sum of block costs plus the structural overhead.
        """
        return sum(self.estimate_block(b) for b in message.content) + MESSAGE_OVERHEAD_TOKENS

    def estimate_total(self, messages: Iterable[Message]) -> int:
        """Estimate the total token cost of a message log."""
        return sum(self.estimate(m) for m in messages)

    def count_messages(self, messages: Iterable[Message]) -> TokenCount:
        """Token totals broken down by role.

        Args:
            messages (Iterable[Message]): Messages to measure.

        Returns:
            TokenCount: Aggregated counts.
        """
        count = TokenCount()
        for msg in messages:
            tokens = self.estimate(msg)
            count.total += tokens
            count.message_count += 1
            count.by_role[msg.role] = count.by_role.get(msg.role, 0) + tokens
            for block in msg.tool_results():
                count.tool_output_tokens += self.estimate_block(block)
        return count
