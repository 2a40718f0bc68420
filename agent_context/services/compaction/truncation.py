# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Tier 1 — Tool output truncation.

Shortens every tool result above ``max_tool_output_tokens`` to a head and
a tail joined by a ``...[truncated M tokens]...`` marker. Lossy but cheap
and deterministic. Re-applying it is a no-op: a truncated block is already
under the limit, and a text carrying the marker that fits in head + tail +
marker is returned as is. The protected window is never touched.
"""

from __future__ import annotations

import logging
from typing import List, Tuple

from agent_context.models import Message
from agent_context.schemas.content import ToolResultBlock
from agent_context.services.compaction.settings import CompactionSettings
from agent_context.services.compaction.tokens import TokenAccountant
from agent_context.services.prompts.base import TRUNCATION_MARKER, TRUNCATION_MARKER_RE

logger = logging.getLogger(__name__)


def protected_start(messages: List[Message], protected_messages: int) -> int:
    """Index of the first message inside the protected window.

    Args:
        messages (List[Message]): Conversation message list.
        protected_messages (int): Size of the protected window.

    Returns:
        int: Messages at or after this index must not be modified.
    """
    return max(0, len(messages) - protected_messages)


def is_truncated(text: str) -> bool:
    """Whether *text* already carries a truncation marker."""
    return TRUNCATION_MARKER_RE.search(text) is not None


def _marker_allowance(accountant: TokenAccountant) -> int:
    # Upper bound on the marker line, whatever number it carries
    return accountant.count_text(f"\n{TRUNCATION_MARKER.format(tokens=10**12)}\n") + 2


def _snap_head(head: str) -> str:
    # Prefer breaking at a newline within the last 20 % of the kept region
    last_newline = head.rfind("\n")
    if last_newline > len(head) * 0.8:
        return head[:last_newline]
    return head


def _snap_tail(tail: str) -> str:
    first_newline = tail.find("\n")
    if 0 <= first_newline < len(tail) * 0.2:
        return tail[first_newline + 1 :]
    return tail


def truncate_tool_result_text(
    text: str,
    keep_tokens: int,
    accountant: TokenAccountant,
) -> str:
    """Keep the head and tail of *text* around a truncation marker.

    Args:
        text (str): Tool output to shorten.
        keep_tokens (int): Tokens to keep at each end.
        accountant (TokenAccountant): Accountant used to measure and slice.

    Returns:
        str: The original text if it already fits in head + tail or is            already truncated, otherwise ``head + marker + tail``.
    """
    total = accountant.count_text(text)
    if total <= keep_tokens * 2:
        return text
    if is_truncated(text) and total <= keep_tokens * 2 + _marker_allowance(accountant):
        return text

    head = _snap_head(accountant.head(text, keep_tokens))
    tail = _snap_tail(accountant.tail(text, keep_tokens))
    dropped = max(0, total - accountant.count_text(head) - accountant.count_text(tail))
    marker = TRUNCATION_MARKER.format(tokens=dropped)
    return f"{head}\n{marker}\n{tail}"


def truncate_oversized_tool_results(
    messages: List[Message],
    settings: CompactionSettings,
    accountant: TokenAccountant,
) -> Tuple[List[Message], int]:
    """Truncate oversized tool results (does not mutate originals).

    Args:
        messages (List[Message]): Conversation message list to process.
        settings (CompactionSettings): Provides the size threshold, the
            keep size and the protected window.
        accountant (TokenAccountant): Token accountant.

    Returns:
        Tuple[List[Message], int]: A tuple of the new message list (same
            length, untouched messages are the original objects) and the
            number of messages that were truncated.
    """
    limit = settings.max_tool_output_tokens
    keep = settings.truncation_keep_tokens
    cutoff = protected_start(messages, settings.protected_messages)
    truncated_count = 0
    result: List[Message] = list(messages)

    for i in range(cutoff):
        msg = messages[i]
        if not msg.tool_results():
            continue

        new_blocks = []
        changed = False
        for block in msg.content:
            if not isinstance(block, ToolResultBlock):
                new_blocks.append(block)
                continue
            before = accountant.estimate_block(block)
            if before <= limit:
                new_blocks.append(block)
                continue

            replacement = block.with_content(
                truncate_tool_result_text(block.content, keep, accountant)
            )
            after = accountant.estimate_block(replacement)
            if after >= before:
                new_blocks.append(block)
                continue

            logger.info(
                "Truncated %s output at message %d: %d -> %d tokens",
                block.tool_name,
                i,
                before,
                after,
            )
            new_blocks.append(replacement)
            changed = True

        if changed:
            result[i] = msg.with_content(new_blocks)
            truncated_count += 1

    return result, truncated_count


def has_oversized_tool_results(
    messages: List[Message],
    settings: CompactionSettings,
    accountant: TokenAccountant,
) -> bool:
    """Check whether any unprotected tool result exceeds the size limit.

    Args:
        messages (List[Message]): Conversation message list to check.
        settings (CompactionSettings): Provides the limit and protected window.
        accountant (TokenAccountant): Token accountant.

    Returns:
        bool: ``True`` if Tier 1 would truncate at least one block.
    """
    cutoff = protected_start(messages, settings.protected_messages)
    return any(
        accountant.estimate_block(block) > settings.max_tool_output_tokens
        for msg in messages[:cutoff]
        for block in msg.tool_results()
    )
