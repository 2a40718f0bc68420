# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Tier 2 — Tool output pruning.

Replaces the bodies of old tool results (outside the protected window)
with a short placeholder naming the tool, oldest first, until the target
token count is reached or nothing prunable remains. The surrounding
message structure (role, text and tool-call blocks) is left intact.

Already-pruned blocks are recognised by matching the whole placeholder, so
re-applying the tier is a no-op. Blocks that are not larger than their
placeholder are skipped so pruning can never grow the log.
"""

from __future__ import annotations

import fnmatch
import logging
from typing import List, Optional, Tuple

from agent_context.models import Message
from agent_context.schemas.content import ToolResultBlock
from agent_context.services.compaction.settings import CompactionSettings, ToolPruningConfig
from agent_context.services.compaction.tokens import TokenAccountant
from agent_context.services.compaction.truncation import protected_start
from agent_context.services.prompts.base import PRUNED_PLACEHOLDER, PRUNED_PLACEHOLDER_RE

logger = logging.getLogger(__name__)

_FIRST_LINE_CHARS = 100


def _is_tool_prunable(tool_name: Optional[str], config: ToolPruningConfig) -> bool:
    """Check whether a tool result is eligible for pruning.

    Allow/deny glob pattern lists; ``deny`` takes precedence.

    Args:
        tool_name (Optional[str]): Name of the tool, or ``None`` if unknown.
        config (ToolPruningConfig): Allow/deny pattern configuration.

    Returns:
        bool: ``True`` if the tool result may be pruned.
    """
    if not config.deny and not config.allow:
        return True

    name = (tool_name or "").strip().lower()

    if config.deny:
        for pattern in config.deny:
            if fnmatch.fnmatch(name, pattern.strip().lower()):
                return False

    if config.allow:
        for pattern in config.allow:
            if fnmatch.fnmatch(name, pattern.strip().lower()):
                return True
        return False

    return True


def is_pruned(text: str) -> bool:
    """Whether *text* is exactly a pruning placeholder."""
    return PRUNED_PLACEHOLDER_RE.fullmatch(text) is not None


def pruned_placeholder(block: ToolResultBlock) -> str:
    """Placeholder text that replaces a pruned tool result.

    Args:
        block (ToolResultBlock): The tool result being pruned.

    Returns:
        str: Placeholder naming the tool, the line count and the first
            line of the original output.
    """
    lines = block.content.splitlines()
    first_line = next((line.strip() for line in lines if line.strip()), "")
    return PRUNED_PLACEHOLDER.format(
        tool_name=block.tool_name,
        line_count=len(lines),
        first_line=first_line[:_FIRST_LINE_CHARS],
    )


def prune_old_tool_results(
    messages: List[Message],
    settings: CompactionSettings,
    accountant: TokenAccountant,
    target_tokens: Optional[int] = None,
) -> Tuple[List[Message], int]:
    """Prune old tool results oldest-first.

    Args:
        messages (List[Message]): Conversation message list to prune.
        settings (CompactionSettings): Provides the protected window and
            tool allow/deny patterns.
        accountant (TokenAccountant): Token accountant.
        target_tokens (Optional[int]): Stop once the total estimate is at
            or below this value. ``None`` prunes every candidate.

    Returns:
        Tuple[List[Message], int]: A tuple of the new message list (same
            length, untouched messages are the original objects) and the
            number of messages that were rewritten.
    """
    cutoff = protected_start(messages, settings.protected_messages)
    result: List[Message] = list(messages)
    total = accountant.estimate_total(messages)
    pruned_count = 0

    for i in range(cutoff):
        if target_tokens is not None and total <= target_tokens:
            break

        msg = messages[i]
        if not msg.tool_results():
            continue

        new_blocks = []
        saved = 0
        for block in msg.content:
            if (
                not isinstance(block, ToolResultBlock)
                or is_pruned(block.content)
                or not _is_tool_prunable(block.tool_name, settings.tool_pruning)
            ):
                new_blocks.append(block)
                continue

            replacement = block.with_content(pruned_placeholder(block))
            before = accountant.estimate_block(block)
            after = accountant.estimate_block(replacement)
            if after >= before:
                new_blocks.append(block)
                continue

            new_blocks.append(replacement)
            saved += before - after

        if saved:
            result[i] = msg.with_content(new_blocks)
            total -= saved
            pruned_count += 1
            logger.debug("Pruned tool output at message %d (-%d tokens)", i, saved)

    if pruned_count:
        logger.info("Pruned %d old tool output message(s), now ~%d tokens", pruned_count, total)
    return result, pruned_count
