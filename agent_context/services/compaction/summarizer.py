# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Tier 3 — LLM summarization.

Replaces the oldest span of messages (everything before the protected
window) with one synthetic summary message. The span is sent to a model
with a fixed structured prompt; spans larger than the chunk budget are
summarized chunk by chunk, each chunk updating the running summary.

A previous summary at the head of the span is fed back as the starting
point of an incremental update, so summaries can themselves be
summarized again.

This is the only tier that performs I/O. It never mutates the log: the
caller splices the returned summary in a single step after the provider
call has completed. A failed or cancelled call therefore leaves the log
exactly as it was.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from agent_context.models import Message
from agent_context.schemas.content import (
    MessageRole,
    TextBlock,
    ThinkingBlock,
    ToolCallBlock,
    ToolResultBlock,
)
from agent_context.services.compaction.errors import SummarizationError
from agent_context.services.compaction.settings import CompactionSettings
from agent_context.services.compaction.tokens import TokenAccountant
from agent_context.services.compaction.truncation import protected_start
from agent_context.services.prompts.base import (
    SUMMARIZATION_PROMPT,
    SUMMARIZATION_SYSTEM_PROMPT,
    SUMMARIZATION_UPDATE_PROMPT,
    SUMMARY_CLOSE_TAG,
    SUMMARY_MESSAGE_TEMPLATE,
    SUMMARY_OPEN_TAG,
)
from agent_context.services.providers.llm import ModelProvider

logger = logging.getLogger(__name__)

_THINKING_CHARS = 500
_TOOL_ARGS_CHARS = 200

_ROLE_LABELS = {
    MessageRole.USER: "User",
    MessageRole.ASSISTANT: "Assistant",
    MessageRole.TOOL: "Tool",
}


@dataclass
class SummarizationResult:
    """Outcome of a successful summarization.

    Attributes:
        summary_message (Message): Synthetic message replacing the span.
        messages_summarized (int): Length of the replaced prefix.
        summary_tokens (int): Estimated tokens of the summary message.
        model_id (str): Model that produced the summary.
    """

    summary_message: Message
    messages_summarized: int
    summary_tokens: int
    model_id: str


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else f"{text[:limit]}... [truncated]"


def extract_summary(message: Message) -> Optional[str]:
    """Summary text carried by a synthetic summary message.

    Args:
        message (Message): Message to inspect.

    Returns:
        Optional[str]: The text between the summary tags, or ``None`` if
            *message* is not a summary message.
    """
    if not message.synthetic:
        return None
    text = message.plain_text
    start = text.find(SUMMARY_OPEN_TAG)
    end = text.find(SUMMARY_CLOSE_TAG)
    if start < 0 or end < start:
        return text.strip()
    return text[start + len(SUMMARY_OPEN_TAG) : end].strip()


def build_summary_message(summary: str, turn: int) -> Message:
    """Wrap *summary* in the synthetic summary message format."""
    return Message(
        role=MessageRole.USER,
        content=[TextBlock(text=SUMMARY_MESSAGE_TEMPLATE.format(summary=summary))],
        turn=turn,
        synthetic=True,
    )


def _messages_to_text(
    messages: List[Message],
    max_chars_per_message: int = 2_000,
) -> str:
    """Serialize messages to text for summarization.

    The text-only format keeps the model from treating the content as a
    conversation to continue.

    Format:
        [User]: ...
        [Assistant]: ...
        [Assistant thinking]: ...         (abbreviated)
        [Tool call]: name({...})
        [Tool result (name)]: ...         (or [Tool error (name)]: ...)

    Sections are separated by double newlines (``\\n\\n``).

    Args:
        messages (List[Message]): Messages to convert.
        max_chars_per_message (int): Maximum characters kept per block.
            Defaults to 2000.

    Returns:
        str: Double-newline-joined string of role-prefixed entries.
    """
    parts: List[str] = []
    for msg in messages:
        label = _ROLE_LABELS.get(msg.role, msg.role.value.title())
        for block in msg.content:
            if isinstance(block, TextBlock):
                if block.text:
                    parts.append(f"[{label}]: {_clip(block.text, max_chars_per_message)}")
            elif isinstance(block, ThinkingBlock):
                if block.thinking:
                    parts.append(f"[{label} thinking]: {_clip(block.thinking, _THINKING_CHARS)}")
            elif isinstance(block, ToolCallBlock):
                parts.append(
                    f"[Tool call]: {block.name}({_clip(block.arguments_json(), _TOOL_ARGS_CHARS)})"
                )
            elif isinstance(block, ToolResultBlock):
                kind = "Tool error" if block.is_error else "Tool result"
                parts.append(
                    f"[{kind} ({block.tool_name})]: "
                    f"{_clip(block.content, max_chars_per_message)}"
                )
    return "\n\n".join(parts)


def find_summary_cutoff(messages: List[Message], protected_messages: int) -> int:
    """Number of leading messages eligible for summarization.

    Starts at the protected window boundary and moves earlier while the
    first kept message is a tool-result message, so a tool call is never
    separated from its result.

    Args:
        messages (List[Message]): Conversation message list.
        protected_messages (int): Size of the protected window.

    Returns:
        int: Length of the span to summarize (0 when nothing is eligible).
    """
    cutoff = protected_start(messages, protected_messages)
    while 0 < cutoff < len(messages) and messages[cutoff].role == MessageRole.TOOL:
        cutoff -= 1
    return cutoff


def _chunk_messages_by_max_tokens(
    messages: List[Message],
    max_tokens: int,
    accountant: TokenAccountant,
) -> List[List[Message]]:
    """Split messages into chunks each fitting within *max_tokens*.

    Args:
        messages (List[Message]): Messages to split into chunks.
        max_tokens (int): Maximum estimated token count per chunk.
        accountant (TokenAccountant): Token accountant.

    Returns:
        List[List[Message]]: List of message chunks, each within the token
            budget. A single message exceeding the budget forms its own chunk.
    """
    if not messages:
        return []

    chunks: List[List[Message]] = []
    current: List[Message] = []
    current_tokens = 0

    for msg in messages:
        msg_tokens = accountant.estimate(msg)

        if current and current_tokens + msg_tokens > max_tokens:
            chunks.append(current)
            current = []
            current_tokens = 0

        current.append(msg)
        current_tokens += msg_tokens

        if msg_tokens > max_tokens:
            chunks.append(current)
            current = []
            current_tokens = 0

    if current:
        chunks.append(current)
    return chunks


def _compute_adaptive_chunk_ratio(
    messages: List[Message],
    settings: CompactionSettings,
    accountant: TokenAccountant,
) -> float:
    """Reduce chunk ratio when average message size is large.

    Args:
        messages (List[Message]): Messages used to compute average size.
        settings (CompactionSettings): Provides base and minimum chunk ratios.
        accountant (TokenAccountant): Token accountant.

    Returns:
        float: Adjusted chunk ratio, reduced from ``base_chunk_ratio`` when
            average message tokens are large relative to the context window.
    """
    if not messages:
        return settings.base_chunk_ratio

    total = accountant.estimate_total(messages)
    avg = total / len(messages)
    safe_avg = avg * settings.safety_margin
    avg_ratio = safe_avg / settings.available_tokens

    if avg_ratio > 0.1:
        reduction = min(avg_ratio * 2, settings.base_chunk_ratio - settings.min_chunk_ratio)
        return max(settings.min_chunk_ratio, settings.base_chunk_ratio - reduction)

    return settings.base_chunk_ratio


async def _generate_summary(
    messages: List[Message],
    provider: ModelProvider,
    model_id: str,
    settings: CompactionSettings,
    previous_summary: Optional[str] = None,
) -> str:
    """Generate an LLM summary of the given messages.

    Uses the update prompt when a previous summary exists, otherwise
    generates a fresh one.

    Raises:
        SummarizationError: If the provider fails or returns no text.
    """
    conversation = _messages_to_text(messages, settings.max_chars_per_summarized_message)
    if not conversation.strip():
        if previous_summary:
            return previous_summary
        raise SummarizationError("nothing to summarize", model_id=model_id)

    if previous_summary:
        prompt = SUMMARIZATION_UPDATE_PROMPT.format(
            previous_summary=previous_summary,
            conversation=conversation,
        )
    else:
        prompt = SUMMARIZATION_PROMPT.format(conversation=conversation)

    try:
        text = await provider.complete(prompt, model_id, system=SUMMARIZATION_SYSTEM_PROMPT)
    except Exception as e:
        raise SummarizationError(f"summarization request failed: {e}", model_id=model_id) from e

    if not isinstance(text, str) or not text.strip():
        raise SummarizationError("malformed summarization response: empty text", model_id=model_id)
    return text.strip()


async def summarize_chunks(
    messages: List[Message],
    provider: ModelProvider,
    model_id: str,
    settings: CompactionSettings,
    accountant: TokenAccountant,
    max_chunk_tokens: int,
    previous_summary: Optional[str] = None,
) -> str:
    """Iteratively summarize message chunks.

    Args:
        messages (List[Message]): Messages to summarize.
        provider (ModelProvider): Provider used to produce summaries.
        model_id (str): Model to summarize with.
        settings (CompactionSettings): Compaction configuration.
        accountant (TokenAccountant): Token accountant.
        max_chunk_tokens (int): Maximum estimated tokens per chunk.
        previous_summary (Optional[str]): An existing summary to update
            incrementally. Defaults to ``None``.

    Returns:
        str: The final summary after iterating through all chunks.

    Raises:
        SummarizationError: If any chunk fails.
    """
    summary = previous_summary
    for chunk in _chunk_messages_by_max_tokens(messages, max_chunk_tokens, accountant):
        summary = await _generate_summary(chunk, provider, model_id, settings, summary)
    if not summary:
        raise SummarizationError("nothing to summarize", model_id=model_id)
    return summary


async def summarize_oldest_span(
    messages: List[Message],
    settings: CompactionSettings,
    accountant: TokenAccountant,
    provider: Optional[ModelProvider],
    model_id: str,
) -> Optional[SummarizationResult]:
    """Summarize everything before the protected window.

    Args:
        messages (List[Message]): Full conversation message list.
        settings (CompactionSettings): Compaction configuration.
        accountant (TokenAccountant): Token accountant.
        provider (Optional[ModelProvider]): Model provider client.
        model_id (str): Model to summarize with.

    Returns:
        Optional[SummarizationResult]: The summary to splice in, or
            ``None`` when the span is empty or is already a lone summary.

    Raises:
        SummarizationError: If no provider or model is configured, the
            provider call fails, or the response is malformed.
    """
    cutoff = find_summary_cutoff(messages, settings.protected_messages)
    span = messages[:cutoff]
    if not span:
        return None

    previous_summary = extract_summary(span[0])
    to_summarize = span[1:] if previous_summary is not None else span
    if not to_summarize:
        logger.debug("Span holds only a previous summary; nothing to summarize")
        return None

    if provider is None:
        raise SummarizationError("no model provider configured", model_id=model_id)
    if not model_id:
        raise SummarizationError("no summarization model", model_id=model_id)

    chunk_ratio = _compute_adaptive_chunk_ratio(to_summarize, settings, accountant)
    max_chunk_tokens = max(1, int(settings.available_tokens * chunk_ratio))

    summary_text = await summarize_chunks(
        to_summarize,
        provider,
        model_id,
        settings,
        accountant,
        max_chunk_tokens,
        previous_summary,
    )

    summary_message = build_summary_message(summary_text, turn=span[-1].turn)
    summary_tokens = accountant.estimate(summary_message)
    logger.info(
        "Summarized %d messages (%d tokens) into %d tokens with %s",
        len(span),
        accountant.estimate_total(span),
        summary_tokens,
        model_id,
    )
    return SummarizationResult(
        summary_message=summary_message,
        messages_summarized=len(span),
        summary_tokens=summary_tokens,
        model_id=model_id,
    )
