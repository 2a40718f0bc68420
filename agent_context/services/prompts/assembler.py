# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Prompt assembly.

Renders what the model sees on every turn:

    [system prompt]  <- system template + recent failures + summary
    [survivors...]   <- messages after the summary, verbatim

Rendering never mutates the conversation, the tracker or the state, and
runs on every turn whether or not compaction ran.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from agent_context.models import CompactionState, Conversation, Message
from agent_context.schemas.content import (
    MessageRole,
    TextBlock,
    ThinkingBlock,
    ToolCallBlock,
    ToolResultBlock,
)
from agent_context.services.compaction.failures import FailureTracker
from agent_context.services.compaction.summarizer import extract_summary
from agent_context.services.prompts.base import (
    DEFAULT_SYSTEM_TEMPLATE,
    SUMMARY_MESSAGE_TEMPLATE,
)
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)


@dataclass
class AssembledPrompt:
    """Prompt ready to send to the model.

    Attributes:
        system_prompt (str): Rendered system prompt.
        messages (List[Message]): Conversation messages following the
            system prompt.
    """

    system_prompt: str
    messages: List[Message] = field(default_factory=list)

    def as_text(self) -> str:
        """Flatten the prompt into plain text (logging and debugging)."""
        parts = [f"[system]\n{self.system_prompt}"]
        for msg in self.messages:
            parts.append(f"[{msg.role.value}]\n{_message_text(msg)}")
        return "\n\n".join(parts)

    def to_langchain_messages(self) -> List[BaseMessage]:
        """Convert to LangChain messages for ``BaseChatModel.ainvoke``."""
        lc_messages: List[BaseMessage] = [SystemMessage(content=self.system_prompt)]
        for msg in self.messages:
            lc_messages.extend(_to_lc_messages(msg))
        return lc_messages


def _message_text(msg: Message) -> str:
    lines: List[str] = []
    for block in msg.content:
        if isinstance(block, TextBlock):
            lines.append(block.text)
        elif isinstance(block, ThinkingBlock):
            lines.append(f"(thinking) {block.thinking}")
        elif isinstance(block, ToolCallBlock):
            lines.append(f"(tool call) {block.name}({block.arguments_json()})")
        elif isinstance(block, ToolResultBlock):
            kind = "tool error" if block.is_error else "tool result"
            lines.append(f"({kind}: {block.tool_name}) {block.content}")
    return "\n".join(lines)


def _to_lc_messages(msg: Message) -> List[BaseMessage]:
    """Convert app Message -> LangChain messages.

    A tool-role message becomes one ``ToolMessage`` per result block.
    Thinking blocks are not replayed to the provider.
    """
    if msg.role == MessageRole.TOOL:
        return [
            ToolMessage(
                content=block.content,
                tool_call_id=block.tool_call_id or "unknown",
                name=block.tool_name,
                status="error" if block.is_error else "success",
            )
            for block in msg.tool_results()
        ]
    if msg.role == MessageRole.ASSISTANT:
        tool_calls = [
            {"name": call.name, "args": call.arguments, "id": call.id or None}
            for call in msg.tool_calls()
        ]
        return [AIMessage(content=msg.plain_text, tool_calls=tool_calls)]
    return [HumanMessage(content=msg.plain_text)]


def render_context(
    system_template: str,
    failure_section: Optional[str],
    summary: Optional[str],
    survivors: Sequence[Message],
) -> AssembledPrompt:
    """Render the prompt from its parts.

    Args:
        system_template (str): Base system prompt.
        failure_section (Optional[str]): Recent failures block, if any.
        summary (Optional[str]): Summary of compacted history, if any.
        survivors (Sequence[Message]): Messages kept verbatim.

    Returns:
        AssembledPrompt: The rendered prompt.
    """
    sections = [system_template.strip()]
    if failure_section:
        sections.append(failure_section.strip())
    if summary:
        sections.append(SUMMARY_MESSAGE_TEMPLATE.format(summary=summary.strip()))
    return AssembledPrompt(system_prompt="\n\n".join(sections), messages=list(survivors))


def assemble(
    conversation: Conversation,
    tracker: FailureTracker,
    state: CompactionState,
    system_template: str = DEFAULT_SYSTEM_TEMPLATE,
) -> AssembledPrompt:
    """Render the prompt for the current state of a session.

    A leading synthetic summary message is lifted into the system prompt;
    everything after it is passed through unchanged.

    Args:
        conversation (Conversation): Session message log.
        tracker (FailureTracker): Session failure memory.
        state (CompactionState): Session compaction state.
        system_template (str): Base system prompt.

    Returns:
        AssembledPrompt: The rendered prompt.
    """
    messages = conversation.messages
    summary = extract_summary(messages[0]) if messages else None
    survivors = messages[1:] if summary is not None else messages
    return render_context(
        system_template,
        tracker.render_section(state),
        summary,
        survivors,
    )


def dumps_prompt(prompt: AssembledPrompt) -> str:
    """JSON dump of a prompt for debug logging."""
    return json.dumps(
        {
            "system_prompt": prompt.system_prompt,
            "messages": [m.model_dump(mode="json") for m in prompt.messages],
        },
        ensure_ascii=False,
    )
