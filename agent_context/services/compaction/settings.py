# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Compaction settings.

Immutable per-session configuration. Thresholds are expressed as ratios of
the available context (context window minus the output reserve).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from agent_context.config import Settings


@dataclass(frozen=True)
class ToolPruningConfig:
    """Selective tool pruning via allow/deny glob patterns.

    When both are ``None`` (default), all tools are prunable.
    When ``allow`` is set, only matching tools are prunable.
    When ``deny`` is set, matching tools are never pruned.
    ``deny`` takes precedence over ``allow``.

    Patterns use ``fnmatch`` syntax (e.g. ``"bash"``, ``"file_*"``).

    Attributes:
        allow (Optional[List[str]]): Glob patterns of tools that may be pruned.
        deny (Optional[List[str]]): Glob patterns of tools that must not be pruned.
    """

    allow: Optional[List[str]] = None
    deny: Optional[List[str]] = None


@dataclass(frozen=True)
class CompactionSettings:
    """All compaction-related configuration in one place.

    Tiers (applied in order while occupancy stays above target):
      1. Tool output truncation   cap oversized outputs to head + tail
      2. Tool output pruning      replace old outputs with placeholders
      3. LLM summarization        replace the oldest span with a summary

    Attributes:
        context_window_tokens (int): Context window of the active model.
        output_reserve_tokens (int): Tokens reserved for the response.
        trigger_threshold (float): Occupancy ratio at or above which a
            compaction pass starts.
        target_threshold (float): Occupancy ratio a pass tries to reach.
        protected_messages (int): Number of most recent messages no tier
            may touch.
        max_tool_output_tokens (int): Tool outputs above this size are
            truncated.
        truncate_keep_tokens (int): Tokens kept at each end of a truncated
            output.
        chars_per_token (int): Characters per token for the heuristic
            estimator.
        summarization_model (Optional[str]): Explicit model override for
            summarization.
        base_chunk_ratio (float): Share of available tokens used as the
            summarization chunk budget.
        min_chunk_ratio (float): Lower bound for the adaptive chunk ratio.
        safety_margin (float): Multiplier applied to the average message
            size when adapting the chunk ratio.
        max_chars_per_summarized_message (int): Cap on each block rendered
            into the summarization prompt.
        failure_capacity (int): Maximum number of failure records.
        failure_description_chars (int): Maximum length of a failure
            description.
        tool_pruning (ToolPruningConfig): Selective pruning via tool name
            allow/deny patterns.
    """

    context_window_tokens: int = 200_000
    output_reserve_tokens: int = 16_000
    trigger_threshold: float = 0.80
    target_threshold: float = 0.60
    protected_messages: int = 12
    max_tool_output_tokens: int = 2_000
    truncate_keep_tokens: int = 250
    chars_per_token: int = 4
    summarization_model: Optional[str] = None
    base_chunk_ratio: float = 0.4
    min_chunk_ratio: float = 0.15
    safety_margin: float = 1.2
    max_chars_per_summarized_message: int = 2_000
    failure_capacity: int = 10
    failure_description_chars: int = 200
    tool_pruning: ToolPruningConfig = field(default_factory=ToolPruningConfig)

    def __post_init__(self) -> None:
        if not 0 < self.target_threshold < self.trigger_threshold <= 1:
            raise ValueError(
                "thresholds must satisfy 0 < target < trigger <= 1, got "
                f"target={self.target_threshold} trigger={self.trigger_threshold}"
            )
        if self.protected_messages < 0:
            raise ValueError("protected_messages must be >= 0")
        if self.max_tool_output_tokens <= 0 or self.truncate_keep_tokens <= 0:
            raise ValueError("tool output limits must be positive")
        if self.output_reserve_tokens >= self.context_window_tokens:
            raise ValueError("output reserve must be smaller than the context window")
        if self.failure_capacity <= 0:
            raise ValueError("failure_capacity must be positive")

    @classmethod
    def from_settings(cls, app_settings: "Settings", **overrides) -> "CompactionSettings":
        """Build compaction settings from the application configuration.

        Args:
            app_settings (Settings): Loaded application settings.
            **overrides: Field values taking precedence over the loaded ones.

        Returns:
            CompactionSettings: Validated, immutable settings.
        """
        values = dict(
            context_window_tokens=app_settings.CONTEXT_WINDOW_TOKENS,
            output_reserve_tokens=app_settings.OUTPUT_RESERVE_TOKENS,
            trigger_threshold=app_settings.COMPACTION_TRIGGER_THRESHOLD,
            target_threshold=app_settings.COMPACTION_TARGET_THRESHOLD,
            protected_messages=app_settings.COMPACTION_PROTECTED_MESSAGES,
            max_tool_output_tokens=app_settings.MAX_TOOL_OUTPUT_TOKENS,
            truncate_keep_tokens=app_settings.TRUNCATE_KEEP_TOKENS,
            summarization_model=app_settings.SUMMARIZATION_MODEL or None,
            failure_capacity=app_settings.FAILURE_TRACKER_CAPACITY,
        )
        values.update(overrides)
        return cls(**values)

    @property
    def available_tokens(self) -> int:
        """Tokens available for the prompt after reserving output space."""
        return self.context_window_tokens - self.output_reserve_tokens

    @property
    def trigger_tokens(self) -> int:
        """Token count at or above which compaction starts."""
        return int(self.available_tokens * self.trigger_threshold)

    @property
    def target_tokens(self) -> int:
        """Token count a compaction pass tries to get under."""
        return int(self.available_tokens * self.target_threshold)

    @property
    def truncation_keep_tokens(self) -> int:
        """Tokens kept at each end of a truncated output.

        Bounded so head + tail stay well under the truncation threshold.
        """
        return max(1, min(self.truncate_keep_tokens, self.max_tool_output_tokens // 4))

    def occupancy(self, tokens: int) -> float:
        """Ratio of *tokens* to the available context."""
        return tokens / self.available_tokens
