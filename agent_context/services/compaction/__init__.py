# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Context compaction module.

Keeps a session's conversation inside the model's context window with a
cascade of increasingly lossy tiers:

  Tier 1 — Tool output truncation  (truncation.py)
      Cut oversized tool outputs down to head + tail around a marker.

  Tier 2 — Tool output pruning  (pruning.py)
      Replace old tool outputs with short placeholders, oldest first.

  Tier 3 — LLM summarization  (summarizer.py)
      Replace the oldest span with one synthetic summary message.
      Supports chunked and incremental summarization.

The orchestrator (orchestrator.py) runs the tiers in order while
occupancy stays above the target. Failure memory (failures.py) keeps a
bounded record of tool errors that survives compaction.

Usage:

    settings = CompactionSettings(context_window_tokens=128_000)
    accountant = TokenAccountant()
    orchestrator = CompactionOrchestrator(settings, accountant, provider)

    report = await orchestrator.run(conversation, state)
    if report.outcome == CompactionOutcome.SUMMARIZATION_FAILED:
        ...  # Tier 1/2 results are kept, Tier 3 retries next cycle
"""

from agent_context.services.compaction.errors import (
    CompactionError,
    ProviderError,
    SummarizationError,
    TokenEstimationError,
)
from agent_context.services.compaction.failures import (
    FailureCategory,
    FailureRecord,
    FailureTracker,
    classify_error,
)
from agent_context.services.compaction.model_selection import (
    ModelSelector,
    cheapest_model,
    select_summarization_model,
)
from agent_context.services.compaction.orchestrator import (
    CompactionOrchestrator,
    CompactionOutcome,
    CompactionPhase,
    CompactionReport,
    CompactionStatus,
    check_compaction_needed,
    next_phase,
)
from agent_context.services.compaction.pruning import prune_old_tool_results
from agent_context.services.compaction.settings import CompactionSettings, ToolPruningConfig
from agent_context.services.compaction.summarizer import (
    SummarizationResult,
    summarize_chunks,
    summarize_oldest_span,
)
from agent_context.services.compaction.tokens import TokenAccountant, TokenCount
from agent_context.services.compaction.truncation import (
    has_oversized_tool_results,
    truncate_oversized_tool_results,
    truncate_tool_result_text,
)

__all__ = [
    "CompactionSettings",
    "ToolPruningConfig",
    "CompactionError",
    "TokenEstimationError",
    "SummarizationError",
    "ProviderError",
    "TokenAccountant",
    "TokenCount",
    "truncate_tool_result_text",
    "truncate_oversized_tool_results",
    "has_oversized_tool_results",
    "prune_old_tool_results",
    "summarize_chunks",
    "summarize_oldest_span",
    "SummarizationResult",
    "ModelSelector",
    "cheapest_model",
    "select_summarization_model",
    "FailureCategory",
    "FailureRecord",
    "FailureTracker",
    "classify_error",
    "CompactionOrchestrator",
    "CompactionOutcome",
    "CompactionPhase",
    "CompactionReport",
    "CompactionStatus",
    "check_compaction_needed",
    "next_phase",
]
