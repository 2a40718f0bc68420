# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Compaction orchestrator.

Runs the tiers as a small explicit state machine:

    IDLE -> TIER1_APPLIED -> TIER2_APPLIED -> TIER3_APPLIED -> IDLE

with an early exit back to IDLE once occupancy is at or below the target.
Each tier is a function ``messages -> messages``; the orchestrator commits
its output to the conversation before re-measuring, so a later failure
(or cancellation) never discards work an earlier tier already did.

Terminal outcomes per cycle:
  NOT_NEEDED            occupancy below the trigger, nothing ran
  SATISFIED             target reached
  DEGRADED              every tier ran and the log is still over target;
                        the turn proceeds anyway
  SUMMARIZATION_FAILED  Tier 3 failed; Tier 1/2 results are kept and
                        summarization is retried on the next cycle
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from agent_context.models import CompactionState, Conversation, Message
from agent_context.services.compaction.errors import SummarizationError
from agent_context.services.compaction.model_selection import ModelSelector
from agent_context.services.compaction.pruning import prune_old_tool_results
from agent_context.services.compaction.settings import CompactionSettings
from agent_context.services.compaction.summarizer import summarize_oldest_span
from agent_context.services.compaction.tokens import TokenAccountant
from agent_context.services.compaction.truncation import truncate_oversized_tool_results
from agent_context.services.providers.llm import ModelProvider

logger = logging.getLogger(__name__)


class CompactionPhase(str, Enum):
    """States of a compaction cycle."""

    IDLE = "idle"
    TIER1_APPLIED = "tier1_applied"
    TIER2_APPLIED = "tier2_applied"
    TIER3_APPLIED = "tier3_applied"


class CompactionOutcome(str, Enum):
    """Terminal outcome of a compaction cycle."""

    NOT_NEEDED = "not_needed"
    SATISFIED = "satisfied"
    DEGRADED = "degraded"
    SUMMARIZATION_FAILED = "summarization_failed"


_TRANSITIONS = {
    CompactionPhase.IDLE: CompactionPhase.TIER1_APPLIED,
    CompactionPhase.TIER1_APPLIED: CompactionPhase.TIER2_APPLIED,
    CompactionPhase.TIER2_APPLIED: CompactionPhase.TIER3_APPLIED,
    CompactionPhase.TIER3_APPLIED: CompactionPhase.IDLE,
}


def next_phase(phase: CompactionPhase) -> CompactionPhase:
    """Transition function of the tier state machine."""
    return _TRANSITIONS[phase]


@dataclass
class CompactionStatus:
    """Result of checking whether compaction is needed.

    Attributes:
        total_tokens (int): Estimated tokens of the log.
        trigger_tokens (int): Token count that triggers compaction.
        target_tokens (int): Token count compaction aims for.
        occupancy (float): ``total_tokens`` relative to available tokens.
        needs_compaction (bool): ``True`` at or above the trigger.
        message_count (int): Number of messages in the log.
    """

    total_tokens: int
    trigger_tokens: int
    target_tokens: int
    occupancy: float
    needs_compaction: bool
    message_count: int


def check_compaction_needed(
    messages: List[Message],
    settings: CompactionSettings,
    accountant: TokenAccountant,
) -> CompactionStatus:
    """Measure occupancy against the trigger threshold.

    Args:
        messages (List[Message]): Conversation message list.
        settings (CompactionSettings): Compaction configuration.
        accountant (TokenAccountant): Token accountant.

    Returns:
        CompactionStatus: Occupancy snapshot. Reaching the trigger exactly
            counts as needing compaction.
    """
    total = accountant.estimate_total(messages)
    return CompactionStatus(
        total_tokens=total,
        trigger_tokens=settings.trigger_tokens,
        target_tokens=settings.target_tokens,
        occupancy=settings.occupancy(total),
        needs_compaction=total >= settings.trigger_tokens,
        message_count=len(messages),
    )


@dataclass
class CompactionReport:
    """What a compaction cycle did.

    Attributes:
        outcome (CompactionOutcome): Terminal outcome.
        phase_reached (CompactionPhase): Last tier phase entered.
        phases (List[CompactionPhase]): Phases visited, in order.
        tokens_before (int): Estimated tokens before the cycle.
        tokens_after (int): Estimated tokens after the cycle.
        truncated (int): Messages rewritten by Tier 1.
        pruned (int): Messages rewritten by Tier 2.
        summarized (int): Messages replaced by the Tier 3 summary.
        error (Optional[str]): Summarization error text, if any.
        over_hard_limit (bool): Whether the log still exceeds the
            available context.
    """

    outcome: CompactionOutcome
    phase_reached: CompactionPhase = CompactionPhase.IDLE
    phases: List[CompactionPhase] = field(default_factory=list)
    tokens_before: int = 0
    tokens_after: int = 0
    truncated: int = 0
    pruned: int = 0
    summarized: int = 0
    error: Optional[str] = None
    over_hard_limit: bool = False

    @property
    def mutated(self) -> bool:
        return bool(self.truncated or self.pruned or self.summarized)


class CompactionOrchestrator:
    """Runs the compaction tiers against configured thresholds.

    Args:
        settings (CompactionSettings): Compaction configuration.
        accountant (TokenAccountant): Token accountant.
        provider (Optional[ModelProvider]): Model provider for Tier 3.
            Without one, Tier 3 always fails and cycles end in
            ``SUMMARIZATION_FAILED`` when Tier 1/2 are not enough.
        model_selector (Optional[ModelSelector]): Chooses the Tier 3
            model. Defaults to the configured summarization model, else
            *active_model*.
        active_model (str): Model driving the conversation.
        active_provider (str): Provider of the active model.
    """

    def __init__(
        self,
        settings: CompactionSettings,
        accountant: TokenAccountant,
        provider: Optional[ModelProvider] = None,
        model_selector: Optional[ModelSelector] = None,
        active_model: str = "",
        active_provider: str = "",
    ) -> None:
        self.settings = settings
        self.accountant = accountant
        self.provider = provider
        self.model_selector = model_selector or ModelSelector(
            active_model=active_model,
            active_provider=active_provider,
            configured=settings.summarization_model,
        )

    def check(self, conversation: Conversation) -> CompactionStatus:
        return check_compaction_needed(conversation.messages, self.settings, self.accountant)

    def _mark_mutated(self, state: CompactionState) -> None:
        if not state.has_compacted_at_least_once:
            logger.info("First compaction for this session")
        state.has_compacted_at_least_once = True

    async def _apply(
        self,
        phase: CompactionPhase,
        conversation: Conversation,
        state: CompactionState,
        report: CompactionReport,
    ) -> None:
        """Run the tier for *phase* and commit its output."""
        messages = conversation.messages

        if phase == CompactionPhase.TIER1_APPLIED:
            rewritten, _ = truncate_oversized_tool_results(messages, self.settings, self.accountant)
            report.truncated += conversation.commit_rewrites(rewritten)
            if report.truncated:
                self._mark_mutated(state)
            return

        if phase == CompactionPhase.TIER2_APPLIED:
            rewritten, _ = prune_old_tool_results(
                messages, self.settings, self.accountant, target_tokens=self.settings.target_tokens
            )
            report.pruned += conversation.commit_rewrites(rewritten)
            if report.pruned:
                self._mark_mutated(state)
            return

        model_id = self.model_selector.select()
        result = await summarize_oldest_span(
            messages, self.settings, self.accountant, self.provider, model_id
        )
        state.consecutive_summarization_failures = 0
        if result is None:
            return
        span_tokens = self.accountant.estimate_total(messages[: result.messages_summarized])
        if result.summary_tokens >= span_tokens:
            logger.warning(
                "Summary (%d tokens) is not smaller than its span (%d tokens); keeping span",
                result.summary_tokens,
                span_tokens,
            )
            return
        # Single synchronous splice: the log is never observed half-replaced.
        conversation.replace_prefix(result.messages_summarized, result.summary_message)
        report.summarized = result.messages_summarized
        self._mark_mutated(state)

    async def run(
        self,
        conversation: Conversation,
        state: CompactionState,
        *,
        force: bool = False,
    ) -> CompactionReport:
        """Run one compaction cycle.

        The caller must hold the session's write access for the duration
        of the call; no other mutation of *conversation* may interleave.

        Args:
            conversation (Conversation): Session message log. Mutated in
                place.
            state (CompactionState): Session compaction state.
            force (bool): Skip the trigger check (agent-requested
                compaction).

        Returns:
            CompactionReport: What the cycle did.
        """
        status = self.check(conversation)
        report = CompactionReport(
            outcome=CompactionOutcome.NOT_NEEDED,
            tokens_before=status.total_tokens,
            tokens_after=status.total_tokens,
        )
        if not force and not status.needs_compaction:
            logger.debug(
                "Occupancy %.2f below trigger (%d < %d tokens)",
                status.occupancy,
                status.total_tokens,
                status.trigger_tokens,
            )
            return self._finish(report, state)

        logger.info(
            "Compaction triggered: %d tokens (%.0f%% of %d available), target %d",
            status.total_tokens,
            status.occupancy * 100,
            self.settings.available_tokens,
            self.settings.target_tokens,
        )

        phase = CompactionPhase.IDLE
        target = self.settings.target_tokens
        while True:
            phase = next_phase(phase)
            report.phase_reached = phase
            report.phases.append(phase)
            try:
                await self._apply(phase, conversation, state, report)
            except SummarizationError as e:
                state.consecutive_summarization_failures += 1
                report.error = str(e)
                report.outcome = CompactionOutcome.SUMMARIZATION_FAILED
                report.tokens_after = self.accountant.estimate_total(conversation.messages)
                logger.warning(
                    "Summarization failed (%d consecutive): %s",
                    state.consecutive_summarization_failures,
                    e,
                )
                break

            report.tokens_after = self.accountant.estimate_total(conversation.messages)
            if report.tokens_after <= target:
                report.outcome = CompactionOutcome.SATISFIED
                break
            if phase == CompactionPhase.TIER3_APPLIED:
                report.outcome = CompactionOutcome.DEGRADED
                logger.warning(
                    "Compaction degraded: %d tokens still above target %d",
                    report.tokens_after,
                    target,
                )
                break

        return self._finish(report, state)

    def _finish(self, report: CompactionReport, state: CompactionState) -> CompactionReport:
        if report.mutated:
            state.compaction_count += 1
            logger.info(
                "Compaction %s: %d -> %d tokens (truncated=%d pruned=%d summarized=%d)",
                report.outcome.value,
                report.tokens_before,
                report.tokens_after,
                report.truncated,
                report.pruned,
                report.summarized,
            )
        report.over_hard_limit = report.tokens_after > self.settings.available_tokens
        return report
