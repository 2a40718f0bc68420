# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Context service: per-session context management.

Glue between the agent loop and the compaction core. Each session owns
its conversation, compaction state, failure memory and a lock that turns
a compaction pass into a critical section: while Tier 3 is suspended on
the provider, other sessions keep running, but nothing else may touch
this session's log.

Typical turn:

    session = service.get_session(session_id)
    session.append(user_message)
    report = await session.prepare_turn()
    prompt = session.render()
    ...  # call the model, execute tools
    session.append(assistant_message)
    session.record_tool_result(tool_message)
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Dict, Optional

from agent_context.config import Settings, settings
from agent_context.models import CompactionState, Conversation, Message
from agent_context.services.compaction.failures import FailureRecord, FailureTracker
from agent_context.services.compaction.model_selection import ModelSelector
from agent_context.services.compaction.orchestrator import (
    CompactionOrchestrator,
    CompactionOutcome,
    CompactionReport,
)
from agent_context.services.compaction.settings import CompactionSettings
from agent_context.services.compaction.tokens import TokenAccountant
from agent_context.services.compaction.truncation import protected_start
from agent_context.services.prompts.assembler import AssembledPrompt, assemble, dumps_prompt
from agent_context.services.prompts.base import DEFAULT_SYSTEM_TEMPLATE
from agent_context.services.providers.llm import ModelProvider

logger = logging.getLogger(__name__)

# Consecutive summarization failures after which the degraded mode is logged
# as an error for the host loop to surface.
DEGRADED_WARNING_AFTER = 3


class ContextSession:
    """One agent session's context.

    Args:
        session_id (str): Session identifier.
        orchestrator (CompactionOrchestrator): Shared orchestrator.
        tracker (Optional[FailureTracker]): Failure memory. A new one sized
            from the orchestrator settings is created if omitted.
    """

    def __init__(
        self,
        session_id: str,
        orchestrator: CompactionOrchestrator,
        tracker: Optional[FailureTracker] = None,
    ) -> None:
        s = orchestrator.settings
        self.session_id = session_id
        self.orchestrator = orchestrator
        self.conversation = Conversation()
        self.state = CompactionState()
        self.tracker = tracker or FailureTracker(
            capacity=s.failure_capacity,
            description_chars=s.failure_description_chars,
        )
        self.lock = asyncio.Lock()
        self.last_report: Optional[CompactionReport] = None

    def append(self, message: Message) -> None:
        """Append a message to the log.

        Raises:
            RuntimeError: If a compaction pass is in progress.
        """
        if self.lock.locked():
            raise RuntimeError(f"session {self.session_id} is compacting")
        self.conversation.append(message)

    def record_tool_result(self, message: Message) -> Optional[FailureRecord]:
        """Append a tool-role message and update the failure memory.

        Results flagged ``is_error`` are recorded; any other result resets
        its tool's non-zero exit streak.

        Args:
            message (Message): Tool-role message from the tool layer.

        Returns:
            Optional[FailureRecord]: The last record stored, if any.
        """
        self.append(message)
        messages = self.conversation.messages
        visible = messages[protected_start(messages, self.orchestrator.settings.protected_messages) :]
        recorded = None
        for block in message.tool_results():
            if not block.is_error:
                self.tracker.record_success(block.tool_name)
                continue
            record = self.tracker.record(block.tool_name, block.content, message.turn, visible=visible)
            if record is not None:
                recorded = record
        return recorded

    def next_turn(self) -> int:
        """Advance and return the session's turn counter."""
        return self.state.advance_turn()

    async def prepare_turn(self, force: bool = False) -> CompactionReport:
        """Run a compaction cycle before the next model call.

        Args:
            force (bool): Compact even below the trigger threshold.

        Returns:
            CompactionReport: What the cycle did.
        """
        async with self.lock:
            report = await self.orchestrator.run(self.conversation, self.state, force=force)
        self.last_report = report

        if (
            report.outcome == CompactionOutcome.SUMMARIZATION_FAILED
            and report.over_hard_limit
            and self.state.consecutive_summarization_failures >= DEGRADED_WARNING_AFTER
        ):
            logger.error(
                "Session %s degraded: %d consecutive summarization failures, "
                "%d tokens over the %d available",
                self.session_id,
                self.state.consecutive_summarization_failures,
                report.tokens_after,
                self.orchestrator.settings.available_tokens,
            )
        return report

    @property
    def degraded(self) -> bool:
        """Whether the host loop should warn about degraded compaction."""
        return (
            self.last_report is not None
            and self.last_report.over_hard_limit
            and self.state.consecutive_summarization_failures > 0
        )

    def render(self, system_template: str = DEFAULT_SYSTEM_TEMPLATE) -> AssembledPrompt:
        """Render the prompt for the next model call."""
        prompt = assemble(self.conversation, self.tracker, self.state, system_template)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Session %s prompt: %s", self.session_id, dumps_prompt(prompt))
        return prompt


class ContextService:
    """Holds context sessions by id.

    Sessions idle longer than ``SESSION_TTL_SECONDS`` are evicted, and the
    least recently used ones are evicted above ``MAX_SESSIONS``. Sessions
    whose lock is held are never evicted.

    Args:
        compaction_settings (Optional[CompactionSettings]): Compaction
            configuration. Built from the application settings if omitted.
        provider (Optional[ModelProvider]): Model provider for
            summarization.
        model_selector (Optional[ModelSelector]): Summarization model
            selection inputs. Built from ``SUMMARIZATION_MODEL``,
            ``ACTIVE_MODEL`` and ``ACTIVE_PROVIDER`` if omitted.
        accountant (Optional[TokenAccountant]): Token accountant. Uses the
            configured tokenizer encoding if omitted.
        app_settings (Settings): Application settings.
    """

    def __init__(
        self,
        compaction_settings: Optional[CompactionSettings] = None,
        provider: Optional[ModelProvider] = None,
        model_selector: Optional[ModelSelector] = None,
        accountant: Optional[TokenAccountant] = None,
        app_settings: Settings = settings,
    ) -> None:
        self.app_settings = app_settings
        self.compaction_settings = compaction_settings or CompactionSettings.from_settings(
            app_settings
        )
        self.accountant = accountant or TokenAccountant(
            encoding_name=app_settings.TOKENIZER_ENCODING,
            chars_per_token=self.compaction_settings.chars_per_token,
        )
        self.orchestrator = CompactionOrchestrator(
            self.compaction_settings,
            self.accountant,
            provider=provider,
            model_selector=model_selector,
            active_model=app_settings.ACTIVE_MODEL,
            active_provider=app_settings.ACTIVE_PROVIDER,
        )
        self._sessions: Dict[str, ContextSession] = {}
        self._session_last_access: Dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def _evict_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._session_last_access.pop(session_id, None)

    def _is_session_locked(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        return session is not None and session.lock.locked()

    def _cleanup_stale_sessions(self) -> None:
        """Remove sessions older than TTL and evict oldest if over MAX_SESSIONS.

        Safety: never evicts sessions with an active lock (currently in-use).
        """
        now = time.time()
        expired = [
            sid
            for sid, ts in self._session_last_access.items()
            if now - ts > self.app_settings.SESSION_TTL_SECONDS and not self._is_session_locked(sid)
        ]
        for sid in expired:
            self._evict_session(sid)
        if expired:
            logger.info("Evicted %d expired session(s)", len(expired))

        if len(self._sessions) > self.app_settings.MAX_SESSIONS:
            evictable = [
                (sid, ts)
                for sid, ts in self._session_last_access.items()
                if not self._is_session_locked(sid)
            ]
            evictable.sort(key=lambda item: item[1])
            to_evict = len(self._sessions) - self.app_settings.MAX_SESSIONS
            for sid, _ in evictable[:to_evict]:
                self._evict_session(sid)
            logger.info(
                "Evicted %d session(s) over MAX_SESSIONS limit", min(to_evict, len(evictable))
            )

    def get_session(self, session_id: Optional[str] = None) -> ContextSession:
        """Return an existing session or create a new one.

        Args:
            session_id (Optional[str]): Desired session ID, or None to
                auto-generate one.

        Returns:
            ContextSession: The session.
        """
        if session_id and session_id in self._sessions:
            self._session_last_access[session_id] = time.time()
            return self._sessions[session_id]

        self._cleanup_stale_sessions()
        new_session_id = session_id or str(uuid.uuid4())
        session = ContextSession(new_session_id, self.orchestrator)
        self._sessions[new_session_id] = session
        self._session_last_access[new_session_id] = time.time()
        logger.debug("Created context session %s", new_session_id)
        return session

    def close_session(self, session_id: str) -> None:
        self._evict_session(session_id)
