# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Failure memory.

Keeps a small, bounded record of tool errors that survives compaction, so
the agent does not repeat a mistake whose original output has been
truncated, pruned or summarized away.

Classification is deterministic and pattern based. Only results the tool
layer flagged with ``is_error`` are classified; error-ness is never
inferred from the text (a grep for the word "error" is not a failure).

Records live in an insertion-ordered map keyed by ``(tool_name, category)``.
Recording a key that already exists replaces the record and moves it to
the newest position; when the map exceeds its capacity the oldest entry is
evicted, which can never be the record just written.
"""

from __future__ import annotations

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from agent_context.models import CompactionState, Message
from agent_context.services.compaction.pruning import is_pruned
from agent_context.services.compaction.truncation import is_truncated
from agent_context.services.prompts.base import FAILURE_SECTION_HEADER, FAILURE_SECTION_INTRO

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10
DEFAULT_DESCRIPTION_CHARS = 200


class FailureCategory(str, Enum):
    """Tool failure categories.

    Attributes:
        EDIT_MISMATCH (str): String-replace edit found no match.
        FILE_NOT_FOUND (str): A path did not exist.
        BUILD_FAILURE (str): Compiler or linker errors.
        TEST_FAILURE (str): Test runner reported failures.
        WRONG_APPROACH (str): Repeated non-zero exits without a build or
            test signature.
        TOOL_ERROR (str): Any other error result.
    """

    EDIT_MISMATCH = "edit_mismatch"
    FILE_NOT_FOUND = "file_not_found"
    BUILD_FAILURE = "build_failure"
    TEST_FAILURE = "test_failure"
    WRONG_APPROACH = "wrong_approach"
    TOOL_ERROR = "tool_error"


@dataclass(frozen=True)
class FailureRecord:
    """A classified tool failure.

    Attributes:
        tool_name (str): Tool that failed.
        category (FailureCategory): Classified failure category.
        description (str): Short, bounded description of the error.
        turn (int): Turn index the failure was recorded at.
    """

    tool_name: str
    category: FailureCategory
    description: str
    turn: int


# Checked in order; the first category with a matching pattern wins.
_CATEGORY_PATTERNS: List[Tuple[FailureCategory, Pattern[str]]] = [
    (
        FailureCategory.EDIT_MISMATCH,
        re.compile(
            r"old_string\b.*\bnot found"
            r"|text not found in file"
            r"|no (?:exact )?match(?:es)? (?:found )?for (?:the )?old_string"
            r"|string to replace (?:was )?not found"
            r"|could not find (?:the )?(?:text|string) to replace"
            r"|text appears \d+ times",
            re.IGNORECASE,
        ),
    ),
    (
        FailureCategory.BUILD_FAILURE,
        re.compile(
            r"error\[E\d{4}\]"
            r"|could not compile"
            r"|compilation (?:failed|terminated)"
            r"|build failed"
            r"|\bSyntaxError\b"
            r"|undefined reference to"
            r"|linker command failed"
            r"|cannot find symbol"
            r"|error TS\d+"
            r"|make: \*\*\*",
            re.IGNORECASE,
        ),
    ),
    (
        FailureCategory.TEST_FAILURE,
        re.compile(
            r"test result: FAILED"
            r"|\b[1-9]\d* (?:tests? )?failed\b"
            r"|^FAILED\s+\S+::"
            r"|\bAssertionError\b"
            r"|tests? failed"
            r"|^FAIL\b",
            re.IGNORECASE | re.MULTILINE,
        ),
    ),
    (
        FailureCategory.FILE_NOT_FOUND,
        re.compile(
            r"no such file or directory"
            r"|file not found"
            r"|\bENOENT\b"
            r"|path does not exist"
            r"|(?:file|directory) .* does not exist"
            r"|cannot find the (?:file|path)",
            re.IGNORECASE,
        ),
    ),
]

_NONZERO_EXIT_RE = re.compile(
    r"exit(?:ed)?(?: with)?[ _](?:code|status)\W{0,3}(-?[1-9]\d*)"
    r"|\"exit_code\"\s*:\s*(-?[1-9]\d*)",
    re.IGNORECASE,
)

# Benign "errors" from search tools: nothing matched.
_BENIGN_RE = re.compile(
    r"^\s*(?:no matches found|no files found|0 matches|no results found)\.?\s*$",
    re.IGNORECASE | re.MULTILINE,
)
_SEARCH_TOOLS = ("grep", "glob", "search", "find", "rg", "ripgrep", "list")

_WS_RE = re.compile(r"\s+")


def _is_benign(tool_name: str, text: str) -> bool:
    name = tool_name.lower()
    return any(t in name for t in _SEARCH_TOOLS) and _BENIGN_RE.search(text) is not None


def _describe(text: str, pattern: Optional[Pattern[str]], limit: int) -> str:
    """Short description: the line matching *pattern*, else the first non-empty line."""
    lines = [line for line in text.splitlines() if line.strip()]
    chosen = lines[0] if lines else ""
    if pattern is not None:
        for line in lines:
            if pattern.search(line):
                chosen = line
                break
    chosen = _WS_RE.sub(" ", chosen).strip()
    if len(chosen) > limit:
        chosen = chosen[: max(0, limit - 3)] + "..."
    return chosen


def classify_error(
    tool_name: str,
    raw_error_text: str,
    *,
    repeated_nonzero_exit: bool = False,
    description_chars: int = DEFAULT_DESCRIPTION_CHARS,
) -> Optional[Tuple[FailureCategory, str]]:
    """Classify an error reported by the tool layer.

    Args:
        tool_name (str): Tool that produced the error.
        raw_error_text (str): Error output.
        repeated_nonzero_exit (bool): Whether the same tool already exited
            non-zero since its last success.
        description_chars (int): Maximum description length.

    Returns:
        Optional[Tuple[FailureCategory, str]]: Category and description, or
            ``None`` for benign results that should not be tracked.
    """
    if _is_benign(tool_name, raw_error_text):
        return None

    for category, pattern in _CATEGORY_PATTERNS:
        if pattern.search(raw_error_text):
            return category, _describe(raw_error_text, pattern, description_chars)

    if repeated_nonzero_exit and _NONZERO_EXIT_RE.search(raw_error_text):
        return FailureCategory.WRONG_APPROACH, _describe(raw_error_text, None, description_chars)

    return FailureCategory.TOOL_ERROR, _describe(raw_error_text, None, description_chars)


class FailureTracker:
    """Bounded, deduplicated memory of tool failures.

    Args:
        capacity (int): Maximum number of records kept.
        description_chars (int): Maximum length of a record description.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        description_chars: int = DEFAULT_DESCRIPTION_CHARS,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.description_chars = description_chars
        self._records: "OrderedDict[Tuple[str, FailureCategory], FailureRecord]" = OrderedDict()
        self._nonzero_exit_streak: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._records)

    def _already_visible(
        self,
        tool_name: str,
        category: FailureCategory,
        description: str,
        visible: Sequence[Message],
    ) -> bool:
        """Whether an identical error is still visible, unpruned, in *visible*.

        The newest error result in *visible* is the one being recorded and
        is not counted.
        """
        occurrences = 0
        for msg in visible:
            for block in msg.tool_results():
                if not block.is_error or block.tool_name != tool_name:
                    continue
                if is_pruned(block.content) or is_truncated(block.content):
                    continue
                classified = classify_error(
                    block.tool_name, block.content, description_chars=self.description_chars
                )
                if classified == (category, description):
                    occurrences += 1
        return occurrences > 1

    def record(
        self,
        tool_name: str,
        raw_error_text: str,
        turn: int,
        visible: Optional[Sequence[Message]] = None,
    ) -> Optional[FailureRecord]:
        """Classify and record a tool error.

        Args:
            tool_name (str): Tool that failed.
            raw_error_text (str): Error output flagged by the tool layer.
            turn (int): Current turn index.
            visible (Optional[Sequence[Message]]): The still-unpruned tail
                of the conversation. When the tracker still holds this
                failure and an identical error is visible there, nothing is
                recorded.

        Returns:
            Optional[FailureRecord]: The stored record, or ``None`` if the
                error is benign or already visible.
        """
        streak = self._nonzero_exit_streak.get(tool_name, 0)
        classified = classify_error(
            tool_name,
            raw_error_text,
            repeated_nonzero_exit=streak > 0,
            description_chars=self.description_chars,
        )
        if _NONZERO_EXIT_RE.search(raw_error_text):
            self._nonzero_exit_streak[tool_name] = streak + 1

        if classified is None:
            logger.debug("Ignoring benign %s error", tool_name)
            return None
        category, description = classified

        key = (tool_name, category)
        if (
            visible is not None
            and key in self._records
            and self._already_visible(tool_name, category, description, visible)
        ):
            logger.debug("Skipping %s %s: already visible", tool_name, category.value)
            return None

        record = FailureRecord(
            tool_name=tool_name,
            category=category,
            description=description,
            turn=turn,
        )
        self._records.pop(key, None)
        self._records[key] = record
        while len(self._records) > self.capacity:
            evicted_key, _ = self._records.popitem(last=False)
            logger.debug("Evicted failure record %s/%s", evicted_key[0], evicted_key[1].value)

        logger.info("Recorded %s failure for %s at turn %d", category.value, tool_name, turn)
        return record

    def record_success(self, tool_name: str) -> None:
        """Reset the non-zero exit streak of *tool_name*."""
        self._nonzero_exit_streak.pop(tool_name, None)

    def recent_failures(self) -> List[FailureRecord]:
        """Snapshot of the records, oldest first."""
        return list(self._records.values())

    def clear(self) -> None:
        self._records.clear()
        self._nonzero_exit_streak.clear()

    def render_section(self, state: CompactionState) -> Optional[str]:
        """Render the recent failures prompt section.

        Before the first compaction every failure is still visible in the
        live conversation, so nothing is rendered.

        Args:
            state (CompactionState): Session compaction state.

        Returns:
            Optional[str]: The section text, or ``None`` before the first
                compaction or when there are no records.
        """
        if not state.has_compacted_at_least_once or not self._records:
            return None
        lines = [FAILURE_SECTION_HEADER, FAILURE_SECTION_INTRO, ""]
        for rec in self._records.values():
            lines.append(
                f"- [turn {rec.turn}] {rec.tool_name} ({rec.category.value}): {rec.description}"
            )
        return "\n".join(lines)
