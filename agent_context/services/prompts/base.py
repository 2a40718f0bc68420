# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Prompt text, markers and placeholders used by the compaction core.

Markers written into the conversation (truncation marker, pruning
placeholder, summary tags) are also how the tiers recognise their own
output, which is what makes re-applying a tier a no-op.
"""

import re

from agent_context.config import settings

# ---------------------------------------------------------------------------
# Tier 1: truncation marker
# ---------------------------------------------------------------------------

TRUNCATION_MARKER = "...[truncated {tokens} tokens]..."
TRUNCATION_MARKER_RE = re.compile(r"\.\.\.\[truncated \d+ tokens\]\.\.\.")

# ---------------------------------------------------------------------------
# Tier 2: pruning placeholder
# ---------------------------------------------------------------------------

PRUNED_PREFIX = "[Output removed"
PRUNED_PLACEHOLDER = (
    PRUNED_PREFIX + ": {tool_name} returned {line_count} lines, starting with: {first_line}...]"
)
PRUNED_PLACEHOLDER_RE = re.compile(
    re.escape(PRUNED_PREFIX) + r": [^\n]* returned \d+ lines, starting with: [^\n]*\.\.\.\]"
)

# ---------------------------------------------------------------------------
# Tier 3: summary message
# ---------------------------------------------------------------------------

SUMMARY_OPEN_TAG = "<context-summary>"
SUMMARY_CLOSE_TAG = "</context-summary>"
SUMMARY_CONTINUATION = (
    "The above is a summary of the earlier conversation. "
    "Continue from where we left off without re-asking the user."
)
SUMMARY_MESSAGE_TEMPLATE = (
    SUMMARY_OPEN_TAG + "\n{summary}\n" + SUMMARY_CLOSE_TAG + "\n\n" + SUMMARY_CONTINUATION
)

SUMMARIZATION_SYSTEM_PROMPT = (
    "You are a context summarization assistant. Your task is to read a conversation "
    "between a user and an AI coding assistant, then produce a structured summary "
    "following the exact format specified.\n\n"
    "Do NOT continue the conversation. Do NOT respond to any questions in the "
    "conversation. ONLY output the structured summary."
)

_SUMMARY_FORMAT = """## Task State
[Current goal, progress, remaining work items]

## Files
- [Every file path read, written, or edited, full paths]

## Tool History
- [Tool name: key outcome, condensed]

## Errors
- [Problems encountered and how they were resolved, or "(none)"]

## Decisions
- **[Decision]**: [Brief rationale]

## User Guidance
- [Corrections, preferences, and constraints from the user, or "(none)"]

## Next Steps
1. [Immediate action to resume work]"""

SUMMARIZATION_PROMPT = (
    """<conversation>
{conversation}
</conversation>

The messages above are a conversation to summarize for seamless continuation. Be thorough with technical details.

Use this EXACT format:

"""
    + _SUMMARY_FORMAT
    + """

Preserve exact file paths, error messages, and code patterns.
Focus on information needed to continue without re-asking the user."""
)

SUMMARIZATION_UPDATE_PROMPT = (
    """<conversation>
{conversation}
</conversation>

<previous-summary>
{previous_summary}
</previous-summary>

The messages above are NEW conversation messages to incorporate into the existing summary provided in <previous-summary> tags.

Update the existing structured summary with new information. RULES:
- PRESERVE all existing information from the previous summary
- ADD new progress, decisions, and context from the new messages
- UPDATE "Task State" and "Next Steps" based on what was accomplished
- PRESERVE exact file paths, function names, and error messages
- If something is no longer relevant, you may remove it

Use this EXACT format:

"""
    + _SUMMARY_FORMAT
)

# ---------------------------------------------------------------------------
# Failure memory
# ---------------------------------------------------------------------------

FAILURE_SECTION_HEADER = "## Recent Failures"
FAILURE_SECTION_INTRO = (
    "These tool errors happened earlier in the session. Their original output "
    "may no longer be visible. Avoid repeating the same mistakes."
)

# ---------------------------------------------------------------------------
# Default system template
# ---------------------------------------------------------------------------

DEFAULT_SYSTEM_TEMPLATE = f"""
<identity>
You are {settings.APP_NAME}, a coding assistant that works in the user's
repository through tools.
</identity>

<context_management>
Older parts of this conversation may have been shortened to fit the context
window. Truncated tool outputs contain a "...[truncated N tokens]..." marker,
removed outputs start with "{PRUNED_PREFIX}", and earlier turns may be
replaced by a {SUMMARY_OPEN_TAG} block. Re-run a tool if you need output
that is no longer visible.
</context_management>
""".strip()
