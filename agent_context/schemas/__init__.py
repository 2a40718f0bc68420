# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Schemas for conversation content."""
from .content import (
    BlockType,
    ContentBlock,
    MessageRole,
    TextBlock,
    ThinkingBlock,
    ToolCallBlock,
    ToolResultBlock,
)

__all__ = [
    "BlockType",
    "ContentBlock",
    "MessageRole",
    "TextBlock",
    "ThinkingBlock",
    "ToolCallBlock",
    "ToolResultBlock",
]
