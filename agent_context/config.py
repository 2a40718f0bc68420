# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Application configuration using pydantic-settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Compaction core settings.

    Attributes:
        APP_NAME (str): Display name used in the default system prompt.
        LOG_LEVEL (str): Log level the host process should apply.
        CONTEXT_WINDOW_TOKENS (int): Context window of the active model.
        OUTPUT_RESERVE_TOKENS (int): Tokens reserved for the model's output.
        COMPACTION_TRIGGER_THRESHOLD (float): Occupancy fraction at which
            compaction starts.
        COMPACTION_TARGET_THRESHOLD (float): Occupancy fraction compaction
            tries to reach.
        COMPACTION_PROTECTED_MESSAGES (int): Most recent messages no tier
            may touch.
        MAX_TOOL_OUTPUT_TOKENS (int): Tool outputs above this size are
            truncated to head + tail.
        TRUNCATE_KEEP_TOKENS (int): Tokens kept at each end of a truncated
            tool output.
        ACTIVE_MODEL (str): Model driving the conversation. Used for
            summarization when nothing cheaper is known.
        ACTIVE_PROVIDER (str): Provider of the active model.
        SUMMARIZATION_MODEL (str): Explicit summarization model override.
            Empty means "select automatically".
        FAILURE_TRACKER_CAPACITY (int): Maximum failure records kept.
        TOKENIZER_ENCODING (str): tiktoken encoding used for counting.
        MAX_SESSIONS (int): Maximum sessions held in memory.
        SESSION_TTL_SECONDS (int): Idle time after which a session expires.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "Agent Context"
    LOG_LEVEL: str = "INFO"

    # Budget
    CONTEXT_WINDOW_TOKENS: int = 200_000
    OUTPUT_RESERVE_TOKENS: int = 16_000
    COMPACTION_TRIGGER_THRESHOLD: float = 0.80
    COMPACTION_TARGET_THRESHOLD: float = 0.60
    COMPACTION_PROTECTED_MESSAGES: int = 12  # ~4 turns of user + assistant + tool

    # Tier 1
    MAX_TOOL_OUTPUT_TOKENS: int = 2_000
    TRUNCATE_KEEP_TOKENS: int = 250

    # Tier 3
    ACTIVE_MODEL: str = ""
    ACTIVE_PROVIDER: str = ""
    SUMMARIZATION_MODEL: str = ""

    # Failure memory
    FAILURE_TRACKER_CAPACITY: int = 10

    TOKENIZER_ENCODING: str = "cl100k_base"

    # Session
    MAX_SESSIONS: int = 1000
    SESSION_TTL_SECONDS: int = 3600  # 1 hour


settings = Settings()
