# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Compaction error taxonomy.

Nothing here is allowed to end a session. Every failure degrades to
"compact less this cycle":

  TokenEstimationError   tokenizer failure, counted as worst case instead
  SummarizationError     provider/network failure or malformed summary;
                         summarization is skipped and retried next cycle
  ProviderError          raised by model provider adapters

A tier with nothing to do reports zero modified messages and an
unclassifiable tool error is dropped by the failure tracker; neither is an
exception.
"""

from typing import Optional


class CompactionError(Exception):
    """Base class for compaction errors."""


class TokenEstimationError(CompactionError):
    """Raised when the tokenizer cannot count a text."""


class ProviderError(CompactionError):
    """Raised by a model provider when a completion fails."""


class SummarizationError(CompactionError):
    """Raised when LLM summarization cannot produce a usable summary.

    Attributes:
        model_id (Optional[str]): Model the summarization was sent to.
    """

    def __init__(self, message: str, *, model_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.model_id = model_id
