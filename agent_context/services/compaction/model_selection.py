# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Summarization model selection.

Priority:
  1. Explicit configuration
  2. Cheapest model registered for the active provider (newest among
     equally cheap ones)
  3. The model currently driving the conversation

Pure functions of configuration plus provider capability metadata.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from agent_context.models import ModelInfo

logger = logging.getLogger(__name__)


def cheapest_model(models: Sequence[ModelInfo], provider: str) -> Optional[ModelInfo]:
    """Cheapest model of *provider* by input price.

    Models with unknown pricing are ignored. Ties prefer the most
    recently released model, then the lexicographically greatest id.

    Args:
        models (Sequence[ModelInfo]): Registered models.
        provider (str): Active provider name.

    Returns:
        Optional[ModelInfo]: The selected model, or ``None`` if no priced
            model exists for the provider.
    """
    candidates = [m for m in models if m.provider == provider and m.input_price is not None]
    if not candidates:
        return None
    cheapest_price = min(m.input_price for m in candidates)
    cheapest = [m for m in candidates if m.input_price == cheapest_price]
    return max(cheapest, key=lambda m: (m.released or "", m.id))


def select_summarization_model(
    configured: Optional[str],
    models: Sequence[ModelInfo],
    active_provider: str,
    active_model: str,
) -> str:
    """Pick the model used for summarization.

    Args:
        configured (Optional[str]): Explicit user override.
        models (Sequence[ModelInfo]): Models registered with providers.
        active_provider (str): Provider of the active model.
        active_model (str): Model currently driving the conversation.

    Returns:
        str: Model identifier to summarize with.
    """
    if configured:
        return configured
    model = cheapest_model(models, active_provider)
    if model is not None:
        return model.id
    return active_model


@dataclass
class ModelSelector:
    """Bound inputs for :func:`select_summarization_model`.

    Attributes:
        active_model (str): Model currently driving the conversation.
        active_provider (str): Provider of the active model.
        configured (Optional[str]): Explicit summarization model override.
        models (List[ModelInfo]): Provider capability metadata.
    """

    active_model: str
    active_provider: str = ""
    configured: Optional[str] = None
    models: List[ModelInfo] = field(default_factory=list)

    def select(self) -> str:
        model_id = select_summarization_model(
            self.configured, self.models, self.active_provider, self.active_model
        )
        logger.debug("Selected summarization model: %s", model_id)
        return model_id
