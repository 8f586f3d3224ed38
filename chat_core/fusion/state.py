"""State definition for the fusion graph."""

from __future__ import annotations

from typing import List, Optional, TypedDict

from chat_core.domain.models import ChatMessage, ChatResponse
from chat_core.fusion.intent_classifier import IntentClassification
from chat_core.fusion.model_selector import ModelChoice


class FusionState(TypedDict, total=False):
    """State shared across the fusion nodes."""

    query: str
    history: List[ChatMessage]
    temperature: Optional[float]
    max_tokens: Optional[int]
    stream: bool
    classification: IntentClassification
    keywords: List[str]
    choice: ModelChoice
    system_prompt: str
    response: ChatResponse
