"""Model selection by intent.

The static tables below rank models per intent; selection then filters them by
provider availability and applies the user's preferences.
"""

from dataclasses import dataclass
from typing import Dict, List, Literal, Optional

from chat_core.domain.exceptions import NoAvailableModelsError
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.registry import ProviderRegistry


@dataclass(frozen=True)
class ModelInfo:
    id: str
    provider: str
    capabilities: tuple
    strengths: tuple
    context_size: int
    cost_per_token: float


@dataclass(frozen=True)
class ModelChoice:
    model: str
    provider: str


@dataclass
class UserPreferences:
    preferred_provider: Optional[str] = None
    cost_sensitive: bool = False
    expertise_level: Optional[Literal["beginner", "intermediate", "expert"]] = None


MODEL_CATALOG: Dict[str, ModelInfo] = {
    "gpt-4-turbo": ModelInfo(
        id="gpt-4-turbo",
        provider="openai",
        capabilities=("text", "code", "reasoning", "knowledge"),
        strengths=("reasoning", "freshness", "precision"),
        context_size=128000,
        cost_per_token=0.00001,
    ),
    "gpt-3.5-turbo": ModelInfo(
        id="gpt-3.5-turbo",
        provider="openai",
        capabilities=("text", "code", "conversation"),
        strengths=("speed", "value"),
        context_size=16000,
        cost_per_token=0.000001,
    ),
    "claude-3-opus-20240229": ModelInfo(
        id="claude-3-opus-20240229",
        provider="anthropic",
        capabilities=("text", "code", "reasoning", "knowledge"),
        strengths=("nuance", "comprehension", "safety"),
        context_size=200000,
        cost_per_token=0.00001,
    ),
    "claude-3-haiku-20240307": ModelInfo(
        id="claude-3-haiku-20240307",
        provider="anthropic",
        capabilities=("text", "conversation"),
        strengths=("speed", "efficiency"),
        context_size=200000,
        cost_per_token=0.000002,
    ),
    "gemini-1.5-pro": ModelInfo(
        id="gemini-1.5-pro",
        provider="google",
        capabilities=("text", "code", "reasoning"),
        strengths=("multimodality", "knowledge"),
        context_size=32000,
        cost_per_token=0.000005,
    ),
}

_DEEP = ["gpt-4-turbo", "claude-3-opus-20240229", "gemini-1.5-pro"]
_LIGHT = ["gpt-4-turbo", "claude-3-haiku-20240307", "gemini-1.5-pro"]

INTENT_MODEL_MAPPING: Dict[str, List[str]] = {
    "creative_writing": _DEEP,
    "code_development": _DEEP,
    "data_analysis": _DEEP,
    "research": _DEEP,
    "image_generation": _DEEP,
    "conversation": _LIGHT,
    "summarization": _LIGHT,
    "translation": ["gpt-4-turbo", "gemini-1.5-pro", "claude-3-opus-20240229"],
    "specialized_knowledge": _DEEP,
}


class ModelSelector:
    def __init__(self, registry: ProviderRegistry):
        self._registry = registry

    def select_best_model(
        self,
        intent: str,
        query: str,
        preferences: Optional[UserPreferences] = None,
    ) -> ModelChoice:
        """Pick a model for ``intent``.

        Order of precedence: preferred provider, then lowest cost when the user
        is cost sensitive, then the table's ranking. With no ranked model left
        the first model of the first available provider is used.
        """

        ranked = INTENT_MODEL_MAPPING.get(intent) or ["gpt-4-turbo"]
        candidates = [
            MODEL_CATALOG[m]
            for m in ranked
            if m in MODEL_CATALOG and self._registry.is_available(MODEL_CATALOG[m].provider)
        ]

        if not candidates:
            return self._fallback(intent)

        choice = None
        if preferences and preferences.preferred_provider:
            preferred = preferences.preferred_provider.lower()
            choice = next((m for m in candidates if m.provider == preferred), None)
        if choice is None and preferences and preferences.cost_sensitive:
            # sorted() is stable, so ties keep the table's ranking
            choice = sorted(candidates, key=lambda m: m.cost_per_token)[0]
        if choice is None:
            choice = candidates[0]

        logger.info(
            "fusion.model_selected",
            extra={"extra": {"intent": intent, "model": choice.id, "provider": choice.provider}},
        )
        return ModelChoice(model=choice.id, provider=choice.provider)

    def _fallback(self, intent: str) -> ModelChoice:
        providers = self._registry.get_available_providers()
        if providers:
            models = self._registry.get_available_models(providers[0])
            if models:
                logger.info(
                    "fusion.model_fallback",
                    extra={"extra": {"intent": intent, "model": models[0], "provider": providers[0]}},
                )
                return ModelChoice(model=models[0], provider=providers[0])
        raise NoAvailableModelsError(message="No available models found", intent=intent)
