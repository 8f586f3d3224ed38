"""Intent classification for fusion routing.

Both calls are single-shot completions through the registry against a fixed
classification provider/model. The classifier never raises: any failure
degrades to the ``conversation`` intent (or to no keywords).
"""

import json
import re
from dataclasses import dataclass
from typing import Any, List, Literal, Optional

from chat_core.config.settings import settings as default_settings
from chat_core.domain.models import ChatMessage, ChatOptions
from chat_core.infrastructure.logging.logger import logger
from chat_core.prompts import load_prompt
from chat_core.providers.registry import ProviderRegistry

IntentType = Literal[
    "creative_writing",
    "code_development",
    "data_analysis",
    "research",
    "image_generation",
    "conversation",
    "summarization",
    "translation",
    "specialized_knowledge",
]

INTENTS: tuple = (
    "creative_writing",
    "code_development",
    "data_analysis",
    "research",
    "image_generation",
    "conversation",
    "summarization",
    "translation",
    "specialized_knowledge",
)

CLASSIFY_TEMPERATURE = 0.1
CLASSIFY_MAX_TOKENS = 150
KEYWORDS_MAX_TOKENS = 50

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)\s*```")
_FENCED_ANY = re.compile(r"```\s*([\s\S]*?)\s*```")


@dataclass
class IntentClassification:
    intent: IntentType
    confidence: float
    sub_category: Optional[str] = None

    @classmethod
    def fallback(cls) -> "IntentClassification":
        return cls(intent="conversation", confidence=0.5)


def parse_classification(content: str) -> IntentClassification:
    """Parse the classifier output.

    Strict JSON first, then the first fenced code block. Anything that does not
    name a known intent yields the fallback classification.
    """

    data = _load_json(content)
    if not isinstance(data, dict) or data.get("intent") not in INTENTS:
        return IntentClassification.fallback()
    try:
        confidence = float(data.get("confidence", 0.5))
    except (TypeError, ValueError):
        confidence = 0.5
    confidence = min(1.0, max(0.0, confidence))
    sub_category = data.get("subCategory") or data.get("sub_category")
    return IntentClassification(
        intent=data["intent"],
        confidence=confidence,
        sub_category=str(sub_category) if sub_category else None,
    )


def _load_json(content: str) -> Any:
    try:
        return json.loads(content)
    except (TypeError, json.JSONDecodeError):
        pass
    match = _FENCED_JSON.search(content or "") or _FENCED_ANY.search(content or "")
    if not match:
        return None
    try:
        return json.loads(match.group(1))
    except json.JSONDecodeError:
        return None


def parse_keywords(content: str) -> List[str]:
    return [k.strip() for k in (content or "").split(",") if k.strip()]


class IntentClassifier:
    def __init__(
        self,
        registry: ProviderRegistry,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        settings=default_settings,
    ):
        self._registry = registry
        self._provider = provider or settings.classification_provider
        self._model = model or settings.classification_model

    async def classify_intent(self, query: str) -> IntentClassification:
        try:
            content = await self._complete("intent_classifier_system", query, CLASSIFY_MAX_TOKENS)
        except Exception as exc:
            logger.warning(
                "fusion.classify_failed",
                extra={"extra": {"provider": self._provider, "error": str(exc)}},
            )
            return IntentClassification.fallback()
        result = parse_classification(content)
        logger.info(
            "fusion.classified",
            extra={"extra": {"intent": result.intent, "confidence": result.confidence}},
        )
        return result

    async def extract_keywords(self, query: str) -> List[str]:
        try:
            content = await self._complete("keyword_extractor_system", query, KEYWORDS_MAX_TOKENS)
        except Exception as exc:
            logger.warning(
                "fusion.keywords_failed",
                extra={"extra": {"provider": self._provider, "error": str(exc)}},
            )
            return []
        return parse_keywords(content)

    async def _complete(self, prompt_name: str, query: str, max_tokens: int) -> str:
        options = ChatOptions(
            model=self._model,
            messages=[
                ChatMessage(role="system", content=load_prompt(prompt_name)),
                ChatMessage(role="user", content=query),
            ],
            temperature=CLASSIFY_TEMPERATURE,
            max_tokens=max_tokens,
        )
        response = await self._registry.chat(self._provider, options)
        return response.content
