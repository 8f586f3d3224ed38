"""Fusion orchestrator.

Runs one query through the fusion graph:

    classify -> keywords -> select -> prompt -> invoke

The nodes are strictly sequential; each one only adds its own key to the
state. Errors from ``select`` (NoAvailableModelsError) and ``invoke`` (any
provider error) propagate to the caller unchanged.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from chat_core.domain.models import ChatMessage, ChatOptions
from chat_core.fusion.intent_classifier import IntentClassifier
from chat_core.fusion.model_selector import ModelSelector, UserPreferences
from chat_core.fusion.prompts import build_system_prompt
from chat_core.fusion.state import FusionState
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.base import DEFAULT_TEMPERATURE
from chat_core.providers.registry import ProviderRegistry


@dataclass
class FusionResult:
    answer: str
    model_used: str
    provider: str
    intent: str
    confidence: float
    processing_time_ms: int
    tokens_in: int
    tokens_out: int


def build_fusion_graph(
    registry: ProviderRegistry,
    classifier: IntentClassifier,
    selector: ModelSelector,
    preferences: Optional[UserPreferences] = None,
) -> CompiledStateGraph:
    async def classify_node(state: FusionState) -> Dict:
        return {"classification": await classifier.classify_intent(state["query"])}

    async def keywords_node(state: FusionState) -> Dict:
        return {"keywords": await classifier.extract_keywords(state["query"])}

    def select_node(state: FusionState) -> Dict:
        intent = state["classification"].intent
        return {"choice": selector.select_best_model(intent, state["query"], preferences)}

    def prompt_node(state: FusionState) -> Dict:
        classification = state["classification"]
        prompt = build_system_prompt(
            classification.intent,
            classification.sub_category,
            state.get("keywords") or [],
            preferences.expertise_level if preferences else None,
        )
        return {"system_prompt": prompt}

    async def invoke_node(state: FusionState) -> Dict:
        choice = state["choice"]
        messages: List[ChatMessage] = [ChatMessage(role="system", content=state["system_prompt"])]
        messages.extend(state.get("history") or [])
        messages.append(ChatMessage(role="user", content=state["query"]))
        temperature = state.get("temperature")
        options = ChatOptions(
            model=choice.model,
            messages=messages,
            temperature=temperature if temperature is not None else DEFAULT_TEMPERATURE,
            max_tokens=state.get("max_tokens"),
            stream=bool(state.get("stream")),
        )
        return {"response": await registry.chat(choice.provider, options)}

    graph = StateGraph(FusionState)
    graph.add_node("classify", classify_node)
    graph.add_node("keywords", keywords_node)
    graph.add_node("select", select_node)
    graph.add_node("prompt", prompt_node)
    graph.add_node("invoke", invoke_node)
    graph.set_entry_point("classify")
    graph.add_edge("classify", "keywords")
    graph.add_edge("keywords", "select")
    graph.add_edge("select", "prompt")
    graph.add_edge("prompt", "invoke")
    graph.add_edge("invoke", END)
    return graph.compile()


class FusionOrchestrator:
    def __init__(
        self,
        registry: ProviderRegistry,
        classifier: Optional[IntentClassifier] = None,
        selector: Optional[ModelSelector] = None,
        preferences: Optional[UserPreferences] = None,
    ):
        self._registry = registry
        self._classifier = classifier or IntentClassifier(registry)
        self._selector = selector or ModelSelector(registry)
        self._preferences = preferences
        self._graph = build_fusion_graph(registry, self._classifier, self._selector, preferences)

    async def process(
        self,
        query: str,
        history: Optional[List[ChatMessage]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        stream: bool = False,
    ) -> FusionResult:
        started = time.monotonic()
        state: FusionState = {
            "query": query,
            "history": list(history or []),
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": stream,
        }
        result = await self._graph.ainvoke(state)
        response = result["response"]
        classification = result["classification"]
        choice = result["choice"]
        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "fusion.processed",
            extra={
                "extra": {
                    "intent": classification.intent,
                    "model": choice.model,
                    "provider": choice.provider,
                    "processing_time_ms": elapsed_ms,
                }
            },
        )
        return FusionResult(
            answer=response.content,
            model_used=choice.model,
            provider=choice.provider,
            intent=classification.intent,
            confidence=classification.confidence,
            processing_time_ms=elapsed_ms,
            tokens_in=response.tokens_in,
            tokens_out=response.tokens_out,
        )
