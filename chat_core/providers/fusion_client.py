"""Fusion exposed behind the provider adapter contract.

The last user message of the options is the query; the messages before it
are forwarded as history. The answering provider is reported as the response
provider, and the model as ``fusion:<model>``.
"""

from typing import List

from chat_core.domain.exceptions import ValidationError
from chat_core.domain.models import ChatOptions, ChatResponse
from chat_core.fusion.orchestrator import FusionOrchestrator

FUSION_PROVIDER = "fusion"
FUSION_MODEL = "fusion"


class FusionProvider:
    name = FUSION_PROVIDER

    def __init__(self, orchestrator: FusionOrchestrator):
        self._orchestrator = orchestrator

    def get_provider_name(self) -> str:
        return self.name

    def get_available_models(self) -> List[str]:
        return [FUSION_MODEL]

    async def chat(self, options: ChatOptions) -> ChatResponse:
        last_user = next(
            (i for i in range(len(options.messages) - 1, -1, -1) if options.messages[i].role == "user"),
            None,
        )
        if last_user is None:
            raise ValidationError(message="No user message found in chat options")
        query = options.messages[last_user].content
        history = options.messages[:last_user] + options.messages[last_user + 1:]

        result = await self._orchestrator.process(
            query,
            history=history,
            temperature=options.temperature,
            max_tokens=options.max_tokens,
            stream=options.stream,
        )
        return ChatResponse(
            content=result.answer,
            model=f"{FUSION_MODEL}:{result.model_used}",
            provider=result.provider,
            tokens_in=result.tokens_in,
            tokens_out=result.tokens_out,
            raw={
                "intent": result.intent,
                "confidence": result.confidence,
                "provider": result.provider,
                "processingTimeMs": result.processing_time_ms,
            },
        )
