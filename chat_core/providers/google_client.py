"""Google Generative Language (Gemini) adapter.

Role mapping: ``assistant`` becomes ``model``, system messages are sent as
``systemInstruction``. Token usage comes from ``usageMetadata`` and falls back
to the character-length estimate.
"""

from typing import Any, Dict, List

from chat_core.domain.exceptions import ProviderError
from chat_core.domain.models import ChatOptions, ChatResponse
from chat_core.providers.base import (
    DEFAULT_TEMPERATURE,
    HttpProviderClient,
    estimate_prompt_tokens,
    estimate_tokens,
)


class GoogleClient(HttpProviderClient):
    name = "google"
    label = "Google AI"
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"
    models = [
        "gemini-2.0-flash-exp",
        "gemini-1.5-pro",
        "gemini-1.5-flash",
        "gemini-pro",
    ]

    async def _chat(self, options: ChatOptions) -> ChatResponse:
        model = self._model_name(options.model)
        payload = self._build_payload(options)
        async with self._client() as client:
            resp = await client.post(
                f"{self._base_url}/models/{model}:generateContent",
                params={"key": self._config.api_key},
                json=payload,
                headers={"Content-Type": "application/json"},
            )
        self._raise_for_status(resp)
        return self._parse_response(resp.json(), options)

    @staticmethod
    def _model_name(model: str) -> str:
        return model[len("models/"):] if model.startswith("models/") else model

    def _build_payload(self, options: ChatOptions) -> Dict[str, Any]:
        system = "\n\n".join(m.content for m in options.messages if m.role == "system")
        contents: List[Dict[str, Any]] = [
            {
                "role": "model" if m.role == "assistant" else "user",
                "parts": [{"text": m.content}],
            }
            for m in options.messages
            if m.role != "system"
        ]
        generation: Dict[str, Any] = {
            "temperature": options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE,
        }
        if options.max_tokens is not None:
            generation["maxOutputTokens"] = options.max_tokens
        payload: Dict[str, Any] = {"contents": contents, "generationConfig": generation}
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        return payload

    def _parse_response(self, data: Dict[str, Any], options: ChatOptions) -> ChatResponse:
        candidates = data.get("candidates") or []
        if not candidates:
            raise ProviderError(
                message="Google AI returned no candidates",
                provider=self.name,
                feedback=data.get("promptFeedback"),
            )
        parts = (candidates[0].get("content") or {}).get("parts") or []
        content = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        usage = data.get("usageMetadata") or {}
        return ChatResponse(
            content=content,
            model=self._model_name(options.model),
            provider=self.name,
            tokens_in=usage.get("promptTokenCount", estimate_prompt_tokens(options.messages)),
            tokens_out=usage.get("candidatesTokenCount", estimate_tokens(content)),
            raw=data,
        )
