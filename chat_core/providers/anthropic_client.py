"""Anthropic provider adapter (Messages API).

System messages are lifted into the top-level ``system`` field and
``max_tokens`` is always sent, since the Messages API requires it.
"""

from typing import Any, Dict

from chat_core.domain.models import ChatOptions, ChatResponse
from chat_core.providers.base import (
    DEFAULT_TEMPERATURE,
    HttpProviderClient,
    estimate_prompt_tokens,
    estimate_tokens,
)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096


class AnthropicClient(HttpProviderClient):
    name = "anthropic"
    label = "Anthropic"
    default_base_url = "https://api.anthropic.com/v1"
    models = [
        "claude-3-5-sonnet-20241022",
        "claude-3-5-haiku-20241022",
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
    ]

    async def _chat(self, options: ChatOptions) -> ChatResponse:
        payload = self._build_payload(options)
        async with self._client() as client:
            resp = await client.post(
                f"{self._base_url}/messages",
                json=payload,
                headers={
                    "x-api-key": self._config.api_key,
                    "anthropic-version": ANTHROPIC_VERSION,
                    "Content-Type": "application/json",
                },
            )
        self._raise_for_status(resp)
        return self._parse_response(resp.json(), options)

    def _build_payload(self, options: ChatOptions) -> Dict[str, Any]:
        system = "\n\n".join(m.content for m in options.messages if m.role == "system")
        messages = [
            {"role": "assistant" if m.role == "assistant" else "user", "content": m.content}
            for m in options.messages
            if m.role != "system"
        ]
        payload: Dict[str, Any] = {
            "model": options.model,
            "messages": messages,
            "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
            "temperature": options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE,
        }
        if system:
            payload["system"] = system
        return payload

    def _parse_response(self, data: Dict[str, Any], options: ChatOptions) -> ChatResponse:
        blocks = data.get("content") or []
        content = "".join(
            b.get("text", "") for b in blocks if isinstance(b, dict) and b.get("type") == "text"
        )
        usage = data.get("usage") or {}
        return ChatResponse(
            content=content,
            model=data.get("model") or options.model,
            provider=self.name,
            tokens_in=usage.get("input_tokens", estimate_prompt_tokens(options.messages)),
            tokens_out=usage.get("output_tokens", estimate_tokens(content)),
            raw=data,
        )
