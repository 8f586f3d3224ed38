"""OpenAI provider adapter.

Translates ChatOptions into a Chat Completions request and normalizes the
response. With ``stream=True`` the SSE body is consumed line by line and
assembled into one ChatResponse; usage is requested through
``stream_options.include_usage`` and estimated when the upstream omits it.
"""

import json
from typing import Any, Dict, List

from chat_core.domain.exceptions import ProviderError
from chat_core.domain.models import ChatMessage, ChatOptions, ChatResponse
from chat_core.providers.base import (
    DEFAULT_TEMPERATURE,
    HttpProviderClient,
    estimate_prompt_tokens,
    estimate_tokens,
)


class OpenAIClient(HttpProviderClient):
    name = "openai"
    label = "OpenAI"
    default_base_url = "https://api.openai.com/v1"
    models = [
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4-turbo",
        "gpt-4",
        "gpt-3.5-turbo",
        "o1-preview",
        "o1-mini",
    ]

    async def _chat(self, options: ChatOptions) -> ChatResponse:
        payload = self._build_payload(options)
        headers = {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json",
        }
        url = f"{self._base_url}/chat/completions"
        async with self._client() as client:
            if options.stream:
                async with client.stream("POST", url, json=payload, headers=headers) as resp:
                    if resp.status_code >= 400:
                        await resp.aread()
                        self._raise_for_status(resp)
                    return await self._collect_stream(resp, options)
            resp = await client.post(url, json=payload, headers=headers)
        self._raise_for_status(resp)
        return self._parse_response(resp.json(), options)

    def _build_payload(self, options: ChatOptions) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": options.model,
            "messages": [self._message_to_payload(m) for m in options.messages],
            "temperature": options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE,
            "stream": bool(options.stream),
        }
        if options.max_tokens is not None:
            payload["max_tokens"] = options.max_tokens
        if options.stream:
            payload["stream_options"] = {"include_usage": True}
        return payload

    @staticmethod
    def _message_to_payload(message: ChatMessage) -> Dict[str, str]:
        return {"role": message.role, "content": message.content}

    def _parse_response(self, data: Dict[str, Any], options: ChatOptions) -> ChatResponse:
        choices = data.get("choices") or []
        if not choices:
            raise ProviderError(message="OpenAI returned no choices", provider=self.name)
        message = choices[0].get("message") or {}
        content = message.get("content") or ""
        usage = data.get("usage") or {}
        return ChatResponse(
            content=content,
            model=data.get("model") or options.model,
            provider=self.name,
            tokens_in=usage.get("prompt_tokens", estimate_prompt_tokens(options.messages)),
            tokens_out=usage.get("completion_tokens", estimate_tokens(content)),
            raw=data,
        )

    async def _collect_stream(self, resp: Any, options: ChatOptions) -> ChatResponse:
        parts: List[str] = []
        model = options.model
        usage: Dict[str, Any] = {}
        chunks = 0
        async for line in resp.aiter_lines():
            if not line:
                continue
            data_str = line[5:].strip() if line.startswith("data:") else line.strip()
            if not data_str or data_str == "[DONE]":
                continue
            try:
                event = json.loads(data_str)
            except json.JSONDecodeError:
                continue
            chunks += 1
            model = event.get("model") or model
            if event.get("usage"):
                usage = event["usage"]
            for choice in event.get("choices") or []:
                delta = choice.get("delta") or {}
                if delta.get("content"):
                    parts.append(delta["content"])
        content = "".join(parts)
        return ChatResponse(
            content=content,
            model=model,
            provider=self.name,
            tokens_in=usage.get("prompt_tokens", estimate_prompt_tokens(options.messages)),
            tokens_out=usage.get("completion_tokens", estimate_tokens(content)),
            raw={"streamed": True, "chunks": chunks, "usage": usage or None},
        )
