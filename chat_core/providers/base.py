"""Provider adapter contract.

The chat pipeline never talks to a vendor HTTP API directly; it depends on
this protocol instead:

- every upstream service gets one ProviderClient (OpenAIClient, ...);
- the client turns ChatOptions into the vendor request and normalizes the
  response into a ChatResponse, and any failure into a BusinessError.

HttpProviderClient holds the plumbing the concrete clients share: the
per-call deadline, the httpx client factory and the error normalization.
"""

import asyncio
import math
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Protocol

import httpx

from chat_core.domain.exceptions import (
    BusinessError,
    ProviderError,
    ProviderNetworkError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)
from chat_core.domain.models import ChatMessage, ChatOptions, ChatResponse

DEFAULT_TIMEOUT = 30.0
DEFAULT_TEMPERATURE = 0.7


@dataclass
class ProviderConfig:
    """Credentials and transport settings of one upstream provider."""

    api_key: str
    base_url: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = 3


class ProviderClient(Protocol):
    """LLM provider client protocol."""

    name: str

    async def chat(self, options: ChatOptions) -> ChatResponse:
        ...

    def get_provider_name(self) -> str:
        ...

    def get_available_models(self) -> List[str]:
        ...


def estimate_tokens(text: str) -> int:
    """Character-length heuristic (~4 chars per token), used when usage is missing."""

    return math.ceil(len(text or "") / 4)


def estimate_prompt_tokens(messages: Iterable[ChatMessage]) -> int:
    return math.ceil(sum(len(m.content or "") for m in messages) / 4)


class HttpProviderClient:
    """Base class of the httpx based adapters.

    Subclasses implement ``_chat``; ``chat`` wraps it in the deadline and makes
    sure only BusinessError subclasses leave the adapter.
    """

    name = ""
    label = ""
    default_base_url = ""
    models: List[str] = []

    def __init__(self, config: ProviderConfig):
        self._config = config
        self._base_url = (config.base_url or self.default_base_url).rstrip("/")

    def get_provider_name(self) -> str:
        return self.name

    def get_available_models(self) -> List[str]:
        return list(self.models)

    async def chat(self, options: ChatOptions) -> ChatResponse:
        try:
            return await asyncio.wait_for(self._chat(options), timeout=self._config.timeout)
        except BusinessError:
            raise
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise ProviderTimeoutError(
                message="AI provider request timeout",
                provider=self.name,
                timeout=self._config.timeout,
            )
        except httpx.TransportError as e:
            raise ProviderNetworkError(message=f"{self.label} network error: {e}", provider=self.name)
        except Exception as e:
            raise ProviderError(message=f"{self.label} provider error: {e}", provider=self.name)

    async def _chat(self, options: ChatOptions) -> ChatResponse:
        raise NotImplementedError

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._config.timeout,
            transport=httpx.AsyncHTTPTransport(retries=self._config.max_retries),
            trust_env=False,
        )

    def _raise_for_status(self, resp: Any) -> None:
        """Turn a non-2xx upstream response into a ProviderError.

        The error keeps the upstream status as its own http_status and carries
        the parsed error body when there is one.
        """

        status = resp.status_code
        if status < 400:
            return
        body = self._error_body(resp)
        message = None
        if isinstance(body, dict):
            err = body.get("error")
            if isinstance(err, dict):
                message = err.get("message")
            elif isinstance(err, str):
                message = err
        if not message:
            reason = getattr(resp, "reason_phrase", "") or str(status)
            message = f"{self.label} API error: {reason}"
        error_cls = ProviderRateLimitError if status == 429 else ProviderError
        raise error_cls(
            message=message,
            http_status=status,
            provider=self.name,
            status=status,
            error=body,
        )

    @staticmethod
    def _error_body(resp: Any) -> Any:
        try:
            return resp.json()
        except Exception:
            text = getattr(resp, "text", "")
            return {"raw": text} if text else {}
