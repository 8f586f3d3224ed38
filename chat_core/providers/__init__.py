"""LLM provider integration layer.

- base: the adapter protocol and the shared httpx plumbing.
- openai_client / anthropic_client / google_client: one adapter per upstream.
- registry: the name -> adapter map used by the chat pipeline.
- fusion_client: the intent-routing "fusion" provider facade.
"""

from chat_core.domain.exceptions import ProviderUnavailableError
from chat_core.providers.anthropic_client import AnthropicClient
from chat_core.providers.base import HttpProviderClient, ProviderConfig
from chat_core.providers.google_client import GoogleClient
from chat_core.providers.openai_client import OpenAIClient

_CLIENTS = {
    "openai": OpenAIClient,
    "anthropic": AnthropicClient,
    "google": GoogleClient,
}


def create_provider(name: str, config: ProviderConfig) -> HttpProviderClient:
    """Instantiate the adapter registered under ``name``."""

    client_cls = _CLIENTS.get(name.lower())
    if client_cls is None:
        raise ProviderUnavailableError(message=f"Unknown provider: {name!r}", provider=name)
    return client_cls(config)
