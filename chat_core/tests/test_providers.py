import pytest

from chat_core.domain.exceptions import ProviderUnavailableError
from chat_core.domain.models import ChatMessage
from chat_core.providers import create_provider
from chat_core.providers.anthropic_client import AnthropicClient
from chat_core.providers.base import ProviderConfig, estimate_prompt_tokens, estimate_tokens
from chat_core.providers.google_client import GoogleClient
from chat_core.providers.openai_client import OpenAIClient


def test_create_provider_by_name():
    config = ProviderConfig(api_key="k", base_url="https://example.invalid/v1")
    assert isinstance(create_provider("openai", config), OpenAIClient)
    assert isinstance(create_provider("Anthropic", config), AnthropicClient)
    assert isinstance(create_provider("google", config), GoogleClient)


def test_create_provider_unknown():
    with pytest.raises(ProviderUnavailableError) as exc_info:
        create_provider("mistral", ProviderConfig(api_key="k"))
    assert exc_info.value.extra == {"provider": "mistral"}


def test_adapters_report_their_name():
    config = ProviderConfig(api_key="k")
    assert create_provider("openai", config).get_provider_name() == "openai"
    assert "gemini-1.5-pro" in create_provider("google", config).get_available_models()


def test_token_estimates():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2
    messages = [ChatMessage(role="system", content="abcd"), ChatMessage(role="user", content="abcdefgh")]
    assert estimate_prompt_tokens(messages) == 3
