"""Provider registry.

Maps the fixed provider names to live adapter instances. Only providers with a
configuration are instantiated, so "not configured" is answered by the registry
itself (ProviderUnavailableError, 503) before any upstream call is made.
"""

from typing import Dict, Iterable, List, Literal, Mapping, Optional

from chat_core.domain.exceptions import ProviderUnavailableError
from chat_core.domain.models import ChatOptions, ChatResponse
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers import create_provider
from chat_core.providers.base import ProviderClient, ProviderConfig

ProviderName = Literal["openai", "anthropic", "google"]

SUPPORTED_PROVIDERS: tuple = ("openai", "anthropic", "google")


def build_provider_configs(settings) -> Dict[str, ProviderConfig]:
    """Sparse ``{name: ProviderConfig}`` holding only providers with a key."""

    configs: Dict[str, ProviderConfig] = {}
    for name in SUPPORTED_PROVIDERS:
        api_key = getattr(settings, f"{name}_api_key", None)
        if not api_key or not str(api_key).strip():
            continue
        configs[name] = ProviderConfig(
            api_key=str(api_key).strip(),
            base_url=getattr(settings, f"{name}_base_url", None),
            timeout=getattr(settings, f"{name}_timeout", 30.0),
            max_retries=getattr(settings, f"{name}_max_retries", 3),
        )
    return configs


class ProviderRegistry:
    """Holds one adapter per configured provider."""

    def __init__(self, configs: Mapping[str, ProviderConfig]):
        self._providers: Dict[str, ProviderClient] = {}
        for name, config in configs.items():
            key = name.lower()
            if key not in SUPPORTED_PROVIDERS:
                logger.warning("registry.unknown_provider", extra={"extra": {"provider": name}})
                continue
            self._providers[key] = create_provider(key, config)
        logger.info(
            "registry.initialized",
            extra={"extra": {"providers": list(self._providers)}},
        )

    @classmethod
    def from_settings(cls, settings) -> "ProviderRegistry":
        return cls(build_provider_configs(settings))

    @classmethod
    def with_clients(cls, clients: Iterable[ProviderClient]) -> "ProviderRegistry":
        """Build a registry around already constructed adapters."""

        registry = cls({})
        for client in clients:
            registry._providers[client.get_provider_name()] = client
        return registry

    def get_provider(self, name: str) -> ProviderClient:
        provider = self._providers.get((name or "").lower())
        if provider is None:
            raise ProviderUnavailableError(
                message=f"Provider {name} is not available",
                provider=name,
            )
        return provider

    def is_available(self, name: Optional[str]) -> bool:
        return bool(name) and name.lower() in self._providers

    def get_available_providers(self) -> List[str]:
        return list(self._providers)

    def get_available_models(self, name: str) -> List[str]:
        provider = self._providers.get((name or "").lower())
        return provider.get_available_models() if provider else []

    async def chat(self, name: str, options: ChatOptions) -> ChatResponse:
        provider = self.get_provider(name)
        logger.info(
            "provider.call",
            extra={"extra": {"provider": name, "model": options.model, "stream": options.stream}},
        )
        return await provider.chat(options)
