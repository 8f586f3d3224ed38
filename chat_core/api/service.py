"""Service wiring.

Builds the registry, the chat services and their collaborators from
settings. Everything is injected explicitly; tests build a ChatContainer by
hand with in-memory collaborators.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from chat_core.chat.service import ChatService
from chat_core.chat.stream_service import ChatStreamService
from chat_core.config.settings import settings as default_settings
from chat_core.domain.conversation import ConversationStore, MessageStore
from chat_core.domain.usage import CreditLedger, RateLimiter, UsageLedger
from chat_core.fusion.orchestrator import FusionOrchestrator
from chat_core.fusion.model_selector import UserPreferences
from chat_core.infrastructure.billing import BillingProcessor, BillingWorker
from chat_core.infrastructure.logging.logger import logger
from chat_core.infrastructure.rate_limit import RedisRateLimiter
from chat_core.infrastructure.storage.json_store import JsonConversationStore, JsonMessageStore
from chat_core.infrastructure.storage.memory_store import (
    InMemoryCreditLedger,
    InMemoryRateLimiter,
    InMemoryUsageLedger,
)
from chat_core.providers.fusion_client import FusionProvider
from chat_core.providers.registry import ProviderRegistry


@dataclass
class ChatContainer:
    registry: ProviderRegistry
    chat_service: ChatService
    stream_service: ChatStreamService
    rate_limiter: RateLimiter
    fusion: Optional[FusionProvider] = None
    settings: Any = field(default_factory=lambda: default_settings)
    credit_ledger: Optional[CreditLedger] = None
    billing_worker: Optional[BillingWorker] = None

    async def start(self) -> None:
        if self.billing_worker is not None:
            self.billing_worker.start()

    async def close(self) -> None:
        if self.billing_worker is not None:
            await self.billing_worker.stop()
        close = getattr(self.rate_limiter, "close", None)
        if close is not None:
            await close()


def build_container(
    registry: ProviderRegistry,
    conversations: ConversationStore,
    messages: MessageStore,
    usage_ledger: UsageLedger,
    credit_ledger: CreditLedger,
    rate_limiter: RateLimiter,
    fusion: Optional[FusionProvider] = None,
    settings=default_settings,
    billing_worker: Optional[BillingWorker] = None,
) -> ChatContainer:
    deps = dict(
        registry=registry,
        conversations=conversations,
        messages=messages,
        usage_ledger=usage_ledger,
        credit_ledger=credit_ledger,
        fusion=fusion,
        settings=settings,
    )
    return ChatContainer(
        registry=registry,
        chat_service=ChatService(**deps),
        stream_service=ChatStreamService(**deps),
        rate_limiter=rate_limiter,
        fusion=fusion,
        settings=settings,
        credit_ledger=credit_ledger,
        billing_worker=billing_worker,
    )


def build_default_container(settings=default_settings, registry: Optional[ProviderRegistry] = None) -> ChatContainer:
    """Container for a single-process deployment.

    JSON-file conversation storage, in-process ledgers, and the Redis rate
    limiter when ``redis_url`` is set. Recorded usage events are queued to a
    BillingWorker that debits the credit ledger.
    """

    registry = registry or ProviderRegistry.from_settings(settings)
    fusion = None
    if registry.get_available_providers():
        fusion = FusionProvider(FusionOrchestrator(registry, preferences=UserPreferences()))
    rate_limiter = (
        RedisRateLimiter.from_url(settings.redis_url) if settings.redis_url else InMemoryRateLimiter()
    )
    credit_ledger = InMemoryCreditLedger(initial_credits=settings.initial_credits)
    billing_worker = BillingWorker(
        BillingProcessor(credit_ledger),
        max_attempts=settings.billing_max_attempts,
        backoff=settings.billing_backoff_seconds,
    )
    logger.info(
        "api.container.built",
        extra={
            "extra": {
                "providers": registry.get_available_providers(),
                "fusion": fusion is not None,
                "rate_limiter": type(rate_limiter).__name__,
            }
        },
    )
    return build_container(
        registry=registry,
        conversations=JsonConversationStore(root=settings.storage_root),
        messages=JsonMessageStore(root=settings.storage_root),
        usage_ledger=InMemoryUsageLedger(on_record=billing_worker.submit),
        credit_ledger=credit_ledger,
        rate_limiter=rate_limiter,
        fusion=fusion,
        settings=settings,
        billing_worker=billing_worker,
    )
