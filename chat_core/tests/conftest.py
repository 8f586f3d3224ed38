import pytest

from chat_core.config.settings import Settings
from chat_core.infrastructure.storage.memory_store import (
    InMemoryConversationStore,
    InMemoryCreditLedger,
    InMemoryMessageStore,
    InMemoryRateLimiter,
    InMemoryUsageLedger,
)


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        _env_file=None,
        openai_api_key=None,
        anthropic_api_key=None,
        google_api_key=None,
        default_provider="openai",
        fusion_auto_route=False,
        storage_root=str(tmp_path / ".storage"),
        stream_chunk_size=10,
        stream_chunk_delay_ms=0,
        stream_queue_size=4,
        rate_limit_skip=False,
    )


@pytest.fixture
def conversations():
    return InMemoryConversationStore()


@pytest.fixture
def messages():
    return InMemoryMessageStore()


@pytest.fixture
def usage_ledger():
    return InMemoryUsageLedger()


@pytest.fixture
def credit_ledger():
    return InMemoryCreditLedger(initial_credits=1000)


@pytest.fixture
def rate_limiter():
    return InMemoryRateLimiter()
