import json

import pytest
from fastapi.testclient import TestClient

from chat_core.api.app import create_app
from chat_core.api.service import ChatContainer, build_container, build_default_container
from chat_core.config.settings import settings as default_settings
from chat_core.domain.models import ChatTurnRequest
from chat_core.providers.registry import ProviderRegistry
from chat_core.tests.fakes import FakeProvider

USER = {"X-User-Id": "u1"}


@pytest.fixture
def make_client(test_settings, conversations, messages, usage_ledger, credit_ledger, rate_limiter):
    def _make(*providers, **overrides):
        settings = test_settings.model_copy(update=overrides) if overrides else test_settings
        registry = ProviderRegistry.with_clients(list(providers) or [FakeProvider("openai")])
        container = build_container(
            registry=registry,
            conversations=conversations,
            messages=messages,
            usage_ledger=usage_ledger,
            credit_ledger=credit_ledger,
            rate_limiter=rate_limiter,
            settings=settings,
        )
        return TestClient(create_app(container, settings=settings))

    return _make


def _events(text):
    frames = [f for f in text.split("\n\n") if f]
    assert all(f.startswith("data: ") for f in frames)
    return [f[len("data: "):] for f in frames]


def test_chat_json(make_client, messages):
    client = make_client()

    resp = client.post("/api/v1/chat", json={"content": "Write a haiku"}, headers=USER)

    assert resp.status_code == 200
    body = resp.json()
    assert body["provider"] == "openai"
    assert body["model"] == "gpt-4o"
    assert (body["tokensIn"], body["tokensOut"]) == (12, 18)
    assert body["requestId"].startswith("req_")
    assert body["conversationId"] and body["messageId"]
    assert resp.headers["X-RateLimit-Limit"] == "30"
    assert resp.headers["X-RateLimit-Remaining"] == "29"


def test_chat_stream_flag_returns_sse(make_client):
    client = make_client()

    resp = client.post("/api/v1/chat", json={"content": "Write a haiku", "stream": True}, headers=USER)

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.headers["cache-control"] == "no-cache"
    events = _events(resp.text)
    assert events[-1] == "[DONE]"
    payloads = [json.loads(e) for e in events[:-1]]
    assert payloads[-1]["type"] == "done"
    text = "".join(p["data"] for p in payloads if p["type"] == "content")
    assert text == FakeProvider().content


def test_chat_stream_endpoint_error_frame(make_client):
    client = make_client()

    resp = client.post("/api/v1/chat/stream", json={"content": "hi", "provider": "anthropic"}, headers=USER)

    assert resp.status_code == 200
    events = _events(resp.text)
    assert events[-1] == "[DONE]"
    assert json.loads(events[0]) == {
        "type": "error",
        "data": {"error": "Provider anthropic is not available", "code": "AI_PROVIDER_UNAVAILABLE"},
    }


def test_missing_identity_is_unauthorized(make_client):
    resp = make_client().post("/api/v1/chat", json={"content": "hi"})
    assert resp.status_code == 401
    assert resp.json() == {"error": {"code": "UNAUTHORIZED", "message": "Authentication required"}}


def test_rate_limited(make_client):
    client = make_client(rate_limit_max_requests=1)

    assert client.post("/api/v1/chat", json={"content": "hi"}, headers=USER).status_code == 200
    resp = client.post("/api/v1/chat", json={"content": "hi"}, headers=USER)

    assert resp.status_code == 429
    assert resp.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
    assert resp.headers["X-RateLimit-Limit"] == "1"
    assert resp.headers["X-RateLimit-Remaining"] == "0"
    assert "Retry-After" in resp.headers


def test_rate_limit_skip(make_client):
    client = make_client(rate_limit_max_requests=1, rate_limit_skip=True)
    for _ in range(3):
        assert client.post("/api/v1/chat", json={"content": "hi"}, headers=USER).status_code == 200


def test_invalid_body_is_validation_error(make_client):
    resp = make_client().post("/api/v1/chat", json={"content": "   "}, headers=USER)
    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["context"]["errors"][0]["loc"] == ["body", "content"]


def test_unavailable_provider_body(make_client, conversations):
    resp = make_client().post("/api/v1/chat", json={"content": "hi", "provider": "anthropic"}, headers=USER)
    assert resp.status_code == 503
    assert resp.json() == {
        "error": {
            "code": "AI_PROVIDER_UNAVAILABLE",
            "message": "Provider anthropic is not available",
            "context": {"provider": "anthropic"},
        }
    }


def test_insufficient_credits_body(make_client, credit_ledger):
    credit_ledger._balances["u1"] = 5
    resp = make_client().post("/api/v1/chat", json={"content": "hi"}, headers=USER)
    assert resp.status_code == 402
    assert resp.json()["error"]["context"] == {"required": 100, "available": 5}


def test_list_providers(make_client):
    client = make_client(FakeProvider("openai"), FakeProvider("google", models=["gemini-1.5-pro"]))

    resp = client.get("/api/v1/providers")

    assert resp.status_code == 200
    assert resp.json() == {
        "providers": [
            {"name": "openai", "models": ["gpt-4o", "gpt-4o-mini"]},
            {"name": "google", "models": ["gemini-1.5-pro"]},
        ],
        "defaultProvider": "openai",
    }


def test_container_settings_default_to_module_settings():
    registry = ProviderRegistry.with_clients([FakeProvider("openai")])
    container = ChatContainer(
        registry=registry,
        chat_service=None,
        stream_service=None,
        rate_limiter=None,
    )
    assert container.settings is default_settings
    assert container.billing_worker is None


@pytest.mark.asyncio
async def test_default_container_debits_credits_once(test_settings):
    registry = ProviderRegistry.with_clients([FakeProvider("openai")])
    container = build_default_container(test_settings, registry=registry)

    result = await container.chat_service.chat("u1", ChatTurnRequest(content="hi"))
    await container.billing_worker.drain()

    # 12 in + 18 out on gpt-4o rounds up to one credit
    assert await container.credit_ledger.get_credits("u1") == 999

    record = await container.chat_service._usage.check_idempotency(result.request_id)
    await container.billing_worker.submit(record.event)
    await container.billing_worker.drain()
    assert await container.credit_ledger.get_credits("u1") == 999


def test_lifespan_runs_billing_worker(test_settings):
    registry = ProviderRegistry.with_clients([FakeProvider("openai")])
    container = build_default_container(test_settings, registry=registry)

    with TestClient(create_app(container, settings=test_settings)) as client:
        resp = client.post("/api/v1/chat", json={"content": "hi"}, headers=USER)
        assert resp.status_code == 200

    # shutdown waits for the queued usage event
    assert container.billing_worker.queue.empty()
    assert container.billing_worker._task is None
    assert container.credit_ledger._balances["u1"] == 999
