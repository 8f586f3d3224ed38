import pytest

from chat_core.config.settings import Settings
from chat_core.domain.exceptions import ProviderTimeoutError
from chat_core.fusion.intent_classifier import (
    IntentClassifier,
    parse_classification,
    parse_keywords,
)
from chat_core.providers.registry import ProviderRegistry
from chat_core.tests.fakes import FakeProvider, ScriptedProvider


def test_parse_plain_json():
    res = parse_classification('{"intent": "code_development", "confidence": 0.92, "subCategory": "python"}')
    assert res.intent == "code_development"
    assert res.confidence == 0.92
    assert res.sub_category == "python"


def test_parse_fenced_json_block():
    content = 'Sure!\n```json\n{"intent": "translation", "confidence": 0.8}\n```'
    assert parse_classification(content).intent == "translation"


def test_parse_bare_fenced_block():
    content = '```\n{"intent": "research", "confidence": 0.7}\n```'
    assert parse_classification(content).intent == "research"


@pytest.mark.parametrize(
    "content",
    [
        "I think it is about code",
        '{"intent": "poetry", "confidence": 0.9}',
        '["conversation"]',
        "",
    ],
)
def test_parse_falls_back_to_conversation(content):
    res = parse_classification(content)
    assert (res.intent, res.confidence, res.sub_category) == ("conversation", 0.5, None)


def test_parse_clamps_confidence():
    assert parse_classification('{"intent": "research", "confidence": 7}').confidence == 1.0
    assert parse_classification('{"intent": "research", "confidence": -1}').confidence == 0.0


def test_parse_keywords():
    assert parse_keywords(" python, sorting ,, lists ") == ["python", "sorting", "lists"]
    assert parse_keywords("") == []


def _settings():
    return Settings(_env_file=None, classification_provider="openai", classification_model="gpt-3.5-turbo")


@pytest.mark.asyncio
async def test_classifier_uses_fixed_provider_and_low_temperature():
    provider = ScriptedProvider("openai", lambda o: '{"intent": "summarization", "confidence": 0.66}')
    classifier = IntentClassifier(ProviderRegistry.with_clients([provider]), settings=_settings())

    res = await classifier.classify_intent("Summarize this article")

    assert res.intent == "summarization"
    call = provider.calls[0]
    assert call.model == "gpt-3.5-turbo"
    assert call.temperature == 0.1
    assert call.max_tokens == 150
    assert call.messages[0].role == "system"
    assert "intent classifier" in call.messages[0].content
    assert call.messages[1].content == "Summarize this article"


@pytest.mark.asyncio
async def test_classifier_degrades_when_provider_fails():
    provider = FakeProvider("openai", error=ProviderTimeoutError(message="timeout"))
    classifier = IntentClassifier(ProviderRegistry.with_clients([provider]), settings=_settings())

    res = await classifier.classify_intent("anything")
    keywords = await classifier.extract_keywords("anything")

    assert (res.intent, res.confidence) == ("conversation", 0.5)
    assert keywords == []


@pytest.mark.asyncio
async def test_classifier_degrades_when_classification_provider_missing():
    classifier = IntentClassifier(ProviderRegistry.with_clients([FakeProvider("google")]), settings=_settings())
    res = await classifier.classify_intent("hello")
    assert res.intent == "conversation"


@pytest.mark.asyncio
async def test_extract_keywords():
    provider = ScriptedProvider("openai", lambda o: "haiku, poetry, nature")
    classifier = IntentClassifier(ProviderRegistry.with_clients([provider]), settings=_settings())
    assert await classifier.extract_keywords("Write a haiku about nature") == ["haiku", "poetry", "nature"]
    assert provider.calls[0].max_tokens == 50
