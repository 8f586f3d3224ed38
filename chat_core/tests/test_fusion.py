import pytest

from chat_core.config.settings import Settings
from chat_core.domain.exceptions import NoAvailableModelsError, ValidationError
from chat_core.domain.models import ChatMessage, ChatOptions
from chat_core.fusion.intent_classifier import IntentClassifier
from chat_core.fusion.model_selector import UserPreferences
from chat_core.fusion.orchestrator import FusionOrchestrator
from chat_core.fusion.prompts import build_system_prompt
from chat_core.providers.fusion_client import FusionProvider
from chat_core.providers.registry import ProviderRegistry
from chat_core.tests.fakes import ScriptedProvider


def _openai_script(options: ChatOptions) -> str:
    if options.max_tokens == 150:
        return '{"intent": "code_development", "confidence": 0.9, "subCategory": "python"}'
    if options.max_tokens == 50:
        return "python, sorting"
    return "def sort(xs): return sorted(xs)"


def _orchestrator(preferences=None):
    openai = ScriptedProvider("openai", _openai_script)
    registry = ProviderRegistry.with_clients([openai])
    classifier = IntentClassifier(registry, settings=Settings(_env_file=None))
    return openai, FusionOrchestrator(registry, classifier=classifier, preferences=preferences)


def test_system_prompt_sections():
    prompt = build_system_prompt("code_development", "python", ["sorting", "lists"], "expert")
    assert prompt.startswith("You are an assistant specialized in software development and programming")
    assert "with a specific focus on python" in prompt
    assert "technical, detailed and advanced" in prompt
    assert "Take these key concepts into account: sorting, lists." in prompt
    assert "clean, well commented code" in prompt


def test_system_prompt_for_conversation_has_no_guidance():
    prompt = build_system_prompt("conversation")
    assert prompt == (
        "You are an assistant specialized in natural conversation and general assistance. "
        "Answer in a way that is clear and informative, adapting to the context of the question."
    )


@pytest.mark.asyncio
async def test_process_runs_all_steps_in_order():
    openai, orchestrator = _orchestrator(UserPreferences(expertise_level="beginner"))
    history = [ChatMessage(role="user", content="hi"), ChatMessage(role="assistant", content="hello")]

    result = await orchestrator.process("Sort a list in python", history=history, max_tokens=300)

    assert result.answer == "def sort(xs): return sorted(xs)"
    assert result.model_used == "gpt-4-turbo"
    assert result.provider == "openai"
    assert result.intent == "code_development"
    assert result.confidence == 0.9
    assert result.processing_time_ms >= 0
    assert [c.max_tokens for c in openai.calls] == [150, 50, 300]

    final = openai.calls[-1]
    assert final.model == "gpt-4-turbo"
    assert final.temperature == 0.7
    assert [m.role for m in final.messages] == ["system", "user", "assistant", "user"]
    assert "with a specific focus on python" in final.messages[0].content
    assert "python, sorting" in final.messages[0].content
    assert "didactic" in final.messages[0].content
    assert final.messages[-1].content == "Sort a list in python"


@pytest.mark.asyncio
async def test_process_without_providers_raises():
    orchestrator = FusionOrchestrator(ProviderRegistry.with_clients([]))
    with pytest.raises(NoAvailableModelsError):
        await orchestrator.process("anything")


@pytest.mark.asyncio
async def test_fusion_provider_facade():
    openai, orchestrator = _orchestrator()
    provider = FusionProvider(orchestrator)
    options = ChatOptions(
        model="fusion",
        messages=[
            ChatMessage(role="user", content="earlier question"),
            ChatMessage(role="assistant", content="earlier answer"),
            ChatMessage(role="user", content="Sort a list in python"),
        ],
    )

    res = await provider.chat(options)

    assert provider.get_provider_name() == "fusion"
    assert provider.get_available_models() == ["fusion"]
    assert res.model == "fusion:gpt-4-turbo"
    assert res.provider == "openai"
    assert res.raw["intent"] == "code_development"
    # the query is not repeated in the forwarded history
    final = openai.calls[-1]
    assert [m.content for m in final.messages[1:]] == [
        "earlier question",
        "earlier answer",
        "Sort a list in python",
    ]


@pytest.mark.asyncio
async def test_fusion_provider_requires_user_message():
    _, orchestrator = _orchestrator()
    with pytest.raises(ValidationError):
        await FusionProvider(orchestrator).chat(
            ChatOptions(model="fusion", messages=[ChatMessage(role="system", content="x")])
        )
