import pytest

from chat_core.domain.exceptions import NoAvailableModelsError
from chat_core.fusion.model_selector import ModelChoice, ModelSelector, UserPreferences
from chat_core.providers.registry import ProviderRegistry
from chat_core.tests.fakes import FakeProvider


def _selector(*names):
    clients = [FakeProvider(n, models=[f"{n}-default"]) for n in names]
    return ModelSelector(ProviderRegistry.with_clients(clients))


def test_first_ranked_candidate_by_default():
    choice = _selector("openai", "anthropic", "google").select_best_model("code_development", "q")
    assert choice == ModelChoice(model="gpt-4-turbo", provider="openai")


def test_unavailable_providers_are_filtered():
    choice = _selector("anthropic", "google").select_best_model("conversation", "q")
    assert choice == ModelChoice(model="claude-3-haiku-20240307", provider="anthropic")


def test_translation_ranks_google_before_anthropic():
    choice = _selector("anthropic", "google").select_best_model("translation", "q")
    assert choice.provider == "google"


def test_preferred_provider_wins_over_cost():
    prefs = UserPreferences(preferred_provider="google", cost_sensitive=True)
    choice = _selector("openai", "anthropic", "google").select_best_model("research", "q", prefs)
    assert choice == ModelChoice(model="gemini-1.5-pro", provider="google")


def test_preferred_provider_without_candidate_falls_through_to_cost():
    prefs = UserPreferences(preferred_provider="mistral", cost_sensitive=True)
    choice = _selector("openai", "anthropic", "google").select_best_model("conversation", "q", prefs)
    assert choice == ModelChoice(model="claude-3-haiku-20240307", provider="anthropic")


def test_cost_sensitive_ties_keep_ranking():
    # gpt-4-turbo and claude-3-opus share the same per-token cost
    prefs = UserPreferences(cost_sensitive=True)
    choice = _selector("openai", "anthropic").select_best_model("research", "q", prefs)
    assert choice.model == "gpt-4-turbo"


def test_no_ranked_candidate_uses_first_model_of_first_provider():
    selector = ModelSelector(ProviderRegistry.with_clients([FakeProvider("mistral", models=["mistral-large"])]))
    assert selector.select_best_model("research", "q") == ModelChoice(model="mistral-large", provider="mistral")


def test_no_provider_at_all_is_fatal():
    with pytest.raises(NoAvailableModelsError) as exc_info:
        _selector().select_best_model("research", "q")
    assert exc_info.value.http_status == 503
