import pytest

from dialog_core.providers import create_gateway, create_provider
from dialog_core.providers.chat_completions_client import ChatCompletionsClient
from dialog_core.providers.registry import get_provider_config
from dialog_core.providers.responses_client import ResponsesClient


class SettingsStub:
    provider_priority = ["groq", "responses"]
    groq_api_key = "gsk_test_key_123"
    groq_base_url = "https://api.groq.com/openai/v1"
    groq_model = "llama-3.3-70b-versatile"
    groq_timeout = 12.0
    responses_api_key = None
    responses_base_url = "https://api.openai.com/v1"
    responses_model = "gpt-4o-mini"
    responses_timeout = 30.0
    temperature = 0.2
    max_tokens = 300


def test_get_provider_config():
    cfg = get_provider_config("Groq", SettingsStub())
    assert cfg.name == "groq"
    assert cfg.kind == "chat_completions"
    assert cfg.timeout == 12.0
    assert cfg.temperature == 0.2
    assert cfg.max_tokens == 300

    assert get_provider_config("responses", SettingsStub()).kind == "responses"


def test_unknown_provider_config():
    with pytest.raises(KeyError):
        get_provider_config("nope", SettingsStub())


def test_create_provider_by_kind():
    assert isinstance(create_provider("groq"), ChatCompletionsClient)
    assert isinstance(create_provider("openai"), ChatCompletionsClient)
    provider = create_provider("responses")
    assert isinstance(provider, ResponsesClient)
    assert provider.stateful


def test_create_gateway():
    gw = create_gateway(["groq", "responses"])
    assert gw.provider_ids == ["groq", "responses"]
    assert gw.provider("openai") is None
