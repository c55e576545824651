import asyncio

import pytest

from dialog_core.domain.exceptions import MalformedResponseError
from dialog_core.domain.models import ConversationTurn, NormalizedRequest, ToolInvocation
from dialog_core.providers.registry import ProviderConfig
from dialog_core.providers.responses_client import ResponsesClient


def _cfg():
    return ProviderConfig(
        name="responses",
        kind="responses",
        base_url="https://api.openai.com/v1",
        model="gpt-4o-mini",
        api_key="sk-test-key-123",
        timeout=5.0,
    )


def _patch_client(monkeypatch, body, captured):
    class Resp:
        status_code = 200
        text = ""

        def json(self):
            return body

    class Client:
        def __init__(self, *a, **kw):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, *a):
            return False

        async def post(self, url, json=None, **_):
            captured["url"] = url
            captured["payload"] = json
            return Resp()

    monkeypatch.setattr("httpx.AsyncClient", Client)


_MESSAGE_BODY = {
    "id": "resp_2",
    "output": [
        {
            "type": "message",
            "role": "assistant",
            "content": [{"type": "output_text", "text": "Hello again"}],
        }
    ],
}

_HISTORY = [
    ConversationTurn(role="system", content="be brief"),
    ConversationTurn(role="user", content="first"),
    ConversationTurn(role="assistant", content="answer one"),
    ConversationTurn(role="user", content="second"),
]


def test_full_history_without_token(monkeypatch):
    captured = {}
    _patch_client(monkeypatch, _MESSAGE_BODY, captured)
    req = NormalizedRequest(provider_id="responses", turns=list(_HISTORY))

    resp = asyncio.run(ResponsesClient(_cfg()).complete(req))

    payload = captured["payload"]
    assert captured["url"] == "https://api.openai.com/v1/responses"
    assert payload["instructions"] == "be brief"
    assert "previous_response_id" not in payload
    assert [item["content"] for item in payload["input"]] == ["first", "answer one", "second"]
    assert resp.content == "Hello again"
    assert resp.continuation_token == "resp_2"


def test_only_new_turns_with_token(monkeypatch):
    captured = {}
    _patch_client(monkeypatch, _MESSAGE_BODY, captured)
    req = NormalizedRequest(provider_id="responses", turns=list(_HISTORY), continuation_token="resp_1")

    asyncio.run(ResponsesClient(_cfg()).complete(req))

    payload = captured["payload"]
    assert payload["previous_response_id"] == "resp_1"
    assert payload["input"] == [{"role": "user", "content": "second"}]


def test_tool_outputs_after_function_call(monkeypatch):
    captured = {}
    _patch_client(monkeypatch, _MESSAGE_BODY, captured)
    turns = list(_HISTORY) + [
        ConversationTurn(
            role="assistant",
            content="",
            tool_calls=(ToolInvocation(call_id="call_1", name="web_search", arguments={"query": "x"}),),
        ),
        ConversationTurn(role="tool", content="results", tool_call_id="call_1", tool_name="web_search"),
    ]
    req = NormalizedRequest(provider_id="responses", turns=turns, continuation_token="resp_1")

    asyncio.run(ResponsesClient(_cfg()).complete(req))

    assert captured["payload"]["input"] == [
        {"type": "function_call_output", "call_id": "call_1", "output": "results"}
    ]


def test_parse_function_call(monkeypatch):
    body = {
        "id": "resp_3",
        "output": [
            {
                "type": "function_call",
                "id": "fc_1",
                "call_id": "call_9",
                "name": "web_search",
                "arguments": '{"query": "weather"}',
            }
        ],
    }
    _patch_client(monkeypatch, body, {})
    req = NormalizedRequest(provider_id="responses", turns=[ConversationTurn(role="user", content="weather?")])

    resp = asyncio.run(ResponsesClient(_cfg()).complete(req))

    assert resp.content is None
    assert resp.continuation_token == "resp_3"
    assert resp.tool_calls == [ToolInvocation(call_id="call_9", name="web_search", arguments={"query": "weather"})]


def test_missing_output(monkeypatch):
    _patch_client(monkeypatch, {"id": "resp_4"}, {})
    req = NormalizedRequest(provider_id="responses", turns=[ConversationTurn(role="user", content="hi")])
    with pytest.raises(MalformedResponseError):
        asyncio.run(ResponsesClient(_cfg()).complete(req))


def test_malformed_node_types(monkeypatch):
    req = NormalizedRequest(provider_id="responses", turns=[ConversationTurn(role="user", content="hi")])
    for body in [
        {"id": "resp_5", "output": ["oops"]},
        {"id": "resp_5", "output": [{"type": "message", "content": "text"}]},
        {"id": "resp_5", "output": [{"type": "message", "content": ["text"]}]},
        {"id": "resp_5", "output": [{"type": "message", "content": [{"type": "output_text", "text": ["x"]}]}]},
        {"id": "resp_5", "output": [], "output_text": ["x"]},
    ]:
        _patch_client(monkeypatch, body, {})
        with pytest.raises(MalformedResponseError):
            asyncio.run(ResponsesClient(_cfg()).complete(req))
