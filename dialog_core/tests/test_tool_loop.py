"""测试工具调用循环。"""

import asyncio

from dialog_core.agents.tool_loop import ITERATION_LIMIT_ANSWER, ToolLoop
from dialog_core.domain.models import (
    ConversationTurn,
    ErrorKind,
    NormalizedRequest,
    NormalizedResponse,
    ToolInvocation,
)
from dialog_core.tools.definitions import ToolDef, ToolParam
from dialog_core.tools.registry import ToolRegistry


class FakeGateway:
    """记录每次请求，并按顺序返回预设响应（最后一个会被重复使用）。"""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    async def send(self, req):
        self.requests.append(req)
        return self.responses[min(len(self.requests), len(self.responses)) - 1]


def _registry():
    registry = ToolRegistry()
    registry.register(
        ToolDef(
            name="echo",
            description="echo text",
            params={"text": ToolParam(name="text", description="Text", required=True)},
        ),
        lambda args: f"echo:{args.get('text')}",
    )
    return registry


def _req():
    return NormalizedRequest(provider_id="p", turns=[ConversationTurn(role="user", content="hi")])


def _calls(*calls):
    return NormalizedResponse(tool_calls=[ToolInvocation(call_id=cid, name=name, arguments=args) for cid, name, args in calls])


def test_answer_without_tool_calls():
    gateway = FakeGateway([NormalizedResponse(content="plain answer")])
    resp = asyncio.run(ToolLoop().resolve(_req(), gateway, _registry()))
    assert resp.content == "plain answer"
    assert len(gateway.requests) == 1


def test_tool_call_then_answer():
    gateway = FakeGateway([
        _calls(("c1", "echo", {"text": "x"})),
        NormalizedResponse(content="final"),
    ])
    resp = asyncio.run(ToolLoop().resolve(_req(), gateway, _registry()))

    assert resp.content == "final"
    assert len(gateway.requests) == 2
    turns = gateway.requests[1].turns
    assert [t.role for t in turns] == ["user", "assistant", "tool"]
    assert turns[1].tool_calls[0].call_id == "c1"
    assert turns[2].tool_call_id == "c1"
    assert turns[2].content == "echo:x"


def test_always_tool_calls_hits_iteration_limit():
    gateway = FakeGateway([_calls(("c1", "echo", {"text": "again"}))])
    resp = asyncio.run(ToolLoop(max_iterations=5).resolve(_req(), gateway, _registry()))

    assert len(gateway.requests) == 5
    assert resp.content == ITERATION_LIMIT_ANSWER
    assert not resp.is_error
    assert resp.error_kind == ErrorKind.TOOL_ITERATION_LIMIT_EXCEEDED
    assert resp.continuation_token is None


def test_missing_tool_becomes_error_text():
    gateway = FakeGateway([
        _calls(("c1", "nope", {})),
        NormalizedResponse(content="sorry"),
    ])
    resp = asyncio.run(ToolLoop().resolve(_req(), gateway, _registry()))

    assert resp.content == "sorry"
    tool_turn = gateway.requests[1].turns[-1]
    assert tool_turn.role == "tool"
    assert tool_turn.content.startswith("error:")


def test_failing_tool_becomes_error_text():
    registry = ToolRegistry()

    def boom(args):
        raise RuntimeError("boom")

    registry.register(ToolDef(name="boom", description="fails"), boom)
    gateway = FakeGateway([_calls(("c1", "boom", {})), NormalizedResponse(content="done")])

    asyncio.run(ToolLoop().resolve(_req(), gateway, registry))

    assert gateway.requests[1].turns[-1].content == "error: boom"


def test_sibling_calls_keep_order():
    registry = ToolRegistry()

    async def slow(args):
        await asyncio.sleep(0.02)
        return "slow"

    async def fast(args):
        return "fast"

    registry.register(ToolDef(name="slow", description="slow"), slow)
    registry.register(ToolDef(name="fast", description="fast"), fast)
    gateway = FakeGateway([
        _calls(("c1", "slow", {}), ("c2", "fast", {})),
        NormalizedResponse(content="done"),
    ])

    asyncio.run(ToolLoop().resolve(_req(), gateway, registry))

    turns = gateway.requests[1].turns
    assert [t.role for t in turns] == ["user", "assistant", "tool", "tool"]
    assert len(turns[1].tool_calls) == 2
    assert [(t.tool_call_id, t.content) for t in turns[2:]] == [("c1", "slow"), ("c2", "fast")]


def test_error_response_is_returned():
    failure = NormalizedResponse.failure(ErrorKind.RATE_LIMITED, "slow down")
    gateway = FakeGateway([_calls(("c1", "echo", {"text": "x"})), failure])
    resp = asyncio.run(ToolLoop().resolve(_req(), gateway, _registry()))
    assert resp.is_error
    assert resp.error_kind == ErrorKind.RATE_LIMITED


def test_continuation_token_is_carried_between_rounds():
    first = _calls(("c1", "echo", {"text": "x"}))
    first.continuation_token = "resp_1"
    gateway = FakeGateway([first, NormalizedResponse(content="done", continuation_token="resp_2")])

    resp = asyncio.run(ToolLoop().resolve(_req(), gateway, _registry()))

    assert gateway.requests[0].continuation_token is None
    assert gateway.requests[1].continuation_token == "resp_1"
    assert resp.continuation_token == "resp_2"
