"""OpenAI 兼容 chat/completions Provider 适配器。

Groq、OpenAI 以及大多数国产模型平台都提供同样形状的接口：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>

本模块负责：

1. 接收统一的 NormalizedRequest。
2. 将其转换为 chat/completions 的请求格式（含工具 schema 与历史中的工具调用）。
3. 将响应 JSON 解析为统一的 NormalizedResponse。

该接口是无状态的：每次都发送完整历史，不使用续接句柄。
"""

import json
from typing import Any, Dict, List

from dialog_core.domain.exceptions import MalformedResponseError
from dialog_core.domain.models import (
    ConversationTurn,
    NormalizedRequest,
    NormalizedResponse,
    ToolInvocation,
)
from dialog_core.providers.base import parse_arguments, post_json
from dialog_core.providers.registry import ProviderConfig
from dialog_core.tools.definitions import ToolDef


class ChatCompletionsClient:
    """chat/completions 提供方客户端实现。"""

    supports_tools = True
    stateful = False

    def __init__(self, cfg: ProviderConfig):
        self._cfg = cfg
        self.name = cfg.name
        self.timeout = cfg.timeout

    async def complete(self, req: NormalizedRequest) -> NormalizedResponse:
        payload = self._build_payload(req)
        data = await post_json(self._cfg, "chat/completions", payload)
        return self._parse_response(data)

    def _build_payload(self, req: NormalizedRequest) -> dict:
        payload: Dict[str, Any] = {
            "model": self._cfg.model,
            "messages": [self._turn_to_payload(t) for t in req.turns],
            "temperature": self._cfg.temperature,
            "max_tokens": self._cfg.max_tokens,
        }
        if req.tools_offered:
            payload["tools"] = [self._serialize_tool(tool) for tool in req.tools_offered]
            payload["tool_choice"] = "auto"
        return payload

    def _malformed(self, message: str) -> MalformedResponseError:
        return MalformedResponseError(code="MALFORMED_RESPONSE", message=message, provider=self.name)

    def _parse_response(self, data: dict) -> NormalizedResponse:
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise self._malformed("response has no choices")
        choice = choices[0]
        if not isinstance(choice, dict):
            raise self._malformed("choice is not an object")
        msg = choice.get("message") or {}
        if not isinstance(msg, dict):
            raise self._malformed("message is not an object")
        tool_calls = self._parse_tool_calls(msg)
        content = self._parse_content(msg.get("content"))
        if not content.strip() and not tool_calls:
            raise self._malformed("empty answer content")
        return NormalizedResponse(content=content or None, tool_calls=tool_calls, raw=data)

    def _parse_content(self, content: Any) -> str:
        if content is None:
            return ""
        if isinstance(content, str):
            return content
        # 少数兼容接口把 content 返回为 [{"type": "text", "text": ...}] 片段列表
        if isinstance(content, list):
            texts: List[str] = []
            for part in content:
                if not isinstance(part, dict):
                    raise self._malformed("content part is not an object")
                text = part.get("text")
                if text is not None and not isinstance(text, str):
                    raise self._malformed("content part text is not a string")
                texts.append(text or "")
            return "".join(texts)
        raise self._malformed("message content is not a string")

    def _parse_tool_calls(self, msg: Dict[str, Any]) -> List[ToolInvocation]:
        raw_calls = msg.get("tool_calls") or []
        if not isinstance(raw_calls, list):
            raise self._malformed("tool_calls is not a list")
        calls: List[ToolInvocation] = []
        for idx, call in enumerate(raw_calls):
            func = call.get("function") if isinstance(call, dict) else None
            if not isinstance(func, dict):
                raise self._malformed("tool call has no function object")
            calls.append(
                ToolInvocation(
                    call_id=str(call.get("id") or f"tool_call_{idx}"),
                    name=str(func.get("name") or call.get("name") or ""),
                    arguments=parse_arguments(func.get("arguments")),
                )
            )
        # 部分模型仍会返回旧版 function_call 字段
        function_call = msg.get("function_call")
        if function_call:
            if not isinstance(function_call, dict):
                raise self._malformed("function_call is not an object")
            calls.append(
                ToolInvocation(
                    call_id=str(function_call.get("id") or "function_call"),
                    name=str(function_call.get("name") or ""),
                    arguments=parse_arguments(function_call.get("arguments")),
                )
            )
        return calls

    @staticmethod
    def _serialize_tool(tool: ToolDef) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.json_schema(),
            },
        }

    @staticmethod
    def _turn_to_payload(turn: ConversationTurn) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": turn.role}
        if turn.content or not turn.tool_calls:
            payload["content"] = turn.content
        if turn.tool_calls:
            payload["tool_calls"] = [
                {
                    "id": call.call_id,
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": json.dumps(call.arguments, ensure_ascii=False),
                    },
                }
                for call in turn.tool_calls
            ]
        if turn.tool_call_id:
            payload["tool_call_id"] = turn.tool_call_id
        return payload
