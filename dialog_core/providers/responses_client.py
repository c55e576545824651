"""Responses API Provider 适配器（有状态续接）。

与 chat/completions 不同，Responses API 在服务端保存对话链：
- URL: {base_url}/responses
- 响应中的 id 作为续接句柄（continuation token）返回给调用方保存；
- 下次请求带上 previous_response_id 时，只需发送最后一条 assistant 消息之后的新内容。

没有续接句柄时退化为发送完整历史，system 消息始终通过 instructions 发送。
"""

import json
from typing import Any, Dict, List, Optional

from dialog_core.domain.exceptions import MalformedResponseError
from dialog_core.domain.models import (
    ConversationTurn,
    NormalizedRequest,
    NormalizedResponse,
    ToolInvocation,
)
from dialog_core.providers.base import parse_arguments, post_json
from dialog_core.providers.registry import ProviderConfig


class ResponsesClient:
    """Responses API 提供方客户端实现。"""

    supports_tools = True
    stateful = True

    def __init__(self, cfg: ProviderConfig):
        self._cfg = cfg
        self.name = cfg.name
        self.timeout = cfg.timeout

    async def complete(self, req: NormalizedRequest) -> NormalizedResponse:
        payload = self._build_payload(req)
        data = await post_json(self._cfg, "responses", payload)
        return self._parse_response(data)

    def _build_payload(self, req: NormalizedRequest) -> dict:
        instructions = "\n\n".join(t.content for t in req.turns if t.role == "system")
        turns = [t for t in req.turns if t.role != "system"]
        if req.continuation_token:
            turns = self._turns_since_last_assistant(turns)
        payload: Dict[str, Any] = {
            "model": self._cfg.model,
            "input": self._input_items(turns),
            "temperature": self._cfg.temperature,
            "max_output_tokens": self._cfg.max_tokens,
        }
        if instructions:
            payload["instructions"] = instructions
        if req.continuation_token:
            payload["previous_response_id"] = req.continuation_token
        if req.tools_offered:
            payload["tools"] = [
                {
                    "type": "function",
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.json_schema(),
                }
                for tool in req.tools_offered
            ]
        return payload

    @staticmethod
    def _turns_since_last_assistant(turns: List[ConversationTurn]) -> List[ConversationTurn]:
        for idx in range(len(turns) - 1, -1, -1):
            if turns[idx].role == "assistant":
                return turns[idx + 1:]
        return turns

    @staticmethod
    def _input_items(turns: List[ConversationTurn]) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        for turn in turns:
            if turn.role == "tool":
                items.append(
                    {
                        "type": "function_call_output",
                        "call_id": turn.tool_call_id,
                        "output": turn.content,
                    }
                )
                continue
            if turn.content:
                items.append({"role": turn.role, "content": turn.content})
            for call in turn.tool_calls:
                items.append(
                    {
                        "type": "function_call",
                        "call_id": call.call_id,
                        "name": call.name,
                        "arguments": json.dumps(call.arguments, ensure_ascii=False),
                    }
                )
        return items

    def _malformed(self, message: str) -> MalformedResponseError:
        return MalformedResponseError(code="MALFORMED_RESPONSE", message=message, provider=self.name)

    def _parse_response(self, data: dict) -> NormalizedResponse:
        output = data.get("output")
        if not isinstance(output, list):
            raise self._malformed("response has no output")
        texts: List[str] = []
        tool_calls: List[ToolInvocation] = []
        for idx, item in enumerate(output):
            if not isinstance(item, dict):
                raise self._malformed("output item is not an object")
            item_type = item.get("type")
            if item_type == "message":
                parts = item.get("content") or []
                if not isinstance(parts, list):
                    raise self._malformed("message content is not a list")
                for part in parts:
                    if not isinstance(part, dict):
                        raise self._malformed("content part is not an object")
                    text = part.get("text")
                    if part.get("type") in ("output_text", "text") and text:
                        if not isinstance(text, str):
                            raise self._malformed("content part text is not a string")
                        texts.append(text)
            elif item_type == "function_call":
                tool_calls.append(
                    ToolInvocation(
                        call_id=str(item.get("call_id") or item.get("id") or f"tool_call_{idx}"),
                        name=str(item.get("name") or ""),
                        arguments=parse_arguments(item.get("arguments")),
                    )
                )
        output_text = data.get("output_text")
        if output_text is not None and not isinstance(output_text, str):
            raise self._malformed("output_text is not a string")
        content: Optional[str] = output_text or "".join(texts)
        if not (content and content.strip()) and not tool_calls:
            raise self._malformed("empty answer content")
        token = data.get("id")
        return NormalizedResponse(
            content=content or None,
            tool_calls=tool_calls,
            continuation_token=token if isinstance(token, str) else None,
            raw=data,
        )
