"""工具调用循环。

实现流程：
1. 通过网关调用 Provider。
2. 若响应出错或不含 tool_calls，直接返回（出错时由编排器决定是否降级）。
3. 否则并发执行本轮所有工具，把一条携带工具调用的 assistant 消息
   以及每个调用对应的 tool 消息按收到的顺序追加到工作历史。
4. 轮数达到 max_iterations 时返回固定的致歉回答，而不是无限循环。
5. 否则用更新后的历史重建请求，回到步骤 1。

工具不存在或执行异常不会中断循环，而是变成 "error: ..." 文本交给模型处理。
工作历史只存在于本次调用中，不会写回 ConversationStore。
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from dialog_core.domain.exceptions import ToolNotFoundError
from dialog_core.domain.models import (
    ConversationTurn,
    ErrorKind,
    NormalizedRequest,
    NormalizedResponse,
    ToolInvocation,
    ToolResult,
)
from dialog_core.infrastructure.logging.logger import logger
from dialog_core.providers.gateway import ProviderGateway
from dialog_core.tools.registry import ToolRegistry


MAX_ITERATIONS = 5
ITERATION_LIMIT_ANSWER = (
    "Sorry, I could not finish preparing an answer: the question needed too many "
    "lookups. Please try rephrasing it or asking something more specific."
)


class ToolLoop:
    def __init__(self, max_iterations: int = MAX_ITERATIONS):
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        self._max_iterations = max_iterations

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    async def resolve(
        self,
        request: NormalizedRequest,
        gateway: ProviderGateway,
        registry: ToolRegistry,
        log_ctx: Optional[Dict[str, Any]] = None,
    ) -> NormalizedResponse:
        log_ctx = dict(log_ctx or {}, provider=request.provider_id)
        turns: List[ConversationTurn] = list(request.turns)
        current = request

        for iteration in range(1, self._max_iterations + 1):
            response = await gateway.send(current)
            if response.is_error or not response.tool_calls:
                return response

            self._log(
                logging.INFO,
                "Executing tool calls",
                log_ctx,
                round=iteration,
                call_count=len(response.tool_calls),
                tools=[call.name for call in response.tool_calls],
            )
            # 同一轮内的工具之间没有顺序要求，但必须全部完成后才进入下一轮
            results = await asyncio.gather(
                *(self._execute(call, registry, log_ctx) for call in response.tool_calls)
            )
            turns.append(
                ConversationTurn(
                    role="assistant",
                    content=response.content or "",
                    tool_calls=tuple(response.tool_calls),
                )
            )
            for result in results:
                turns.append(
                    ConversationTurn(
                        role="tool",
                        content=result.content,
                        tool_call_id=result.call_id,
                        tool_name=result.name,
                    )
                )
            current = NormalizedRequest(
                provider_id=request.provider_id,
                turns=list(turns),
                continuation_token=response.continuation_token or current.continuation_token,
                tools_offered=request.tools_offered,
            )

        self._log(logging.WARNING, "Reached max tool rounds", log_ctx, max_rounds=self._max_iterations)
        # 最后一次响应仍在等待工具结果，其续接句柄不能再用于下一轮对话
        return NormalizedResponse(
            content=ITERATION_LIMIT_ANSWER,
            error_kind=ErrorKind.TOOL_ITERATION_LIMIT_EXCEEDED,
        )

    async def _execute(
        self,
        call: ToolInvocation,
        registry: ToolRegistry,
        log_ctx: Dict[str, Any],
    ) -> ToolResult:
        try:
            content = await registry.execute(call.name, call.arguments)
        except ToolNotFoundError as e:
            content = f"error: {e.message}"
        except Exception as e:
            self._log(
                logging.ERROR,
                "Tool execution failed",
                log_ctx,
                tool_call_id=call.call_id,
                tool_name=call.name,
                error=str(e),
            )
            content = f"error: {e}"
        else:
            self._log(
                logging.INFO,
                "Tool execution finished",
                log_ctx,
                tool_call_id=call.call_id,
                result_preview=content[:200],
            )
        return ToolResult(call_id=call.call_id, name=call.name, content=content)

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
