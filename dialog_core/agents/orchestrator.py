"""编排引擎入口：按优先级依次尝试 Provider，直到拿到回答。

answer() 的流程：
1. 获取该用户的锁，同一用户的轮次严格串行。
2. 追加用户消息，并记下会话的 generation。
3. 对 provider_priority 中的每个 Provider：用历史和该 Provider 的续接句柄构造请求，
   支持工具时走 ToolLoop，否则直接调用网关。
4. 第一个非错误且内容非空的回答写回历史（只写一次），保存该 Provider 的新续接句柄，
   其他 Provider 的句柄作废（它们的服务端对话链缺少这一轮），然后返回。
5. 全部失败时抛出 OrchestrationError，附带每个 Provider 的最后错误。

会话在调用期间被 clear() 时，generation 发生变化，回答不会再写回历史。
"""

import logging
import time
from typing import Any, Dict, Optional, Sequence
from uuid import uuid4

from dialog_core.domain.conversation import ConversationStore
from dialog_core.domain.exceptions import OrchestrationError
from dialog_core.domain.models import ConversationTurn, ErrorKind, NormalizedRequest, NormalizedResponse
from dialog_core.infrastructure.logging.logger import logger
from dialog_core.providers.gateway import ProviderGateway
from dialog_core.tools.registry import ToolRegistry

from .tool_loop import ToolLoop


class FallbackOrchestrator:
    def __init__(
        self,
        store: ConversationStore,
        gateway: ProviderGateway,
        provider_priority: Sequence[str],
        tool_registry: Optional[ToolRegistry] = None,
        tool_loop: Optional[ToolLoop] = None,
        system_prompt: Optional[str] = None,
    ):
        if not provider_priority:
            raise ValueError("provider_priority must contain at least one provider")
        self._store = store
        self._gateway = gateway
        self._priority = list(provider_priority)
        self._registry = tool_registry
        self._tool_loop = tool_loop or ToolLoop()
        self._system_prompt = system_prompt

    @property
    def store(self) -> ConversationStore:
        return self._store

    async def answer(
        self,
        user_id: str,
        question: str,
        provider_priority: Optional[Sequence[str]] = None,
    ) -> str:
        """返回回答文本；所有 Provider 都失败时抛出 OrchestrationError。"""

        priority = list(provider_priority or self._priority)
        start_time = time.time()
        log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}", "user_id": user_id}

        async with self._store.lock(user_id):
            if self._system_prompt:
                self._store.initialize_history(user_id, self._system_prompt)
            self._store.append(user_id, ConversationTurn(role="user", content=question))
            generation = self._store.generation(user_id)

            last_errors: Dict[str, NormalizedResponse] = {}
            for provider_id in priority:
                response = await self._call_provider(user_id, provider_id, log_ctx)
                if not response.is_error and not response.has_content:
                    response = NormalizedResponse.failure(ErrorKind.MALFORMED_RESPONSE, "empty answer content")
                if response.is_error:
                    last_errors[provider_id] = response
                    self._log(
                        logging.WARNING,
                        "Provider failed, falling back",
                        log_ctx,
                        provider=provider_id,
                        error_kind=response.error_kind.value if response.error_kind else None,
                        error=response.error_message,
                    )
                    continue

                content = response.content or ""
                stored = self._store.append(
                    user_id,
                    ConversationTurn(role="assistant", content=content),
                    expected_generation=generation,
                )
                if stored:
                    self._store.adopt_continuation_token(user_id, provider_id, response.continuation_token)
                else:
                    self._log(logging.INFO, "Conversation cleared during request, answer not stored", log_ctx)
                self._log(
                    logging.INFO,
                    "Completed answer",
                    log_ctx,
                    provider=provider_id,
                    answer_length=len(content),
                    failed_providers=list(last_errors),
                    elapsed_seconds=round(time.time() - start_time, 2),
                )
                return content

        self._log(logging.ERROR, "All providers failed", log_ctx, providers=priority)
        raise OrchestrationError(
            ErrorKind.ALL_PROVIDERS_FAILED,
            f"all providers failed: {', '.join(priority)}",
            last_errors=last_errors,
        )

    async def _call_provider(self, user_id: str, provider_id: str, log_ctx: Dict[str, Any]) -> NormalizedResponse:
        provider = self._gateway.provider(provider_id)
        use_tools = bool(self._registry) and provider is not None and provider.supports_tools
        request = NormalizedRequest(
            provider_id=provider_id,
            turns=list(self._store.history(user_id)),
            continuation_token=self._store.continuation_token(user_id, provider_id),
            tools_offered=self._registry.definitions() if use_tools else [],
        )
        self._log(
            logging.INFO,
            "Calling provider",
            log_ctx,
            provider=provider_id,
            message_count=len(request.turns),
            tools=use_tools,
        )
        if use_tools:
            return await self._tool_loop.resolve(request, self._gateway, self._registry, log_ctx)
        return await self._gateway.send(request)

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
