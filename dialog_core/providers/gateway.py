"""Provider 网关：一次标准化请求 -> 一次标准化响应。

网关屏蔽了厂商差异和瞬时故障：

1. 按 provider_id 找到已注册的 ProviderClient。
2. 用 asyncio.wait_for 施加该 Provider 的超时上限，超时会取消进行中的请求。
3. 把适配器抛出的异常归类为 ErrorKind。
4. 仅对 TIMEOUT / RATE_LIMITED / UPSTREAM_UNAVAILABLE 做指数退避重试，
   其余错误立即以 is_error=True 返回。

网关不保存任何会话状态，响应中的续接句柄由调用方负责持久化。
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from dialog_core.domain.exceptions import (
    ApiError,
    BusinessError,
    MalformedResponseError,
    NetworkError,
    ProviderTimeoutError,
    RateLimitError,
)
from dialog_core.domain.models import ErrorKind, NormalizedRequest, NormalizedResponse
from dialog_core.infrastructure.logging.logger import logger
from dialog_core.providers.base import ProviderClient


DEFAULT_MAX_RETRIES = 2
DEFAULT_BASE_DELAY = 2.0


def classify(exc: BaseException) -> ErrorKind:
    """把适配器异常映射为 ErrorKind。"""

    if isinstance(exc, (ProviderTimeoutError, asyncio.TimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(exc, RateLimitError):
        return ErrorKind.RATE_LIMITED
    if isinstance(exc, NetworkError):
        return ErrorKind.UPSTREAM_UNAVAILABLE
    if isinstance(exc, ApiError):
        if exc.http_status == 429:
            return ErrorKind.RATE_LIMITED
        if 500 <= exc.http_status < 600:
            return ErrorKind.UPSTREAM_UNAVAILABLE
        return ErrorKind.AUTH_OR_REQUEST_ERROR
    if isinstance(exc, MalformedResponseError):
        return ErrorKind.MALFORMED_RESPONSE
    return ErrorKind.AUTH_OR_REQUEST_ERROR


class ProviderGateway:
    def __init__(
        self,
        providers: Iterable[ProviderClient],
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._providers: Dict[str, ProviderClient] = {p.name: p for p in providers}
        self._max_retries = max(0, max_retries)
        self._base_delay = base_delay
        self._sleep = sleep

    def provider(self, provider_id: str) -> Optional[ProviderClient]:
        return self._providers.get(provider_id)

    @property
    def provider_ids(self):
        return list(self._providers)

    async def send(self, req: NormalizedRequest) -> NormalizedResponse:
        provider = self._providers.get(req.provider_id)
        if provider is None:
            return NormalizedResponse.failure(
                ErrorKind.AUTH_OR_REQUEST_ERROR, f"provider {req.provider_id!r} is not registered"
            )

        log_ctx = {"provider": req.provider_id, "turns": len(req.turns)}
        kind = ErrorKind.UPSTREAM_UNAVAILABLE
        message = ""
        for attempt in range(self._max_retries + 1):
            try:
                return await asyncio.wait_for(provider.complete(req), timeout=provider.timeout)
            except asyncio.TimeoutError:
                kind = ErrorKind.TIMEOUT
                message = f"no response within {provider.timeout:g}s"
            except BusinessError as e:
                kind = classify(e)
                message = e.message

            if not kind.retryable:
                self._log(logging.ERROR, "Provider call failed", log_ctx, error_kind=kind.value, error=message)
                return NormalizedResponse.failure(kind, message)
            if attempt >= self._max_retries:
                break
            delay = self._base_delay * (2 ** attempt)
            self._log(
                logging.WARNING,
                "Retrying provider call",
                log_ctx,
                attempt=attempt + 1,
                max_retries=self._max_retries,
                error_kind=kind.value,
                delay=delay,
            )
            await self._sleep(delay)

        self._log(logging.ERROR, "Provider retries exhausted", log_ctx, error_kind=kind.value, error=message)
        return NormalizedResponse.failure(kind, message)

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
