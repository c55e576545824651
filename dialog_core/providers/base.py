"""Provider 抽象接口。

上层 ProviderGateway 不直接依赖具体厂商的 HTTP API，而是依赖此协议：

- 每种接入方式实现一个 ProviderClient（如 ChatCompletionsClient）。
- 负责：将 NormalizedRequest 转成具体 API 请求，并把响应 JSON 解析为 NormalizedResponse。
- 失败时抛出 domain.exceptions 中的异常，由网关统一分类、重试。
"""

import json
from typing import Any, Dict, Protocol

import httpx

from dialog_core.domain.exceptions import (
    ApiError,
    MalformedResponseError,
    NetworkError,
    ProviderTimeoutError,
    RateLimitError,
    ValidationError,
)
from dialog_core.domain.models import NormalizedRequest, NormalizedResponse
from dialog_core.providers.registry import ProviderConfig


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    实现者需要提供：
    - name: Provider 名称，用于日志与路由。
    - timeout: 单次调用的超时上限（秒）。
    - supports_tools: 是否支持工具调用。
    - stateful: 是否使用续接句柄（continuation token）。
    - complete(req): 执行一次非流式调用。
    """

    name: str
    timeout: float
    supports_tools: bool
    stateful: bool

    async def complete(self, req: NormalizedRequest) -> NormalizedResponse:
        ...


async def post_json(cfg: ProviderConfig, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """以 Bearer 认证 POST JSON，并把 HTTP/网络错误转换为业务异常。"""

    if not cfg.api_key:
        # 配置缺失走 ValidationError，网关将其视为不可重试
        raise ValidationError(code="MISSING_API_KEY", message=f"{cfg.name} API key not set", provider=cfg.name)
    try:
        async with httpx.AsyncClient(timeout=cfg.timeout, trust_env=False) as client:
            resp = await client.post(
                f"{cfg.base_url.rstrip('/')}/{path}",
                json=payload,
                headers={
                    "Authorization": f"Bearer {cfg.api_key}",
                    "Content-Type": "application/json",
                },
            )
    except httpx.TimeoutException as e:
        raise ProviderTimeoutError(code="TIMEOUT", message=str(e) or "request timed out", provider=cfg.name)
    except httpx.RequestError as e:
        # 网络错误：DNS 失败、连接被拒绝/重置等
        raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=cfg.name)
    if resp.status_code == 429:
        raise RateLimitError(code="RATE_LIMIT", message=f"{cfg.name} rate limit", http_status=429, provider=cfg.name)
    if resp.status_code >= 400:
        raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code, provider=cfg.name)
    try:
        data = resp.json()
    except (json.JSONDecodeError, ValueError) as e:
        raise MalformedResponseError(code="MALFORMED_RESPONSE", message=f"invalid JSON body: {e}", provider=cfg.name)
    if not isinstance(data, dict):
        raise MalformedResponseError(code="MALFORMED_RESPONSE", message="response body is not an object", provider=cfg.name)
    return data


def parse_arguments(raw: Any) -> Dict[str, Any]:
    """解析工具调用的 arguments 字段。

    厂商通常把 arguments 作为 JSON 字符串返回，这里做一层
    json.loads 尝试，失败时保留原始字符串到 `_raw`，避免信息丢失。
    """

    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return {"_raw": raw}
        return parsed if isinstance(parsed, dict) else {"_raw": raw}
    return {}
