"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 配置 (registry)。
- 提供各接入方式的具体实现 (chat_completions_client、responses_client)。
- 统一超时、重试与错误分类 (gateway)。
"""

from typing import List, Optional, Sequence

from dialog_core.config.settings import settings
from dialog_core.providers.base import ProviderClient
from dialog_core.providers.chat_completions_client import ChatCompletionsClient
from dialog_core.providers.gateway import ProviderGateway
from dialog_core.providers.registry import get_provider_config
from dialog_core.providers.responses_client import ResponsesClient


def create_provider(name: str) -> ProviderClient:
    """根据名称创建 Provider 实例。"""

    cfg = get_provider_config(name, settings)
    if cfg.kind == "responses":
        return ResponsesClient(cfg)
    return ChatCompletionsClient(cfg)


def create_gateway(names: Optional[Sequence[str]] = None) -> ProviderGateway:
    """为 provider_priority 中的所有 Provider 构造网关。"""

    providers: List[ProviderClient] = [create_provider(n) for n in (names or settings.provider_priority)]
    return ProviderGateway(
        providers,
        max_retries=settings.max_retries,
        base_delay=settings.retry_base_delay,
    )
