"""Provider 配置。

每个 Provider 的接入方式（kind）、地址、模型、超时等集中在这里配置，
编排器只通过 provider 名称（如 "groq"）引用它们，切换或增加备用 Provider
只需要修改 provider_priority，而不用改调用代码。
"""

from dataclasses import dataclass
from typing import Dict, Literal, Mapping, Optional


ProviderKind = Literal["chat_completions", "responses"]


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    kind: ProviderKind
    base_url: str
    model: str
    api_key: Optional[str] = None
    timeout: float = 30.0
    temperature: float = 0.7
    max_tokens: int = 500


# Provider 名称 -> 接入方式；其余字段从 settings 的 "{name}_*" 读取
PROVIDER_KINDS: Mapping[str, ProviderKind] = {
    "groq": "chat_completions",
    "openai": "chat_completions",
    "responses": "responses",
}


def get_provider_config(name: str, cfg) -> ProviderConfig:
    """根据名称从 settings 构造 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    kind = PROVIDER_KINDS.get(key)
    if kind is None:
        raise KeyError(f"Unknown provider: {name!r}")
    return ProviderConfig(
        name=key,
        kind=kind,
        base_url=getattr(cfg, f"{key}_base_url"),
        model=getattr(cfg, f"{key}_model"),
        api_key=getattr(cfg, f"{key}_api_key", None),
        timeout=getattr(cfg, f"{key}_timeout", 30.0),
        temperature=getattr(cfg, "temperature", 0.7),
        max_tokens=getattr(cfg, "max_tokens", 500),
    )


def provider_configs(cfg) -> Dict[str, ProviderConfig]:
    """按 provider_priority 顺序构造所有配置。"""

    return {name: get_provider_config(name, cfg) for name in cfg.provider_priority}
