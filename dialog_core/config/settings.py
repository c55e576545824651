"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置，优先级依次降低。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("DIALOG_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
        Path(__file__).resolve().parents[1] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- Provider 选择 ----
    provider_priority: List[str] = Field(
        default_factory=lambda: ["groq"],
        description="按顺序尝试的 Provider 列表，第一个成功的回答生效",
    )

    # Groq（OpenAI 兼容 chat/completions）
    groq_api_key: Optional[str] = Field(default=None, description="Groq API 密钥")
    groq_base_url: str = Field(default="https://api.groq.com/openai/v1")
    groq_model: str = Field(default="llama-3.3-70b-versatile")
    groq_timeout: float = Field(default=30.0, ge=1.0, description="Groq 请求超时（秒）")

    # OpenAI chat/completions
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥")
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    openai_model: str = Field(default="gpt-4o-mini")
    openai_timeout: float = Field(default=60.0, ge=1.0)

    # Responses API（有状态续接，previous_response_id）
    responses_api_key: Optional[str] = Field(default=None, description="Responses API 密钥")
    responses_base_url: str = Field(default="https://api.openai.com/v1")
    responses_model: str = Field(default="gpt-4o-mini")
    responses_timeout: float = Field(default=60.0, ge=1.0)

    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=500, ge=1, description="单次回答最大 token 数")

    # ---- 重试与工具 ----
    max_retries: int = Field(default=2, ge=0, le=10, description="网关对可重试错误的重试次数")
    retry_base_delay: float = Field(default=2.0, ge=0.0, description="指数退避的初始等待（秒）")
    max_tool_iterations: int = Field(default=5, ge=1, le=20, description="工具调用最大轮数")
    enable_web_search: bool = Field(default=True, description="是否向模型提供 web_search 工具")

    # ---- 会话与投递 ----
    max_history: int = Field(default=10, ge=1, le=100, description="每个用户保留的最大消息数")
    system_prompt_file: Optional[str] = Field(default=None, description="自定义系统提示词文件")
    max_message_length: int = Field(default=4096, ge=64, description="传输层单条消息长度上限")
    prefix_reserve: int = Field(default=30, ge=0, description="分段编号前缀预留长度")
    part_delay: float = Field(default=0.15, ge=0.0, description="分段消息之间的发送间隔（秒）")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("groq_api_key", "openai_api_key", "responses_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @field_validator("provider_priority")
    @classmethod
    def normalize_priority(cls, v: List[str]) -> List[str]:
        names = [name.strip().lower() for name in v if name and name.strip()]
        if not names:
            raise ValueError("provider_priority must not be empty")
        return names

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
