"""统一的对话与结果数据模型。

本模块定义了编排引擎在不同 Provider 之间共享的标准数据结构：

- ConversationTurn: 一条对话消息（system/user/assistant/tool）。
- NormalizedRequest: 发给底层 LLM Provider 的完整请求。
- NormalizedResponse: 从 Provider 解析后的统一响应结果。
- ErrorKind: 失败分类，重试与降级逻辑只依赖这个枚举，而不是异常类型。

所有 Provider 适配器都必须只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Optional, Any, Dict, List, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    # 仅在类型检查时导入，避免运行时循环依赖
    from dialog_core.tools.definitions import ToolDef


# LLM 消息角色类型（与 OpenAI 等厂商的 role 字段对应）
Role = Literal["system", "user", "assistant", "tool"]


@dataclass(frozen=True)
class ToolInvocation:
    """模型发起的一次工具调用请求。"""

    call_id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    """工具执行结果的封装（文本形式）。"""

    call_id: str
    name: str
    content: str


@dataclass(frozen=True)
class ConversationTurn:
    """一条对话消息，追加到历史后不可再修改。

    - role: 消息角色。
    - content: 纯文本内容。
    - tool_call_id / tool_name: 当 role 为 "tool" 时，用于关联某一次工具调用。
    - tool_calls: 当 role 为 "assistant" 且模型触发工具调用时，
      这里保存模型发起的原始工具调用。
    """

    role: Role
    content: str
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    tool_calls: Tuple[ToolInvocation, ...] = ()


class ErrorKind(str, Enum):
    """失败分类。"""

    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    MALFORMED_RESPONSE = "malformed_response"
    AUTH_OR_REQUEST_ERROR = "auth_or_request_error"
    TOOL_EXECUTION_ERROR = "tool_execution_error"
    TOOL_ITERATION_LIMIT_EXCEEDED = "tool_iteration_limit_exceeded"
    ALL_PROVIDERS_FAILED = "all_providers_failed"

    @property
    def retryable(self) -> bool:
        """网关层是否允许重试。"""

        return self in _RETRYABLE


_RETRYABLE = frozenset({ErrorKind.TIMEOUT, ErrorKind.RATE_LIMITED, ErrorKind.UPSTREAM_UNAVAILABLE})


@dataclass
class NormalizedRequest:
    """一次完整的 Provider 请求。

    编排器根据会话历史生成 NormalizedRequest，再交给 ProviderGateway。
    Provider 适配层负责把本结构转换成各家 API 的 JSON 请求体。
    """

    provider_id: str
    turns: List[ConversationTurn]
    continuation_token: Optional[str] = None
    # 工具定义列表：当模型支持工具调用时，会通过 Provider 转成对应 schema
    tools_offered: List["ToolDef"] = field(default_factory=list)


@dataclass
class NormalizedResponse:
    """一次 Provider 调用的最终结果。

    - content: 模型给出的回答文本，工具调用轮次中可能为空。
    - tool_calls: 模型要求执行的工具调用列表。
    - continuation_token: 有状态 Provider 返回的续接句柄，由调用方负责保存。
    - is_error / error_kind / error_message: 失败信息。
    """

    content: Optional[str] = None
    tool_calls: List[ToolInvocation] = field(default_factory=list)
    continuation_token: Optional[str] = None
    is_error: bool = False
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    raw: Optional[dict] = None

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "NormalizedResponse":
        return cls(is_error=True, error_kind=kind, error_message=message)

    @property
    def has_content(self) -> bool:
        return bool(self.content and self.content.strip())


@dataclass(frozen=True)
class MessageChunk:
    """超长消息切分后的一段。

    text = prefix + body；prefix 形如 "(1/3)\\n\\n"，单段消息时为空。
    """

    index: int
    total: int
    body: str
    prefix: str = ""

    @property
    def text(self) -> str:
        return self.prefix + self.body
