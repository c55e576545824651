"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在服务层统一捕获与用户提示。

Provider 适配器抛出下列异常，由 ProviderGateway 归类为 ErrorKind；
只有 OrchestrationError 会从编排器向外传播。
"""

from typing import Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from dialog_core.domain.models import ErrorKind, NormalizedResponse


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "RATE_LIMIT"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、连接被重置等。"""


class ProviderTimeoutError(NetworkError):
    """请求超过 Provider 的超时上限。"""


class ApiError(BusinessError):
    """第三方 API 返回非 2xx/429 错误时抛出。"""


class RateLimitError(BusinessError):
    """Provider 限流错误，由网关负责重试/退避策略。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class MalformedResponseError(BusinessError):
    """响应体无法解析，或缺少回答字段。"""


class ToolNotFoundError(BusinessError):
    """工具注册表中不存在该名称的工具。"""


class OrchestrationError(BusinessError):
    """所有 Provider 都失败后由编排器抛出。

    last_errors 记录每个 Provider 最后一次的失败响应，调用方可据此记录详细日志。
    """

    def __init__(
        self,
        kind: "ErrorKind",
        message: str,
        last_errors: Optional[Dict[str, "NormalizedResponse"]] = None,
    ):
        super().__init__(code=kind.value.upper(), message=message, http_status=502)
        self.kind = kind
        self.last_errors = dict(last_errors or {})
