"""Dialog Core 顶层包。

该包提供多 Provider 对话引擎的核心实现，
包括配置加载、会话存储、Provider 适配与降级、工具调用循环、
长消息切分与投递等能力。
"""

from dialog_core.api.service import handle_question, reset_conversation

__all__ = ["handle_question", "reset_conversation"]
