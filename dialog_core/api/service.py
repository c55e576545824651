"""对外 API 服务模块。

提供简化的函数接口供消息接入层（机器人、Webhook 等）调用。
"""

from typing import Optional

from dialog_core.agents.orchestrator import FallbackOrchestrator
from dialog_core.agents.tool_loop import ToolLoop
from dialog_core.config.settings import settings
from dialog_core.delivery.sender import MessageSender, MessageTransport
from dialog_core.domain.conversation import ConversationStore
from dialog_core.domain.exceptions import OrchestrationError
from dialog_core.infrastructure.logging.logger import logger
from dialog_core.prompts import load_system_prompt
from dialog_core.providers import create_gateway
from dialog_core.tools.registry import default_registry


RETRY_LATER_MESSAGE = "Sorry, I could not get an answer right now. Please try again in a moment."

_store: Optional[ConversationStore] = None
_orchestrator: Optional[FallbackOrchestrator] = None


def get_default_store() -> ConversationStore:
    """获取默认的会话存储（单例）。"""
    global _store
    if _store is None:
        _store = ConversationStore(max_history=settings.max_history)
    return _store


def get_default_orchestrator() -> FallbackOrchestrator:
    """获取默认的编排器实例（单例）。"""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = FallbackOrchestrator(
            store=get_default_store(),
            gateway=create_gateway(settings.provider_priority),
            provider_priority=settings.provider_priority,
            tool_registry=default_registry(enable_web_search=settings.enable_web_search),
            tool_loop=ToolLoop(max_iterations=settings.max_tool_iterations),
            system_prompt=load_system_prompt(settings.system_prompt_file),
        )
    return _orchestrator


async def handle_question(
    user_id: str,
    chat_target: str,
    text: str,
    transport: MessageTransport,
) -> int:
    """回答用户问题并通过 transport 发送回答。

    Args:
        user_id: 用户ID，用于定位会话历史
        chat_target: 传输层的会话目标（如聊天ID）
        text: 用户问题
        transport: 实现 send(chat_target, text) 的传输层

    Returns:
        成功发送的消息段数
    """
    sender = MessageSender(
        transport,
        max_part_length=settings.max_message_length,
        prefix_reserve=settings.prefix_reserve,
        part_delay=settings.part_delay,
    )
    try:
        answer = await get_default_orchestrator().answer(user_id, text)
    except OrchestrationError as e:
        logger.error(f"Answer failed: {e.message}", extra={"extra": {
            "user_id": user_id,
            "error_kind": e.kind.value,
            "providers": {
                name: resp.error_kind.value if resp.error_kind else None
                for name, resp in e.last_errors.items()
            },
        }})
        return await sender.deliver(chat_target, RETRY_LATER_MESSAGE)
    return await sender.deliver(chat_target, answer)


def reset_conversation(user_id: str) -> None:
    """清空用户的会话历史与续接句柄。"""
    get_default_store().clear(user_id)
    logger.info("Conversation reset", extra={"extra": {"user_id": user_id}})
