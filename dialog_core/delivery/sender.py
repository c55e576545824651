"""按段发送长消息。

MessageSender 把 Segmenter 的输出依次交给传输层发送：段与段之间稍作停顿，
某一段发送失败时记录日志并继续发送后面的段。
"""

import asyncio
from typing import Any, Awaitable, Callable, Protocol

from dialog_core.infrastructure.logging.logger import logger

from .segmenter import MAX_PART_LENGTH, PREFIX_RESERVE, split


class MessageTransport(Protocol):
    """传输层协议：向 chat_target 发送一条不超过上限的文本消息。"""

    async def send(self, chat_target: str, text: str) -> None:
        ...


class MessageSender:
    def __init__(
        self,
        transport: MessageTransport,
        max_part_length: int = MAX_PART_LENGTH,
        prefix_reserve: int = PREFIX_RESERVE,
        part_delay: float = 0.15,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._transport = transport
        self._max_part_length = max_part_length
        self._prefix_reserve = prefix_reserve
        self._part_delay = part_delay
        self._sleep = sleep

    async def deliver(self, chat_target: str, text: str) -> int:
        """发送 text，返回成功发送的段数。"""

        if not text:
            logger.warning("Refusing to send empty message", extra={"extra": {"chat_target": chat_target}})
            return 0

        chunks = split(text, self._max_part_length, self._prefix_reserve)
        sent = 0
        for chunk in chunks:
            try:
                await self._transport.send(chat_target, chunk.text)
                sent += 1
            except Exception as e:
                logger.error(
                    "Failed to send message part",
                    extra={"extra": {"chat_target": chat_target, "part": chunk.index, "total": chunk.total, "error": str(e)}},
                )
            if chunk.index < chunk.total and self._part_delay > 0:
                await self._sleep(self._part_delay)

        logger.info(
            "Delivered message",
            extra={"extra": {"chat_target": chat_target, "length": len(text), "parts": len(chunks), "sent": sent}},
        )
        return sent
