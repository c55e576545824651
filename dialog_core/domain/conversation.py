"""按用户划分的会话存储。

ConversationStore 是会话历史、续接句柄和用户交互状态的唯一持有者：

- 历史长度上限为 max_history，超出时优先删除最早的非 system 消息，
  system 消息（若存在）始终位于下标 0。
- 每个用户有独立的 asyncio.Lock，编排器用它串行化同一用户的对话轮次；
  不同用户之间互不竞争。
- generation 在 clear() 时递增，被取消或过期的轮次据此放弃写入；
  clear() 同时释放空闲用户的锁，锁表不会随用户数无限增长。
"""

import asyncio
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .models import ConversationTurn


MAX_HISTORY = 10


class UserState(str, Enum):
    """用户当前等待的输入类型。"""

    IDLE = "idle"
    AWAITING_ADMIN_USERNAME = "awaiting_admin_username"
    AWAITING_FEEDBACK_COMMENT = "awaiting_feedback_comment"
    AWAITING_BROADCAST_TEXT = "awaiting_broadcast_text"


@dataclass
class ConversationContext:
    user_id: str
    turns: List[ConversationTurn] = field(default_factory=list)
    continuation_tokens: Dict[str, str] = field(default_factory=dict)
    state: UserState = UserState.IDLE
    generation: int = 0


class ConversationStore:
    """内存中的会话存储，不存在的用户按空会话处理。"""

    def __init__(self, max_history: int = MAX_HISTORY):
        if max_history < 1:
            raise ValueError("max_history must be >= 1")
        self._max_history = max_history
        self._contexts: Dict[str, ConversationContext] = {}
        self._user_locks: Dict[str, asyncio.Lock] = {}
        # 保护上面两个字典本身，单个用户的轮次由 user lock 串行化
        self._mutex = threading.Lock()

    @property
    def max_history(self) -> int:
        return self._max_history

    def lock(self, user_id: str) -> asyncio.Lock:
        """返回该用户专属的异步锁。"""

        with self._mutex:
            user_lock = self._user_locks.get(user_id)
            if user_lock is None:
                user_lock = asyncio.Lock()
                self._user_locks[user_id] = user_lock
            return user_lock

    def append(
        self,
        user_id: str,
        turn: ConversationTurn,
        expected_generation: Optional[int] = None,
    ) -> bool:
        """追加一条消息并裁剪历史。

        若给出 expected_generation 且会话已被 clear()，则放弃写入并返回 False。
        """

        with self._mutex:
            ctx = self._context(user_id)
            if expected_generation is not None and ctx.generation != expected_generation:
                return False
            if turn.role == "system" and ctx.turns and ctx.turns[0].role == "system":
                ctx.turns[0] = turn
            elif turn.role == "system":
                ctx.turns.insert(0, turn)
            else:
                ctx.turns.append(turn)
            self._trim(ctx)
            return True

    def initialize_history(self, user_id: str, system_prompt: str) -> None:
        """若历史开头没有 system 消息，则插入一条。"""

        with self._mutex:
            ctx = self._context(user_id)
            if ctx.turns and ctx.turns[0].role == "system":
                return
            ctx.turns.insert(0, ConversationTurn(role="system", content=system_prompt))
            self._trim(ctx)

    def history(self, user_id: str) -> Tuple[ConversationTurn, ...]:
        with self._mutex:
            ctx = self._contexts.get(user_id)
            return tuple(ctx.turns) if ctx else ()

    def set_continuation_token(self, user_id: str, token: Optional[str], provider_id: str) -> None:
        if not token:
            return
        with self._mutex:
            self._context(user_id).continuation_tokens[provider_id] = token

    def adopt_continuation_token(self, user_id: str, provider_id: str, token: Optional[str]) -> None:
        """记录某个 Provider 回答本轮后的续接句柄，并作废其他 Provider 的句柄。

        其他 Provider 的服务端对话链缺少这一轮，下次调用需重新发送完整历史；
        token 为空时（例如工具轮数超限的固定回答）该 Provider 的句柄同样作废。
        """

        with self._mutex:
            tokens = self._context(user_id).continuation_tokens
            tokens.clear()
            if token:
                tokens[provider_id] = token

    def continuation_token(self, user_id: str, provider_id: str) -> Optional[str]:
        with self._mutex:
            ctx = self._contexts.get(user_id)
            return ctx.continuation_tokens.get(provider_id) if ctx else None

    def generation(self, user_id: str) -> int:
        with self._mutex:
            ctx = self._contexts.get(user_id)
            return ctx.generation if ctx else 0

    def state(self, user_id: str) -> UserState:
        with self._mutex:
            ctx = self._contexts.get(user_id)
            return ctx.state if ctx else UserState.IDLE

    def transition(self, user_id: str, new_state: UserState) -> UserState:
        """切换用户状态，返回切换前的状态。"""

        with self._mutex:
            ctx = self._context(user_id)
            previous = ctx.state
            ctx.state = new_state
            return previous

    def clear(self, user_id: str) -> None:
        with self._mutex:
            user_lock = self._user_locks.get(user_id)
            # 锁被持有或仍有等待者时保留，避免同一用户出现两把锁
            if user_lock is not None and not user_lock.locked() and not getattr(user_lock, "_waiters", None):
                del self._user_locks[user_id]
            ctx = self._contexts.get(user_id)
            if ctx is None:
                return
            ctx.turns.clear()
            ctx.continuation_tokens.clear()
            ctx.state = UserState.IDLE
            ctx.generation += 1

    def _context(self, user_id: str) -> ConversationContext:
        ctx = self._contexts.get(user_id)
        if ctx is None:
            ctx = ConversationContext(user_id=user_id)
            self._contexts[user_id] = ctx
        return ctx

    def _trim(self, ctx: ConversationContext) -> None:
        keep_head = 1 if ctx.turns and ctx.turns[0].role == "system" else 0
        overflow = len(ctx.turns) - self._max_history
        if overflow > 0:
            # system 消息自身占满上限时不再删除它
            removable = len(ctx.turns) - keep_head
            del ctx.turns[keep_head:keep_head + min(overflow, removable)]
