"""
Context Helpers

- prune_context: 截断对话历史
- AgentContext: 基于 contextvars 的会话级上下文（工作目录），
  工具可以直接读取 AgentContext.get_cwd() 而无需显式传参
"""

from __future__ import annotations

import contextvars
import os
from dataclasses import dataclass
from typing import Any, AsyncGenerator, AsyncIterator, Callable, List, Optional, TypeVar

from interloop.system.llm.message import Turn

T = TypeVar("T")


def prune_context(interactions: List[Turn], max_turns: int) -> List[Turn]:
    """
    只保留最近 max_turns 个 Turn

    Args:
        interactions: 完整对话历史
        max_turns: 保留数量

    Returns:
        未超出上限时返回原列表，否则返回末尾切片
    """
    if len(interactions) <= max_turns:
        return interactions
    if max_turns <= 0:
        return []
    return interactions[-max_turns:]


@dataclass(frozen=True)
class SessionContext:
    """会话级上下文"""
    cwd: str


_session_var: contextvars.ContextVar[Optional[SessionContext]] = contextvars.ContextVar(
    "agent_session_context", default=None
)


class AgentContext:
    """
    会话级上下文访问

    用法:
        # 会话中
        async for event in AgentContext.run_generator(SessionContext(cwd="/project"), gen):
            ...

        # 工具中
        target_dir = AgentContext.get_cwd()
    """

    @staticmethod
    def current() -> Optional[SessionContext]:
        """当前会话上下文，不在会话内时为 None"""
        return _session_var.get()

    @staticmethod
    def get_cwd() -> str:
        """当前工作目录；不在会话内时返回进程工作目录"""
        ctx = _session_var.get()
        if ctx is None:
            return os.getcwd()
        return ctx.cwd

    @staticmethod
    def run(context: SessionContext, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """在给定上下文中同步执行 fn"""
        token = _session_var.set(context)
        try:
            return fn(*args, **kwargs)
        finally:
            _session_var.reset(token)

    @staticmethod
    async def run_generator(
        context: SessionContext,
        generator: AsyncIterator[T],
    ) -> AsyncGenerator[T, None]:
        """
        包装异步生成器，使其每一步都在给定上下文中执行

        生成器内部创建的任务会复制当时的上下文，因此同样可见。
        """
        try:
            while True:
                token = _session_var.set(context)
                try:
                    item = await generator.__anext__()
                except StopAsyncIteration:
                    return
                finally:
                    _session_var.reset(token)
                yield item
        finally:
            aclose = getattr(generator, "aclose", None)
            if aclose is not None:
                token = _session_var.set(context)
                try:
                    await aclose()
                finally:
                    _session_var.reset(token)
