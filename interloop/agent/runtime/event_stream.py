"""
Event Stream

推拉结合的异步事件通道：
- 生产者 push() 事件，消费者 async for 逐个取出
- 显式 FIFO 缓冲 + 单个等待者槽位
- 终止事件只标记结束，最终结果只由 end(result) 给出
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, Generic, Optional, TypeVar

T = TypeVar("T")
R = TypeVar("R")

# 通知等待中的消费者：通道已结束
_END = object()


class AgentEventType(str, Enum):
    """语义事件类型"""
    # Agent 生命周期
    AGENT_START = "agent.start"
    AGENT_END = "agent.end"

    # 单次交互
    INTERACTION_START = "interaction.start"
    INTERACTION_END = "interaction.end"

    # 文本
    TEXT_START = "text.start"
    TEXT_DELTA = "text.delta"
    TEXT_END = "text.end"

    # 思考摘要
    THOUGHT_SUMMARY = "thought.summary"

    # 工具
    TOOL_START = "tool.start"
    TOOL_DELTA = "tool.delta"
    TOOL_END = "tool.end"


@dataclass
class AgentEvent:
    """
    语义事件

    payload 字段保持对外约定的名称（interactionId、partialResult、isError 等），
    可用 event["delta"] / event.get("delta") 访问。
    """
    type: AgentEventType
    data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.type = AgentEventType(self.type)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {"type": self.type.value, **self.data}


class EventStream(Generic[T, R]):
    """
    单生产者 / 单消费者事件通道

    用法:
        stream = EventStream(is_complete=lambda e: e.type == "done")
        stream.push(event)
        stream.end(result)

        async for event in stream:
            ...
        result = await stream.result()
    """

    def __init__(self, is_complete: Optional[Callable[[T], bool]] = None):
        """
        初始化事件通道

        Args:
            is_complete: 终止判定，匹配的事件被投递后通道不再接收新事件
        """
        self._is_complete = is_complete or (lambda event: False)
        self._queue: Deque[T] = deque()
        self._waiter: Optional[asyncio.Future] = None
        self._done = False

        self._has_result = False
        self._result_value: Optional[R] = None
        self._result_ready = asyncio.Event()

        # 驱动该通道的生产者任务（由 agent_loop 设置）
        self.task: Optional[asyncio.Task] = None

    @property
    def done(self) -> bool:
        """通道是否已终止"""
        return self._done

    def push(self, event: T) -> None:
        """
        推送事件

        已终止时静默丢弃；有消费者在等待时直接交付，否则进入缓冲区。
        """
        if self._done:
            return

        if self._is_complete(event):
            self._done = True

        waiter = self._waiter
        if waiter is not None and not waiter.done():
            waiter.set_result(event)
        else:
            self._queue.append(event)

    def end(self, result: Optional[R] = None) -> None:
        """
        结束通道

        Args:
            result: 最终结果；为 None 时 result() 保持未完成
        """
        self._done = True

        if result is not None and not self._has_result:
            self._has_result = True
            self._result_value = result
            self._result_ready.set()

        waiter = self._waiter
        if waiter is not None and not waiter.done():
            waiter.set_result(_END)

    async def result(self) -> R:
        """等待最终结果（只由 end() 决定）"""
        await self._result_ready.wait()
        return self._result_value

    def __aiter__(self) -> "EventStream[T, R]":
        return self

    async def __anext__(self) -> T:
        if self._queue:
            return self._queue.popleft()
        if self._done:
            raise StopAsyncIteration
        if self._waiter is not None:
            raise RuntimeError("EventStream supports a single consumer")

        self._waiter = asyncio.get_running_loop().create_future()
        try:
            item = await self._waiter
        finally:
            self._waiter = None

        if item is _END:
            raise StopAsyncIteration
        return item


AgentEventStream = EventStream[AgentEvent, Any]


def create_agent_event_stream() -> "EventStream[AgentEvent, Any]":
    """创建以 agent.end 为终止事件的 Agent 事件通道"""
    return EventStream(is_complete=lambda event: event.type == AgentEventType.AGENT_END)
