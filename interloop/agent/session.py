"""
Agent Session

会话层：在多次 Agent Loop 之上维护对话状态。

- send() 把消息放入队列（非阻塞）
- stream() 依次运行 Agent Loop 并原样转发所有事件
- 六个钩子扩展点：onAgentStart 只在首次 stream() 时运行；
  onInteractionStart 在每次模型调用前运行；工具钩子由包装后的工具触发；
  onInteractionEnd 在每个 interaction.end 事件上运行；
  onAgentEnd 每次循环结束后运行，可注入新输入（受 max_injection_loops 限制）
"""

from __future__ import annotations

import asyncio
import os
from collections import deque
from typing import Any, AsyncGenerator, Deque, Dict, List, Optional, Sequence, Union

from interloop.agent.runtime.agent_loop import AgentLoop, AgentLoopConfig, AgentLoopResult, AgentState
from interloop.agent.runtime.context import AgentContext, SessionContext
from interloop.agent.runtime.event_stream import AgentEvent, AgentEventType, EventStream
from interloop.agent.security.hook_manager import (
    HookHandler,
    HookManager,
    HookName,
    OnAgentEndEvent,
    OnAgentStartEvent,
    OnInteractionEndEvent,
    OnInteractionStartEvent,
)
from interloop.agent.security.tool_wrapper import wrap_tools_with_hooks
from interloop.system.llm.base import ModelTransport
from interloop.system.llm.message import ContentBlock, Turn
from interloop.system.services.config_center import EngineConfig, load_config
from interloop.system.services.logger import SessionLoggerMixin
from interloop.system.tools.base import AgentTool

DEFAULT_MAX_INJECTION_LOOPS = 3


class AgentSession(SessionLoggerMixin):
    """
    Agent 会话

    用法:
        session = AgentSession(transport=transport, tools=[read_tool])
        session.on("beforeToolExecute", guard)

        session.send("Hello")
        async for event in session.stream():
            print(event.type)

    同一会话同一时间只能有一个 stream() 在运行。
    """

    def __init__(
        self,
        transport: Optional[ModelTransport] = None,
        model: Optional[str] = None,
        system_instruction: Optional[str] = None,
        tools: Optional[Sequence[AgentTool]] = None,
        previous_interaction_id: Optional[str] = None,
        max_injection_loops: int = DEFAULT_MAX_INJECTION_LOOPS,
        cwd: Optional[str] = None,
        config: Optional[EngineConfig] = None,
    ):
        """
        初始化会话

        Args:
            transport: 模型传输层，默认使用 Gemini Interactions
            model: 模型名，默认取配置中的 default_model
            system_instruction: 系统指令
            tools: 工具列表（会被包装上工具钩子）
            previous_interaction_id: 续接的交互 ID
            max_injection_loops: onAgentEnd 最多注入次数
            cwd: 会话工作目录，创建后不可修改
            config: 引擎配置，为空时加载一次
        """
        if transport is None:
            from interloop.system.llm.providers.gemini import GeminiInteractionsTransport
            transport = GeminiInteractionsTransport()

        self._transport = transport
        self._config = config or load_config()
        self._model = model or self._config.default_model
        self._max_injection_loops = max_injection_loops
        self._cwd = cwd if cwd is not None else os.getcwd()

        self._hooks = HookManager()
        self._original_tools: List[AgentTool] = list(tools or [])
        self._state = AgentState(
            previous_interaction_id=previous_interaction_id,
            tools=wrap_tools_with_hooks(self._original_tools, self._hooks),
            system_instruction=system_instruction,
        )

        self._queue: Deque[Turn] = deque()
        self._current_stream: Optional[EventStream] = None
        self._signal: Optional[asyncio.Event] = None
        self._has_started = False
        self._last_result: Optional[AgentLoopResult] = None

    # ============== 状态 ==============

    def update_tools(self, tools: Sequence[AgentTool]) -> None:
        """替换工具集（重新包装工具钩子）"""
        self._original_tools = list(tools)
        self._state.tools = wrap_tools_with_hooks(self._original_tools, self._hooks)

    def update_system_instruction(self, instruction: str) -> None:
        """替换系统指令"""
        self._state.system_instruction = instruction

    @property
    def state(self) -> AgentState:
        """会话状态快照（只读）"""
        return self._state.snapshot()

    @property
    def model(self) -> str:
        return self._model

    @property
    def tools(self) -> List[AgentTool]:
        """未包装的原始工具"""
        return list(self._original_tools)

    @property
    def is_streaming(self) -> bool:
        """是否有正在运行的循环"""
        return self._current_stream is not None

    @property
    def signal(self) -> Optional[asyncio.Event]:
        """当前循环的取消信号"""
        return self._signal

    @property
    def hook_runner(self) -> HookManager:
        """钩子管理器"""
        return self._hooks

    @property
    def cwd(self) -> str:
        """会话工作目录"""
        return self._cwd

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    # ============== 钩子 ==============

    def on(self, hook_name: Union[HookName, str], handler: HookHandler) -> "AgentSession":
        """
        注册钩子处理器

        用法:
            session.on("beforeToolExecute", lambda e: {"allow": "rm" not in str(e.arguments)})

        Returns:
            self，便于链式调用
        """
        self._hooks.on(hook_name, handler)
        return self

    # ============== 公共接口 ==============

    def send(self, input: Union[str, List[ContentBlock]]) -> None:
        """把消息加入队列"""
        self._queue.append(Turn.user(input))

    def clear_queue(self) -> None:
        """清空消息队列"""
        self._queue.clear()

    def abort(self) -> None:
        """请求取消当前循环并清空队列（在下一个迭代边界生效）"""
        if self._signal is not None:
            self._signal.set()
            self.logger.info("会话已请求取消")
        self._queue.clear()

    def stream(self) -> AsyncGenerator[AgentEvent, None]:
        """
        运行队列中的消息并产出事件

        整个过程在会话的工作目录上下文中执行。提前退出时调用
        aclose() 会停止后台循环。

        用法:
            async for event in session.stream():
                ...
        """
        return AgentContext.run_generator(SessionContext(cwd=self._cwd), self._stream_internal())

    async def _stream_internal(self) -> AsyncGenerator[AgentEvent, None]:
        if not self._queue:
            return

        if not self._has_started:
            self._has_started = True
            if self._hooks.has(HookName.ON_AGENT_START):
                await self._run_agent_start()

        injection_count = 0
        while self._queue:
            turn = self._queue.popleft()
            run = self._run_once(turn)
            try:
                async for event in run:
                    yield event
            finally:
                await run.aclose()

            result = self._last_result
            if injection_count < self._max_injection_loops and self._hooks.has(HookName.ON_AGENT_END):
                end_result = await self._hooks.emit(
                    HookName.ON_AGENT_END,
                    OnAgentEndEvent(interaction_count=len(result.interactions) if result else 0),
                )
                if end_result.get("input"):
                    self.send(end_result["input"])
                    injection_count += 1
                    self.logger.debug(f"onAgentEnd 注入新输入 ({injection_count}/{self._max_injection_loops})")
                    continue
            break

    async def _run_agent_start(self) -> None:
        start_result = await self._hooks.emit(
            HookName.ON_AGENT_START,
            OnAgentStartEvent(
                tools=list(self._state.tools),
                input=list(self._queue[0].content) if self._queue else [],
                system_instruction=self._state.system_instruction,
            ),
        )
        if start_result.get("tools") is not None:
            self.update_tools(start_result["tools"])
        if start_result.get("system_instruction"):
            self.update_system_instruction(start_result["system_instruction"])
        if start_result.get("input"):
            self.send(start_result["input"])

    async def _run_once(self, turn: Turn) -> AsyncGenerator[AgentEvent, None]:
        """运行一次 Agent Loop 并转发事件"""
        self._signal = asyncio.Event()
        self._last_result = None

        loop = AgentLoop(
            AgentLoopConfig(
                model=self._model,
                system_instruction=self._state.system_instruction,
                tools=self._state.tools,
                previous_interaction_id=self._state.previous_interaction_id,
                signal=self._signal,
                get_follow_up_messages=self._drain_queue,
                transform_context=self._transform_context,
            ),
            self._transport,
            self._config,
        )
        stream = loop.start(turn.content)
        self._current_stream = stream

        try:
            async for event in stream:
                if event.type == AgentEventType.INTERACTION_START:
                    self._state.previous_interaction_id = event["interactionId"]
                elif event.type == AgentEventType.AGENT_END:
                    self._state.interactions = list(event["interactions"])

                if event.type == AgentEventType.INTERACTION_END and self._hooks.has(HookName.ON_INTERACTION_END):
                    await self._hooks.emit(
                        HookName.ON_INTERACTION_END,
                        OnInteractionEndEvent(turn=event["turn"]),
                    )

                yield event

            result = await stream.task
            self._state.previous_interaction_id = result.interaction_id or self._state.previous_interaction_id
            self._state.interactions = list(result.interactions)
            self._state.usage.add(result.usage)
            self._last_result = result
        finally:
            task = stream.task
            if task is not None and not task.done():
                # 消费方提前退出：停止后台循环
                self._signal.set()
                task.cancel()
            self._current_stream = None
            self._signal = None

    def _drain_queue(self) -> Optional[List[Turn]]:
        """取出队列中的全部消息作为后续消息"""
        if not self._queue:
            return None
        messages = list(self._queue)
        self._queue.clear()
        return messages

    async def _transform_context(self, snapshot: AgentState) -> Optional[Dict[str, Any]]:
        """每次模型调用前触发 onInteractionStart"""
        if not self._hooks.has(HookName.ON_INTERACTION_START):
            return None
        result = await self._hooks.emit(
            HookName.ON_INTERACTION_START,
            OnInteractionStartEvent(interactions=snapshot.interactions),
        )
        if result.get("interactions") is not None:
            return {"interactions": result["interactions"]}
        return None


# ============== 便捷函数 ==============

def create_agent_session(**kwargs: Any) -> AgentSession:
    """
    创建 Agent 会话

    Args:
        **kwargs: AgentSession 构造参数

    Returns:
        AgentSession 实例
    """
    return AgentSession(**kwargs)
