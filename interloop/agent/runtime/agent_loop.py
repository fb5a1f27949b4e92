"""
Agent Loop

基于轮次的状态机：调用模型 -> 检测工具调用 -> 执行工具 -> 决定继续或停止。

每次迭代:
1. 已请求取消则停止（不再调用模型）
2. 取最新 Turn 的内容作为模型输入
3. 调用 transform_context（每次迭代都调用，传入状态快照），应用返回的覆盖
4. 调用模型；更新续接 ID；累加 usage；追加模型 Turn
5. 有工具调用：执行并追加结果 Turn，发出 interaction.end，继续
6. 否则取后续消息；有则追加，发出 interaction.end，继续
7. 否则发出 interaction.end 并停止

无论正常结束还是异常，事件通道都会收到 agent.end 并以同样的结果 end()。
达到 max_iterations 是静默停止，即使还有未处理的工具调用。
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from uuid import uuid4

from interloop.agent.runtime.event_stream import (
    AgentEvent,
    AgentEventType,
    EventStream,
    create_agent_event_stream,
)
from interloop.agent.runtime.model_adapter import ModelAdapter, ModelCallConfig
from interloop.agent.runtime.tool_executor import ToolExecutor
from interloop.system.llm.base import ModelTransport
from interloop.system.llm.message import ContentBlock, Turn, TurnRole, Usage, format_input
from interloop.system.services.config_center import EngineConfig, load_config
from interloop.system.services.logger import Layer, LoopLoggerMixin, trace_context
from interloop.system.tools.base import AgentTool, ToolCall


@dataclass
class AgentState:
    """
    Loop 状态

    只属于当前运行中的一次 Agent Loop；外部只能拿到 snapshot()。
    """
    interactions: List[Turn] = field(default_factory=list)
    previous_interaction_id: Optional[str] = None
    usage: Usage = field(default_factory=Usage)
    tools: List[AgentTool] = field(default_factory=list)
    system_instruction: Optional[str] = None

    def snapshot(self) -> "AgentState":
        """浅拷贝（新的列表和 usage 对象）"""
        return AgentState(
            interactions=list(self.interactions),
            previous_interaction_id=self.previous_interaction_id,
            usage=Usage().add(self.usage),
            tools=list(self.tools),
            system_instruction=self.system_instruction,
        )


@dataclass
class AgentLoopResult:
    """Agent Loop 结果"""
    interactions: List[Turn]
    interaction_id: str
    usage: Usage

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "interactions": [t.to_dict() for t in self.interactions],
            "interactionId": self.interaction_id,
            "usage": self.usage.to_dict(),
        }


# transform_context 可返回 {"interactions", "tools", "system_instruction"} 中的任意字段
TransformContextModifications = Dict[str, Any]
TransformContextCallback = Callable[
    [AgentState],
    Union[Optional[TransformContextModifications], Awaitable[Optional[TransformContextModifications]]],
]
FollowUpProvider = Callable[[], Optional[List[Turn]]]


@dataclass
class AgentLoopConfig:
    """Agent Loop 配置"""
    model: Optional[str] = None                      # 为空时使用 EngineConfig.default_model
    system_instruction: Optional[str] = None
    tools: List[AgentTool] = field(default_factory=list)
    previous_interaction_id: Optional[str] = None
    max_iterations: Optional[int] = None             # 为空时使用 EngineConfig.max_iterations
    signal: Optional[asyncio.Event] = None           # set() 表示已取消
    get_follow_up_messages: Optional[FollowUpProvider] = None
    transform_context: Optional[TransformContextCallback] = None


class AgentLoop(LoopLoggerMixin):
    """
    Agent Loop

    start() 立即返回事件通道，循环在后台任务中运行（stream.task）。
    """

    def __init__(
        self,
        config: AgentLoopConfig,
        transport: ModelTransport,
        engine_config: Optional[EngineConfig] = None,
    ):
        """
        初始化 Agent Loop

        Args:
            config: Loop 配置
            transport: 模型传输层
            engine_config: 引擎配置，为空时加载一次
        """
        self._config = config
        self._engine_config = engine_config or load_config()
        self._adapter = ModelAdapter(transport)
        self._run_id = str(uuid4())

    @property
    def run_id(self) -> str:
        """运行 ID（同时作为日志 trace_id）"""
        return self._run_id

    @property
    def model(self) -> str:
        return self._config.model or self._engine_config.default_model

    @property
    def max_iterations(self) -> int:
        if self._config.max_iterations is not None:
            return self._config.max_iterations
        return self._engine_config.max_iterations

    def start(self, input: Union[str, List[ContentBlock]]) -> EventStream:
        """
        启动循环

        Args:
            input: 初始用户输入

        Returns:
            事件通道；最终结果通过 await stream.result() 获取，
            循环中的异常在 await stream.task 时抛出
        """
        stream = create_agent_event_stream()
        stream.task = asyncio.get_running_loop().create_task(
            self._run(format_input(input), stream),
            name=f"agent-loop-{self._run_id[:8]}",
        )
        return stream

    async def _run(self, input: List[ContentBlock], stream: EventStream) -> AgentLoopResult:
        state = AgentState(
            previous_interaction_id=self._config.previous_interaction_id,
            tools=list(self._config.tools),
            system_instruction=self._config.system_instruction,
        )
        state.interactions.append(Turn(role=TurnRole.USER, content=input))

        with trace_context(trace_id=self._run_id, layer=Layer.LOOP, component="AgentLoop"):
            self.logger.info(f"Agent Loop 开始: model={self.model}, max_iterations={self.max_iterations}")
            try:
                stream.push(AgentEvent(AgentEventType.AGENT_START))
                await self._run_loop(state, stream)
            except (Exception, asyncio.CancelledError) as e:
                self.logger.error(f"Agent Loop 异常终止: {type(e).__name__}: {e}")
                self._finish(state, stream)
                raise
            result = self._finish(state, stream)
            self.logger.info(f"Agent Loop 结束: turns={len(result.interactions)}")
            return result

    async def _run_loop(self, state: AgentState, stream: EventStream) -> None:
        config = self._config
        executor = ToolExecutor()
        max_iterations = self.max_iterations
        iteration = 0

        while iteration < max_iterations:
            if config.signal is not None and config.signal.is_set():
                self.logger.info("收到取消信号，停止循环")
                break
            iteration += 1
            self.logger.debug(f"Loop iteration {iteration}/{max_iterations}")

            if not state.interactions:
                break
            latest = state.interactions[-1]

            if config.transform_context is not None:
                await self._apply_transform(state)

            model_result = await self._adapter.call(
                ModelCallConfig(
                    model=self.model,
                    input=latest.content,
                    tools=state.tools,
                    system_instruction=state.system_instruction,
                    previous_interaction_id=state.previous_interaction_id,
                ),
                stream,
            )

            state.previous_interaction_id = model_result.interaction_id
            state.usage.add(model_result.usage)

            model_turn = Turn(role=TurnRole.MODEL, content=model_result.outputs)
            state.interactions.append(model_turn)

            calls = model_turn.function_calls
            if calls:
                executor.set_tools(state.tools)
                results = await executor.execute_batch(
                    [ToolCall.from_block(block) for block in calls],
                    stream,
                    config.signal,
                )
                state.interactions.append(Turn(role=TurnRole.USER, content=results))
                self._end_interaction(model_turn, stream)
                continue

            follow_up = config.get_follow_up_messages() if config.get_follow_up_messages else None
            if follow_up:
                state.interactions.extend(follow_up)
                self._end_interaction(model_turn, stream)
                continue

            self._end_interaction(model_turn, stream)
            break

    async def _apply_transform(self, state: AgentState) -> None:
        """调用 transform_context 并应用返回的覆盖"""
        modifications = self._config.transform_context(state.snapshot())
        if inspect.isawaitable(modifications):
            modifications = await modifications
        if not modifications:
            return

        if modifications.get("interactions") is not None:
            state.interactions = list(modifications["interactions"])
        if modifications.get("tools") is not None:
            state.tools = list(modifications["tools"])
        if modifications.get("system_instruction"):
            state.system_instruction = modifications["system_instruction"]

    @staticmethod
    def _end_interaction(turn: Turn, stream: EventStream) -> None:
        stream.push(AgentEvent(AgentEventType.INTERACTION_END, {"turn": turn}))

    @staticmethod
    def _finish(state: AgentState, stream: EventStream) -> AgentLoopResult:
        """发出 agent.end 并以相同载荷结束通道（重复调用无副作用）"""
        result = AgentLoopResult(
            interactions=list(state.interactions),
            interaction_id=state.previous_interaction_id or "",
            usage=Usage().add(state.usage),
        )
        stream.push(AgentEvent(
            AgentEventType.AGENT_END,
            {
                "interactions": result.interactions,
                "interactionId": result.interaction_id,
                "usage": result.usage,
            },
        ))
        stream.end(result)
        return result


# ============== 便捷函数 ==============

def agent_loop(
    input: Union[str, List[ContentBlock]],
    config: AgentLoopConfig,
    transport: ModelTransport,
    engine_config: Optional[EngineConfig] = None,
) -> EventStream:
    """
    启动一次 Agent Loop

    用法:
        stream = agent_loop("Hello", AgentLoopConfig(model="gemini-3-flash-preview"), transport)
        async for event in stream:
            print(event.type)
        result = await stream.result()

    Args:
        input: 初始用户输入
        config: Loop 配置
        transport: 模型传输层
        engine_config: 引擎配置

    Returns:
        事件通道
    """
    return AgentLoop(config, transport, engine_config).start(input)
