"""
Agent Runtime Layer

Agent Loop 执行周期：
model call → tool execution → follow-up → stop

支持：
- 事件驱动（推拉结合的事件通道）
- 流式输出
- 串行工具调用
- 上下文变换回调
"""

from interloop.agent.runtime.event_stream import (
    AgentEvent,
    AgentEventStream,
    AgentEventType,
    EventStream,
    create_agent_event_stream,
)
from interloop.agent.runtime.model_adapter import (
    ModelAdapter,
    ModelCallConfig,
    ModelCallResult,
    call_model,
    clean_thought_text,
)
from interloop.agent.runtime.tool_executor import ToolExecutor, execute_tools
from interloop.agent.runtime.agent_loop import (
    AgentLoop,
    AgentLoopConfig,
    AgentLoopResult,
    AgentState,
    agent_loop,
)
from interloop.agent.runtime.context import AgentContext, SessionContext, prune_context
from interloop.agent.runtime.formatter import (
    FormatOptions,
    format_args,
    format_event,
    print_formatted_events,
    print_stream,
)

__all__ = [
    # Event Stream
    "AgentEvent",
    "AgentEventStream",
    "AgentEventType",
    "EventStream",
    "create_agent_event_stream",
    # Model Adapter
    "ModelAdapter",
    "ModelCallConfig",
    "ModelCallResult",
    "call_model",
    "clean_thought_text",
    # Tool Executor
    "ToolExecutor",
    "execute_tools",
    # Agent Loop
    "AgentLoop",
    "AgentLoopConfig",
    "AgentLoopResult",
    "AgentState",
    "agent_loop",
    # Context
    "AgentContext",
    "SessionContext",
    "prune_context",
    # Formatter
    "FormatOptions",
    "format_args",
    "format_event",
    "print_formatted_events",
    "print_stream",
]
