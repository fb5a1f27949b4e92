"""
interloop - LLM Agent 流式执行引擎

驱动与模型 provider 之间的轮次循环，把 provider 的流式协议翻译为稳定的语义事件，
串行执行模型请求的工具调用，并在固定扩展点上运行钩子链。

快速开始：
    from interloop import AgentSession

    session = AgentSession(tools=[...])
    session.send("Hello")
    async for event in session.stream():
        print(event.type)

层级：
- agent.session:   会话层（消息队列、生命周期钩子、注入循环）
- agent.runtime:   Agent Loop、模型适配器、工具执行器、事件通道
- agent.security:  钩子分发器、工具钩子包装
- system.llm:      内容模型、传输层、Gemini Interactions provider
- system.tools:    工具定义与工厂
- system.services: 日志、配置
"""

__version__ = "0.1.0"

from interloop.agent.session import AgentSession, create_agent_session
from interloop.agent.runtime.agent_loop import (
    AgentLoop,
    AgentLoopConfig,
    AgentLoopResult,
    AgentState,
    agent_loop,
)
from interloop.agent.runtime.event_stream import (
    AgentEvent,
    AgentEventType,
    EventStream,
    create_agent_event_stream,
)
from interloop.agent.runtime.formatter import FormatOptions, format_event, print_stream
from interloop.agent.runtime.context import AgentContext, prune_context
from interloop.agent.security.hook_manager import HookManager, HookName
from interloop.system.llm.base import ModelCallError, ModelTransport
from interloop.system.llm.message import Turn, TurnRole, Usage
from interloop.system.services.config_center import EngineConfig, load_config
from interloop.system.tools.base import AgentTool, AgentToolResult, agent_tool, tool

__all__ = [
    "__version__",
    # Session
    "AgentSession",
    "create_agent_session",
    # Loop
    "AgentLoop",
    "AgentLoopConfig",
    "AgentLoopResult",
    "AgentState",
    "agent_loop",
    # Events
    "AgentEvent",
    "AgentEventType",
    "EventStream",
    "create_agent_event_stream",
    "FormatOptions",
    "format_event",
    "print_stream",
    # Context
    "AgentContext",
    "prune_context",
    # Hooks
    "HookManager",
    "HookName",
    # Model
    "ModelCallError",
    "ModelTransport",
    "Turn",
    "TurnRole",
    "Usage",
    # Config
    "EngineConfig",
    "load_config",
    # Tools
    "AgentTool",
    "AgentToolResult",
    "agent_tool",
    "tool",
]
