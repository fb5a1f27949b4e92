"""
Agent Security Layer

- HookManager: 六个扩展点的钩子分发（merge / gate / observe / collect）
- wrap_tools_with_hooks: 工具执行前后的钩子注入
"""

from interloop.agent.security.hook_manager import (
    AfterToolExecuteEvent,
    BeforeToolExecuteEvent,
    HookManager,
    HookName,
    HookPolicy,
    HookRegistration,
    OnAgentEndEvent,
    OnAgentStartEvent,
    OnInteractionEndEvent,
    OnInteractionStartEvent,
    create_hook_manager,
)
from interloop.agent.security.tool_wrapper import unwrap_tool, wrap_tools_with_hooks

__all__ = [
    "AfterToolExecuteEvent",
    "BeforeToolExecuteEvent",
    "HookManager",
    "HookName",
    "HookPolicy",
    "HookRegistration",
    "OnAgentEndEvent",
    "OnAgentStartEvent",
    "OnInteractionEndEvent",
    "OnInteractionStartEvent",
    "create_hook_manager",
    "unwrap_tool",
    "wrap_tools_with_hooks",
]
