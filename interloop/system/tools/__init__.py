"""
工具定义
"""

from interloop.system.tools.base import (
    AgentTool,
    AgentToolResult,
    ToolCall,
    agent_tool,
    invoke_tool,
    tool,
)

__all__ = [
    "AgentTool",
    "AgentToolResult",
    "ToolCall",
    "agent_tool",
    "invoke_tool",
    "tool",
]
