"""
Tool Hook Wrapper

把工具包装为经过 beforeToolExecute / afterToolExecute 的版本。
名称、描述、参数 Schema 保持不变；重复包装不会叠加。
"""

from __future__ import annotations

import asyncio
import dataclasses
from typing import Any, Dict, List, Optional, Sequence

from interloop.agent.security.hook_manager import (
    AfterToolExecuteEvent,
    BeforeToolExecuteEvent,
    HookManager,
    HookName,
)
from interloop.system.services.logger import get_logger
from interloop.system.tools.base import AgentTool, AgentToolResult, ToolUpdateCallback, invoke_tool

logger = get_logger(__name__)

DEFAULT_BLOCK_REASON = "Tool execution blocked by hook"


def _wrap_tool(original: AgentTool, hooks: HookManager) -> AgentTool:
    async def execute(
        call_id: str,
        arguments: Dict[str, Any],
        signal: Optional[asyncio.Event] = None,
        on_update: Optional[ToolUpdateCallback] = None,
    ) -> AgentToolResult:
        approval = await hooks.emit(
            HookName.BEFORE_TOOL_EXECUTE,
            BeforeToolExecuteEvent(
                tool_name=original.name,
                tool_call_id=call_id,
                arguments=arguments,
            ),
        )
        if not approval.get("allow"):
            reason = approval.get("reason") or DEFAULT_BLOCK_REASON
            logger.info(f"工具 {original.name} 被钩子拦截: {reason}")
            return AgentToolResult(result=f"Blocked: {reason}", is_error=True)

        effective_arguments = approval.get("arguments")
        if effective_arguments is None:
            effective_arguments = arguments

        try:
            result = await invoke_tool(original, call_id, effective_arguments, signal, on_update)
        except Exception as e:
            result = AgentToolResult(result=f"Error: {e}", is_error=True)

        modified = await hooks.emit(
            HookName.AFTER_TOOL_EXECUTE,
            AfterToolExecuteEvent(
                tool_name=original.name,
                tool_call_id=call_id,
                result=result,
            ),
        )
        replacement = modified.get("result")
        if replacement is not None:
            return AgentToolResult.coerce(replacement)
        return result

    return dataclasses.replace(original, execute=execute, wrapped_from=original)


def unwrap_tool(tool: AgentTool) -> AgentTool:
    """返回未经包装的原始工具"""
    while tool.wrapped_from is not None:
        tool = tool.wrapped_from
    return tool


def wrap_tools_with_hooks(tools: Sequence[AgentTool], hooks: HookManager) -> List[AgentTool]:
    """
    为工具集注入工具钩子

    已包装的工具会先还原为原始工具再包装，多次调用与调用一次等价。

    Args:
        tools: 工具列表
        hooks: 钩子管理器

    Returns:
        新的工具列表（不修改传入的工具对象）
    """
    return [_wrap_tool(unwrap_tool(t), hooks) for t in tools]
