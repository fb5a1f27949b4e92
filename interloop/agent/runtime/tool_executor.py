"""
Tool Executor

按顺序执行模型请求的一批工具调用：
- 每个调用发出 tool.start / tool.delta* / tool.end
- 未知工具和抛出异常的工具都转换为带错误标记的结果
- 输出结果与输入调用一一对应、顺序一致
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from interloop.agent.runtime.event_stream import AgentEvent, AgentEventType, EventStream
from interloop.system.llm.message import ContentBlock, function_result_block
from interloop.system.services.logger import ToolLoggerMixin
from interloop.system.tools.base import AgentTool, AgentToolResult, ToolCall, invoke_tool


class ToolExecutor(ToolLoggerMixin):
    """
    工具执行器

    严格串行执行，从不向外抛出工具异常。
    """

    def __init__(self, tools: Optional[Sequence[AgentTool]] = None):
        """
        初始化工具执行器

        Args:
            tools: 可用工具
        """
        self._tools: List[AgentTool] = list(tools or [])
        self._execution_count = 0
        self._error_count = 0
        self._not_found_count = 0

    @property
    def tools(self) -> List[AgentTool]:
        """可用工具"""
        return list(self._tools)

    def set_tools(self, tools: Sequence[AgentTool]) -> None:
        """替换可用工具"""
        self._tools = list(tools)

    def find(self, name: str) -> Optional[AgentTool]:
        """按名称精确查找工具"""
        for t in self._tools:
            if t.name == name:
                return t
        return None

    async def execute(
        self,
        call: ToolCall,
        stream: EventStream,
        signal: Optional[asyncio.Event] = None,
    ) -> ContentBlock:
        """
        执行单个工具调用

        Args:
            call: 工具调用
            stream: 事件通道
            signal: 取消信号

        Returns:
            function_result 内容块
        """
        self._execution_count += 1
        stream.push(AgentEvent(
            AgentEventType.TOOL_START,
            {"id": call.id, "name": call.name, "arguments": call.arguments},
        ))

        target = self.find(call.name)
        if target is None:
            self._not_found_count += 1
            self.logger.warning(f"工具不存在: {call.name}")
            result = AgentToolResult(result=f"Tool {call.name} not found", is_error=True)
        else:
            def on_update(partial: Any) -> None:
                stream.push(AgentEvent(
                    AgentEventType.TOOL_DELTA,
                    {"id": call.id, "name": call.name, "partialResult": partial},
                ))

            try:
                result = await invoke_tool(target, call.id, call.arguments, signal, on_update)
            except Exception as e:
                self.logger.debug(f"工具执行失败 {call.name}: {e}")
                result = AgentToolResult(result=f"Error: {e}", is_error=True)

        if result.is_error:
            self._error_count += 1

        stream.push(AgentEvent(
            AgentEventType.TOOL_END,
            {
                "id": call.id,
                "name": call.name,
                "result": result.result,
                "isError": result.is_error,
            },
        ))

        return function_result_block(call.id, call.name, result.result, result.is_error)

    async def execute_batch(
        self,
        calls: Sequence[ToolCall],
        stream: EventStream,
        signal: Optional[asyncio.Event] = None,
    ) -> List[ContentBlock]:
        """
        按顺序执行一批工具调用

        Returns:
            与 calls 等长、同序的 function_result 内容块
        """
        results: List[ContentBlock] = []
        for call in calls:
            results.append(await self.execute(call, stream, signal))
        return results

    def get_stats(self) -> Dict[str, Any]:
        """
        获取执行统计

        Returns:
            统计信息
        """
        return {
            "execution_count": self._execution_count,
            "error_count": self._error_count,
            "not_found_count": self._not_found_count,
            "registered_tools": len(self._tools),
        }


async def execute_tools(
    calls: Sequence[ContentBlock],
    tools: Sequence[AgentTool],
    stream: EventStream,
    signal: Optional[asyncio.Event] = None,
) -> List[ContentBlock]:
    """
    便捷函数：执行 function_call 内容块并返回 function_result 内容块

    Args:
        calls: function_call 内容块
        tools: 可用工具
        stream: 事件通道
        signal: 取消信号

    Returns:
        与 calls 等长、同序的 function_result 内容块
    """
    executor = ToolExecutor(tools)
    return await executor.execute_batch(
        [ToolCall.from_block(block) for block in calls],
        stream,
        signal,
    )
