"""
工具基类定义

定义 Agent 工具、工具调用和工具结果的数据结构，
以及基于 pydantic 模型生成参数 Schema 的工具工厂。
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Type, Union

from pydantic import BaseModel

# 进度回调: 工具执行过程中可调用零次或多次
ToolUpdateCallback = Callable[["AgentToolResult"], None]

# execute(call_id, arguments, signal=None, on_update=None)
ToolExecuteFunc = Callable[..., Union["AgentToolResult", Awaitable["AgentToolResult"]]]


@dataclass
class AgentToolResult:
    """工具执行结果"""
    result: str
    is_error: bool = False
    details: Any = None

    def to_dict(self) -> dict:
        """转换为字典"""
        data = {"result": self.result, "isError": self.is_error}
        if self.details is not None:
            data["details"] = self.details
        return data

    @classmethod
    def coerce(cls, value: Any) -> "AgentToolResult":
        """
        把工具返回值规范化为 AgentToolResult

        支持 AgentToolResult、{"result", "isError"/"is_error", "details"} 字典和普通字符串。
        """
        if isinstance(value, AgentToolResult):
            return value
        if isinstance(value, dict) and "result" in value:
            return cls(
                result=str(value["result"]),
                is_error=bool(value.get("isError", value.get("is_error", False))),
                details=value.get("details"),
            )
        if isinstance(value, str):
            return cls(result=value)
        raise TypeError(f"Unsupported tool result type: {type(value).__name__}")


@dataclass
class AgentTool:
    """
    Agent 工具定义

    parameters 为 JSON Schema；arguments 与 result 对引擎是不透明的。
    """
    name: str
    description: str
    parameters: Dict[str, Any]
    execute: ToolExecuteFunc
    label: Optional[str] = None

    # 被钩子包装时指向原始工具
    wrapped_from: Optional["AgentTool"] = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.label is None:
            self.label = self.name

    def to_interactions_format(self) -> dict:
        """转换为 Interactions API 的 function 工具格式"""
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


@dataclass
class ToolCall:
    """工具调用请求（来自 function_call 内容块）"""
    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """转换为字典"""
        return {
            "id": self.id,
            "name": self.name,
            "arguments": self.arguments,
        }

    @classmethod
    def from_block(cls, block: Dict[str, Any]) -> "ToolCall":
        """从 function_call 内容块创建，缺失字段取空值"""
        return cls(
            id=block.get("id") or "",
            name=block.get("name") or "",
            arguments=block.get("arguments") or {},
        )


async def invoke_tool(
    tool: AgentTool,
    call_id: str,
    arguments: Dict[str, Any],
    signal: Optional[asyncio.Event] = None,
    on_update: Optional[ToolUpdateCallback] = None,
) -> AgentToolResult:
    """
    调用工具的 execute（同步或异步均可）

    异常原样抛出，由调用方处理。
    """
    value = tool.execute(call_id, arguments, signal, on_update)
    if inspect.isawaitable(value):
        value = await value
    return AgentToolResult.coerce(value)


def tool(
    name: str,
    description: str,
    parameters: Type[BaseModel],
    execute: ToolExecuteFunc,
    label: Optional[str] = None,
) -> AgentTool:
    """
    用 pydantic 模型定义参数的工具工厂

    参数 Schema 由 parameters.model_json_schema() 生成；调用时先把
    arguments 校验为模型实例再交给 execute，校验失败会抛出
    pydantic.ValidationError（执行器会把它转换为错误结果）。

    用法:
        class SleepArgs(BaseModel):
            duration_ms: int = Field(ge=0, le=60000)

        async def run(call_id, args, signal=None, on_update=None):
            await asyncio.sleep(args.duration_ms / 1000)
            return AgentToolResult(result=f"Slept for {args.duration_ms}ms.")

        sleep_tool = tool("sleep", "Pause execution", SleepArgs, run)

    Args:
        name: 工具名称
        description: 给模型的描述
        parameters: 参数模型类
        execute: 执行函数 (call_id, args_model, signal, on_update)
        label: 展示名称，默认与 name 相同

    Returns:
        AgentTool 实例
    """
    schema = parameters.model_json_schema()

    async def validated_execute(
        call_id: str,
        arguments: Dict[str, Any],
        signal: Optional[asyncio.Event] = None,
        on_update: Optional[ToolUpdateCallback] = None,
    ) -> AgentToolResult:
        args = parameters.model_validate(arguments)
        value = execute(call_id, args, signal, on_update)
        if inspect.isawaitable(value):
            value = await value
        return AgentToolResult.coerce(value)

    return AgentTool(
        name=name,
        description=description,
        parameters=schema,
        execute=validated_execute,
        label=label,
    )


def agent_tool(
    parameters: Type[BaseModel],
    name: Optional[str] = None,
    description: Optional[str] = None,
    label: Optional[str] = None,
) -> Callable[[ToolExecuteFunc], AgentTool]:
    """
    装饰器方式定义工具，名称与描述默认取函数名和 docstring

    用法:
        @agent_tool(EchoArgs)
        def echo(call_id, args, signal=None, on_update=None):
            '''Echo the message back'''
            return args.message
    """
    def decorator(func: ToolExecuteFunc) -> AgentTool:
        tool_name = name or func.__name__
        tool_description = description or func.__doc__ or f"Execute {tool_name}"
        return tool(
            name=tool_name,
            description=tool_description.strip(),
            parameters=parameters,
            execute=func,
            label=label,
        )
    return decorator
