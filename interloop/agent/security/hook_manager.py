"""
Hook Manager

六个扩展点的钩子分发器。每个扩展点维护一个有序的处理器列表，
并按固定的合并策略汇总处理器返回值：

- merge:   onAgentStart / onInteractionStart / afterToolExecute
           依次执行，浅合并返回的覆盖字段（后者优先）
- gate:    beforeToolExecute
           依次执行，第一个拒绝立即返回；之前的参数覆盖合并进最终结果
- observe: onInteractionEnd
           依次执行，忽略返回值
- collect: onAgentEnd
           依次执行，非空 input 用空行拼接

处理器可以是同步或异步函数，严格按注册顺序逐个 await。
处理器抛出的异常直接向外传播。
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, List, Optional, Union, TYPE_CHECKING

from interloop.system.services.logger import HookLoggerMixin

if TYPE_CHECKING:
    from interloop.system.llm.message import ContentBlock, Turn
    from interloop.system.tools.base import AgentTool, AgentToolResult


class HookName(str, Enum):
    """扩展点名称"""
    ON_AGENT_START = "onAgentStart"
    ON_INTERACTION_START = "onInteractionStart"
    BEFORE_TOOL_EXECUTE = "beforeToolExecute"
    AFTER_TOOL_EXECUTE = "afterToolExecute"
    ON_INTERACTION_END = "onInteractionEnd"
    ON_AGENT_END = "onAgentEnd"


class HookPolicy(Enum):
    """合并策略"""
    MERGE = "merge"
    GATE = "gate"
    OBSERVE = "observe"
    COLLECT = "collect"


HOOK_POLICIES: Dict[HookName, HookPolicy] = {
    HookName.ON_AGENT_START: HookPolicy.MERGE,
    HookName.ON_INTERACTION_START: HookPolicy.MERGE,
    HookName.BEFORE_TOOL_EXECUTE: HookPolicy.GATE,
    HookName.AFTER_TOOL_EXECUTE: HookPolicy.MERGE,
    HookName.ON_INTERACTION_END: HookPolicy.OBSERVE,
    HookName.ON_AGENT_END: HookPolicy.COLLECT,
}


# ============== 事件载荷 ==============

@dataclass
class OnAgentStartEvent:
    """会话首次运行前；可覆盖 tools / system_instruction / input"""
    hook_name: ClassVar[HookName] = HookName.ON_AGENT_START
    tools: List["AgentTool"]
    input: List["ContentBlock"]
    system_instruction: Optional[str] = None


@dataclass
class OnInteractionStartEvent:
    """每次模型调用前；可返回过滤后的 interactions"""
    hook_name: ClassVar[HookName] = HookName.ON_INTERACTION_START
    interactions: List["Turn"]


@dataclass
class BeforeToolExecuteEvent:
    """工具执行前；可拒绝或覆盖 arguments"""
    hook_name: ClassVar[HookName] = HookName.BEFORE_TOOL_EXECUTE
    tool_name: str
    tool_call_id: str
    arguments: Dict[str, Any]


@dataclass
class AfterToolExecuteEvent:
    """工具执行后；可替换 result"""
    hook_name: ClassVar[HookName] = HookName.AFTER_TOOL_EXECUTE
    tool_name: str
    tool_call_id: str
    result: "AgentToolResult"


@dataclass
class OnInteractionEndEvent:
    """一次交互结束（只观察）"""
    hook_name: ClassVar[HookName] = HookName.ON_INTERACTION_END
    turn: "Turn"


@dataclass
class OnAgentEndEvent:
    """一次 Agent Loop 结束；可返回 input 注入新一轮"""
    hook_name: ClassVar[HookName] = HookName.ON_AGENT_END
    interaction_count: int
    files_modified: Optional[int] = None


HookEvent = Union[
    OnAgentStartEvent,
    OnInteractionStartEvent,
    BeforeToolExecuteEvent,
    AfterToolExecuteEvent,
    OnInteractionEndEvent,
    OnAgentEndEvent,
]

# handler(event) -> Optional[dict]，可返回 awaitable
HookHandler = Callable[[Any], Any]


@dataclass
class HookRegistration:
    """钩子注册信息"""
    hook_name: HookName
    handler: HookHandler
    name: str = ""


class HookManager(HookLoggerMixin):
    """
    钩子管理器

    用法:
        hooks = HookManager()
        hooks.on("beforeToolExecute", lambda e: {"allow": e.tool_name != "bash"})

        decision = await hooks.emit("beforeToolExecute", event)
    """

    def __init__(self):
        """初始化钩子管理器"""
        self._hooks: Dict[HookName, List[HookRegistration]] = {}
        self._emit_count: Dict[HookName, int] = {}

    def on(self, hook_name: Union[HookName, str], handler: HookHandler, name: str = "") -> "HookManager":
        """
        注册处理器（按注册顺序执行）

        Args:
            hook_name: 扩展点名称
            handler: 处理器
            name: 注册名，默认取函数名

        Returns:
            self，便于链式调用
        """
        hook_name = HookName(hook_name)
        registration = HookRegistration(
            hook_name=hook_name,
            handler=handler,
            name=name or getattr(handler, "__name__", repr(handler)),
        )
        self._hooks.setdefault(hook_name, []).append(registration)
        self.logger.debug(f"注册钩子: {hook_name.value} -> {registration.name}")
        return self

    def register_decorator(
        self,
        hook_name: Union[HookName, str],
        name: str = "",
    ) -> Callable[[HookHandler], HookHandler]:
        """
        装饰器方式注册处理器

        用法:
            @hooks.register_decorator("onAgentEnd")
            def follow_up(event):
                return {"input": "continue"}
        """
        def decorator(handler: HookHandler) -> HookHandler:
            self.on(hook_name, handler, name=name)
            return handler
        return decorator

    def has(self, hook_name: Union[HookName, str]) -> bool:
        """是否有已注册的处理器"""
        return bool(self._hooks.get(HookName(hook_name)))

    def off(self, hook_name: Union[HookName, str], handler: Optional[HookHandler] = None) -> int:
        """
        注销处理器

        Args:
            hook_name: 扩展点名称
            handler: 指定处理器；为空时注销该扩展点的全部处理器

        Returns:
            注销的数量
        """
        hook_name = HookName(hook_name)
        registrations = self._hooks.get(hook_name, [])
        if handler is None:
            removed = len(registrations)
            self._hooks.pop(hook_name, None)
            return removed

        kept = [r for r in registrations if r.handler is not handler]
        removed = len(registrations) - len(kept)
        if kept:
            self._hooks[hook_name] = kept
        else:
            self._hooks.pop(hook_name, None)
        return removed

    def clear(self) -> None:
        """清空所有处理器"""
        self._hooks.clear()

    def list_hooks(self, hook_name: Optional[Union[HookName, str]] = None) -> List[HookRegistration]:
        """列出注册信息"""
        if hook_name is not None:
            return list(self._hooks.get(HookName(hook_name), []))
        return [r for registrations in self._hooks.values() for r in registrations]

    async def emit(self, hook_name: Union[HookName, str], event: HookEvent) -> Optional[Dict[str, Any]]:
        """
        触发扩展点

        Args:
            hook_name: 扩展点名称
            event: 事件载荷

        Returns:
            按策略合并后的结果；observe 策略返回 None
        """
        hook_name = HookName(hook_name)
        self._emit_count[hook_name] = self._emit_count.get(hook_name, 0) + 1

        handlers = [r.handler for r in self._hooks.get(hook_name, [])]
        policy = HOOK_POLICIES[hook_name]

        if policy is HookPolicy.GATE:
            return await self._run_gate(hook_name, handlers, event)
        if policy is HookPolicy.OBSERVE:
            for handler in handlers:
                await self._call(handler, event)
            return None
        if policy is HookPolicy.COLLECT:
            return await self._run_collect(handlers, event)
        return await self._run_merge(handlers, event)

    @staticmethod
    async def _call(handler: HookHandler, event: HookEvent) -> Any:
        value = handler(event)
        if inspect.isawaitable(value):
            value = await value
        return value

    async def _run_merge(self, handlers: List[HookHandler], event: HookEvent) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        for handler in handlers:
            result = await self._call(handler, event)
            if result:
                merged.update(result)
        return merged

    async def _run_gate(
        self,
        hook_name: HookName,
        handlers: List[HookHandler],
        event: HookEvent,
    ) -> Dict[str, Any]:
        merged_arguments: Optional[Dict[str, Any]] = None
        for handler in handlers:
            result = await self._call(handler, event)
            if result is None:
                continue

            if not result.get("allow"):
                decision = dict(result)
                decision["allow"] = False
                if merged_arguments is not None:
                    decision["arguments"] = {**merged_arguments, **(result.get("arguments") or {})}
                self.logger.warning(f"{hook_name.value} 拒绝执行: {decision.get('reason', '-')}")
                return decision

            if result.get("arguments") is not None:
                merged_arguments = {**(merged_arguments or {}), **result["arguments"]}

        decision = {"allow": True}
        if merged_arguments is not None:
            decision["arguments"] = merged_arguments
        return decision

    async def _run_collect(self, handlers: List[HookHandler], event: HookEvent) -> Dict[str, Any]:
        inputs: List[str] = []
        for handler in handlers:
            result = await self._call(handler, event)
            if result and result.get("input"):
                inputs.append(result["input"])
        if inputs:
            return {"input": "\n\n".join(inputs)}
        return {}

    def get_stats(self) -> Dict[str, Any]:
        """
        获取统计信息

        Returns:
            各扩展点的处理器数量和触发次数
        """
        return {
            "handlers": {name.value: len(regs) for name, regs in self._hooks.items()},
            "emits": {name.value: count for name, count in self._emit_count.items()},
            "total_handlers": sum(len(regs) for regs in self._hooks.values()),
        }


# ============== 便捷函数 ==============

def create_hook_manager() -> HookManager:
    """创建钩子管理器"""
    return HookManager()
