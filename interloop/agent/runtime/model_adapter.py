"""
Model Adapter

发起一次流式模型调用，把 provider 的原生事件翻译成语义事件：

    content.start(text)        -> text.start
    content.delta(text)        -> text.delta
    content.delta(thought_*)   -> thought.summary（签名不发出）
    content.delta(function_*)  -> 只累积
    content.stop(text)         -> text.end（每个 index 一次）
    interaction.start          -> interaction.start
    interaction.complete       -> 记录 usage
    error                      -> 抛出 ModelCallError

返回值 {outputs, interaction_id, usage} 只用于 Agent Loop 的状态记录。
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, TYPE_CHECKING

from interloop.agent.runtime.event_stream import AgentEvent, AgentEventType, EventStream
from interloop.system.llm.base import ModelCallError, ModelTransport
from interloop.system.llm.message import BlockType, ContentBlock, Usage
from interloop.system.services.logger import ModelLoggerMixin

if TYPE_CHECKING:
    from interloop.system.tools.base import AgentTool

_BOLD_HEADING = re.compile(r"\*\*[^*]+\*\*")
_WHITESPACE = re.compile(r"\s+")

GENERATION_CONFIG = {
    "thinking_level": "high",
    "thinking_summaries": "auto",
}


@dataclass
class ModelCallConfig:
    """单次模型调用配置"""
    model: str
    input: List[ContentBlock]
    tools: List["AgentTool"] = field(default_factory=list)
    system_instruction: Optional[str] = None
    previous_interaction_id: Optional[str] = None

    def to_request(self) -> Dict[str, Any]:
        """构建 Interactions 请求体"""
        request: Dict[str, Any] = {
            "model": self.model,
            "input": self.input,
            "stream": True,
            "generation_config": dict(GENERATION_CONFIG),
        }
        if self.previous_interaction_id:
            request["previous_interaction_id"] = self.previous_interaction_id
        if self.tools:
            request["tools"] = [t.to_interactions_format() for t in self.tools]
        if self.system_instruction:
            request["system_instruction"] = self.system_instruction
        return request


@dataclass
class ModelCallResult:
    """单次模型调用结果"""
    outputs: List[ContentBlock]
    interaction_id: str
    usage: Usage = field(default_factory=Usage)


def clean_thought_text(text: str) -> str:
    """去掉 **标题** 并折叠空白（只作用于当前片段）"""
    return _WHITESPACE.sub(" ", _BOLD_HEADING.sub("", text or "")).strip()


class ModelAdapter(ModelLoggerMixin):
    """
    模型适配器

    每次 call() 对应一次流式调用，内部维护 index -> 累积块 的映射。
    """

    def __init__(self, transport: ModelTransport):
        """
        初始化模型适配器

        Args:
            transport: 模型传输层
        """
        self._transport = transport

    @property
    def transport(self) -> ModelTransport:
        """模型传输层"""
        return self._transport

    async def call(
        self,
        config: ModelCallConfig,
        stream: EventStream,
    ) -> ModelCallResult:
        """
        执行一次流式模型调用

        Args:
            config: 调用配置
            stream: 语义事件通道

        Returns:
            ModelCallResult

        Raises:
            ModelCallError: provider 返回 error 事件
        """
        interaction_id = config.previous_interaction_id or ""
        usage = Usage()
        blocks: Dict[int, ContentBlock] = {}
        ended: Set[int] = set()

        self.logger.debug(
            f"模型调用: model={config.model}, tools={len(config.tools)}, "
            f"continuation={interaction_id or '-'}"
        )

        async for event in self._transport.stream_interaction(config.to_request()):
            event_type = event.get("event_type")

            if event_type == "interaction.start":
                interaction_id = (event.get("interaction") or {}).get("id") or interaction_id
                stream.push(AgentEvent(
                    AgentEventType.INTERACTION_START,
                    {"interactionId": interaction_id},
                ))

            elif event_type == "interaction.complete":
                interaction = event.get("interaction") or {}
                interaction_id = interaction.get("id") or interaction_id
                if interaction.get("usage"):
                    usage = Usage.from_dict(interaction["usage"])

            elif event_type == "content.start":
                index = event.get("index") or 0
                content = event.get("content") or {}
                blocks[index] = dict(content)
                if content.get("type") == BlockType.TEXT.value:
                    stream.push(AgentEvent(AgentEventType.TEXT_START, {"index": index}))

            elif event_type == "content.delta":
                index = event.get("index") or 0
                block = blocks.setdefault(index, {})
                delta = event.get("delta")
                if delta:
                    self._apply_delta(index, block, delta, stream)

            elif event_type == "content.stop":
                index = event.get("index") or 0
                block = blocks.get(index)
                if block and block.get("type") == BlockType.TEXT.value and index not in ended:
                    ended.add(index)
                    stream.push(AgentEvent(
                        AgentEventType.TEXT_END,
                        {"index": index, "text": block.get("text", "")},
                    ))

            elif event_type == "error":
                message = (event.get("error") or {}).get("message") or "Unknown error"
                self.logger.error(f"模型调用失败: {message}")
                raise ModelCallError(message)

        outputs = [block for block in blocks.values() if block.get("type")]
        return ModelCallResult(outputs=outputs, interaction_id=interaction_id, usage=usage)

    def _apply_delta(
        self,
        index: int,
        block: ContentBlock,
        delta: Dict[str, Any],
        stream: EventStream,
    ) -> None:
        """把一个增量合并到累积块"""
        delta_type = delta.get("type")

        if delta_type == "text":
            fragment = delta.get("text") or ""
            block["type"] = BlockType.TEXT.value
            block["text"] = block.get("text", "") + fragment
            stream.push(AgentEvent(
                AgentEventType.TEXT_DELTA,
                {"index": index, "delta": fragment},
            ))

        elif delta_type == "thought_summary":
            block["type"] = BlockType.THOUGHT.value
            content = delta.get("content")
            if isinstance(content, dict) and content.get("type") == "text":
                content = {**content, "text": clean_thought_text(content.get("text", ""))}
            block.setdefault("summary", []).append(content)
            if content:
                stream.push(AgentEvent(AgentEventType.THOUGHT_SUMMARY, {"summary": content}))

        elif delta_type == "thought_signature":
            block["type"] = BlockType.THOUGHT.value
            block["signature"] = delta.get("signature")

        elif delta_type == "function_call":
            block["type"] = BlockType.FUNCTION_CALL.value
            if delta.get("name"):
                block["name"] = delta["name"]
            if delta.get("id"):
                block["id"] = delta["id"]
            if delta.get("arguments"):
                block["arguments"] = delta["arguments"]

        else:
            self.logger.debug(f"忽略未知增量类型: {delta_type}")


async def call_model(
    config: ModelCallConfig,
    stream: EventStream,
    transport: ModelTransport,
) -> ModelCallResult:
    """
    便捷函数：用给定传输层执行一次模型调用

    Args:
        config: 调用配置
        stream: 语义事件通道
        transport: 模型传输层

    Returns:
        ModelCallResult
    """
    return await ModelAdapter(transport).call(config, stream)
