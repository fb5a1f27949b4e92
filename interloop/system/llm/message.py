"""
对话内容类型定义

Turn（一轮消息）、内容块和 Token 使用统计。

内容块是与 Interactions API 相同结构的字典:
- text:            {"type": "text", "text": str}
- thought:         {"type": "thought", "summary": [...], "signature": str}
- function_call:   {"type": "function_call", "id", "name", "arguments"}
- function_result: {"type": "function_result", "call_id", "name", "result", "is_error"}
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Union

ContentBlock = Dict[str, Any]


class TurnRole(str, Enum):
    """Turn 角色"""
    USER = "user"
    MODEL = "model"


class BlockType(str, Enum):
    """内容块类型"""
    TEXT = "text"
    THOUGHT = "thought"
    FUNCTION_CALL = "function_call"
    FUNCTION_RESULT = "function_result"


def text_block(text: str) -> ContentBlock:
    """创建文本块"""
    return {"type": BlockType.TEXT.value, "text": text}


def function_result_block(
    call_id: str,
    name: str,
    result: str,
    is_error: bool = False,
) -> ContentBlock:
    """创建工具结果块"""
    return {
        "type": BlockType.FUNCTION_RESULT.value,
        "call_id": call_id,
        "name": name,
        "result": result,
        "is_error": is_error,
    }


def format_input(content: Union[str, List[ContentBlock]]) -> List[ContentBlock]:
    """字符串转换为单个文本块，内容块列表原样复制"""
    if isinstance(content, str):
        return [text_block(content)]
    return list(content)


def function_calls(content: List[ContentBlock]) -> List[ContentBlock]:
    """取出内容中的 function_call 块（保持顺序）"""
    return [block for block in content if block.get("type") == BlockType.FUNCTION_CALL.value]


@dataclass(frozen=True)
class Turn:
    """
    一轮对话消息

    追加到历史后不再修改；content 列表在构造时复制。
    """
    role: TurnRole
    content: List[ContentBlock] = field(default_factory=list)

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", TurnRole(self.role))
        object.__setattr__(self, "content", list(self.content))

    def to_dict(self) -> dict:
        """转换为字典"""
        return {"role": self.role.value, "content": list(self.content)}

    @classmethod
    def from_dict(cls, data: dict) -> "Turn":
        """从字典创建"""
        return cls(role=TurnRole(data["role"]), content=data.get("content", []))

    @classmethod
    def user(cls, content: Union[str, List[ContentBlock]]) -> "Turn":
        """创建用户 Turn"""
        return cls(role=TurnRole.USER, content=format_input(content))

    @classmethod
    def model(cls, content: List[ContentBlock]) -> "Turn":
        """创建模型 Turn"""
        return cls(role=TurnRole.MODEL, content=content)

    @property
    def function_calls(self) -> List[ContentBlock]:
        """本轮中的工具调用块"""
        return function_calls(self.content)


@dataclass
class Usage:
    """
    Token 使用统计

    只通过 add() 累加，不覆盖；缺失字段视为 0。
    """
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_tokens: int = 0
    total_thought_tokens: int = 0

    def add(self, other: Optional[Union["Usage", Dict[str, Any]]]) -> "Usage":
        """把另一份统计累加到当前对象（就地），返回自身"""
        if other is None:
            return self
        if isinstance(other, dict):
            other = Usage.from_dict(other)
        for f in fields(self):
            setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))
        return self

    def to_dict(self) -> dict:
        """转换为字典，省略为 0 的字段"""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name)}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Usage":
        """从字典创建，未知字段忽略，缺失或 None 视为 0"""
        data = data or {}
        return cls(**{f.name: int(data.get(f.name) or 0) for f in fields(cls)})
