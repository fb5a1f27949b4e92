"""
LLM 模块

- message:   Turn、内容块、Usage
- base:      模型传输层接口
- providers: Gemini Interactions
"""

from interloop.system.llm.base import ModelCallError, ModelTransport
from interloop.system.llm.message import (
    BlockType,
    ContentBlock,
    Turn,
    TurnRole,
    Usage,
    format_input,
    function_result_block,
    text_block,
)

__all__ = [
    "ModelCallError",
    "ModelTransport",
    "BlockType",
    "ContentBlock",
    "Turn",
    "TurnRole",
    "Usage",
    "format_input",
    "function_result_block",
    "text_block",
]
