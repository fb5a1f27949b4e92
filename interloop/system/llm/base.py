"""
模型传输层基类

定义模型调用所依赖的流式传输接口：
输入一个 Interactions 请求体，逐个产出 provider 原生的流事件（字典）。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional

from interloop.system.services.logger import ModelLoggerMixin


class ModelCallError(RuntimeError):
    """模型调用失败（provider 返回 error 事件或传输层错误）"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ModelTransport(ABC, ModelLoggerMixin):
    """
    模型传输层基类

    子类只需实现 stream_interaction。事件格式:
        {"event_type": "interaction.start", "interaction": {"id": ...}}
        {"event_type": "content.start", "index": 0, "content": {"type": "text"}}
        {"event_type": "content.delta", "index": 0, "delta": {"type": "text", "text": ...}}
        {"event_type": "content.stop", "index": 0}
        {"event_type": "interaction.complete", "interaction": {"id": ..., "usage": {...}}}
        {"event_type": "error", "error": {"message": ...}}
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider 名称"""
        pass

    @abstractmethod
    def stream_interaction(self, request: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        """
        发起一次流式调用

        Args:
            request: Interactions 请求体（model、input、tools、
                system_instruction、previous_interaction_id 等）

        Yields:
            provider 原生流事件
        """
        pass

    async def aclose(self) -> None:
        """释放传输层资源"""
        return None
