"""
Gemini Interactions API Provider

通过 httpx 以 SSE 方式调用 Interactions API，
把每条 `data:` 事件解析为字典后产出。
"""

from __future__ import annotations

import json
import os
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from interloop.system.llm.base import ModelCallError, ModelTransport

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiInteractionsTransport(ModelTransport):
    """
    Gemini Interactions 流式传输

    API Key 读取顺序：构造参数 > GEMINI_API_KEY 环境变量。
    可以注入 httpx.AsyncClient（测试中配合 httpx.MockTransport 使用），
    注入的客户端不由本类关闭。
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 300.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        初始化传输层

        Args:
            api_key: API密钥
            base_url: API基础URL
            timeout: 请求超时时间（秒）
            client: 外部提供的 httpx 客户端
        """
        self.api_key = api_key or os.environ.get("GEMINI_API_KEY", "")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def provider_name(self) -> str:
        return "gemini"

    def _get_async_client(self) -> httpx.AsyncClient:
        """获取异步客户端"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        if self.api_key:
            headers["x-goog-api-key"] = self.api_key
        return headers

    async def stream_interaction(self, request: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        """
        发起流式调用

        Args:
            request: Interactions 请求体

        Yields:
            解析后的 SSE 事件

        Raises:
            ModelCallError: 非 2xx 响应
        """
        client = self._get_async_client()
        url = f"{self.base_url}/interactions"
        body = {k: v for k, v in request.items() if v is not None}

        self.logger.debug(f"POST {url} model={body.get('model')}")

        async with client.stream(
            "POST",
            url,
            params={"alt": "sse"},
            headers=self._headers(),
            json=body,
        ) as response:
            if response.status_code >= 400:
                detail = (await response.aread()).decode("utf-8", errors="replace")
                self.logger.error(f"Interactions API 返回 {response.status_code}: {detail[:200]}")
                raise ModelCallError(
                    f"Interactions API error {response.status_code}: {detail}",
                    status_code=response.status_code,
                )

            data_lines: List[str] = []
            async for line in response.aiter_lines():
                if line == "":
                    event = self._parse_event(data_lines)
                    data_lines = []
                    if event is not None:
                        yield event
                    continue
                if line.startswith("data:"):
                    data_lines.append(line[5:].lstrip())

            # 流末尾没有空行时的残留事件
            event = self._parse_event(data_lines)
            if event is not None:
                yield event

    @staticmethod
    def _parse_event(data_lines: List[str]) -> Optional[Dict[str, Any]]:
        if not data_lines:
            return None
        payload = "\n".join(data_lines)
        if payload == "[DONE]":
            return None
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            raise ModelCallError(f"Invalid SSE payload: {payload[:200]}") from e

    async def aclose(self) -> None:
        """关闭自有的 httpx 客户端"""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def create_gemini_transport(
    api_key: Optional[str] = None,
    **kwargs: Any,
) -> GeminiInteractionsTransport:
    """
    创建 Gemini 传输层

    Args:
        api_key: API密钥
        **kwargs: 其他构造参数

    Returns:
        GeminiInteractionsTransport 实例
    """
    return GeminiInteractionsTransport(api_key=api_key, **kwargs)
