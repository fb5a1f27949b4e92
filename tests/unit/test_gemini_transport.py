"""
Gemini Interactions 传输层单元测试

使用 httpx.MockTransport 模拟 SSE 响应。
"""

import json

import httpx
import pytest

from interloop.agent.runtime.event_stream import EventStream
from interloop.agent.runtime.model_adapter import ModelCallConfig, call_model
from interloop.system.llm.base import ModelCallError
from interloop.system.llm.providers.gemini import (
    DEFAULT_BASE_URL,
    GeminiInteractionsTransport,
    create_gemini_transport,
)


def sse_body(*events, done=True):
    chunks = [f"data: {json.dumps(event)}\n\n" for event in events]
    if done:
        chunks.append("data: [DONE]\n\n")
    return "".join(chunks).encode("utf-8")


def make_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def collect(transport, request=None):
    return [event async for event in transport.stream_interaction(request or {"model": "m", "input": []})]


class TestStreamInteraction:
    """流式调用测试"""

    @pytest.mark.asyncio
    async def test_request_shape(self, events):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["request"] = request
            return httpx.Response(200, content=sse_body(events.interaction_start("i1")))

        client = make_client(handler)
        transport = GeminiInteractionsTransport(api_key="secret", client=client)

        await collect(transport, {"model": "m", "input": [], "system_instruction": None})

        request = captured["request"]
        assert request.method == "POST"
        assert request.url.path == "/v1beta/interactions"
        assert request.url.params["alt"] == "sse"
        assert request.headers["x-goog-api-key"] == "secret"
        assert json.loads(request.content) == {"model": "m", "input": []}
        await client.aclose()

    @pytest.mark.asyncio
    async def test_parses_events_and_skips_done(self, events):
        body = sse_body(
            events.interaction_start("i1"),
            events.text_delta(0, "hi"),
            events.interaction_complete("i1"),
        )
        client = make_client(lambda request: httpx.Response(200, content=body))
        transport = GeminiInteractionsTransport(api_key="k", client=client)

        parsed = await collect(transport)

        assert [e["event_type"] for e in parsed] == ["interaction.start", "content.delta", "interaction.complete"]
        await client.aclose()

    @pytest.mark.asyncio
    async def test_trailing_event_without_blank_line(self):
        body = b'data: {"event_type": "interaction.start", "interaction": {"id": "x"}}'
        client = make_client(lambda request: httpx.Response(200, content=body))
        transport = GeminiInteractionsTransport(api_key="k", client=client)

        parsed = await collect(transport)

        assert parsed == [{"event_type": "interaction.start", "interaction": {"id": "x"}}]
        await client.aclose()

    @pytest.mark.asyncio
    async def test_ignores_non_data_lines(self):
        body = b': keep-alive\nevent: message\ndata: {"event_type": "content.stop", "index": 0}\n\n'
        client = make_client(lambda request: httpx.Response(200, content=body))
        transport = GeminiInteractionsTransport(api_key="k", client=client)

        assert await collect(transport) == [{"event_type": "content.stop", "index": 0}]
        await client.aclose()

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        client = make_client(lambda request: httpx.Response(429, content=b"rate limited"))
        transport = GeminiInteractionsTransport(api_key="k", client=client)

        with pytest.raises(ModelCallError) as exc_info:
            await collect(transport)

        assert exc_info.value.status_code == 429
        assert "rate limited" in str(exc_info.value)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_invalid_payload_raises(self):
        client = make_client(lambda request: httpx.Response(200, content=b"data: {broken\n\n"))
        transport = GeminiInteractionsTransport(api_key="k", client=client)

        with pytest.raises(ModelCallError, match="Invalid SSE payload"):
            await collect(transport)
        await client.aclose()


class TestClientLifecycle:
    """客户端与配置测试"""

    def test_api_key_from_env(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "from-env")

        transport = create_gemini_transport()

        assert transport.api_key == "from-env"
        assert transport.base_url == DEFAULT_BASE_URL
        assert transport.provider_name == "gemini"

    def test_no_api_key_header_when_missing(self):
        transport = GeminiInteractionsTransport()
        assert "x-goog-api-key" not in transport._headers()

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self):
        client = make_client(lambda request: httpx.Response(200))
        transport = GeminiInteractionsTransport(api_key="k", client=client)

        await transport.aclose()

        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_closed(self):
        transport = GeminiInteractionsTransport(api_key="k", base_url="https://example.test/v1/")
        client = transport._get_async_client()

        assert transport.base_url == "https://example.test/v1"
        await transport.aclose()

        assert client.is_closed


class TestWithModelAdapter:
    """与模型适配器的组合测试"""

    @pytest.mark.asyncio
    async def test_text_response_through_adapter(self, events):
        body = sse_body(*events.text_response("Hello from SSE", "int-sse", usage={"total_tokens": 12}))
        client = make_client(lambda request: httpx.Response(200, content=body))
        transport = GeminiInteractionsTransport(api_key="k", client=client)

        result = await call_model(
            ModelCallConfig(model="gemini-3-flash-preview", input=[{"type": "text", "text": "hi"}]),
            EventStream(),
            transport,
        )

        assert result.outputs == [{"type": "text", "text": "Hello from SSE"}]
        assert result.interaction_id == "int-sse"
        assert result.usage.total_tokens == 12
        await client.aclose()
