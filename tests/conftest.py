"""
Pytest 配置和公共 fixtures

interloop 测试配置：脚本化的模型传输层、provider 事件构造器、引擎配置。
"""

import sys
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import pytest

# 添加项目根目录到路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from interloop.system.llm.base import ModelTransport  # noqa: E402
from interloop.system.services.config_center import EngineConfig  # noqa: E402


# ============== Provider 事件构造 ==============

class ProviderEvents:
    """Interactions API 流事件构造器"""

    @staticmethod
    def interaction_start(interaction_id: str = "int-1") -> Dict[str, Any]:
        return {"event_type": "interaction.start", "interaction": {"id": interaction_id}}

    @staticmethod
    def interaction_complete(interaction_id: str = "int-1", usage: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
        interaction: Dict[str, Any] = {"id": interaction_id}
        if usage is not None:
            interaction["usage"] = usage
        return {"event_type": "interaction.complete", "interaction": interaction}

    @staticmethod
    def content_start(index: int = 0, content_type: str = "text") -> Dict[str, Any]:
        return {"event_type": "content.start", "index": index, "content": {"type": content_type}}

    @staticmethod
    def text_delta(index: int, text: str) -> Dict[str, Any]:
        return {"event_type": "content.delta", "index": index, "delta": {"type": "text", "text": text}}

    @staticmethod
    def thought_summary(index: int, text: str) -> Dict[str, Any]:
        return {
            "event_type": "content.delta",
            "index": index,
            "delta": {"type": "thought_summary", "content": {"type": "text", "text": text}},
        }

    @staticmethod
    def thought_signature(index: int, signature: str) -> Dict[str, Any]:
        return {
            "event_type": "content.delta",
            "index": index,
            "delta": {"type": "thought_signature", "signature": signature},
        }

    @staticmethod
    def function_call(index: int, call_id: str, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return {
            "event_type": "content.delta",
            "index": index,
            "delta": {"type": "function_call", "id": call_id, "name": name, "arguments": arguments or {}},
        }

    @staticmethod
    def content_stop(index: int = 0) -> Dict[str, Any]:
        return {"event_type": "content.stop", "index": index}

    @staticmethod
    def error(message: Optional[str] = "boom") -> Dict[str, Any]:
        return {"event_type": "error", "error": {"message": message}}

    @classmethod
    def text_response(
        cls,
        text: str,
        interaction_id: str = "int-1",
        usage: Optional[Dict[str, int]] = None,
    ) -> List[Dict[str, Any]]:
        """一次纯文本回复"""
        return [
            cls.interaction_start(interaction_id),
            cls.content_start(0, "text"),
            cls.text_delta(0, text),
            cls.content_stop(0),
            cls.interaction_complete(interaction_id, usage),
        ]

    @classmethod
    def tool_call_response(
        cls,
        calls: List[Dict[str, Any]],
        interaction_id: str = "int-1",
        usage: Optional[Dict[str, int]] = None,
    ) -> List[Dict[str, Any]]:
        """一次只包含工具调用的回复；calls 为 [{"id", "name", "arguments"}]"""
        events = [cls.interaction_start(interaction_id)]
        for index, call in enumerate(calls):
            events.append(cls.content_start(index, "function_call"))
            events.append(cls.function_call(index, call["id"], call["name"], call.get("arguments")))
            events.append(cls.content_stop(index))
        events.append(cls.interaction_complete(interaction_id, usage))
        return events


# ============== Mock 传输层 ==============

Script = Union[List[Dict[str, Any]], BaseException]


class ScriptedTransport(ModelTransport):
    """
    按顺序回放预设事件的传输层

    每次 stream_interaction 消耗一个脚本；脚本是事件列表或要抛出的异常。
    脚本用完后回复一段空文本。
    """

    def __init__(self, scripts: Optional[List[Script]] = None):
        self.scripts: List[Script] = list(scripts or [])
        self.requests: List[Dict[str, Any]] = []

    @property
    def provider_name(self) -> str:
        return "scripted"

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def add(self, script: Script) -> "ScriptedTransport":
        self.scripts.append(script)
        return self

    async def stream_interaction(self, request: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        self.requests.append(request)
        script = self.scripts.pop(0) if self.scripts else ProviderEvents.text_response("")
        if isinstance(script, BaseException):
            raise script
        for event in script:
            yield event


# ============== Fixtures ==============

@pytest.fixture
def events() -> type:
    """Provider 事件构造器"""
    return ProviderEvents


@pytest.fixture
def make_transport():
    """创建脚本化传输层"""
    def factory(*scripts: Script) -> ScriptedTransport:
        return ScriptedTransport(list(scripts))
    return factory


@pytest.fixture
def engine_config() -> EngineConfig:
    """测试用引擎配置"""
    return EngineConfig(default_model="test-model", max_iterations=10)


# ============== 环境变量 ==============

@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """清理测试环境变量"""
    for name in ("AGENT_DEFAULT_MODEL", "AGENT_MAX_ITERATIONS", "AGENT_SETTINGS_PATH", "GEMINI_API_KEY"):
        monkeypatch.delenv(name, raising=False)
