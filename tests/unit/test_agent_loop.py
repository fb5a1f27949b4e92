"""
Agent Loop 单元测试

测试迭代状态机：工具调用、后续消息、最大迭代、transform_context、
取消信号、异常结束和 usage 累加。
"""

import asyncio

import pytest

from interloop.agent.runtime.agent_loop import (
    AgentLoop,
    AgentLoopConfig,
    AgentLoopResult,
    agent_loop,
)
from interloop.agent.runtime.event_stream import AgentEventType
from interloop.system.llm.base import ModelCallError
from interloop.system.llm.message import Turn, TurnRole, Usage
from interloop.system.services.config_center import EngineConfig
from interloop.system.tools.base import AgentTool, AgentToolResult


def make_tool(name="read", result="file contents", on_call=None):
    def execute(call_id, arguments, signal=None, on_update=None):
        if on_call is not None:
            on_call(call_id, arguments, signal)
        return AgentToolResult(result=result)

    return AgentTool(
        name=name,
        description=f"{name} tool",
        parameters={"type": "object", "properties": {}},
        execute=execute,
    )


async def run(stream):
    """消费全部事件并返回 (事件列表, 结果)"""
    collected = [event async for event in stream]
    return collected, await stream.result()


class TestSimpleConversation:
    """纯文本回复测试"""

    @pytest.mark.asyncio
    async def test_text_only_response(self, make_transport, events, engine_config):
        transport = make_transport(events.text_response("Hello!", "int-1"))

        stream = agent_loop("Hi", AgentLoopConfig(), transport, engine_config)
        collected, result = await run(stream)

        assert [e.type for e in collected] == [
            AgentEventType.AGENT_START,
            AgentEventType.INTERACTION_START,
            AgentEventType.TEXT_START,
            AgentEventType.TEXT_DELTA,
            AgentEventType.TEXT_END,
            AgentEventType.INTERACTION_END,
            AgentEventType.AGENT_END,
        ]
        assert isinstance(result, AgentLoopResult)
        assert result.interaction_id == "int-1"
        assert [t.role for t in result.interactions] == [TurnRole.USER, TurnRole.MODEL]
        assert result.interactions[0].content == [{"type": "text", "text": "Hi"}]
        assert result.interactions[1].content == [{"type": "text", "text": "Hello!"}]

    @pytest.mark.asyncio
    async def test_agent_end_payload_matches_result(self, make_transport, events, engine_config):
        transport = make_transport(events.text_response("ok", "int-5"))

        collected, result = await run(agent_loop("Hi", AgentLoopConfig(), transport, engine_config))

        end = collected[-1]
        assert end["interactions"] == result.interactions
        assert end["interactionId"] == "int-5"
        assert isinstance(end["usage"], Usage)

    @pytest.mark.asyncio
    async def test_interaction_end_carries_model_turn(self, make_transport, events, engine_config):
        transport = make_transport(events.text_response("ok"))

        collected, result = await run(agent_loop("Hi", AgentLoopConfig(), transport, engine_config))

        [end] = [e for e in collected if e.type == AgentEventType.INTERACTION_END]
        assert end["turn"] is result.interactions[-1]

    @pytest.mark.asyncio
    async def test_content_block_input(self, make_transport, events, engine_config):
        transport = make_transport(events.text_response("ok"))
        blocks = [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]

        await run(agent_loop(blocks, AgentLoopConfig(), transport, engine_config))

        assert transport.requests[0]["input"] == blocks

    @pytest.mark.asyncio
    async def test_model_and_instruction_in_request(self, make_transport, events, engine_config):
        transport = make_transport(events.text_response("ok"))
        config = AgentLoopConfig(
            model="custom-model",
            system_instruction="Be terse",
            previous_interaction_id="prev-0",
        )

        await run(agent_loop("Hi", config, transport, engine_config))

        request = transport.requests[0]
        assert request["model"] == "custom-model"
        assert request["system_instruction"] == "Be terse"
        assert request["previous_interaction_id"] == "prev-0"

    @pytest.mark.asyncio
    async def test_engine_config_defaults(self, make_transport, events):
        transport = make_transport(events.text_response("ok"))
        loop = AgentLoop(AgentLoopConfig(), transport, EngineConfig(default_model="fallback", max_iterations=7))

        assert loop.model == "fallback"
        assert loop.max_iterations == 7
        await run(loop.start("Hi"))
        assert transport.requests[0]["model"] == "fallback"


class TestToolCalls:
    """工具调用测试"""

    @pytest.mark.asyncio
    async def test_tool_call_then_answer(self, make_transport, events, engine_config):
        received = []
        transport = make_transport(
            events.tool_call_response([{"id": "c1", "name": "read", "arguments": {"path": "a"}}], "int-1"),
            events.text_response("The file says hi", "int-2"),
        )
        config = AgentLoopConfig(tools=[make_tool(on_call=lambda *a: received.append(a[:2]))])

        collected, result = await run(agent_loop("Read a", config, transport, engine_config))

        assert received == [("c1", {"path": "a"})]
        assert [e.type for e in collected] == [
            AgentEventType.AGENT_START,
            AgentEventType.INTERACTION_START,
            AgentEventType.TOOL_START,
            AgentEventType.TOOL_END,
            AgentEventType.INTERACTION_END,
            AgentEventType.INTERACTION_START,
            AgentEventType.TEXT_START,
            AgentEventType.TEXT_DELTA,
            AgentEventType.TEXT_END,
            AgentEventType.INTERACTION_END,
            AgentEventType.AGENT_END,
        ]
        assert [t.role for t in result.interactions] == [
            TurnRole.USER, TurnRole.MODEL, TurnRole.USER, TurnRole.MODEL,
        ]
        assert result.interactions[2].content == [{
            "type": "function_result",
            "call_id": "c1",
            "name": "read",
            "result": "file contents",
            "is_error": False,
        }]
        assert result.interaction_id == "int-2"

        # 第二次调用只发送最新的工具结果，并续接上一次交互
        second = transport.requests[1]
        assert second["input"] == result.interactions[2].content
        assert second["previous_interaction_id"] == "int-1"
        assert second["tools"][0]["name"] == "read"

    @pytest.mark.asyncio
    async def test_unknown_tool_reported_to_model(self, make_transport, events, engine_config):
        transport = make_transport(
            events.tool_call_response([{"id": "c1", "name": "nope"}]),
            events.text_response("sorry"),
        )

        _, result = await run(agent_loop("Hi", AgentLoopConfig(), transport, engine_config))

        [block] = result.interactions[2].content
        assert block["result"] == "Tool nope not found"
        assert block["is_error"] is True

    @pytest.mark.asyncio
    async def test_max_iterations_stops_with_pending_results(self, make_transport, events, engine_config):
        """达到最大迭代次数时静默停止，即使刚执行完工具"""
        transport = make_transport(
            events.tool_call_response([{"id": "c1", "name": "read"}]),
            events.text_response("never sent"),
        )
        config = AgentLoopConfig(tools=[make_tool()], max_iterations=1)

        _, result = await run(agent_loop("Hi", config, transport, engine_config))

        assert transport.call_count == 1
        assert [t.role for t in result.interactions] == [TurnRole.USER, TurnRole.MODEL, TurnRole.USER]

    @pytest.mark.asyncio
    async def test_usage_accumulates(self, make_transport, events, engine_config):
        transport = make_transport(
            events.tool_call_response([{"id": "c1", "name": "read"}], usage={
                "total_input_tokens": 6, "total_output_tokens": 4, "total_tokens": 10,
            }),
            events.text_response("done", usage={
                "total_input_tokens": 10, "total_output_tokens": 5, "total_tokens": 15,
                "total_thought_tokens": 2,
            }),
        )
        config = AgentLoopConfig(tools=[make_tool()])

        _, result = await run(agent_loop("Hi", config, transport, engine_config))

        assert result.usage.to_dict() == {
            "total_input_tokens": 16,
            "total_output_tokens": 9,
            "total_tokens": 25,
            "total_thought_tokens": 2,
        }


class TestFollowUps:
    """后续消息测试"""

    @pytest.mark.asyncio
    async def test_follow_up_messages_continue_loop(self, make_transport, events, engine_config):
        pending = [[Turn.user("and another thing")]]
        transport = make_transport(events.text_response("first"), events.text_response("second"))
        config = AgentLoopConfig(get_follow_up_messages=lambda: pending.pop() if pending else None)

        _, result = await run(agent_loop("Hi", config, transport, engine_config))

        assert transport.call_count == 2
        assert transport.requests[1]["input"] == [{"type": "text", "text": "and another thing"}]
        assert [t.role for t in result.interactions] == [
            TurnRole.USER, TurnRole.MODEL, TurnRole.USER, TurnRole.MODEL,
        ]

    @pytest.mark.asyncio
    async def test_tool_calls_take_priority(self, make_transport, events, engine_config):
        """有工具调用的迭代不读取后续消息"""
        polled = []

        def follow_ups():
            polled.append(True)
            return None

        transport = make_transport(
            events.tool_call_response([{"id": "c1", "name": "read"}]),
            events.text_response("done"),
        )
        config = AgentLoopConfig(tools=[make_tool()], get_follow_up_messages=follow_ups)

        await run(agent_loop("Hi", config, transport, engine_config))

        assert len(polled) == 1

    @pytest.mark.asyncio
    async def test_empty_follow_up_list_stops(self, make_transport, events, engine_config):
        transport = make_transport(events.text_response("only"))
        config = AgentLoopConfig(get_follow_up_messages=lambda: [])

        await run(agent_loop("Hi", config, transport, engine_config))

        assert transport.call_count == 1


class TestTransformContext:
    """transform_context 测试"""

    @pytest.mark.asyncio
    async def test_called_every_iteration_with_snapshot(self, make_transport, events, engine_config):
        snapshots = []

        def transform(state):
            snapshots.append(state)
            state.interactions.append(Turn.user("mutating the snapshot"))
            return None

        transport = make_transport(
            events.tool_call_response([{"id": "c1", "name": "read"}]),
            events.text_response("done"),
        )
        config = AgentLoopConfig(tools=[make_tool()], transform_context=transform)

        _, result = await run(agent_loop("Hi", config, transport, engine_config))

        assert len(snapshots) == 2
        assert len(result.interactions) == 4
        assert all(t.content[0].get("text") != "mutating the snapshot" for t in result.interactions)

    @pytest.mark.asyncio
    async def test_interactions_override(self, make_transport, events, engine_config):
        """覆盖 interactions 不影响本次迭代已选定的输入"""
        async def transform(state):
            return {"interactions": [Turn.user("summary")]}

        transport = make_transport(events.text_response("ok"))
        config = AgentLoopConfig(transform_context=transform)

        _, result = await run(agent_loop("original", config, transport, engine_config))

        assert transport.requests[0]["input"] == [{"type": "text", "text": "original"}]
        assert [t.content[0]["text"] for t in result.interactions] == ["summary", "ok"]

    @pytest.mark.asyncio
    async def test_tools_and_instruction_override(self, make_transport, events, engine_config):
        transport = make_transport(events.text_response("ok"))
        config = AgentLoopConfig(
            system_instruction="old",
            transform_context=lambda s: {"tools": [make_tool("grep")], "system_instruction": "new"},
        )

        await run(agent_loop("Hi", config, transport, engine_config))

        request = transport.requests[0]
        assert request["system_instruction"] == "new"
        assert [t["name"] for t in request["tools"]] == ["grep"]


class TestCancellation:
    """取消测试"""

    @pytest.mark.asyncio
    async def test_signal_set_before_start(self, make_transport, events, engine_config):
        signal = asyncio.Event()
        signal.set()
        transport = make_transport(events.text_response("never"))

        collected, result = await run(agent_loop("Hi", AgentLoopConfig(signal=signal), transport, engine_config))

        assert transport.call_count == 0
        assert [e.type for e in collected] == [AgentEventType.AGENT_START, AgentEventType.AGENT_END]
        assert len(result.interactions) == 1

    @pytest.mark.asyncio
    async def test_signal_checked_at_iteration_boundary(self, make_transport, events, engine_config):
        """工具执行中请求取消：当前迭代完成，下一次模型调用不再发生"""
        signal = asyncio.Event()
        transport = make_transport(
            events.tool_call_response([{"id": "c1", "name": "read"}]),
            events.text_response("never"),
        )
        config = AgentLoopConfig(
            tools=[make_tool(on_call=lambda *a: signal.set())],
            signal=signal,
        )

        _, result = await run(agent_loop("Hi", config, transport, engine_config))

        assert transport.call_count == 1
        assert len(result.interactions) == 3

    @pytest.mark.asyncio
    async def test_task_cancel_still_ends_stream(self, make_transport, events, engine_config):
        blocker = asyncio.Event()

        async def hang(call_id, arguments, signal=None, on_update=None):
            await blocker.wait()
            return "unreachable"

        tool = AgentTool(name="hang", description="", parameters={}, execute=hang)
        transport = make_transport(events.tool_call_response([{"id": "c1", "name": "hang"}]))
        stream = agent_loop("Hi", AgentLoopConfig(tools=[tool]), transport, engine_config)

        seen = []
        async for event in stream:
            seen.append(event.type)
            if event.type == AgentEventType.TOOL_START:
                stream.task.cancel()

        assert seen[-1] == AgentEventType.AGENT_END
        result = await stream.result()
        assert len(result.interactions) == 2
        with pytest.raises(asyncio.CancelledError):
            await stream.task


class TestErrors:
    """异常测试"""

    @pytest.mark.asyncio
    async def test_model_error_ends_stream_and_raises(self, make_transport, events, engine_config):
        transport = make_transport([events.interaction_start("e1"), events.error("overloaded")])

        stream = agent_loop("Hi", AgentLoopConfig(), transport, engine_config)
        collected, result = await run(stream)

        assert [e.type for e in collected] == [
            AgentEventType.AGENT_START,
            AgentEventType.INTERACTION_START,
            AgentEventType.AGENT_END,
        ]
        # 失败的调用不更新续接 ID
        assert result.interaction_id == ""
        assert len(result.interactions) == 1
        with pytest.raises(ModelCallError, match="overloaded"):
            await stream.task

    @pytest.mark.asyncio
    async def test_transform_error_propagates(self, make_transport, events, engine_config):
        def transform(state):
            raise RuntimeError("transform failed")

        transport = make_transport(events.text_response("never"))
        stream = agent_loop("Hi", AgentLoopConfig(transform_context=transform), transport, engine_config)
        collected, _ = await run(stream)

        assert collected[-1].type == AgentEventType.AGENT_END
        assert transport.call_count == 0
        with pytest.raises(RuntimeError, match="transform failed"):
            await stream.task
