"""Tests for the turn controller and routing rule."""

import asyncio

import pytest
from langchain_core.tools import tool

from chatloop.exceptions import MalformedReply, ModelUnavailable, ToolLoopExceeded
from chatloop.models.llm import TokenUsage
from chatloop.models.messages import Message, ToolInvocation
from chatloop.services.turn_controller import NOT_EXECUTED, TurnState, route_reply
from chatloop.tools.registry import ToolsRegistry
from tests.helpers import ScriptedModel, tool_request


class TestRouteReply:
    """Tests for the routing decision."""

    def test_reply_without_tool_calls_is_done(self):
        assert route_reply(Message.assistant("Hi there")) is TurnState.DONE

    def test_reply_with_tool_calls_awaits_tools(self):
        assert route_reply(tool_request("web_search")) is TurnState.AWAITING_TOOLS

    def test_routing_depends_only_on_tool_calls(self):
        call = ToolInvocation(id="call_1", name="web_search", arguments={})
        with_text = Message.assistant("Let me look that up", tool_calls=[call])
        assert route_reply(with_text) is TurnState.AWAITING_TOOLS
        assert route_reply(with_text) is route_reply(tool_request("web_search"))


class TestProcessTurn:
    """Tests for processing complete turns."""

    @pytest.mark.asyncio
    async def test_plain_reply(self, make_controller, store):
        """A reply without tool calls ends the turn immediately."""
        model = ScriptedModel(Message.assistant("Hi there"))
        controller = make_controller(model)

        result = await controller.process_turn("s1", "Hello")

        assert result.answer == "Hi there"
        assert result.rounds == 0
        assert result.messages_added == 2
        history = store.load("s1").snapshot()
        assert [(m.role, m.content) for m in history] == [("user", "Hello"), ("assistant", "Hi there")]

    @pytest.mark.asyncio
    async def test_plain_reply_never_invokes_tools(self, make_controller, search_log):
        model = ScriptedModel(Message.assistant("No search needed"))
        await make_controller(model).process_turn("s1", "What is 2 + 2?")

        assert search_log == []
        assert len(model.calls) == 1

    @pytest.mark.asyncio
    async def test_history_grows_by_two_per_plain_turn(self, make_controller, store):
        turns = 4
        model = ScriptedModel(*[Message.assistant(f"answer {i}") for i in range(turns)])
        controller = make_controller(model)

        for i in range(turns):
            await controller.process_turn("s1", f"question {i}")

        assert len(store.load("s1")) == 2 * turns
        # Every call sees the full history so far
        assert [len(call) for call in model.calls] == [1, 3, 5, 7]

    @pytest.mark.asyncio
    async def test_single_tool_round(self, make_controller, store, search_log):
        """Search request, tool result, then the final summary."""
        model = ScriptedModel(tool_request("web_search"), Message.assistant("Here is a summary..."))
        controller = make_controller(model)

        result = await controller.process_turn("s1", "Search latest AI news")

        assert result.answer == "Here is a summary..."
        assert result.rounds == 1
        history = store.load("s1").snapshot()
        assert len(history) == 4
        assert [m.role for m in history] == ["user", "assistant", "tool", "assistant"]
        assert history[2].tool_call_id == "call_1"
        assert history[2].content == "Results for latest AI news: AI model released."
        assert search_log == ["latest AI news"]

        # The second model call sees the tool result
        assert model.calls[1][-1].role == "tool"

    @pytest.mark.asyncio
    async def test_round_with_several_tool_calls(self, make_controller, store, search_log):
        k = 3
        model = ScriptedModel(tool_request(*["web_search"] * k), Message.assistant("Done"))
        result = await make_controller(model).process_turn("s1", "Compare three things")

        assert result.messages_added == 1 + 1 + k + 1
        history = store.load("s1").snapshot()
        assert [m.tool_call_id for m in history[2:5]] == ["call_1", "call_2", "call_3"]
        assert len(search_log) == k

    @pytest.mark.asyncio
    async def test_usage_is_summed_over_replies(self, make_controller):
        first = Message.assistant(
            "",
            tool_calls=[ToolInvocation(id="call_1", name="web_search", arguments={"query": "x"})],
            usage=TokenUsage(input_tokens=10, output_tokens=5, total_tokens=15),
        )
        second = Message.assistant("ok", usage=TokenUsage(input_tokens=30, output_tokens=7, total_tokens=37))

        result = await make_controller(ScriptedModel(first, second)).process_turn("s1", "hi")

        assert result.usage == TokenUsage(input_tokens=40, output_tokens=12, total_tokens=52)


class TestFailures:
    """Tests for turn-level failures."""

    @pytest.mark.asyncio
    async def test_model_unavailable_keeps_only_user_message(self, make_controller, store):
        model = ScriptedModel(ModelUnavailable(attempts=3))

        with pytest.raises(ModelUnavailable):
            await make_controller(model).process_turn("s1", "Hello")

        history = store.load("s1").snapshot()
        assert [(m.role, m.content) for m in history] == [("user", "Hello")]

    @pytest.mark.asyncio
    async def test_malformed_reply_aborts_turn(self, make_controller, store):
        model = ScriptedModel(MalformedReply("missing content"))

        with pytest.raises(MalformedReply):
            await make_controller(model).process_turn("s1", "Hello")

        assert len(store.load("s1")) == 1

    @pytest.mark.asyncio
    async def test_tool_failure_is_reported_to_model(self, make_controller, failing_search, store):
        model = ScriptedModel(tool_request("web_search"), Message.assistant("Search is down, sorry."))
        controller = make_controller(model, tools=ToolsRegistry([failing_search]))

        result = await controller.process_turn("s1", "Search latest AI news")

        assert result.answer == "Search is down, sorry."
        tool_message = store.load("s1").snapshot()[2]
        assert tool_message.role == "tool"
        assert tool_message.is_error is True
        assert tool_message.tool_call_id == "call_1"
        assert tool_message.content == "Error: search backend down"
        # The model was called again after the failure
        assert len(model.calls) == 2
        assert model.calls[1][-1] == tool_message

    @pytest.mark.asyncio
    async def test_unknown_tool_is_reported_to_model(self, make_controller, store):
        model = ScriptedModel(tool_request("calculator"), Message.assistant("I can't calculate."))

        await make_controller(model).process_turn("s1", "What is 3 * 7?")

        tool_message = store.load("s1").snapshot()[2]
        assert tool_message.is_error is True
        assert "unknown tool calculator" in tool_message.content

    @pytest.mark.asyncio
    async def test_tool_timeout_is_reported_to_model(self, make_controller, store):
        @tool("web_search")
        async def slow_search(query: str) -> str:
            """Search slowly."""
            await asyncio.sleep(5)
            return "late"

        model = ScriptedModel(tool_request("web_search"), Message.assistant("Timed out."))
        controller = make_controller(model, tools=ToolsRegistry([slow_search]), tool_timeout=0.01)

        await controller.process_turn("s1", "Search")

        tool_message = store.load("s1").snapshot()[2]
        assert tool_message.is_error is True
        assert "timed out" in tool_message.content

    @pytest.mark.asyncio
    async def test_tool_loop_exceeded(self, make_controller, store):
        model = ScriptedModel(*[tool_request("web_search") for _ in range(3)])
        controller = make_controller(model, max_tool_rounds=2)

        with pytest.raises(ToolLoopExceeded) as exc_info:
            await controller.process_turn("s1", "Keep searching")

        assert exc_info.value.rounds == 2
        assert len(model.calls) == 3

        history = store.load("s1").snapshot()
        # user, then (assistant, tool) for two rounds, then the unanswered request
        assert [m.role for m in history] == ["user", "assistant", "tool", "assistant", "tool", "assistant", "tool"]
        assert history[-1].content == NOT_EXECUTED
        assert history[-1].tool_call_id == history[-2].tool_calls[0].id

    @pytest.mark.asyncio
    async def test_zero_rounds_allowed(self, make_controller, search_log):
        model = ScriptedModel(tool_request("web_search"))

        with pytest.raises(ToolLoopExceeded):
            await make_controller(model, max_tool_rounds=0).process_turn("s1", "Search")

        assert search_log == []

    @pytest.mark.asyncio
    async def test_failure_does_not_break_next_turn(self, make_controller, store):
        model = ScriptedModel(ModelUnavailable(), Message.assistant("Back online"))
        controller = make_controller(model)

        with pytest.raises(ModelUnavailable):
            await controller.process_turn("s1", "Hello")
        result = await controller.process_turn("s1", "Hello again")

        assert result.answer == "Back online"
        assert [m.content for m in store.load("s1")] == ["Hello", "Hello again", "Back online"]
