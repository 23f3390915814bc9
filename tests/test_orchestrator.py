"""Tests for the completion orchestrator and conversation assembly."""

import asyncio
import json
from typing import Any

import httpx
import pytest
from pydantic import BaseModel

from tests.conftest import (
    FIXED_NOW,
    FakeGateway,
    completion,
    make_gateway_client,
    make_orchestrator,
    sse_body,
    tool_call,
)
from toolchat.clients.gateway import INVALID_RESPONSE
from toolchat.config import PromptConfig
from toolchat.errors import GatewayCreditsError, GatewayError, GatewayRateLimitError, GatewayStatusError
from toolchat.models.messages import ChatMessage
from toolchat.services.assembler import ConversationAssembler
from toolchat.services.orchestrator import CompletionRun, CompletionState, InvalidTransitionError
from toolchat.services.stream import iter_deltas
from toolchat.tools.base import Tool, ToolContext
from toolchat.tools.registry import ToolsRegistry

HISTORY = [ChatMessage(role="user", content="What's up?")]


class EchoInput(BaseModel):
    value: str


class SlowEchoTool(Tool):
    """Echoes its input after a per-instance delay."""

    description = "Echo a value"
    input_model = EchoInput

    def __init__(self, name: str, delay: float):
        self.name = name
        self.delay = delay

    async def run(self, params: EchoInput, context: ToolContext) -> dict[str, Any]:
        await asyncio.sleep(self.delay)
        return {"tool": self.name, "value": params.value}


@pytest.fixture
def registry() -> ToolsRegistry:
    # The first declared tool finishes last
    return ToolsRegistry([SlowEchoTool("slow", 0.05), SlowEchoTool("fast", 0)])


def two_tool_calls() -> dict[str, Any]:
    return completion(
        content=None,
        tool_calls=[
            tool_call("call_1", "slow", {"value": "a"}),
            tool_call("call_2", "fast", {"value": "b"}),
        ],
    )


async def read_stream(run: CompletionRun) -> str:
    try:
        return "".join([delta async for delta in iter_deltas(run.stream.aiter_bytes())])
    finally:
        await run.stream.aclose()


class TestDirectStream:
    """No tool calls: the answer is streamed over the assembled conversation."""

    @pytest.mark.asyncio
    async def test_streams_answer(self, registry):
        gateway = FakeGateway(stream_body=sse_body("Hel", "lo"))
        run = await make_orchestrator(gateway, registry).run(HISTORY)

        assert run.state == CompletionState.DONE
        assert run.trail == [
            CompletionState.ASSEMBLED,
            CompletionState.FIRST_CALL,
            CompletionState.DIRECT_STREAM,
            CompletionState.DONE,
        ]
        assert await read_stream(run) == "Hello"

    @pytest.mark.asyncio
    async def test_first_call_offers_tools_without_streaming(self, registry):
        gateway = FakeGateway()
        await make_orchestrator(gateway, registry).run(HISTORY)

        first = gateway.requests[0]
        assert "stream" not in first
        assert first["tool_choice"] == "auto"
        assert [tool["function"]["name"] for tool in first["tools"]] == ["slow", "fast"]
        assert first["messages"][0]["role"] == "system"
        assert first["messages"][1:] == [{"role": "user", "content": "What's up?"}]

    @pytest.mark.asyncio
    async def test_direct_stream_has_no_tools(self, registry):
        gateway = FakeGateway()
        await make_orchestrator(gateway, registry).run(HISTORY)

        [streamed] = gateway.streaming_requests
        assert "tools" not in streamed
        assert streamed["messages"] == gateway.requests[0]["messages"]


class TestToolRound:
    """Tool calls are executed and fed into a second, streaming call."""

    @pytest.mark.asyncio
    async def test_results_follow_declaration_order(self, registry):
        gateway = FakeGateway(completions=[two_tool_calls()])
        run = await make_orchestrator(gateway, registry).run(HISTORY)

        assert run.trail == [
            CompletionState.ASSEMBLED,
            CompletionState.FIRST_CALL,
            CompletionState.TOOL_DISPATCH,
            CompletionState.SECOND_CALL,
            CompletionState.DONE,
        ]
        [second] = gateway.streaming_requests
        tool_messages = [m for m in second["messages"] if m["role"] == "tool"]
        assert [m["tool_call_id"] for m in tool_messages] == ["call_1", "call_2"]
        assert [json.loads(m["content"]) for m in tool_messages] == [
            {"tool": "slow", "value": "a"},
            {"tool": "fast", "value": "b"},
        ]

    @pytest.mark.asyncio
    async def test_second_call_carries_assistant_turn_and_no_tools(self, registry):
        gateway = FakeGateway(completions=[two_tool_calls()])
        await make_orchestrator(gateway, registry).run(HISTORY)

        [second] = gateway.streaming_requests
        assert second["stream"] is True
        assert "tools" not in second
        assert "tool_choice" not in second
        roles = [m["role"] for m in second["messages"]]
        assert roles == ["system", "user", "assistant", "tool", "tool"]
        assert [tc["id"] for tc in second["messages"][2]["tool_calls"]] == ["call_1", "call_2"]

    @pytest.mark.asyncio
    async def test_failing_tools_still_answer(self, registry):
        response = completion(
            content=None,
            tool_calls=[
                tool_call("call_1", "missing_tool", {}),
                tool_call("call_2", "fast", "{not json"),
            ],
        )
        gateway = FakeGateway(completions=[response], stream_body=sse_body("Sorry"))
        run = await make_orchestrator(gateway, registry).run(HISTORY)

        assert run.state == CompletionState.DONE
        assert [result.payload for result in run.tool_results][0] == {"error": "Unknown tool: missing_tool"}
        assert run.tool_results[1].is_error
        assert await read_stream(run) == "Sorry"

    @pytest.mark.asyncio
    async def test_caller_history_is_untouched(self, registry):
        history = list(HISTORY)
        gateway = FakeGateway(completions=[two_tool_calls()])
        await make_orchestrator(gateway, registry).run(history)

        assert history == HISTORY


class TestFailures:
    """Gateway failures end the run in FAILED with a classified error."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status_code", "error_type", "http_status"),
        [(429, GatewayRateLimitError, 429), (402, GatewayCreditsError, 402), (500, GatewayStatusError, 500)],
    )
    async def test_first_call_failure(self, registry, status_code, error_type, http_status):
        gateway = FakeGateway(status_code=status_code)
        run = await make_orchestrator(gateway, registry).run(HISTORY)

        assert run.state == CompletionState.FAILED
        assert run.trail == [CompletionState.ASSEMBLED, CompletionState.FIRST_CALL, CompletionState.FAILED]
        assert isinstance(run.error, error_type)
        assert run.error.status_code == http_status
        assert run.stream is None

    @pytest.mark.asyncio
    async def test_second_call_failure(self, registry):
        gateway = FakeGateway(completions=[two_tool_calls()], stream_status_code=429)
        run = await make_orchestrator(gateway, registry).run(HISTORY)

        assert run.state == CompletionState.FAILED
        assert run.trail[-2:] == [CompletionState.SECOND_CALL, CompletionState.FAILED]
        assert run.error.message == "Rate limit exceeded. Please try again in a moment."

    @pytest.mark.asyncio
    async def test_generic_status_message(self, registry):
        gateway = FakeGateway(stream_status_code=503)
        run = await make_orchestrator(gateway, registry).run(HISTORY)

        assert run.error.message == "AI gateway error: 503"


class TestStateMachine:
    """Transition rules."""

    def test_invalid_transition_raises(self):
        run = CompletionRun(conversation=[])
        with pytest.raises(InvalidTransitionError):
            run.advance(CompletionState.SECOND_CALL)

    def test_terminal_states_have_no_exits(self):
        run = CompletionRun(conversation=[])
        run.advance(CompletionState.FAILED)
        assert run.finished
        with pytest.raises(InvalidTransitionError):
            run.advance(CompletionState.FIRST_CALL)

    @pytest.mark.asyncio
    async def test_step_after_finish_raises(self, registry):
        orchestrator = make_orchestrator(FakeGateway(), registry)
        run = await orchestrator.run(HISTORY)
        await run.stream.aclose()

        with pytest.raises(InvalidTransitionError):
            await orchestrator.step(run)

    @pytest.mark.asyncio
    async def test_stepwise_execution(self, registry):
        orchestrator = make_orchestrator(FakeGateway(), registry)
        run = orchestrator.prepare(HISTORY)

        assert run.state == CompletionState.ASSEMBLED
        await orchestrator.step(run)
        assert run.state == CompletionState.FIRST_CALL
        await orchestrator.step(run)
        assert run.state == CompletionState.DIRECT_STREAM
        assert run.stream is None


class TestAssembler:
    """System preamble construction."""

    @pytest.fixture
    def assembler(self, registry) -> ConversationAssembler:
        return ConversationAssembler(PromptConfig(), registry.list(), clock=lambda: FIXED_NOW)

    def test_system_message_first(self, assembler):
        messages = assembler.assemble(HISTORY)

        assert len(messages) == 2
        assert messages[0]["role"] == "system"
        assert messages[1] == {"role": "user", "content": "What's up?"}

    def test_preamble_contents(self, assembler):
        prompt = assembler.system_prompt()

        assert "Friday, March 14, 2025, 03:09:26 PM UTC" in prompt
        assert "- slow: Echo a value" in prompt
        assert "- fast: Echo a value" in prompt
        assert "mirudeesh" in prompt
        assert "Image analysis" in prompt

    def test_timezone_applied(self, registry):
        prompt = PromptConfig(timezone="America/New_York")
        assembler = ConversationAssembler(prompt, registry.list(), clock=lambda: FIXED_NOW)

        assert "11:09:26 AM EDT" in assembler.system_prompt()

    def test_returns_new_list(self, assembler):
        history = list(HISTORY)
        messages = assembler.assemble(history)
        messages.append({"role": "user", "content": "extra"})

        assert history == HISTORY


def first_reply(body: bytes, gateway: FakeGateway):
    """Handler answering the first call with ``body`` and streams with ``gateway``."""

    def handler(request: httpx.Request) -> httpx.Response:
        if json.loads(request.content).get("stream"):
            return gateway(request)
        return httpx.Response(200, content=body, headers={"content-type": "application/json"})

    return handler


class TestMalformedFirstResponse:
    """A 2xx first response that is not a usable completion fails the run."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            b"<html>upstream proxy</html>",
            b"[1, 2]",
            b'"just text"',
            b'{"choices": "none"}',
            b'{"choices": [42]}',
            b'{"choices": [{"message": {"tool_calls": "get_weather"}}]}',
        ],
    )
    async def test_fails_with_gateway_error(self, registry, body):
        gateway = FakeGateway()
        run = await make_orchestrator(first_reply(body, gateway), registry).run(HISTORY)

        assert run.state == CompletionState.FAILED
        assert isinstance(run.error, GatewayError)
        assert run.error.status_code == 500
        assert run.error.message == INVALID_RESPONSE
        assert gateway.streaming_requests == []

    @pytest.mark.asyncio
    async def test_tool_call_without_id(self, registry):
        raw_call = {"id": None, "type": "function", "function": {"name": "fast", "arguments": '{"value": "b"}'}}
        gateway = FakeGateway(completions=[completion(None, [raw_call])])
        run = await make_orchestrator(gateway, registry).run(HISTORY)

        assert run.state == CompletionState.DONE
        assert run.tool_results[0].payload == {"tool": "fast", "value": "b"}
        await run.stream.aclose()


class TestGatewayClient:
    """Request shaping and response decoding in the gateway client."""

    @pytest.mark.asyncio
    async def test_stream_request_asks_for_uncompressed_body(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=sse_body("Hi"))

        response = await make_gateway_client(handler).open_stream([{"role": "user", "content": "hi"}])
        await response.aclose()

        assert seen[0].headers["accept-encoding"] == "identity"
        assert seen[0].headers["authorization"] == "Bearer test-key"

    @pytest.mark.asyncio
    async def test_non_json_completion(self):
        client = make_gateway_client(lambda request: httpx.Response(200, content=b"<html></html>"))

        with pytest.raises(GatewayError, match=INVALID_RESPONSE):
            await client.complete([{"role": "user", "content": "hi"}])
