"""Completion orchestration: decide with tools, then deliver a stream.

A tool-call decision is only known once a complete response is parsed, so
the first round is non-streaming with tools attached. If the model asks for
tools, their results are appended to a private copy of the conversation and a
second, streaming round without tools produces the answer. Otherwise the
answer is streamed directly over the assembled conversation.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import httpx

from toolchat.clients.gateway import INVALID_RESPONSE, GatewayClient
from toolchat.errors import ChatServiceError, GatewayError
from toolchat.models.messages import ChatMessage, ToolCall, ToolResult
from toolchat.services.assembler import ConversationAssembler
from toolchat.tools.base import ToolContext
from toolchat.tools.registry import ToolsRegistry
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)


class CompletionState(StrEnum):
    ASSEMBLED = "assembled"
    FIRST_CALL = "first_call"
    TOOL_DISPATCH = "tool_dispatch"
    SECOND_CALL = "second_call"
    DIRECT_STREAM = "direct_stream"
    DONE = "done"
    FAILED = "failed"


TRANSITIONS: dict[CompletionState, frozenset[CompletionState]] = {
    CompletionState.ASSEMBLED: frozenset({CompletionState.FIRST_CALL, CompletionState.FAILED}),
    CompletionState.FIRST_CALL: frozenset(
        {CompletionState.TOOL_DISPATCH, CompletionState.DIRECT_STREAM, CompletionState.FAILED}
    ),
    CompletionState.TOOL_DISPATCH: frozenset({CompletionState.SECOND_CALL, CompletionState.FAILED}),
    CompletionState.SECOND_CALL: frozenset({CompletionState.DONE, CompletionState.FAILED}),
    CompletionState.DIRECT_STREAM: frozenset({CompletionState.DONE, CompletionState.FAILED}),
    CompletionState.DONE: frozenset(),
    CompletionState.FAILED: frozenset(),
}


class InvalidTransitionError(RuntimeError):
    """A state change not allowed by ``TRANSITIONS`` was attempted."""


@dataclass
class OrchestratorConfig:
    """Tool set and prompt assembly shared by every run of an orchestrator."""

    registry: ToolsRegistry
    assembler: ConversationAssembler


@dataclass
class CompletionRun:
    """State of a single request through the orchestrator."""

    conversation: list[dict[str, Any]]
    context: ToolContext = field(default_factory=ToolContext)
    state: CompletionState = CompletionState.ASSEMBLED
    trail: list[CompletionState] = field(default_factory=lambda: [CompletionState.ASSEMBLED])
    first_response: dict[str, Any] | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    stream: httpx.Response | None = None
    error: ChatServiceError | None = None

    def advance(self, target: CompletionState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"Cannot move from {self.state} to {target}")
        logger.debug(f"Completion state {self.state} -> {target}")
        self.state = target
        self.trail.append(target)

    @property
    def finished(self) -> bool:
        return self.state in (CompletionState.DONE, CompletionState.FAILED)


def extract_tool_calls(response: Any) -> tuple[dict[str, Any] | None, list[ToolCall]]:
    """Return the first choice's message and its tool calls, if any.

    Raises:
        GatewayError: If the body does not have the shape of a completion
    """
    if not isinstance(response, dict):
        raise GatewayError(INVALID_RESPONSE)
    choices = response.get("choices") or []
    if not isinstance(choices, list):
        raise GatewayError(INVALID_RESPONSE)
    if not choices:
        return None, []

    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(message, dict):
        raise GatewayError(INVALID_RESPONSE)
    raw_calls = message.get("tool_calls") or []
    if not isinstance(raw_calls, list) or not all(isinstance(raw, dict) for raw in raw_calls):
        raise GatewayError(INVALID_RESPONSE)
    return message, [ToolCall.from_upstream(raw) for raw in raw_calls]


class CompletionOrchestrator:
    """Runs the decide-then-stream protocol against the model gateway."""

    def __init__(self, config: OrchestratorConfig, gateway: GatewayClient):
        self.config = config
        self.gateway = gateway
        self._handlers = {
            CompletionState.ASSEMBLED: self._start,
            CompletionState.FIRST_CALL: self._first_call,
            CompletionState.TOOL_DISPATCH: self._dispatch_tools,
            CompletionState.SECOND_CALL: self._second_call,
            CompletionState.DIRECT_STREAM: self._direct_stream,
        }

    def prepare(self, history: Sequence[ChatMessage], context: ToolContext | None = None) -> CompletionRun:
        """Assemble the conversation into a new run in the ASSEMBLED state."""
        conversation = self.config.assembler.assemble(history)
        return CompletionRun(conversation=conversation, context=context or ToolContext())

    async def step(self, run: CompletionRun) -> CompletionRun:
        """Execute the current state's work and move to the next state."""
        if run.finished:
            raise InvalidTransitionError(f"Run already finished in state {run.state}")
        try:
            target = await self._handlers[run.state](run)
        except ChatServiceError as e:
            run.error = e
            target = CompletionState.FAILED
            logger.warning(f"Completion failed in state {run.state}: {e.message}")
        run.advance(target)
        return run

    async def run(self, history: Sequence[ChatMessage], context: ToolContext | None = None) -> CompletionRun:
        """Drive a run to DONE (with an open stream) or FAILED (with an error)."""
        run = self.prepare(history, context)
        logger.info(f"Starting completion with {len(history)} history messages")
        while not run.finished:
            await self.step(run)
        return run

    async def _start(self, run: CompletionRun) -> CompletionState:
        return CompletionState.FIRST_CALL

    async def _first_call(self, run: CompletionRun) -> CompletionState:
        run.first_response = await self.gateway.complete(run.conversation, tools=self.config.registry.list())
        message, run.tool_calls = extract_tool_calls(run.first_response)
        if not run.tool_calls:
            return CompletionState.DIRECT_STREAM

        logger.info(f"Model requested {len(run.tool_calls)} tool calls")
        run.conversation = [*run.conversation, message]
        return CompletionState.TOOL_DISPATCH

    async def _dispatch_tools(self, run: CompletionRun) -> CompletionState:
        registry = self.config.registry

        async def call(tool_call: ToolCall) -> ToolResult:
            logger.info(f"Calling tool {tool_call.name} with arguments {tool_call.arguments}")
            payload = await registry.invoke(tool_call.name, tool_call.arguments, run.context)
            return ToolResult(tool_call_id=tool_call.id, payload=payload)

        # gather preserves argument order, so results line up with declaration order
        run.tool_results = list(await asyncio.gather(*(call(tc) for tc in run.tool_calls)))
        run.conversation = [*run.conversation, *(result.to_message() for result in run.tool_results)]
        return CompletionState.SECOND_CALL

    async def _second_call(self, run: CompletionRun) -> CompletionState:
        run.stream = await self.gateway.open_stream(run.conversation)
        return CompletionState.DONE

    async def _direct_stream(self, run: CompletionRun) -> CompletionState:
        run.stream = await self.gateway.open_stream(run.conversation)
        return CompletionState.DONE
