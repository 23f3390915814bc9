"""Shared fixtures for the test suite."""

import json
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import httpx
import pytest

from toolchat.clients.gateway import GatewayClient
from toolchat.config import GatewayConfig, PromptConfig
from toolchat.models.otp import Identity
from toolchat.services.assembler import ConversationAssembler
from toolchat.services.identity import StaticIdentityResolver
from toolchat.services.orchestrator import CompletionOrchestrator, OrchestratorConfig
from toolchat.services.otp import InMemoryOTPStore, OTPService
from toolchat.tools.registry import ToolsRegistry

GATEWAY_URL = "https://gateway.test/v1/chat/completions"
TEST_TOKEN = "token-alice"
TEST_IDENTITY = Identity(user_id="user-alice", email="alice@example.com")
FIXED_NOW = datetime(2025, 3, 14, 15, 9, 26, tzinfo=UTC)


def sse_body(*deltas: str, done: bool = True) -> bytes:
    """Event-stream body carrying the given text deltas."""
    lines = [f"data: {json.dumps({'choices': [{'delta': {'content': delta}}]})}\n\n" for delta in deltas]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


def completion(content: str | None = "Hi there", tool_calls: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    """Non-streaming completion body."""
    message: dict[str, Any] = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return {"id": "cmpl-1", "choices": [{"index": 0, "message": message, "finish_reason": "stop"}]}


def tool_call(call_id: str, name: str, arguments: dict[str, Any] | str) -> dict[str, Any]:
    """OpenAI-style tool call entry."""
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": arguments}}


class FakeGateway:
    """Scripted chat-completion gateway for ``httpx.MockTransport``.

    Non-streaming requests get the queued completions in order; streaming
    requests get ``stream_body``. Every request payload is recorded.
    """

    def __init__(
        self,
        completions: list[dict[str, Any]] | None = None,
        stream_body: bytes = b"",
        status_code: int = 200,
        stream_status_code: int = 200,
    ):
        self.completions = list(completions or [completion()])
        self.stream_body = stream_body or sse_body("Hel", "lo")
        self.status_code = status_code
        self.stream_status_code = stream_status_code
        self.requests: list[dict[str, Any]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.requests.append(payload)

        if payload.get("stream"):
            if self.stream_status_code != 200:
                return httpx.Response(self.stream_status_code, json={"error": "upstream"})
            return httpx.Response(
                200, content=self.stream_body, headers={"content-type": "text/event-stream"}
            )

        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": "upstream"})
        return httpx.Response(200, json=self.completions.pop(0))

    @property
    def streaming_requests(self) -> list[dict[str, Any]]:
        return [payload for payload in self.requests if payload.get("stream")]


def make_gateway_client(handler: Callable[[httpx.Request], httpx.Response]) -> GatewayClient:
    """Gateway client whose HTTP traffic goes to ``handler``."""
    config = GatewayConfig(url=GATEWAY_URL, api_key="test-key", max_retries=1, retry_delay=0)
    return GatewayClient(config, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def make_orchestrator(handler: Callable[[httpx.Request], httpx.Response], registry: ToolsRegistry):
    """Orchestrator over ``registry`` talking to ``handler``."""
    assembler = ConversationAssembler(PromptConfig(), registry.list(), clock=lambda: FIXED_NOW)
    return CompletionOrchestrator(OrchestratorConfig(registry=registry, assembler=assembler), make_gateway_client(handler))


class Clock:
    """Settable clock for expiry tests."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingEmailSender:
    """Email sender that keeps the codes it was asked to send."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    async def send_code(self, recipient: str, code: str, ttl_minutes: int) -> None:
        self.sent.append((recipient, code))

    @property
    def last_code(self) -> str:
        return self.sent[-1][1]


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def otp_store() -> InMemoryOTPStore:
    return InMemoryOTPStore()


@pytest.fixture
def otp_service(otp_store, email_sender, clock) -> OTPService:
    """OTP service over in-memory storage with one known user."""
    return OTPService(
        store=otp_store,
        identity_resolver=StaticIdentityResolver({TEST_TOKEN: TEST_IDENTITY}),
        email_sender=email_sender,
        ttl_minutes=10,
        clock=clock,
    )
