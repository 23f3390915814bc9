"""Client-side conversation state fed by the chat event stream."""

from collections.abc import Callable
from datetime import UTC, datetime

import httpx
from cuid2 import cuid_wrapper

from toolchat.models.messages import ChatMessage, ImageUrl, ImageUrlPart, MessageContent, TextPart
from toolchat.services.stream import iter_deltas
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()

UpdateCallback = Callable[[list[ChatMessage]], None]


class ChatSendError(Exception):
    """A send failed; the user may retry."""

    def __init__(self, message: str, status_code: int | None = None, retryable: bool = True):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.retryable = retryable


class SendInProgressError(RuntimeError):
    """A send was attempted while another one is still pending."""


def build_content(text: str, image_url: str | None = None) -> MessageContent:
    """Plain text, or a text part followed by an image part."""
    if image_url is None:
        return text
    return [TextPart(text=text), ImageUrlPart(image_url=ImageUrl(url=image_url))]


class ChatSession:
    """One conversation: its ordered messages and a pending flag.

    Messages are immutable. While a response streams, the trailing assistant
    message is replaced with a new one holding the text accumulated so far,
    after every delta. If the send fails, is abandoned, or produces no text,
    an empty trailing assistant message is removed.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        chat_url: str,
        access_token: str | None = None,
        on_update: UpdateCallback | None = None,
    ):
        self.session_id = cuid()
        self.client = client
        self.chat_url = chat_url
        self.access_token = access_token
        self.on_update = on_update
        self.messages: list[ChatMessage] = []
        self.pending = False
        self.created_at = datetime.now(UTC)

    def clear(self) -> None:
        if self.pending:
            raise SendInProgressError("Cannot clear while a response is pending")
        self.messages = []
        self._notify()

    async def send(self, text: str, image_url: str | None = None) -> ChatMessage | None:
        """Send a user turn and stream the reply into the transcript.

        Returns:
            The final assistant message, or None if the reply was empty

        Raises:
            SendInProgressError: If a send is already pending
            ChatSendError: If the request is rejected or the stream fails
        """
        if self.pending:
            raise SendInProgressError("A response is already pending for this conversation")

        self.pending = True
        self.messages = [*self.messages, ChatMessage(role="user", content=build_content(text, image_url))]
        self._notify()

        try:
            return await self._exchange()
        finally:
            self._discard_empty_placeholder()
            self.pending = False
            self._notify()

    async def _exchange(self) -> ChatMessage | None:
        headers = {"Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        body = {"messages": [message.model_dump(mode="json") for message in self.messages]}

        try:
            async with self.client.stream("POST", self.chat_url, json=body, headers=headers) as response:
                if not response.is_success:
                    raise ChatSendError(
                        await self._error_message(response),
                        status_code=response.status_code,
                        retryable=response.status_code != 400,
                    )
                return await self._consume(response)
        except httpx.HTTPError as e:
            logger.error(f"Chat stream failed for session {self.session_id}: {e}")
            raise ChatSendError("Failed to send message. Please try again.") from e

    async def _consume(self, response: httpx.Response) -> ChatMessage | None:
        self.messages = [*self.messages, ChatMessage(role="assistant", content="")]
        self._notify()

        accumulated = ""
        async for delta in iter_deltas(response.aiter_bytes()):
            accumulated += delta
            # Length bounds apply to inbound requests, not to what the model streams back
            reply = ChatMessage.model_construct(role="assistant", content=accumulated)
            self.messages = [*self.messages[:-1], reply]
            self._notify()

        return self.messages[-1] if accumulated else None

    async def _error_message(self, response: httpx.Response) -> str:
        await response.aread()
        try:
            data = response.json()
        except ValueError:
            return "Failed to get response"
        error = data.get("error") if isinstance(data, dict) else None
        return error or "Failed to get response"

    def _discard_empty_placeholder(self) -> None:
        if self.messages and self.messages[-1].role == "assistant" and self.messages[-1].content == "":
            self.messages = self.messages[:-1]

    def _notify(self) -> None:
        if self.on_update is not None:
            self.on_update(self.messages)
