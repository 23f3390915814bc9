"""Message and tool-call data models."""

import json
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

MAX_MESSAGES = 50
MAX_TEXT_LENGTH = 50_000
MAX_CONTENT_PARTS = 10
MAX_IMAGE_URL_LENGTH = 5_000_000


def code_units(value: str) -> int:
    """Length of a string in UTF-16 code units, as browsers count it."""
    return len(value.encode("utf-16-le")) // 2


def _max_code_units(limit: int):
    def check(value: str) -> str:
        length = code_units(value)
        if length > limit:
            raise ValueError(f"length {length} exceeds the limit of {limit}")
        return value

    return AfterValidator(check)


BoundedText = Annotated[str, _max_code_units(MAX_TEXT_LENGTH)]
BoundedImageUrl = Annotated[str, _max_code_units(MAX_IMAGE_URL_LENGTH)]


class TextPart(BaseModel):
    """Text part of structured message content."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: Literal["text"] = "text"
    text: BoundedText


class ImageUrl(BaseModel):
    """Image reference, usually a base64 data URL."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    url: BoundedImageUrl


class ImageUrlPart(BaseModel):
    """Image part of structured message content."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: Literal["image_url"] = "image_url"
    image_url: ImageUrl


ContentPart = Annotated[TextPart | ImageUrlPart, Field(discriminator="type")]
MessageContent = BoundedText | Annotated[list[ContentPart], Field(max_length=MAX_CONTENT_PARTS)]


class ChatMessage(BaseModel):
    """A conversation turn supplied by the client.

    Only user and assistant turns are accepted from callers; system and tool
    turns are injected server-side.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    role: Literal["user", "assistant"]
    content: MessageContent

    def to_upstream(self) -> dict[str, Any]:
        """Serialize for the chat-completion gateway."""
        return self.model_dump(mode="json")

    @property
    def text(self) -> str:
        """Plain-text view of the content, ignoring images."""
        if isinstance(self.content, str):
            return self.content
        return "".join(part.text for part in self.content if isinstance(part, TextPart))


class ChatRequest(BaseModel):
    """Request body of the chat endpoint."""

    model_config = ConfigDict(extra="ignore")

    messages: Annotated[list[ChatMessage], Field(min_length=1, max_length=MAX_MESSAGES)]


class ToolCall(BaseModel):
    """A function call requested by the model in an assistant turn."""

    id: str
    name: str
    arguments: str = "{}"

    @classmethod
    def from_upstream(cls, raw: dict[str, Any]) -> "ToolCall":
        """Build from an OpenAI-style ``tool_calls`` entry."""
        function = raw.get("function")
        if not isinstance(function, dict):
            function = {}
        arguments = function.get("arguments")
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments if arguments is not None else {})
        return cls(id=str(raw.get("id") or ""), name=str(function.get("name") or ""), arguments=arguments)


class ToolResult(BaseModel):
    """Result of a tool call, always JSON-serializable."""

    tool_call_id: str
    payload: dict[str, Any]

    @property
    def is_error(self) -> bool:
        return "error" in self.payload

    def to_message(self) -> dict[str, Any]:
        """Render as a ``tool`` role turn for the gateway."""
        return {
            "role": "tool",
            "tool_call_id": self.tool_call_id,
            "content": json.dumps(self.payload, default=str),
        }
