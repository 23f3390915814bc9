"""Builds the message list sent to the model gateway."""

from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any
from zoneinfo import ZoneInfo

from toolchat.config import PromptConfig
from toolchat.models.messages import ChatMessage

SYSTEM_TEMPLATE = """\
{persona}

Current date and time: {current_time}

You have access to these capabilities:
{capabilities}
- Image analysis: You can see and analyze images that users send you. Describe what you see and answer \
questions about the images.

{guidance}

Important: When asked who created you or who made you, respond that you were created by {creator}."""


def format_timestamp(moment: datetime) -> str:
    """Human-readable wall-clock time with its timezone abbreviation."""
    return moment.strftime("%A, %B %d, %Y, %I:%M:%S %p %Z")


class ConversationAssembler:
    """Prepends the system preamble to a validated history."""

    def __init__(
        self,
        prompt: PromptConfig,
        tool_declarations: Sequence[dict[str, Any]] = (),
        clock: Callable[[], datetime] | None = None,
    ):
        self.prompt = prompt
        self.tool_declarations = list(tool_declarations)
        self.timezone = ZoneInfo(prompt.timezone)
        self.clock = clock or (lambda: datetime.now(UTC))

    def capabilities(self) -> str:
        lines = []
        for declaration in self.tool_declarations:
            function = declaration["function"]
            lines.append(f"- {function['name']}: {function['description']}")
        return "\n".join(lines)

    def system_prompt(self) -> str:
        now = self.clock().astimezone(self.timezone)
        return SYSTEM_TEMPLATE.format(
            persona=self.prompt.persona,
            current_time=format_timestamp(now),
            capabilities=self.capabilities(),
            guidance=self.prompt.guidance,
            creator=self.prompt.creator,
        )

    def assemble(self, history: Sequence[ChatMessage]) -> list[dict[str, Any]]:
        """Return a new list: the system message followed by the history."""
        return [
            {"role": "system", "content": self.system_prompt()},
            *(message.to_upstream() for message in history),
        ]
