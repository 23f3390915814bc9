"""Base types and definitions for tools."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar

import httpx
from pydantic import BaseModel


class ToolError(Exception):
    """Expected executor failure whose message is safe to show the model."""


@dataclass(frozen=True)
class ToolContext:
    """Per-request information a tool may need besides its arguments."""

    authorization: str | None = None


class Tool(ABC):
    """A capability the model can call.

    Subclasses declare ``name``, ``description`` and a pydantic ``input_model``
    and implement ``run``. ``run`` may raise ``ToolError``; the registry turns
    any failure into an ``{"error": ...}`` payload.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    input_model: ClassVar[type[BaseModel]]

    def declaration(self) -> dict[str, Any]:
        """OpenAI-style function declaration advertised to the model."""
        schema = self.input_model.model_json_schema()
        schema.pop("title", None)
        for prop in schema.get("properties", {}).values():
            prop.pop("title", None)
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": schema,
            },
        }

    def parse_input(self, raw_input: dict[str, Any]) -> BaseModel:
        """Parse and validate tool input."""
        return self.input_model.model_validate(raw_input)

    @abstractmethod
    async def run(self, params: BaseModel, context: ToolContext) -> dict[str, Any]:
        """Execute the tool and return a JSON-serializable payload."""


class HttpTool(Tool):
    """Tool backed by a single outbound HTTP call."""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def fetch_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET ``url`` and decode the JSON body.

        Raises:
            ToolError: On network errors, non-2xx statuses, or invalid JSON
        """
        try:
            response = await self.client.get(url, params=params)
        except httpx.HTTPError as e:
            raise ToolError(f"Request to {httpx.URL(url).host} failed") from e

        if not response.is_success:
            raise ToolError(f"Upstream returned status {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise ToolError("Upstream returned an invalid response") from e
