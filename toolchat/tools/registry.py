"""Tools registry for managing the assistant's callable tools."""

from __future__ import annotations

import json
from typing import Any

import httpx
from pydantic import ValidationError

from toolchat.config import ToolsConfig
from toolchat.errors import ChatServiceError
from toolchat.services.otp import OTPService
from toolchat.tools.base import Tool, ToolContext, ToolError
from toolchat.tools.crypto import CryptoPriceTool
from toolchat.tools.news import NewsHeadlinesTool
from toolchat.tools.sports import SportsScoresTool
from toolchat.tools.stock import StockPriceTool
from toolchat.tools.verify_otp import VerifyOTPTool
from toolchat.tools.weather import WeatherTool
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)


def _decode_arguments(arguments: dict[str, Any] | str | None) -> dict[str, Any]:
    if arguments is None or arguments == "":
        return {}
    if isinstance(arguments, dict):
        return arguments
    decoded = json.loads(arguments)
    if not isinstance(decoded, dict):
        raise ToolError("Tool arguments must be a JSON object")
    return decoded


class ToolsRegistry:
    """Maps tool names to tool instances."""

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register_tool(tool)

    def register_tool(self, tool: Tool) -> None:
        """Register a new tool in the registry."""
        self._tools[tool.name] = tool

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    def list(self) -> list[dict[str, Any]]:
        """Declarations of every registered tool, in registration order."""
        return [tool.declaration() for tool in self._tools.values()]

    async def invoke(
        self,
        name: str,
        arguments: dict[str, Any] | str | None,
        context: ToolContext | None = None,
    ) -> dict[str, Any]:
        """Run a tool and return its payload.

        Never raises: unknown tools, malformed arguments and executor failures
        all come back as ``{"error": reason}``.
        """
        tool = self._tools.get(name)
        if tool is None:
            logger.error(f"Unknown tool requested: {name}")
            return {"error": f"Unknown tool: {name}"}

        try:
            params = tool.parse_input(_decode_arguments(arguments))
        except (ValueError, ToolError) as e:
            # pydantic's ValidationError and json's JSONDecodeError are both ValueErrors
            reason = e.errors()[0]["msg"] if isinstance(e, ValidationError) else str(e)
            logger.warning(f"Invalid arguments for {name}: {reason}")
            return {"error": f"Invalid arguments for {name}: {reason}"}

        try:
            payload = await tool.run(params, context or ToolContext())
        except (ToolError, ChatServiceError) as e:
            logger.warning(f"Tool {name} failed: {e}")
            return {"error": str(e)}
        except Exception as e:
            logger.error(f"Tool {name} crashed: {e}", exc_info=True)
            return {"error": f"Failed to run {name}"}

        logger.debug(f"Tool {name} succeeded: {str(payload)[:100]}...")
        return payload


def build_default_registry(
    client: httpx.AsyncClient,
    config: ToolsConfig,
    otp_service: OTPService,
) -> ToolsRegistry:
    """Registry with the stock, weather, crypto, news, sports and OTP tools."""
    return ToolsRegistry(
        [
            StockPriceTool(client),
            WeatherTool(client),
            CryptoPriceTool(client),
            NewsHeadlinesTool(client, api_key=config.news_api_key),
            SportsScoresTool(client),
            VerifyOTPTool(otp_service),
        ]
    )
