"""Tools for the conversational AI assistant."""

from toolchat.tools.base import Tool, ToolContext, ToolError
from toolchat.tools.registry import ToolsRegistry, build_default_registry

__all__ = ["Tool", "ToolContext", "ToolError", "ToolsRegistry", "build_default_registry"]
