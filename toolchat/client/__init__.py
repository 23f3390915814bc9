"""Python client for the chat service."""

from toolchat.client.session import ChatSendError, ChatSession, SendInProgressError

__all__ = ["ChatSendError", "ChatSession", "SendInProgressError"]
