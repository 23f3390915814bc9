"""Input validation for chat requests."""

from typing import Any

from pydantic import ValidationError

from toolchat.errors import RequestValidationError
from toolchat.models.messages import ChatRequest
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    detail = first["msg"].removeprefix("Value error, ")
    if location:
        return f"Invalid message format or content too long: {location}: {detail}"
    return f"Invalid message format or content too long: {detail}"


def validate_chat_request(body: Any) -> ChatRequest:
    """Validate a decoded chat request body.

    Args:
        body: Arbitrary decoded JSON

    Returns:
        The validated request

    Raises:
        RequestValidationError: If any bound or shape rule is violated
    """
    if not isinstance(body, dict):
        raise RequestValidationError("Invalid message format: request body must be a JSON object")

    try:
        request = ChatRequest.model_validate(body)
    except ValidationError as e:
        message = _describe(e)
        logger.warning(f"Rejected chat request: {message}")
        raise RequestValidationError(message) from e

    logger.debug(f"Accepted chat request with {len(request.messages)} messages")
    return request
