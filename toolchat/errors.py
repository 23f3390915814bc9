"""Service error types rendered as ``{"error": message}`` responses."""


class ChatServiceError(Exception):
    """Base error carrying the HTTP status and the user-facing message."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(ChatServiceError):
    """Required configuration is missing."""


class RequestValidationError(ChatServiceError, ValueError):
    """Incoming chat payload is malformed or exceeds a size bound."""

    status_code = 400


class AuthenticationError(ChatServiceError):
    """Bearer credential is missing or does not resolve to a user."""

    status_code = 401


class GatewayError(ChatServiceError):
    """Base class for failures talking to the model gateway."""


class GatewayRateLimitError(GatewayError):
    """Gateway answered 429."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded. Please try again in a moment."):
        super().__init__(message)


class GatewayCreditsError(GatewayError):
    """Gateway answered 402; the workspace is out of credits."""

    status_code = 402

    def __init__(self, message: str = "AI credits required. Please add credits to your workspace."):
        super().__init__(message)


class GatewayStatusError(GatewayError):
    """Gateway answered with any other non-success status."""

    def __init__(self, upstream_status: int):
        super().__init__(f"AI gateway error: {upstream_status}")
        self.upstream_status = upstream_status


class GatewayConnectionError(GatewayError):
    """Gateway could not be reached."""

    status_code = 502


class OTPValidationError(ChatServiceError, ValueError):
    """Submitted code is not a 6-digit string."""

    status_code = 400


class OTPVerificationError(ChatServiceError):
    """Code is wrong, already used, or expired."""

    status_code = 400

    def __init__(self, message: str = "Invalid or expired verification code"):
        super().__init__(message)


class OTPDeliveryError(ChatServiceError):
    """A code could not be emailed."""


class OTPStorageError(ChatServiceError):
    """The passcode datastore could not be reached or rejected the operation."""
