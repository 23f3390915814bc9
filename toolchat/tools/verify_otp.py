"""One-time passcode verification tool."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from toolchat.services.otp import OTPService
from toolchat.tools.base import Tool, ToolContext


class VerifyOTPInput(BaseModel):
    """Input schema for the OTP verification tool.

    The format is checked by the service rather than here so that a
    malformed code yields the same message as the verify endpoint.
    """

    code: str = Field(..., description="The 6-digit verification code the user received by email")

    @field_validator("code", mode="before")
    @classmethod
    def accept_numeric_code(cls, value: Any) -> Any:
        # Models sometimes send the code as a JSON number
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class VerifyOTPTool(Tool):
    name = "verify_otp"
    description = (
        "Verify the 6-digit one-time passcode that was emailed to the signed-in user. "
        "Only call this when the user provides a verification code."
    )
    input_model = VerifyOTPInput

    def __init__(self, otp_service: OTPService):
        self.otp_service = otp_service

    async def run(self, params: VerifyOTPInput, context: ToolContext) -> dict[str, Any]:
        await self.otp_service.verify_code(context.authorization, params.code)
        return {"success": True, "message": "Verification successful"}
