"""Request and response models for the HTTP endpoints."""

from datetime import datetime

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Error body returned by every endpoint on failure."""

    error: str


class OTPSendResponse(BaseModel):
    """Response model for the send-OTP endpoint."""

    success: bool
    message: str


class OTPVerifyRequest(BaseModel):
    """Request model for the verify-OTP endpoint."""

    code: str


class OTPVerifyResponse(BaseModel):
    """Response model for the verify-OTP endpoint."""

    success: bool
    message: str


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
