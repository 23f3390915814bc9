"""API endpoints for the chat service."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Header, Request, Response
from fastapi.responses import StreamingResponse

from toolchat import __version__
from toolchat.api.dependencies import get_orchestrator, get_otp_service
from toolchat.errors import RequestValidationError
from toolchat.models.conversation import HealthResponse, OTPSendResponse, OTPVerifyRequest, OTPVerifyResponse
from toolchat.models.messages import ChatRequest
from toolchat.services.orchestrator import CompletionOrchestrator
from toolchat.services.otp import OTPService
from toolchat.services.stream import relay_stream
from toolchat.services.validation import validate_chat_request
from toolchat.tools.base import ToolContext
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

router = APIRouter()


async def read_chat_request(request: Request) -> ChatRequest:
    """Decode and validate the chat body before any other dependency runs."""
    try:
        body = await request.json()
    except ValueError as e:
        raise RequestValidationError("Invalid message format: request body is not valid JSON") from e
    return validate_chat_request(body)


@router.options("/chat", tags=["Chat"])
@router.options("/send-otp", tags=["OTP"])
@router.options("/verify-otp", tags=["OTP"])
async def preflight() -> Response:
    """Answer CORS preflight requests with no body."""
    return Response(status_code=200, headers=CORS_HEADERS)


@router.post("/chat", tags=["Chat"], response_class=StreamingResponse)
async def chat(
    chat_request: ChatRequest = Depends(read_chat_request),
    orchestrator: CompletionOrchestrator = Depends(get_orchestrator),
    authorization: str | None = Header(default=None),
) -> StreamingResponse:
    """Run a chat turn and stream the model's answer as server-sent events."""
    logger.info(f"Processing chat request with {len(chat_request.messages)} messages")

    run = await orchestrator.run(chat_request.messages, ToolContext(authorization=authorization))
    if run.error is not None:
        raise run.error

    logger.info(f"Streaming response after states {[state.value for state in run.trail]}")
    return StreamingResponse(relay_stream(run.stream), media_type="text/event-stream", headers=CORS_HEADERS)


@router.post("/send-otp", response_model=OTPSendResponse, tags=["OTP"])
async def send_otp(
    otp_service: OTPService = Depends(get_otp_service),
    authorization: str | None = Header(default=None),
) -> OTPSendResponse:
    """Email a fresh 6-digit code to the signed-in user."""
    await otp_service.send_code(authorization)
    return OTPSendResponse(success=True, message="OTP sent to your email")


@router.post("/verify-otp", response_model=OTPVerifyResponse, tags=["OTP"])
async def verify_otp(
    body: OTPVerifyRequest,
    otp_service: OTPService = Depends(get_otp_service),
    authorization: str | None = Header(default=None),
) -> OTPVerifyResponse:
    """Redeem the signed-in user's code."""
    await otp_service.verify_code(authorization, body.code)
    return OTPVerifyResponse(success=True, message="Verification successful")


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
