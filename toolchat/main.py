"""Main FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError as BodyValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from toolchat import __version__
from toolchat.api.dependencies import close_dependencies
from toolchat.api.endpoints import CORS_HEADERS, router
from toolchat.config import get_settings
from toolchat.errors import ChatServiceError
from toolchat.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(get_settings().logging)
    yield
    await close_dependencies()


app = FastAPI(
    title="Liqueno Chat",
    description=(
        "A conversational AI service that augments a hosted chat model with real-time data tools "
        "and streams answers as server-sent events."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Chat",
            "description": "Tool-augmented chat turns streamed as text/event-stream.",
        },
        {
            "name": "OTP",
            "description": "One-time passcode issuing and verification for signed-in users.",
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ChatServiceError)
async def chat_service_error_handler(request: Request, exc: ChatServiceError) -> JSONResponse:
    """Render service errors as a single ``{"error": ...}`` body."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse({"error": exc.message}, status_code=exc.status_code, headers=CORS_HEADERS)


@app.exception_handler(BodyValidationError)
async def body_validation_error_handler(request: Request, exc: BodyValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {"msg": "Invalid request"}
    return JSONResponse({"error": first["msg"]}, status_code=400, headers=CORS_HEADERS)


app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("toolchat.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
