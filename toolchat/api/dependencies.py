"""Service wiring for the HTTP layer."""

import httpx

from toolchat.clients.gateway import GatewayClient
from toolchat.config import Settings, get_settings
from toolchat.services.assembler import ConversationAssembler
from toolchat.services.email import EmailSender, LoggingEmailSender, ResendEmailSender
from toolchat.services.identity import IdentityResolver, StaticIdentityResolver, SupabaseIdentityResolver
from toolchat.services.orchestrator import CompletionOrchestrator, OrchestratorConfig
from toolchat.services.otp import InMemoryOTPStore, OTPService, OTPStore, SupabaseOTPStore
from toolchat.tools.registry import ToolsRegistry, build_default_registry
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

_http_client: httpx.AsyncClient | None = None
_otp_service: OTPService | None = None
_tools_registry: ToolsRegistry | None = None
_orchestrator: CompletionOrchestrator | None = None


def get_http_client() -> httpx.AsyncClient:
    """Shared client for tool, identity and email calls."""
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(timeout=get_settings().tools.timeout, follow_redirects=True)
    return _http_client


def _build_otp_backends(settings: Settings, client: httpx.AsyncClient) -> tuple[OTPStore, IdentityResolver]:
    otp = settings.otp
    if otp.supabase_enabled:
        logger.info("Using Supabase for identity and OTP storage")
        return (
            SupabaseOTPStore(client, otp.supabase_url, otp.supabase_service_key),
            SupabaseIdentityResolver(client, otp.supabase_url, otp.supabase_service_key),
        )
    logger.warning("Supabase not configured; using in-memory OTP store and development identities")
    return InMemoryOTPStore(), StaticIdentityResolver()


def _build_email_sender(settings: Settings, client: httpx.AsyncClient) -> EmailSender:
    if settings.otp.resend_api_key:
        return ResendEmailSender(client, settings.otp.resend_api_key, settings.otp.sender)
    return LoggingEmailSender()


def get_otp_service() -> OTPService:
    """Get or create the OTP service."""
    global _otp_service
    if _otp_service is None:
        settings = get_settings()
        client = get_http_client()
        store, resolver = _build_otp_backends(settings, client)
        _otp_service = OTPService(
            store=store,
            identity_resolver=resolver,
            email_sender=_build_email_sender(settings, client),
            ttl_minutes=settings.otp.ttl_minutes,
        )
    return _otp_service


def get_tools_registry() -> ToolsRegistry:
    """Get or create the tools registry."""
    global _tools_registry
    if _tools_registry is None:
        _tools_registry = build_default_registry(get_http_client(), get_settings().tools, get_otp_service())
    return _tools_registry


def get_orchestrator() -> CompletionOrchestrator:
    """Get or create the completion orchestrator.

    Raises:
        ConfigurationError: If the gateway API key is not configured
    """
    global _orchestrator
    if _orchestrator is None:
        settings = get_settings()
        registry = get_tools_registry()
        config = OrchestratorConfig(
            registry=registry,
            assembler=ConversationAssembler(settings.prompt, registry.list()),
        )
        _orchestrator = CompletionOrchestrator(config, GatewayClient(settings.gateway))
    return _orchestrator


async def close_dependencies() -> None:
    """Close shared HTTP clients and forget cached services."""
    global _http_client, _otp_service, _tools_registry, _orchestrator
    if _orchestrator is not None:
        await _orchestrator.gateway.aclose()
    if _http_client is not None:
        await _http_client.aclose()
    _http_client = _otp_service = _tools_registry = _orchestrator = None
