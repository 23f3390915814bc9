"""Runtime configuration loaded from the environment."""

import os
from dataclasses import dataclass, field

from toolchat.utils.logging import LogConfig

DEFAULT_PERSONA = (
    "You are Liqueno, a knowledgeable and helpful AI assistant with access to real-time data "
    "and image analysis capabilities. Provide clear, engaging, and friendly responses."
)

DEFAULT_GUIDANCE = (
    "When users ask about stocks, crypto, weather, news, or sports, use the appropriate function "
    "to get real-time data. When a user gives you a 6-digit verification code, use verify_otp.\n"
    "When users send images, carefully describe what you see and provide helpful insights.\n\n"
    "You can answer questions about virtually anything, from science and history to current events "
    "and practical advice. Be conversational, helpful, and engaging."
)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


@dataclass
class GatewayConfig:
    """Configuration for the chat-completion gateway client."""

    url: str = "https://ai.gateway.lovable.dev/v1/chat/completions"
    api_key: str | None = None
    model: str = "google/gemini-2.5-flash"
    timeout: float = 60.0
    max_retries: int = 3
    retry_delay: float = 1.0
    requests_per_minute: int = 60

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        defaults = cls()
        return cls(
            url=os.getenv("AI_GATEWAY_URL", defaults.url),
            api_key=os.getenv("AI_GATEWAY_API_KEY"),
            model=os.getenv("AI_GATEWAY_MODEL", defaults.model),
            timeout=_env_float("AI_GATEWAY_TIMEOUT", defaults.timeout),
            max_retries=_env_int("AI_GATEWAY_MAX_RETRIES", defaults.max_retries),
            retry_delay=_env_float("AI_GATEWAY_RETRY_DELAY", defaults.retry_delay),
            requests_per_minute=_env_int("AI_GATEWAY_REQUESTS_PER_MINUTE", defaults.requests_per_minute),
        )


@dataclass
class ToolsConfig:
    """Configuration shared by the data tools."""

    news_api_key: str = "demo"
    timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "ToolsConfig":
        return cls(
            news_api_key=os.getenv("NEWS_API_KEY", "demo"),
            timeout=_env_float("TOOLS_TIMEOUT", 10.0),
        )


@dataclass
class PromptConfig:
    """Static persona text and the timezone used for the current-time line."""

    persona: str = DEFAULT_PERSONA
    guidance: str = DEFAULT_GUIDANCE
    creator: str = "mirudeesh"
    timezone: str = "UTC"

    @classmethod
    def from_env(cls) -> "PromptConfig":
        return cls(timezone=os.getenv("CHAT_TIMEZONE", "UTC"))


@dataclass
class OTPConfig:
    """One-time passcode delivery and storage configuration."""

    ttl_minutes: int = 10
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    resend_api_key: str | None = None
    sender: str = "Liqueno <onboarding@resend.dev>"

    @property
    def supabase_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)

    @classmethod
    def from_env(cls) -> "OTPConfig":
        return cls(
            ttl_minutes=_env_int("OTP_TTL_MINUTES", 10),
            supabase_url=os.getenv("SUPABASE_URL"),
            supabase_service_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY"),
            resend_api_key=os.getenv("RESEND_API_KEY"),
            sender=os.getenv("OTP_EMAIL_SENDER", cls.sender),
        )


@dataclass
class Settings:
    """Aggregated application settings."""

    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    prompt: PromptConfig = field(default_factory=PromptConfig)
    otp: OTPConfig = field(default_factory=OTPConfig)
    logging: LogConfig = field(default_factory=LogConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            gateway=GatewayConfig.from_env(),
            tools=ToolsConfig.from_env(),
            prompt=PromptConfig.from_env(),
            otp=OTPConfig.from_env(),
            logging=LogConfig.from_env(),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or load settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
