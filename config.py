"""Configuration management for the chatbot proxy."""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    """Get boolean environment variable with fallback."""
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    """Get float environment variable with fallback."""
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    """Get integer environment variable with fallback."""
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(v.strip())
    except ValueError:
        return default


def _env_str(name: str, default: str) -> str:
    """Get string environment variable with fallback."""
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    return v.strip()


@dataclass(frozen=True)
class AppConfig:
    """Application configuration."""

    # OpenAI settings
    openai_api_key: str
    openai_base_url: str
    openai_default_model: str
    openai_max_tokens: int

    # Gemini settings
    gemini_api_key: str
    gemini_base_url: str
    gemini_default_model: str

    # Anthropic settings
    anthropic_api_key: str
    anthropic_base_url: str
    anthropic_default_model: str
    anthropic_max_tokens: int

    # Routing
    default_model: str
    default_temperature: float
    fallback_on_upstream_error: bool

    # Timeouts and limits
    request_timeout_s: float
    sse_keepalive_s: float
    max_request_bytes: int

    # Server settings
    host: str
    port: int
    log_level: str
    log_color: bool
    log_path: str
    user_agent: str

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load configuration from environment variables."""
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY", "").strip(),
            openai_base_url=_env_str("OPENAI_API_BASE_URL", "https://api.openai.com/v1").rstrip("/"),
            openai_default_model=_env_str("OPENAI_DEFAULT_MODEL", "gpt-3.5-turbo"),
            openai_max_tokens=_env_int("OPENAI_MAX_TOKENS", 1000),
            gemini_api_key=os.getenv("GOOGLE_AI_API_KEY", "").strip(),
            gemini_base_url=_env_str(
                "GEMINI_API_BASE_URL", "https://generativelanguage.googleapis.com"
            ).rstrip("/"),
            gemini_default_model=_env_str("GEMINI_MODEL", "gemini-1.5-flash"),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", "").strip(),
            anthropic_base_url=_env_str("ANTHROPIC_API_BASE_URL", "https://api.anthropic.com").rstrip("/"),
            anthropic_default_model=_env_str("ANTHROPIC_MODEL", "claude-3-5-sonnet-20241022"),
            anthropic_max_tokens=_env_int("ANTHROPIC_MAX_TOKENS", 4096),
            default_model=_env_str("DEFAULT_MODEL", "gpt-3.5-turbo"),
            default_temperature=_env_float("DEFAULT_TEMPERATURE", 0.7),
            fallback_on_upstream_error=_env_bool("FALLBACK_ON_UPSTREAM_ERROR", True),
            request_timeout_s=_env_float("REQUEST_TIMEOUT_S", 60.0),
            sse_keepalive_s=_env_float("SSE_KEEPALIVE_S", 15.0),
            max_request_bytes=_env_int("MAX_REQUEST_BYTES", 2_000_000),  # ~2MB
            host=_env_str("HOST", "127.0.0.1"),
            port=_env_int("PORT", 3000),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper().strip(),
            log_color=_env_bool("LOG_COLOR", True),
            log_path=_env_str("LOG_PATH", "chatbot-proxy.log"),
            user_agent=_env_str("USER_AGENT", "chatbot-proxy/0.1.0"),
        )

    def validate(self) -> None:
        """Validate configuration."""
        if not self.default_model:
            raise ValueError("DEFAULT_MODEL must be non-empty")
        if not 0.0 <= self.default_temperature <= 2.0:
            raise ValueError("DEFAULT_TEMPERATURE must be within [0, 2]")
        if self.openai_max_tokens <= 0:
            raise ValueError("OPENAI_MAX_TOKENS must be > 0")
        if self.anthropic_max_tokens <= 0:
            raise ValueError("ANTHROPIC_MAX_TOKENS must be > 0")
        if self.request_timeout_s <= 0:
            raise ValueError("REQUEST_TIMEOUT_S must be > 0")
        if self.sse_keepalive_s <= 0:
            raise ValueError("SSE_KEEPALIVE_S must be > 0")
        if self.max_request_bytes <= 0:
            raise ValueError("MAX_REQUEST_BYTES must be > 0")
        if not 0 < self.port < 65536:
            raise ValueError("PORT must be within 1..65535")
        if not self.user_agent:
            raise ValueError("USER_AGENT must be non-empty")


def load_config() -> AppConfig:
    """Load configuration from environment."""
    return AppConfig.from_env()
