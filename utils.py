"""Utility functions for the chatbot proxy."""

from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv

from config import AppConfig
from logger import mask_secret

log = logging.getLogger("chatbot_proxy")


def load_env_files() -> None:
    """Load .env files from program and current directory."""
    this_dir = Path(__file__).resolve().parent
    p1 = this_dir / ".env"
    p2 = Path.cwd() / ".env"

    loaded_any = False
    if p1.exists():
        loaded_any = load_dotenv(dotenv_path=str(p1), override=True) or loaded_any
        log.info("Loaded .env from %s", str(p1))
    else:
        log.info("No .env in program directory: %s", str(p1))

    if p2.exists() and p2 != p1:
        loaded_any = load_dotenv(dotenv_path=str(p2), override=True) or loaded_any
        log.info("Loaded .env from %s", str(p2))
    elif p2 != p1:
        log.info("No .env in current directory: %s", str(p2))

    if not loaded_any:
        log.info(".env not loaded (not found or no variables applied).")


def _log_key(name: str, value: str) -> None:
    log.info("%s_set=%s value=%s len=%s", name, bool(value), mask_secret(value), len(value or ""))


def dump_config(config: AppConfig) -> None:
    """Log effective configuration at startup."""
    log.info("=== Chatbot proxy startup config ===")
    _log_key("OPENAI_API_KEY", config.openai_api_key)
    log.info("OPENAI_API_BASE_URL=%s", config.openai_base_url)
    log.info("OPENAI_DEFAULT_MODEL=%s", config.openai_default_model)
    log.info("OPENAI_MAX_TOKENS=%s", config.openai_max_tokens)
    _log_key("GOOGLE_AI_API_KEY", config.gemini_api_key)
    log.info("GEMINI_API_BASE_URL=%s", config.gemini_base_url)
    log.info("GEMINI_MODEL=%s", config.gemini_default_model)
    _log_key("ANTHROPIC_API_KEY", config.anthropic_api_key)
    log.info("ANTHROPIC_API_BASE_URL=%s", config.anthropic_base_url)
    log.info("ANTHROPIC_MODEL=%s", config.anthropic_default_model)
    log.info("ANTHROPIC_MAX_TOKENS=%s", config.anthropic_max_tokens)
    log.info("DEFAULT_MODEL=%s", config.default_model)
    log.info("DEFAULT_TEMPERATURE=%s", config.default_temperature)
    log.info("FALLBACK_ON_UPSTREAM_ERROR=%s", config.fallback_on_upstream_error)
    if not (config.openai_api_key or config.gemini_api_key or config.anthropic_api_key):
        log.info("No provider API key set; every chat request gets a fallback response.")
    log.info("REQUEST_TIMEOUT_S=%s", config.request_timeout_s)
    log.info("SSE_KEEPALIVE_S=%s", config.sse_keepalive_s)
    log.info("MAX_REQUEST_BYTES=%s", config.max_request_bytes)
    log.info("HOST=%s PORT=%s", config.host, config.port)
    log.info("LOG_LEVEL=%s LOG_COLOR=%s", config.log_level, config.log_color)
    log.info("LOG_PATH=%s", config.log_path)
    log.info("USER_AGENT=%s", config.user_agent)
    log.info("WorkingDir=%s", str(Path.cwd()))
    log.info("ProgramDir=%s", str(Path(__file__).resolve().parent))
    log.info("====================================")
