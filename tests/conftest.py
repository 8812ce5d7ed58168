"""
Pytest configuration and shared fixtures.

This file is automatically loaded by pytest and provides:
- Test environment setup (no real provider keys, so every provider starts unconfigured)
- Shared fixtures: in-process ASGI client, fake upstream registries
"""

import json
import os
import sys
from dataclasses import replace
from pathlib import Path

import httpx
import pytest

# Add parent directory to Python path so tests can import project modules
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# The app loads config at import time, so the environment must be set during collection.
os.environ["OPENAI_API_KEY"] = ""
os.environ["GOOGLE_AI_API_KEY"] = ""
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("LOG_COLOR", "false")
os.environ.setdefault("LOG_PATH", "/tmp/chatbot_proxy_test.log")


@pytest.fixture(scope="session")
def project_root_path():
    """Get project root path."""
    return project_root


@pytest.fixture
def test_config():
    """Config with every provider key set, pointing at fake base URLs."""
    from config import AppConfig

    return replace(
        AppConfig.from_env(),
        openai_api_key="sk-test-openai",
        openai_base_url="https://openai.test/v1",
        gemini_api_key="test-gemini",
        gemini_base_url="https://gemini.test",
        anthropic_api_key="test-anthropic",
        anthropic_base_url="https://anthropic.test",
        sse_keepalive_s=15.0,
    )


@pytest.fixture
def service():
    import chat_service

    return chat_service


@pytest.fixture
async def client(service):
    """Create an in-process ASGI client.

    httpx.ASGITransport avoids the blocking portal + lifespan wiring of TestClient.
    """
    transport = httpx.ASGITransport(app=service.app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest.fixture
def use_upstream(service, test_config, monkeypatch):
    """Route every provider through an httpx.MockTransport handler.

    Returns the list of requests the fake upstream received.
    """
    from providers import ProviderRegistry

    seen = []

    def install(handler, **config_overrides):
        def recording_handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        cfg = replace(test_config, **config_overrides)
        monkeypatch.setattr(service, "config", cfg)
        monkeypatch.setattr(
            service,
            "registry",
            ProviderRegistry.from_config(cfg, transport=httpx.MockTransport(recording_handler)),
        )
        return seen

    return install


def sse_response(events, status_code=200) -> httpx.Response:
    """Fake upstream SSE body: dict events become `data:` JSON, strings are raw data."""
    parts = []
    for ev in events:
        payload = ev if isinstance(ev, str) else json.dumps(ev)
        parts.append(f"data: {payload}\n\n")
    return httpx.Response(
        status_code,
        content="".join(parts).encode("utf-8"),
        headers={"content-type": "text/event-stream"},
    )


def parse_sse(raw_text: str):
    """Split an SSE body into (data objects, comment lines)."""
    data, comments = [], []
    for event in raw_text.split("\n\n"):
        for line in event.splitlines():
            if line.startswith(":"):
                comments.append(line)
            elif line.startswith("data:"):
                data.append(json.loads(line[len("data:"):].strip()))
    return data, comments
