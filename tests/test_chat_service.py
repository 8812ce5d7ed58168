"""
HTTP-level tests for the chat proxy routes.

Unconfigured providers are the default test environment (conftest clears the keys);
`use_upstream` swaps in a fully configured registry backed by a fake upstream.
"""

import json
from dataclasses import replace

import httpx
import pytest

from conftest import parse_sse, sse_response
from fallback import MOCK_RESPONSES

USER_MSG = {"id": "msg1", "role": "user", "content": "Hello"}


def _openai_reply(content="Hi from upstream"):
    return httpx.Response(
        200,
        json={
            "id": "chatcmpl-9",
            "model": "gpt-3.5-turbo",
            "choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
            "usage": {"prompt_tokens": 1, "completion_tokens": 3, "total_tokens": 4},
        },
    )


class TestBasicRoutes:
    @pytest.mark.asyncio
    async def test_healthz(self, client):
        r = await client.get("/healthz")
        assert r.status_code == 200
        assert r.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_models_unconfigured(self, client):
        r = await client.get("/api/v1/models")
        assert r.status_code == 200
        body = r.json()
        assert body["object"] == "list"
        assert {m["owned_by"] for m in body["data"]} == {"openai", "gemini", "anthropic"}
        assert not any(m["configured"] for m in body["data"])

    @pytest.mark.asyncio
    async def test_models_configured(self, client, use_upstream):
        use_upstream(lambda r: httpx.Response(500))
        r = await client.get("/api/v1/models")
        assert all(m["configured"] for m in r.json()["data"])

    @pytest.mark.asyncio
    async def test_cors_preflight(self, client):
        r = await client.options(
            "/api/v1/chat/completions",
            headers={"Origin": "tauri://localhost", "Access-Control-Request-Method": "POST"},
        )
        assert r.status_code == 200
        assert "access-control-allow-origin" in r.headers


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"messages": []},
            {"messages": "invalid"},
            {"messages": [{"role": "robot", "content": "x"}]},
            {"messages": [{"role": "user"}]},
            ["not", "an", "object"],
            {"messages": [{"role": "user", "content": "x"}], "stream": "false"},
        ],
    )
    async def test_bad_body(self, client, body):
        r = await client.post("/api/v1/chat/completions", json=body)
        assert r.status_code == 400
        assert "detail" in r.json()

    @pytest.mark.asyncio
    async def test_invalid_json(self, client):
        r = await client.post(
            "/api/v1/chat/completions",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )
        assert r.status_code == 400
        assert r.json()["detail"] == "Invalid JSON body"

    @pytest.mark.asyncio
    async def test_too_large(self, client, service, monkeypatch):
        monkeypatch.setattr(service, "config", replace(service.config, max_request_bytes=10))
        r = await client.post("/api/v1/chat/completions", json={"messages": [USER_MSG]})
        assert r.status_code == 413


class TestFallback:
    @pytest.mark.asyncio
    async def test_non_stream_unconfigured(self, client):
        r = await client.post("/api/v1/chat/completions", json={"messages": [USER_MSG]})
        assert r.status_code == 200
        body = r.json()
        assert body["role"] == "assistant"
        assert body["content"] in MOCK_RESPONSES
        assert body["id"].startswith("msg_fallback_")
        assert body["metadata"] == {"warning": "OpenAI API not configured, using fallback response"}

    @pytest.mark.asyncio
    async def test_non_stream_greeting_without_user_turn(self, client):
        r = await client.post(
            "/api/v1/chat/completions",
            json={"model": "claude-3-haiku-20240307", "messages": [{"role": "assistant", "content": "Hi"}]},
        )
        body = r.json()
        assert "ANTHROPIC_API_KEY" in body["content"]
        assert body["metadata"]["warning"] == "Anthropic API not configured, using fallback response"

    @pytest.mark.asyncio
    async def test_stream_unconfigured(self, client):
        r = await client.post(
            "/api/v1/chat/completions",
            json={"model": "gemini-1.5-flash", "messages": [USER_MSG], "stream": True},
        )
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/event-stream")
        assert r.headers["x-vercel-ai-ui-message-stream"] == "v1"
        assert r.headers["cache-control"] == "no-cache"
        assert r.headers["x-accel-buffering"] == "no"

        data, _ = parse_sse(r.text)
        assert data[0] == {"type": "text-start"}
        assert data[-2] == {"type": "text-finish"}
        assert data[-1]["type"] == "finish"
        text = "".join(c["textDelta"] for c in data if c["type"] == "text-delta")
        assert text.strip() in MOCK_RESPONSES
        assert all(c["textDelta"].endswith(" ") for c in data if c["type"] == "text-delta")


class TestRoutedCompletions:
    @pytest.mark.asyncio
    async def test_default_model_goes_to_openai(self, client, use_upstream):
        seen = use_upstream(lambda r: _openai_reply())
        r = await client.post("/api/v1/chat/completions", json={"messages": [USER_MSG]})
        assert r.status_code == 200
        body = r.json()
        assert body["content"] == "Hi from upstream"
        assert body["id"] == "chatcmpl-9"
        assert seen[0].url.host == "openai.test"
        assert json.loads(seen[0].content)["model"] == "gpt-3.5-turbo"

    @pytest.mark.asyncio
    async def test_request_options_forwarded(self, client, use_upstream):
        seen = use_upstream(lambda r: _openai_reply())
        await client.post(
            "/api/v1/chat/completions",
            json={"model": "gpt-4o", "messages": [USER_MSG], "temperature": 0.2, "max_tokens": 77},
        )
        sent = json.loads(seen[0].content)
        assert sent["model"] == "gpt-4o"
        assert sent["temperature"] == 0.2
        assert sent["max_tokens"] == 77

    @pytest.mark.asyncio
    async def test_claude_model_goes_to_anthropic(self, client, use_upstream):
        seen = use_upstream(
            lambda r: httpx.Response(200, json={"content": [{"type": "text", "text": "Claude here"}]})
        )
        r = await client.post(
            "/api/v1/chat/completions",
            json={"model": "claude-3-5-haiku-20241022", "messages": [USER_MSG]},
        )
        assert r.json()["content"] == "Claude here"
        assert seen[0].url.host == "anthropic.test"

    @pytest.mark.asyncio
    async def test_gemini_stream(self, client, use_upstream):
        events = [
            {"candidates": [{"content": {"parts": [{"text": "Hello "}]}}]},
            {"candidates": [{"content": {"parts": [{"text": "world"}]}, "finishReason": "STOP"}]},
        ]
        seen = use_upstream(lambda r: sse_response(events))
        r = await client.post(
            "/api/v1/chat/completions",
            json={"model": "gemini-1.5-pro", "messages": [USER_MSG], "stream": True},
        )
        assert r.status_code == 200
        assert seen[0].url.path == "/v1beta/models/gemini-1.5-pro:streamGenerateContent"

        data, _ = parse_sse(r.text)
        assert [c["type"] for c in data] == ["text-start", "text-delta", "text-delta", "text-finish", "finish"]
        assert "".join(c["textDelta"] for c in data if c["type"] == "text-delta") == "Hello world"

    @pytest.mark.asyncio
    async def test_upstream_error_falls_back(self, client, use_upstream):
        use_upstream(lambda r: httpx.Response(503, text="unavailable"))
        r = await client.post("/api/v1/chat/completions", json={"messages": [USER_MSG]})
        assert r.status_code == 200
        body = r.json()
        assert body["content"] in MOCK_RESPONSES
        assert body["metadata"]["warning"] == "OpenAI API error, using fallback response"
        assert body["metadata"]["error"] == "503 - unavailable"

    @pytest.mark.asyncio
    async def test_malformed_upstream_body_falls_back(self, client, use_upstream):
        use_upstream(lambda r: httpx.Response(200, json={"choices": {"a": 1}}))
        r = await client.post("/api/v1/chat/completions", json={"messages": [USER_MSG]})
        assert r.status_code == 200
        body = r.json()
        assert body["content"] in MOCK_RESPONSES
        assert "choices" in body["metadata"]["error"]

    @pytest.mark.asyncio
    async def test_upstream_error_stream_falls_back(self, client, use_upstream):
        use_upstream(lambda r: httpx.Response(503, text="unavailable"))
        r = await client.post(
            "/api/v1/chat/completions",
            json={"model": "claude-3-opus-20240229", "messages": [USER_MSG], "stream": True},
        )
        assert r.status_code == 200
        data, _ = parse_sse(r.text)
        assert data[0] == {"type": "text-start"}
        assert data[-1]["type"] == "finish"

    @pytest.mark.asyncio
    async def test_upstream_error_without_fallback(self, client, use_upstream):
        use_upstream(lambda r: httpx.Response(401, text="bad key"), fallback_on_upstream_error=False)
        r = await client.post(
            "/api/v1/chat/completions",
            json={"model": "gemini-1.5-flash", "messages": [USER_MSG]},
        )
        assert r.status_code == 500
        assert r.json() == {
            "error": {
                "message": "Gemini API error: 401 - bad key",
                "type": "api_error",
                "code": "gemini_error",
            }
        }

    @pytest.mark.asyncio
    async def test_stream_refused_without_fallback(self, client, use_upstream):
        use_upstream(lambda r: httpx.Response(429, text="slow down"), fallback_on_upstream_error=False)
        r = await client.post(
            "/api/v1/chat/completions",
            json={"messages": [USER_MSG], "stream": True},
        )
        assert r.status_code == 500
        assert r.json()["error"]["code"] == "openai_error"


class TestLegacyChat:
    @pytest.mark.asyncio
    async def test_unconfigured(self, client):
        r = await client.post("/api/chat", json={"messages": [USER_MSG]})
        assert r.status_code == 200
        body = r.json()
        assert body["role"] == "assistant"
        assert body["content"] in MOCK_RESPONSES
        assert body["warning"] == "OpenAI API not configured, using fallback response"

    @pytest.mark.asyncio
    async def test_configured(self, client, use_upstream):
        seen = use_upstream(lambda r: _openai_reply("Legacy hi"))
        r = await client.post("/api/chat", json={"messages": [USER_MSG], "model": "claude-3-opus-20240229"})
        assert r.json() == {"role": "assistant", "content": "Legacy hi"}
        assert seen[0].url.host == "openai.test"

    @pytest.mark.asyncio
    async def test_upstream_error(self, client, use_upstream):
        use_upstream(lambda r: httpx.Response(500, text="boom"))
        r = await client.post("/api/chat", json={"messages": [USER_MSG]})
        body = r.json()
        assert r.status_code == 200
        assert body["content"] in MOCK_RESPONSES
        assert body["error"] == "OpenAI API error, using fallback: 500 - boom"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{"messages": []}, {}, {"messages": [{"role": "user", "content": 1}]}])
    async def test_bad_body(self, client, body):
        r = await client.post("/api/chat", json=body)
        assert r.status_code == 400
