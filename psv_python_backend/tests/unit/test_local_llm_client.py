import json

import httpx
import pytest

from psv_python_backend.services import local_llm_client
from psv_python_backend.services.local_llm_client import (
    extract_json_from_text,
    get_local_client,
    local_chat_completion,
)


def test_extract_json_from_text_handles_think_prefix():
    payload = "<think>weighing both sides...</think>\n{\"stance_value\": 0.4}"
    parsed = extract_json_from_text(payload)
    assert parsed == {"stance_value": 0.4}


def test_extract_json_from_text_handles_code_fence():
    payload = "Here you go:\n```json\n{\"confidence\": 0.7}\n```"
    parsed = extract_json_from_text(payload)
    assert parsed["confidence"] == 0.7


def test_extract_json_from_text_handles_trailing_non_json_text():
    payload = "{\"explanation\":\"Supports it\"}\nextra trailing notes"
    parsed = extract_json_from_text(payload)
    assert parsed["explanation"] == "Supports it"


def test_extract_json_from_text_raises_on_missing_json():
    with pytest.raises(ValueError):
        extract_json_from_text("<think>only reasoning without payload</think>")

    with pytest.raises(ValueError):
        extract_json_from_text(None)


def test_get_local_client_is_cached_per_settings():
    config = {"base_url": "http://cache-test:1234/", "timeout_seconds": 12, "json_mode": True}

    first = get_local_client(config)
    second = get_local_client(dict(config))
    other = get_local_client(dict(config, timeout_seconds=5))

    assert first is second
    assert first is not other
    assert first.base_url == "http://cache-test:1234"


@pytest.mark.asyncio
async def test_chat_retries_without_response_format(monkeypatch):
    seen_payloads = []

    def handler(request):
        body = json.loads(request.content)
        seen_payloads.append(body)
        if "response_format" in body:
            return httpx.Response(400, text="response_format not supported")
        return httpx.Response(200, json={
            "model": "local-model",
            "choices": [{"message": {"content": "{\"stance_value\": 0.1}"}}],
            "usage": {"prompt_tokens": 20, "completion_tokens": 8, "total_tokens": 28},
        })

    real_async_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_async_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(local_llm_client.httpx, "AsyncClient", client_factory)

    config = {"base_url": "http://retry-test:1234", "timeout_seconds": 3, "json_mode": True,
              "chat_model": "local-model"}
    result = await local_chat_completion(config, [{"role": "user", "content": "hi"}])

    assert [("response_format" in p) for p in seen_payloads] == [True, False]
    assert result == {
        "content": "{\"stance_value\": 0.1}",
        "model": "local-model",
        "prompt_tokens": 20,
        "completion_tokens": 8,
        "total_tokens": 28,
    }


@pytest.mark.asyncio
async def test_chat_server_error_is_not_a_response_format_rejection(monkeypatch):
    seen_payloads = []

    def handler(request):
        seen_payloads.append(json.loads(request.content))
        return httpx.Response(503, text="model loading")

    real_async_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_async_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(local_llm_client.httpx, "AsyncClient", client_factory)

    config = {"base_url": "http://unavailable-test:1234", "timeout_seconds": 3, "json_mode": True,
              "chat_model": "local-model"}
    with pytest.raises(httpx.HTTPStatusError):
        await local_chat_completion(config, [{"role": "user", "content": "hi"}])

    assert len(seen_payloads) == 1
    assert "response_format" in seen_payloads[0]
    assert "http://unavailable-test:1234" not in local_llm_client._JSON_OBJECT_UNSUPPORTED_BASE_URLS
