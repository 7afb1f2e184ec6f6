import json
import logging
import re
from typing import Any, Dict, Optional, Tuple

import httpx

from psv_python_backend.config import API_LOG_PREVIEW_CHARS, TRACE_API_CALLS
from psv_python_backend.services.oracle_config import get_env_oracle_defaults

logger = logging.getLogger(__name__)

_CLIENT_CACHE: Dict[Tuple[str, float, bool], "LocalLLMClient"] = {}
_JSON_OBJECT_UNSUPPORTED_BASE_URLS: set[str] = set()
# Statuses treated as a rejected response_format
_RESPONSE_FORMAT_REJECTION_STATUSES = {400, 422}


def _preview_text(value: Any, limit: int = API_LOG_PREVIEW_CHARS) -> str:
    text = str(value or "")
    if len(text) <= limit:
        return text
    return f"{text[:limit]}...<truncated {len(text) - limit} chars>"


def extract_json_from_text(text: str) -> Any:
    """Pull the first JSON value out of a chat completion's text."""
    if text is None:
        raise ValueError("LLM response text is empty")

    # Local reasoning models wrap their output in <think> blocks
    normalized = re.sub(r"<think>.*?</think>", "", str(text), flags=re.IGNORECASE | re.DOTALL).strip()
    if not normalized:
        raise json.JSONDecodeError("No JSON object found", str(text), 0)

    try:
        return json.loads(normalized)
    except json.JSONDecodeError:
        pass

    if "```" in normalized:
        for fence in ("```json", "```"):
            if fence in normalized:
                snippet = normalized.split(fence, 1)[1]
                if "```" in snippet:
                    candidate = snippet.split("```", 1)[0].strip()
                    try:
                        return json.loads(candidate)
                    except json.JSONDecodeError:
                        continue

    decoder = json.JSONDecoder()
    for index, char in enumerate(normalized):
        if char not in "{[":
            continue
        try:
            decoded, _ = decoder.raw_decode(normalized[index:])
            return decoded
        except json.JSONDecodeError:
            continue

    raise json.JSONDecodeError("No JSON object found", normalized, 0)


def get_local_client(config: Optional[Dict[str, Any]] = None) -> "LocalLLMClient":
    resolved = config or get_env_oracle_defaults()
    base_url = str(resolved.get("base_url", "")).rstrip("/")
    timeout = float(resolved.get("timeout_seconds", 30))
    json_mode = bool(resolved.get("json_mode", True))

    key = (base_url, timeout, json_mode)
    if key not in _CLIENT_CACHE:
        _CLIENT_CACHE[key] = LocalLLMClient(base_url, timeout_seconds=timeout, json_mode=json_mode)
    return _CLIENT_CACHE[key]


class LocalLLMClient:
    """Minimal client for OpenAI-compatible /v1/chat/completions servers."""

    def __init__(self, base_url: str, timeout_seconds: float = 30, json_mode: bool = True) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.json_mode = json_mode

    async def chat(
        self,
        model: str,
        messages: list,
        temperature: float = 0.3,
        max_tokens: int = 1000,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if self.json_mode and self.base_url not in _JSON_OBJECT_UNSUPPORTED_BASE_URLS:
            payload["response_format"] = {"type": "json_object"}

        url = f"{self.base_url}/v1/chat/completions"
        if TRACE_API_CALLS:
            logger.info(
                "[LLM API] POST %s model=%s messages=%s json_mode=%s",
                url,
                model,
                len(messages or []),
                payload.get("response_format", {}).get("type", "none"),
            )
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            try:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                if TRACE_API_CALLS:
                    logger.info(
                        "[LLM API] %s status=%s preview=%s",
                        url,
                        response.status_code,
                        _preview_text(response.text),
                    )
                return response.json()
            except httpx.HTTPStatusError as exc:
                if (
                    "response_format" not in payload
                    or exc.response.status_code not in _RESPONSE_FORMAT_REJECTION_STATUSES
                ):
                    raise
                logger.warning(
                    "Local LLM response_format rejected (%s); retrying without response_format.",
                    _preview_text(exc.response.text),
                )
                _JSON_OBJECT_UNSUPPORTED_BASE_URLS.add(self.base_url)
                payload.pop("response_format", None)
                retry = await client.post(url, json=payload)
                retry.raise_for_status()
                return retry.json()


async def local_chat_completion(
    config: Dict[str, Any],
    messages: list,
    temperature: float = 0.3,
    max_tokens: int = 1000,
) -> Dict[str, Any]:
    """Run one chat completion and return its text, model and token usage."""
    client = get_local_client(config)
    model = config.get("chat_model", "deepseek-chat")
    response = await client.chat(
        model=model,
        messages=messages,
        temperature=temperature,
        max_tokens=max_tokens,
    )
    usage = response.get("usage") or {}
    return {
        "content": response["choices"][0]["message"]["content"],
        "model": response.get("model", model),
        "prompt_tokens": usage.get("prompt_tokens"),
        "completion_tokens": usage.get("completion_tokens"),
        "total_tokens": usage.get("total_tokens"),
    }
