"""
Gemini backend for nlsh
"""

from typing import Any, Tuple

import httpx

from nlsh.config import ProviderConfig
from nlsh.errors import MalformedResponseError
from nlsh.providers.base import Backend, WireRequest, default_error_detail, dig

BLOCKED_FINISH_REASONS = {"SAFETY", "RECITATION"}


def build_request(config: ProviderConfig, prompt: str) -> WireRequest:
    return WireRequest(
        url=f"{config.endpoint}/models/{config.model}:generateContent",
        json={
            "contents": [
                {"parts": [{"text": prompt}]}
            ]
        },
        params={"key": config.api_key or ""},
    )


def parse_response(data: Any) -> str:
    candidate = dig(data, "candidates", 0, what="candidates")

    finish_reason = candidate.get("finishReason") if isinstance(candidate, dict) else None
    if finish_reason in BLOCKED_FINISH_REASONS:
        raise MalformedResponseError(f"content blocked by gemini: {finish_reason.lower()}")

    text = dig(candidate, "content", "parts", 0, "text", what="text")
    if not isinstance(text, str):
        raise MalformedResponseError("part text is not text")
    return text


def error_detail(response: httpx.Response) -> Tuple[int, str]:
    """Gemini wraps errors as {"error": {"code": ..., "message": ...}}"""
    try:
        error = response.json()["error"]
    except (ValueError, KeyError, TypeError):
        return default_error_detail(response)

    if isinstance(error, str):
        return response.status_code, error
    if not isinstance(error, dict) or "message" not in error:
        return default_error_detail(response)
    try:
        code = int(error.get("code", response.status_code))
    except (TypeError, ValueError):
        code = response.status_code
    return code, str(error["message"])


BACKEND = Backend(
    name="gemini",
    build_request=build_request,
    parse_response=parse_response,
    error_detail=error_detail,
)
