"""
Ollama backend for nlsh
"""

from typing import Any

from nlsh.config import ProviderConfig
from nlsh.errors import MalformedResponseError
from nlsh.providers.base import Backend, WireRequest, dig


def build_request(config: ProviderConfig, prompt: str) -> WireRequest:
    return WireRequest(
        url=f"{config.endpoint}/api/generate",
        json={
            "model": config.model,
            "prompt": prompt,
            "stream": False,
        },
    )


def parse_response(data: Any) -> str:
    text = dig(data, "response")
    if not isinstance(text, str):
        raise MalformedResponseError("response field is not text")
    return text


BACKEND = Backend(name="ollama", build_request=build_request, parse_response=parse_response)
