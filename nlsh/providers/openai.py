"""
OpenAI-compatible backend for nlsh

Works with api.openai.com and with local servers speaking the same
chat completions protocol (LM Studio, llama.cpp server, vLLM).
"""

from typing import Any

from nlsh.config import ProviderConfig
from nlsh.errors import MalformedResponseError
from nlsh.providers.base import Backend, WireRequest, dig


def chat_completions_url(endpoint: str) -> str:
    if endpoint.endswith("/v1"):
        return f"{endpoint}/chat/completions"
    return f"{endpoint}/v1/chat/completions"


def build_request(config: ProviderConfig, prompt: str) -> WireRequest:
    headers = {}
    if config.api_key:
        headers["Authorization"] = f"Bearer {config.api_key}"

    return WireRequest(
        url=chat_completions_url(config.endpoint),
        json={
            "model": config.model,
            "messages": [
                {"role": "user", "content": prompt}
            ],
            "temperature": 0.7,
        },
        headers=headers,
    )


def parse_response(data: Any) -> str:
    content = dig(data, "choices", 0, "message", "content", what="choices")
    if not isinstance(content, str):
        raise MalformedResponseError("message content is not text")
    return content


BACKEND = Backend(name="openai", build_request=build_request, parse_response=parse_response)
