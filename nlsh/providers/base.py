"""
Shared types for provider backends.

A backend is a plain record of functions: how to build the HTTP request for
a prompt, how to pull the generated text out of a successful reply, and how
to read an error reply. The client owns the transport.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

import httpx

from nlsh.config import ProviderConfig
from nlsh.errors import MalformedResponseError


@dataclass(frozen=True)
class WireRequest:
    """A backend-specific HTTP request"""
    url: str
    json: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)


def default_error_detail(response: httpx.Response) -> Tuple[int, str]:
    """Status code and body text of an error reply"""
    text = response.text.strip() or "unknown error"
    return response.status_code, text


@dataclass(frozen=True)
class Backend:
    """One AI backend variant"""
    name: str
    build_request: Callable[[ProviderConfig, str], WireRequest]
    parse_response: Callable[[Any], str]
    error_detail: Callable[[httpx.Response], Tuple[int, str]] = default_error_detail


def dig(data: Any, *path: Any, what: Optional[str] = None) -> Any:
    """Walk nested dicts/lists, raising MalformedResponseError on a missing step"""
    current = data
    for step in path:
        if isinstance(step, int) and not isinstance(current, list):
            raise MalformedResponseError(f"no {what or step} in response")
        try:
            current = current[step]
        except (KeyError, IndexError, TypeError):
            raise MalformedResponseError(f"no {what or step} in response")
        if current is None:
            raise MalformedResponseError(f"no {what or step} in response")
    return current
