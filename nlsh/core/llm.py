"""
Provider client and response cleanup for nlsh
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

import httpx

from nlsh.config import ProviderConfig
from nlsh.core.prompts import PromptTemplate, render_explain, render_generate
from nlsh.errors import (
    AuthError,
    MalformedResponseError,
    ModelNotFoundError,
    NetworkError,
    ProviderError,
    RateLimitError,
    ServerError,
)
from nlsh.providers import Backend, backend_for

logger = logging.getLogger(__name__)

MAX_ERROR_BODY = 200


class CommandSource(str, Enum):
    """Where the current command text came from"""
    generated = "generated"
    edited = "edited"


@dataclass(frozen=True)
class ProposedCommand:
    """A candidate shell command awaiting the user's decision"""
    raw: str
    source: CommandSource = CommandSource.generated


# ```lang\n ... \n``` blocks; the closing fence may be missing on truncated replies
FENCE_PATTERN = re.compile(r"```[ \t]*[\w+.-]*[ \t]*\r?\n(.*?)(?:\r?\n[ \t]*```|```|\Z)", re.DOTALL)
INLINE_FENCE_PATTERN = re.compile(r"^```(.*?)```$", re.DOTALL)
RETRY_IN_PATTERN = re.compile(r"retry in ([0-9]+(?:\.[0-9]+)?)\s*s", re.IGNORECASE)
# a single `span` inside a sentence, and "The command is: " style labels
INLINE_SPAN_PATTERN = re.compile(r"`([^`\n]+)`")
LABEL_PATTERN = re.compile(r"^(?:[A-Z][A-Za-z]*(?: [A-Za-z]+)*|command|cmd):\s+(?=\S)")


def _strip_line(line: str) -> str:
    line = line.strip()
    if len(line) >= 2 and line.startswith("`") and line.endswith("`"):
        line = line.strip("`").strip()
    if line.startswith("$ "):
        line = line[2:].strip()
    return line


def _is_prose_lead(line: str) -> bool:
    """Lines like 'Here is the command:' introduce a command rather than being one"""
    return line.endswith(":") and " " in line


def _unwrap_prose(line: str) -> str:
    """Pull the command out of a sentence such as 'Run `df -h` to see disk usage.'"""
    spans = INLINE_SPAN_PATTERN.findall(line)
    if len(spans) == 1 and line[:1].isupper():
        return spans[0].strip()
    return LABEL_PATTERN.sub("", line, count=1)


def extract_command(text: str) -> str:
    """
    Reduce a model reply to exactly one trimmed shell command line.

    Code fences, a leading ``$`` prompt marker and surrounding prose are
    removed. Backslash-continued lines are joined into one line.
    Returns an empty string when nothing command-like remains.
    """
    text = text.strip()
    if not text:
        return ""

    inline = INLINE_FENCE_PATTERN.match(text)
    fenced = FENCE_PATTERN.search(text)
    if fenced:
        body = fenced.group(1)
    elif inline and "\n" not in inline.group(1):
        body = inline.group(1)
    else:
        body = text

    lines: List[str] = [_strip_line(line) for line in body.splitlines()]
    lines = [line for line in lines if line and not line.startswith("```")]

    if not fenced:
        lines = [line for line in lines if not _is_prose_lead(line)]
        if lines:
            lines[0] = _unwrap_prose(lines[0])

    if not lines:
        return ""

    command = lines[0]
    rest = iter(lines[1:])
    while command.endswith("\\"):
        following = next(rest, None)
        if following is None:
            command = command[:-1].rstrip()
            break
        command = f"{command[:-1].rstrip()} {following}"
    return command.strip()


def clean_explanation(text: str, command: str) -> str:
    """Drop fence markers and a leading echo of the command from an explanation"""
    lines = [line.rstrip() for line in text.strip().splitlines()]
    lines = [line for line in lines if not line.strip().startswith("```")]

    while lines and not lines[0].strip():
        lines.pop(0)
    if lines and _strip_line(lines[0]) == command.strip():
        lines.pop(0)

    return "\n".join(lines).strip()


def _parse_retry_after(header: Optional[str], body: str) -> Optional[int]:
    if header:
        try:
            return max(0, int(float(header)))
        except (ValueError, OverflowError):
            pass
    match = RETRY_IN_PATTERN.search(body)
    if match:
        seconds = float(match.group(1))
        return int(seconds) if seconds.is_integer() else int(seconds) + 1
    return None


def error_from_status(
    status: int, provider: str, body: str, retry_after: Optional[str] = None
) -> ProviderError:
    """Map an HTTP error status to the provider error taxonomy"""
    short = body[:MAX_ERROR_BODY]
    lowered = body.lower()

    if status == 400 and "api key" in lowered:
        return AuthError("authentication failed: invalid API key")
    if status in (401, 403):
        if any(word in lowered for word in ("key", "api", "token")):
            return AuthError("authentication failed: invalid API key")
        return AuthError(f"authentication failed: {short}")
    if status == 404:
        if "model" in lowered:
            return ModelNotFoundError(f"model not found: {short}")
        return MalformedResponseError(f"endpoint not found: {short}")
    if status == 429:
        return RateLimitError(_parse_retry_after(retry_after, body))
    if 500 <= status <= 599:
        return ServerError(f"server error from {provider}: {short}")
    return MalformedResponseError(f"unexpected status {status} from {provider}: {short}")


class ProviderClient:
    """Uniform request/response contract over every backend"""

    def __init__(self, transport: Optional[httpx.BaseTransport] = None):
        # transport is injectable for tests; None means real network
        self.transport = transport

    def generate_command(
        self, request: str, template: PromptTemplate, config: ProviderConfig
    ) -> ProposedCommand:
        """Turn a natural-language request into one proposed command"""
        backend = backend_for(config.kind)
        prompt = render_generate(template, request)
        text = self._complete(backend, prompt, config)

        command = extract_command(text)
        if not command:
            raise MalformedResponseError(f"{backend.name} returned an empty command")

        logger.info("Generated command for %r: %r", request, command)
        return ProposedCommand(raw=command, source=CommandSource.generated)

    def explain_command(
        self, command: str, template: PromptTemplate, config: ProviderConfig
    ) -> str:
        """Describe what a command does, in plain text"""
        backend = backend_for(config.kind)
        prompt = render_explain(template, command)
        text = self._complete(backend, prompt, config)

        explanation = clean_explanation(text, command)
        if not explanation:
            raise MalformedResponseError(f"{backend.name} returned an empty explanation")
        return explanation

    def _complete(self, backend: Backend, prompt: str, config: ProviderConfig) -> str:
        """One blocking round trip; returns the raw generated text"""
        wire = backend.build_request(config, prompt)
        logger.debug("POST %s (model=%s)", wire.url, config.model)

        try:
            with httpx.Client(timeout=config.timeout, transport=self.transport) as client:
                response = client.post(
                    wire.url,
                    json=wire.json,
                    headers=wire.headers,
                    params=wire.params,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status, message = backend.error_detail(e.response)
            error = error_from_status(
                status, backend.name, message, e.response.headers.get("retry-after")
            )
            logger.warning("%s returned %s: %s", backend.name, e.response.status_code, error)
            raise error from e
        except httpx.TimeoutException as e:
            raise NetworkError(f"request to {backend.name} timed out after {config.timeout:g} seconds") from e
        except httpx.ConnectError as e:
            raise NetworkError(
                f"failed to connect to {backend.name}: cannot connect. "
                "check if the service is running and the URL is correct"
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"network error talking to {backend.name}: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"invalid JSON from {backend.name}") from e

        text = backend.parse_response(data)
        if not text.strip():
            raise MalformedResponseError(f"empty response from {backend.name}")
        return text
