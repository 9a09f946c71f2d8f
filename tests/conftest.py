"""Shared fixtures for nlsh tests."""

import json
from typing import Any, Callable, List

import httpx
import pytest

from nlsh.config import ProviderConfig, ProviderKind
from nlsh.core.executor import ShellIntegration
from nlsh.core.llm import ProviderClient
from nlsh.errors import InjectionError

ENV_VARS = (
    "NLSH_PROVIDER",
    "NLSH_MODEL",
    "NLSH_ENDPOINT",
    "NLSH_TIMEOUT",
    "NLSH_LOG_LEVEL",
    "NLSH_FORCE_INTERACTIVE",
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "OPENAI_API_KEY",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's own provider settings out of the tests."""
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    directory = tmp_path / "nlsh-config"
    monkeypatch.setenv("NLSH_CONFIG_DIR", str(directory))
    return directory


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it saw."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    def body(self, index: int = -1) -> Any:
        return json.loads(self.requests[index].content)


def reply(payload: Any, status: int = 200, headers=None) -> Callable[[httpx.Request], httpx.Response]:
    """Handler answering every request with the same JSON payload"""
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=payload, headers=headers)
    return _handler


def client_for(handler):
    transport = RecordingTransport(handler)
    return ProviderClient(transport=transport), transport


class RecordingIntegration(ShellIntegration):
    """Integration that remembers what it was asked to do."""

    shell = "bash"

    def __init__(self, exit_code: int = 0, history_fails: bool = False):
        self.exit_code = exit_code
        self.history_fails = history_fails
        self.calls: List[tuple] = []

    def append_history(self, command: str) -> None:
        self.calls.append(("history", command))
        if self.history_fails:
            raise InjectionError("history file is read-only")

    def execute(self, command: str) -> int:
        self.calls.append(("execute", command))
        return self.exit_code

    @property
    def executed(self) -> List[str]:
        return [command for kind, command in self.calls if kind == "execute"]


@pytest.fixture
def ollama_config() -> ProviderConfig:
    return ProviderConfig(kind=ProviderKind.ollama, model="llama3.2")


@pytest.fixture
def gemini_config() -> ProviderConfig:
    return ProviderConfig(kind=ProviderKind.gemini, model="gemini-flash-latest", api_key="gm-secret")


@pytest.fixture
def openai_config() -> ProviderConfig:
    return ProviderConfig(kind=ProviderKind.openai, model="gpt-4o-mini", api_key="sk-test-key")
