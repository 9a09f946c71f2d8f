"""
AI backends for nlsh

Each backend is a closed variant keyed by ``ProviderKind``. Adding a backend
means adding a module with a ``BACKEND`` record and an entry here.
"""

from typing import Dict

from nlsh.config import ProviderKind
from nlsh.providers import gemini, ollama, openai
from nlsh.providers.base import Backend, WireRequest

BACKENDS: Dict[ProviderKind, Backend] = {
    ProviderKind.gemini: gemini.BACKEND,
    ProviderKind.ollama: ollama.BACKEND,
    ProviderKind.openai: openai.BACKEND,
}


def backend_for(kind: ProviderKind) -> Backend:
    """Look up the backend for a provider kind"""
    return BACKENDS[kind]


__all__ = ["Backend", "WireRequest", "BACKENDS", "backend_for"]
