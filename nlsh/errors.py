"""
Exception types used across nlsh.

Every error the user can see derives from ``NlshError`` and renders as a
single human-readable line; anything else is a bug.
"""

from typing import Optional


class NlshError(Exception):
    """Base class for all nlsh specific errors."""


class ConfigError(NlshError):
    """Raised when the provider configuration is missing or invalid."""


class TemplateError(NlshError):
    """Raised when a prompt template lacks its required placeholder."""


class ProviderError(NlshError):
    """Base class for failures talking to an AI backend."""


class NetworkError(ProviderError):
    """Backend unreachable, connection dropped or request timed out."""


class ServerError(NetworkError):
    """Backend answered with a 5xx status."""


class AuthError(ProviderError):
    """Backend rejected the credentials (401/403)."""


class RateLimitError(ProviderError):
    """Backend answered 429. Reported to the user, never retried."""

    def __init__(self, retry_after: Optional[int] = None):
        self.retry_after = retry_after
        if retry_after is not None:
            message = f"rate limit exceeded. retry after {retry_after} seconds"
        else:
            message = "rate limit exceeded. please try again later"
        super().__init__(message)


class MalformedResponseError(ProviderError):
    """Backend answered with an empty or unparsable body."""


class ModelNotFoundError(MalformedResponseError):
    """Backend does not know the configured model."""


class EmptyEditError(NlshError):
    """An edited command was blank. Recovered by prompting again."""


class InjectionError(NlshError):
    """The command could not be written to the shell history."""


class ExecutionError(NlshError):
    """The executed command exited non-zero."""

    def __init__(self, command: str, exit_code: int):
        self.command = command
        self.exit_code = exit_code
        super().__init__(f"command exited with status {exit_code}: {command}")
