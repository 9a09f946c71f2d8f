"""
Configuration management for nlsh
"""

import json
import logging
import os
import tempfile
from enum import Enum
from ipaddress import ip_address
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from rich.console import Console
from rich.table import Table

from nlsh.errors import ConfigError

logger = logging.getLogger(__name__)
console = Console(stderr=True)

DEFAULT_TIMEOUT = 30.0


class ProviderKind(str, Enum):
    """Supported AI backends"""
    gemini = "gemini"
    ollama = "ollama"
    openai = "openai"


PROVIDER_LABELS = {
    ProviderKind.gemini: "Gemini API",
    ProviderKind.ollama: "Ollama",
    ProviderKind.openai: "OpenAI Compatible",
}

DEFAULT_ENDPOINTS = {
    ProviderKind.gemini: "https://generativelanguage.googleapis.com/v1beta",
    ProviderKind.ollama: "http://localhost:11434",
    ProviderKind.openai: "https://api.openai.com/v1",
}

DEFAULT_MODELS = {
    ProviderKind.gemini: "gemini-flash-latest",
    ProviderKind.ollama: "llama3.2",
    ProviderKind.openai: "gpt-4o-mini",
}

# Environment variables holding provider keys, checked in order
API_KEY_ENV = {
    ProviderKind.gemini: ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    ProviderKind.openai: ("OPENAI_API_KEY",),
}


def default_config_dir() -> Path:
    """Config directory, overridable with NLSH_CONFIG_DIR"""
    override = os.getenv("NLSH_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".nlsh"


def is_loopback_url(url: str) -> bool:
    """True when the URL points at this machine"""
    host = urlparse(url).hostname or ""
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def describe_validation_error(error: ValidationError) -> str:
    """First validation problem as a short sentence"""
    first = error.errors()[0]
    return str(first.get("msg", error)).removeprefix("Value error, ")


def atomic_write_text(path: Path, text: str) -> None:
    """Write text so readers only ever see the old or the new content."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class ProviderConfig(BaseModel):
    """Connection settings for one AI backend. Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    kind: ProviderKind
    endpoint: str
    model: str
    api_key: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT

    @model_validator(mode="before")
    @classmethod
    def _default_endpoint(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("endpoint") and data.get("kind"):
            data = dict(data)
            data["endpoint"] = DEFAULT_ENDPOINTS[ProviderKind(data["kind"])]
        return data

    @field_validator("endpoint")
    @classmethod
    def _strip_endpoint(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"endpoint must be an http(s) URL, got '{value}'")
        return value

    @field_validator("model")
    @classmethod
    def _check_model(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("model name cannot be empty")
        return value.strip()

    @field_validator("api_key")
    @classmethod
    def _blank_key_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value.strip() if value else value

    @field_validator("timeout")
    @classmethod
    def _check_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout must be positive")
        return value

    @model_validator(mode="after")
    def _check_api_key(self) -> "ProviderConfig":
        if self.requires_api_key and not self.api_key:
            raise ValueError(f"{PROVIDER_LABELS[self.kind]} needs an API key")
        return self

    @property
    def requires_api_key(self) -> bool:
        """Gemini always needs a key, Ollama never, OpenAI-compatible unless local"""
        if self.kind == ProviderKind.gemini:
            return True
        if self.kind == ProviderKind.ollama:
            return False
        return not is_loopback_url(self.endpoint)

    def masked_key(self) -> str:
        if not self.api_key:
            return "[dim]Not set[/dim]"
        key = self.api_key
        return f"{key[:8]}{'*' * (len(key) - 8)}" if len(key) > 8 else "***"


class Settings(BaseModel):
    """Persistent settings for nlsh"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    provider: Optional[ProviderKind] = None
    providers: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    log_level: str = "warning"

    config_dir: Path = Field(default_factory=default_config_dir, exclude=True)
    overrides: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    @property
    def config_file(self) -> Path:
        return self.config_dir / "config.json"

    @property
    def log_file(self) -> Path:
        return self.config_dir / "nlsh.log"

    @classmethod
    def load(cls, config_dir: Optional[Path] = None) -> "Settings":
        """Load settings from the config file, then apply environment overrides"""
        settings = cls(config_dir=config_dir or default_config_dir())
        settings.load_from_file()
        settings.load_from_env()
        return settings

    def load_from_file(self) -> None:
        """Load configuration from JSON file"""
        if not self.config_file.exists():
            logger.debug("No config file at %s", self.config_file)
            return
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (ValueError, OSError) as e:
            # JSONDecodeError and UnicodeDecodeError are both ValueErrors
            console.print(f"[yellow]warning:[/yellow] could not load config file: {e}")
            return

        if not isinstance(data, dict):
            console.print("[yellow]warning:[/yellow] config file is not a JSON object, ignoring")
            return

        provider = data.get("provider")
        if provider is not None:
            try:
                self.provider = ProviderKind(provider)
            except ValueError:
                console.print(f"[yellow]warning:[/yellow] unknown provider '{provider}', ignoring")

        providers = data.get("providers", {})
        if isinstance(providers, dict):
            self.providers = {
                name: dict(block)
                for name, block in providers.items()
                if name in ProviderKind.__members__ and isinstance(block, dict)
            }

        if isinstance(data.get("log_level"), str):
            self.log_level = data["log_level"]

    def load_from_env(self) -> None:
        """Load configuration from environment variables"""
        load_dotenv()

        provider = os.getenv("NLSH_PROVIDER")
        if provider:
            try:
                self.provider = ProviderKind(provider.lower())
            except ValueError:
                console.print(f"[yellow]warning:[/yellow] NLSH_PROVIDER '{provider}' is not a known provider")

        log_level = os.getenv("NLSH_LOG_LEVEL")
        if log_level:
            self.log_level = log_level

        env_mapping = {
            "NLSH_MODEL": "model",
            "NLSH_ENDPOINT": "endpoint",
            "NLSH_TIMEOUT": "timeout",
        }
        for env_var, key in env_mapping.items():
            value = os.getenv(env_var)
            if value:
                self.overrides[key] = value

    def save(self) -> None:
        """Save current configuration to JSON file"""
        data = {
            "provider": self.provider.value if self.provider else None,
            "providers": self.providers,
            "log_level": self.log_level,
        }
        try:
            atomic_write_text(self.config_file, json.dumps(data, indent=2) + "\n")
        except OSError as e:
            raise ConfigError(f"could not save config file: {e}") from e
        logger.info("Saved configuration to %s", self.config_file)

    def provider_config(self, kind: Optional[ProviderKind] = None) -> ProviderConfig:
        """Build the immutable config for the active (or given) provider"""
        kind = kind or self.provider
        if kind is None:
            raise ConfigError("no API provider configured. run 'nlsh api' to set one up")

        block: Dict[str, Any] = {"model": DEFAULT_MODELS[kind]}
        block.update(self.providers.get(kind.value, {}))
        block.update(self.overrides)
        block["kind"] = kind

        if not block.get("api_key"):
            for env_var in API_KEY_ENV.get(kind, ()):
                if os.getenv(env_var):
                    block["api_key"] = os.getenv(env_var)
                    break

        try:
            return ProviderConfig(**block)
        except ValidationError as e:
            raise ConfigError(f"invalid {kind.value} configuration: {describe_validation_error(e)}") from e

    def set_provider(self, config: ProviderConfig) -> None:
        """Store a provider block, make it active and persist"""
        block = {
            "endpoint": config.endpoint,
            "model": config.model,
        }
        if config.api_key:
            block["api_key"] = config.api_key
        if config.timeout != DEFAULT_TIMEOUT:
            block["timeout"] = config.timeout
        self.providers[config.kind.value] = block
        self.provider = config.kind
        self.save()

    def saved_block(self, kind: ProviderKind) -> Dict[str, Any]:
        return dict(self.providers.get(kind.value, {}))

    def show(self) -> None:
        """Display current configuration"""
        table = Table(title="nlsh configuration")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")

        table.add_row(
            "Provider",
            PROVIDER_LABELS[self.provider] if self.provider else "[dim]Not set[/dim]",
        )

        if self.provider:
            try:
                config = self.provider_config()
            except ConfigError as e:
                table.add_row("Status", f"[red]{e}[/red]")
            else:
                table.add_row("Model", config.model)
                table.add_row("Endpoint", config.endpoint)
                table.add_row("API Key", config.masked_key())
                table.add_row("Timeout", f"{config.timeout:g}s")

        table.add_row("Log Level", self.log_level)
        table.add_row("Config File", str(self.config_file))
        table.add_row("Log File", str(self.log_file))

        console.print(table)
