"""
Prompt templates for nlsh.

Two templates drive the provider calls: ``generate`` turns a request into a
command and must contain ``{request}``; ``explain`` describes a command and
must contain ``{command}``. Users may override either one; overrides are
plain text files next to the config file.
"""

import getpass
import logging
import os
import platform
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from nlsh.config import atomic_write_text
from nlsh.errors import TemplateError

logger = logging.getLogger(__name__)


class TemplateName(str, Enum):
    """Template slots"""
    generate = "generate"
    explain = "explain"


@dataclass(frozen=True)
class PromptTemplate:
    name: TemplateName
    text: str
    overridden: bool = False


DEFAULT_GENERATE_TEMPLATE = """You are a shell command translator. Convert the user's request into a shell command for {os}.

Environment context:
- Current dir: {cwd}
- Home dir: {home}
- User: {user}
- Shell: {shell}

Rules:
- Output ONLY the command, nothing else
- No explanations, no markdown, no backticks
- If unclear, make a reasonable assumption
- Prefer simple, common commands
- Use appropriate shell syntax and commands for this environment
- Consider the current directory context when generating paths
- Use ~ for home directory when appropriate

User request: {request}"""

DEFAULT_EXPLAIN_TEMPLATE = """You explain shell commands to a user about to run them on {os} with {shell}.

Explain what the command below does in a few short sentences:
- Say what each program, flag and pipe stage does
- Point out anything destructive or irreversible
- Plain text only, no markdown, no code blocks
- You may use <b>, <i> and <u> tags for emphasis
- Do not repeat the command on its own line

Command: {command}"""

DEFAULTS: Dict[TemplateName, str] = {
    TemplateName.generate: DEFAULT_GENERATE_TEMPLATE,
    TemplateName.explain: DEFAULT_EXPLAIN_TEMPLATE,
}

REQUIRED_PLACEHOLDERS: Dict[TemplateName, str] = {
    TemplateName.generate: "{request}",
    TemplateName.explain: "{command}",
}

FILENAMES: Dict[TemplateName, str] = {
    TemplateName.generate: "system-prompt.txt",
    TemplateName.explain: "explain-prompt.txt",
}


def is_valid(name: TemplateName, text: str) -> bool:
    return REQUIRED_PLACEHOLDERS[name] in text


class PromptTemplateStore:
    """Key-value store of prompt templates with compiled-in defaults"""

    def __init__(self, directory: Path):
        self.directory = directory

    def path(self, name: TemplateName) -> Path:
        return self.directory / FILENAMES[TemplateName(name)]

    def get(self, name: TemplateName) -> PromptTemplate:
        """Stored override if present and valid, else the default. Never fails."""
        name = TemplateName(name)
        path = self.path(name)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return PromptTemplate(name, DEFAULTS[name])
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s template override %s: %s", name.value, path, e)
            return PromptTemplate(name, DEFAULTS[name])

        if not is_valid(name, text):
            logger.warning(
                "%s template override %s lacks %s, using default",
                name.value, path, REQUIRED_PLACEHOLDERS[name],
            )
            return PromptTemplate(name, DEFAULTS[name])
        return PromptTemplate(name, text, overridden=True)

    def set(self, name: TemplateName, text: str) -> PromptTemplate:
        """Persist an override atomically"""
        name = TemplateName(name)
        if not is_valid(name, text):
            raise TemplateError(
                f"{name.value} prompt must contain the {REQUIRED_PLACEHOLDERS[name]} placeholder"
            )
        atomic_write_text(self.path(name), text)
        logger.info("Saved %s template override to %s", name.value, self.path(name))
        return PromptTemplate(name, text, overridden=True)

    def reset(self, name: TemplateName) -> bool:
        """Remove an override. Returns False if there was none."""
        path = self.path(TemplateName(name))
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True


def describe_os() -> str:
    system = platform.system()
    if system == "Linux":
        try:
            release = platform.freedesktop_os_release()
            distro = release.get("PRETTY_NAME") or release.get("NAME", "unknown")
        except OSError:
            distro = "unknown"
        return f"linux ({distro}; kernel: {platform.release()})"
    if system == "Darwin":
        return "macOS"
    return system or "Unix"


def environment_context() -> Dict[str, str]:
    """Values for the environment placeholders"""
    try:
        cwd = os.getcwd()
    except OSError:
        cwd = "/"
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "user"

    return {
        "os": describe_os(),
        "cwd": cwd,
        "home": str(Path.home()),
        "user": user,
        "shell": Path(os.environ.get("SHELL", "sh")).name,
    }


def _fill(text: str, values: Dict[str, str]) -> str:
    # str.replace rather than str.format: templates may contain literal braces
    for key, value in values.items():
        text = text.replace("{" + key + "}", value)
    return text


def render_generate(
    template: PromptTemplate, request: str, context: Optional[Dict[str, str]] = None
) -> str:
    values = dict(context if context is not None else environment_context())
    values["request"] = request
    return _fill(template.text, values)


def render_explain(
    template: PromptTemplate, command: str, context: Optional[Dict[str, str]] = None
) -> str:
    values = dict(context if context is not None else environment_context())
    values["command"] = command
    return _fill(template.text, values)
