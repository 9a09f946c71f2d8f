#!/usr/bin/env python3
"""
nlsh - natural language to shell commands
"""

import os
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional

import click
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt

from nlsh import __version__
from nlsh.config import (
    DEFAULT_ENDPOINTS,
    DEFAULT_MODELS,
    PROVIDER_LABELS,
    ProviderConfig,
    ProviderKind,
    Settings,
    describe_validation_error,
)
from nlsh.core.executor import (
    SUPPORTED_SHELLS,
    ShellInjector,
    SubshellIntegration,
    select_integration,
    wrapper_script,
)
from nlsh.core.llm import ProviderClient
from nlsh.core.prompts import PromptTemplateStore, TemplateName
from nlsh.core.session import CommandSession, SessionState, drive
from nlsh.core.terminal import TerminalEvents, display_explanation, print_error, read_request
from nlsh.errors import ConfigError, ProviderError, TemplateError
from nlsh.logging_utils import configure_logging

console = Console(stderr=True)

# conventional status for "terminated by Ctrl-C"
EXIT_CANCELLED = 130

PASSTHROUGH_ARGS = {"ignore_unknown_options": True, "allow_interspersed_args": False}

app = typer.Typer(
    name="nlsh",
    help="nlsh - natural language to shell commands",
    add_completion=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)


class LogLevel(str, Enum):
    """Log levels"""
    debug = "debug"
    info = "info"
    warning = "warning"
    error = "error"


class PromptKind(str, Enum):
    """Which prompt template"""
    system = "system"
    explain = "explain"


class PromptAction(str, Enum):
    """What to do with the prompt template"""
    show = "show"
    edit = "edit"
    reset = "reset"


PROMPT_SLOTS = {
    PromptKind.system: TemplateName.generate,
    PromptKind.explain: TemplateName.explain,
}


@dataclass
class RequestOutcome:
    """How one request ended"""
    state: SessionState
    exit_code: int


def process_request(
    query: str,
    client: ProviderClient,
    provider_config: ProviderConfig,
    templates: PromptTemplateStore,
    events,
    injector: ShellInjector,
) -> RequestOutcome:
    """
    Generate a command for ``query``, let the user decide, run it if accepted.

    Provider errors from the generate step propagate to the caller; explain
    errors are handled inside the session.
    """
    console.print(f"[grey50]using {escape(provider_config.model)}...[/grey50]")
    proposal = client.generate_command(query, templates.get(TemplateName.generate), provider_config)

    def explain(command: str) -> str:
        console.print("[grey50]explaining...[/grey50]")
        return client.explain_command(command, templates.get(TemplateName.explain), provider_config)

    session = drive(CommandSession(proposal, explain), events)
    if session.state != SessionState.ACCEPTED:
        return RequestOutcome(state=session.state, exit_code=EXIT_CANCELLED)

    result = injector.run(session.proposal.raw)
    return RequestOutcome(state=session.state, exit_code=result.exit_code)


def _provider_config(settings: Settings) -> ProviderConfig:
    try:
        return settings.provider_config()
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)


def interactive_loop(settings: Settings) -> int:
    """Keep asking for requests until Ctrl-C or Ctrl-D at the request prompt"""
    provider_config = _provider_config(settings)
    templates = PromptTemplateStore(settings.config_dir)
    client = ProviderClient()
    # the loop owns the terminal; stdout is never a handoff channel here
    injector = ShellInjector(SubshellIntegration())

    prefill = ""
    while True:
        try:
            query = read_request(prefill).strip()
        except KeyboardInterrupt:
            return EXIT_CANCELLED
        except EOFError:
            return 0

        prefill = ""
        if not query:
            continue

        try:
            outcome = process_request(query, client, provider_config, templates, TerminalEvents(), injector)
        except ProviderError as e:
            print_error(str(e))
            continue
        except KeyboardInterrupt:
            console.print()
            prefill = query
            continue

        # a cancelled request comes back for another try
        if outcome.state == SessionState.CANCELLED:
            prefill = query


def version_callback(value: bool):
    """Show version and exit"""
    if value:
        typer.echo(f"nlsh {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def common(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None,
        "--version", "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit"
    ),
    log_level: Optional[LogLevel] = typer.Option(
        None,
        "--log-level", "-l",
        help="Set logging level"
    ),
):
    """
    Turn a request into a shell command, confirm it, run it.

    Examples:
    \b
        nlsh                          # interactive
        nlsh show disk usage
        nlsh explain "tar -xzf a.tgz"
        nlsh prompt system edit
    """
    settings = Settings.load()
    configure_logging(log_level.value if log_level else settings.log_level, settings.log_file)
    ctx.obj = settings

    if ctx.invoked_subcommand is None:
        raise typer.Exit(interactive_loop(settings))


@app.command(context_settings=PASSTHROUGH_ARGS)
def run(
    ctx: typer.Context,
    request: List[str] = typer.Argument(
        ...,
        help="What you want to do, in plain words"
    ),
):
    """
    Generate a command for one request and ask before running it

    Examples:
    \b
        nlsh run "show disk usage"
        nlsh find files larger than 100MB
    """
    settings: Settings = ctx.obj
    query = " ".join(request).strip()
    if not query:
        print_error("no request provided.")
        raise typer.Exit(1)

    provider_config = _provider_config(settings)
    templates = PromptTemplateStore(settings.config_dir)

    try:
        outcome = process_request(
            query,
            ProviderClient(),
            provider_config,
            templates,
            TerminalEvents(),
            ShellInjector(select_integration()),
        )
    except ProviderError as e:
        print_error(str(e))
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print()
        raise typer.Exit(EXIT_CANCELLED)

    raise typer.Exit(outcome.exit_code)


@app.command(context_settings=PASSTHROUGH_ARGS)
def explain(
    ctx: typer.Context,
    command: List[str] = typer.Argument(
        ...,
        help="The shell command to explain"
    ),
):
    """
    Explain what a shell command does

    Examples:
    \b
        nlsh explain ls -la
        nlsh explain "find . -name '*.pyc' -delete"
    """
    settings: Settings = ctx.obj
    text = " ".join(command).strip()
    if not text:
        print_error("no command provided.")
        raise typer.Exit(1)

    provider_config = _provider_config(settings)
    template = PromptTemplateStore(settings.config_dir).get(TemplateName.explain)

    console.print("[grey50]explaining...[/grey50]")
    try:
        explanation = ProviderClient().explain_command(text, template, provider_config)
    except ProviderError as e:
        print_error(str(e))
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print()
        raise typer.Exit(EXIT_CANCELLED)

    display_explanation(explanation)


@app.command()
def prompt(
    ctx: typer.Context,
    kind: PromptKind = typer.Argument(
        PromptKind.system,
        help="system (command generation) or explain"
    ),
    action: PromptAction = typer.Argument(
        PromptAction.show,
        help="show, edit or reset"
    ),
):
    """
    View or edit the prompt templates

    Examples:
    \b
        nlsh prompt                   # same as: nlsh prompt system show
        nlsh prompt explain edit
        nlsh prompt system reset
    """
    settings: Settings = ctx.obj
    store = PromptTemplateStore(settings.config_dir)
    name = PROMPT_SLOTS[kind]

    if action == PromptAction.show:
        typer.echo(store.get(name).text)
        return

    if action == PromptAction.reset:
        if store.reset(name):
            console.print(f"[green]✓[/green] {kind.value} prompt reset to default")
        else:
            console.print(f"[dim]{kind.value} prompt already uses the default[/dim]")
        return

    try:
        editor = os.environ.get("VISUAL") or os.environ.get("EDITOR") or "nano"
        edited = click.edit(store.get(name).text, editor=editor, extension=".txt", require_save=True)
    except click.ClickException as e:
        print_error(e.format_message())
        raise typer.Exit(1)

    if edited is None:
        console.print(f"[dim]{kind.value} prompt unchanged[/dim]")
        return

    try:
        store.set(name, edited)
    except TemplateError as e:
        print_error(str(e))
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] {kind.value} prompt saved to {escape(str(store.path(name)))}")


@app.command()
def api(
    ctx: typer.Context,
    show: bool = typer.Option(
        False,
        "--show", "-s",
        help="Show current configuration"
    ),
):
    """
    Configure the AI provider (Gemini, Ollama, OpenAI compatible)

    Examples:
    \b
        nlsh api
        nlsh api --show
    """
    settings: Settings = ctx.obj
    if show:
        settings.show()
        return

    for kind in ProviderKind:
        current = " [green](current)[/green]" if kind == settings.provider else ""
        console.print(f"  [cyan]{kind.value}[/cyan]  {PROVIDER_LABELS[kind]}{current}")

    choice = Prompt.ask(
        "Select API provider",
        choices=[k.value for k in ProviderKind],
        default=(settings.provider or ProviderKind.gemini).value,
        console=console,
    )
    kind = ProviderKind(choice)
    saved = settings.saved_block(kind)

    endpoint = Prompt.ask(
        "Base URL",
        default=saved.get("endpoint", DEFAULT_ENDPOINTS[kind]),
        console=console,
    )

    api_key = None
    if kind != ProviderKind.ollama:
        label = "Gemini API key" if kind == ProviderKind.gemini else "API key (empty for local servers)"
        api_key = Prompt.ask(
            label,
            password=True,
            default=saved.get("api_key", ""),
            show_default=False,
            console=console,
        )

    model = Prompt.ask(
        "Model name",
        default=saved.get("model", DEFAULT_MODELS[kind]),
        console=console,
    )

    try:
        config = ProviderConfig(kind=kind, endpoint=endpoint, api_key=api_key or None, model=model)
        settings.set_provider(config)
    except ValidationError as e:
        print_error(describe_validation_error(e))
        raise typer.Exit(1)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)

    console.print("[green]✓[/green] [bold]Configuration saved![/bold]")
    settings.show()


@app.command()
def init(
    shell: Optional[str] = typer.Argument(
        None,
        help="bash, zsh or fish (default: from $SHELL)"
    ),
):
    """
    Print the shell function that runs accepted commands in your shell

    Examples:
    \b
        eval "$(nlsh init bash)"      # in ~/.bashrc
        nlsh init fish | source       # in config.fish
    """
    shell = shell or Path(os.environ.get("SHELL", "bash")).name
    try:
        typer.echo(wrapper_script(shell))
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)


COMMANDS = {"run", "explain", "prompt", "api", "init"}
OPTIONS_WITH_VALUE = {"--log-level", "-l"}
COMPLETION_OPTIONS = {"--install-completion", "--show-completion"}


def _is_init_call(rest: List[str]) -> bool:
    """`nlsh init zsh` prints the wrapper; `nlsh init a git repo` is a request"""
    return not rest or rest[0] in SUPPORTED_SHELLS or rest[0].startswith("-")


def route_args(args: List[str]) -> List[str]:
    """Insert ``run`` in front of a bare request: ``nlsh show disk usage``"""
    index = 0
    while index < len(args):
        arg = args[index]
        if arg in COMPLETION_OPTIONS:
            return args
        if arg in OPTIONS_WITH_VALUE:
            index += 2
            continue
        if arg.startswith("-"):
            index += 1
            continue
        if arg in COMMANDS and (arg != "init" or _is_init_call(args[index + 1:])):
            return args
        return args[:index] + ["run"] + args[index:]
    return args


def main() -> None:
    """Console script entry point"""
    app(args=route_args(sys.argv[1:]), prog_name="nlsh")


if __name__ == "__main__":
    main()
