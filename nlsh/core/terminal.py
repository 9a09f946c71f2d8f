"""
Terminal front end for the confirmation session.

Renders the proposed command with rich, reads single keypresses with click
and offers the current command as a pre-filled, editable line through
prompt_toolkit. Everything goes to stderr: stdout is reserved for handing
the accepted command back to the shell wrapper.
"""

import re
import sys
from typing import Callable, Dict, Optional

import click
from prompt_toolkit import PromptSession
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.output import create_output
from rich.console import Console
from rich.markup import escape

from nlsh.core.session import CommandSession, EditSubmitted, Event, SessionEvent, SessionState

console = Console(stderr=True)

KEYMAP: Dict[str, Event] = {
    "y": Event.ACCEPT,
    "Y": Event.ACCEPT,
    "\r": Event.ACCEPT,
    "\n": Event.ACCEPT,
    "e": Event.EXPLAIN,
    "E": Event.EXPLAIN,
    "n": Event.CANCEL,
    "N": Event.CANCEL,
    "\x1b[A": Event.EDIT,   # arrow up
    "\x1bOA": Event.EDIT,   # arrow up, application cursor mode
    "\xe0H": Event.EDIT,    # arrow up, Windows
    "\x03": Event.INTERRUPT,
}

DECISION_HINTS = {
    Event.ACCEPT: "[bold]Y/Enter[/bold] to execute",
    Event.EXPLAIN: "[bold]E[/bold] to explain",
    Event.EDIT: "[bold]Arrow Up[/bold] to edit",
    Event.CANCEL: "[bold]N[/bold] to cancel",
}

TAG_STYLES = {"b": "bold", "i": "italic", "u": "underline"}
TAG_PATTERN = re.compile(r"<(/?)([biu])>")


def style_explanation(text: str) -> str:
    """Escape model text for rich and turn <b>/<i>/<u> tags into markup"""
    open_tags = []

    def _swap(match: re.Match) -> str:
        closing, tag = match.group(1), match.group(2)
        style = TAG_STYLES[tag]
        if not closing:
            open_tags.append(style)
            return f"[{style}]"
        # rich rejects a closing tag with nothing open
        if style not in open_tags:
            return ""
        open_tags.remove(style)
        return f"[/{style}]"

    styled = TAG_PATTERN.sub(_swap, escape(text))
    return styled + "".join(f"[/{style}]" for style in reversed(open_tags))


def _stderr_prompt_session() -> PromptSession:
    return PromptSession(output=create_output(stdout=sys.stderr))


def edit_line(text: str) -> str:
    """Line editor pre-filled with ``text``; arrow keys move within it"""
    return _stderr_prompt_session().prompt("$ ", default=text)


_request_session: Optional[PromptSession] = None


def read_request(default: str = "") -> str:
    """Prompt for a natural-language request; Up recalls earlier ones"""
    global _request_session
    if _request_session is None:
        _request_session = PromptSession(history=InMemoryHistory(), output=create_output(stdout=sys.stderr))
    return _request_session.prompt("> ", default=default)


def display_command(command: str) -> None:
    lines = command.splitlines() or [command]
    if len(lines) == 1:
        console.print(f"[cyan]$[/cyan] [bold bright_white]{escape(command)}[/bold bright_white]")
        return
    console.print("[cyan]>[/cyan] [bold bright_white]multiline command:[/bold bright_white]")
    for line in lines:
        console.print(f"[cyan]$[/cyan] [bright_white]{escape(line)}[/bright_white]")


def display_explanation(explanation: str) -> None:
    console.print(style_explanation(explanation), style="bright_white")


def print_error(message: str) -> None:
    console.print(f"[bold red]error:[/bold red] {escape(message)}")


class TerminalEvents:
    """Reads session events from the keyboard"""

    def __init__(
        self,
        getchar: Callable[[], str] = click.getchar,
        line_editor: Callable[[str], str] = edit_line,
        interactive: Optional[bool] = None,
    ):
        self.getchar = getchar
        self.line_editor = line_editor
        self.interactive = sys.stdin.isatty() if interactive is None else interactive

    def next_event(self, session: CommandSession) -> SessionEvent:
        if session.state == SessionState.EDITING:
            return self._edit(session)

        self._render(session)

        # piped input: nobody is there to confirm
        if not self.interactive:
            return Event.ACCEPT

        while True:
            try:
                key = self.getchar()
            except EOFError:
                console.print()
                return Event.CANCEL
            event = KEYMAP.get(key)
            if event is Event.INTERRUPT:
                raise KeyboardInterrupt
            if event is not None and event in session.decisions:
                console.print()
                return event

    def _render(self, session: CommandSession) -> None:
        if session.error:
            print_error(session.error)
        display_command(session.proposal.raw)
        if session.explanation:
            display_explanation(session.explanation)

        short = "Y/e/n" if Event.EXPLAIN in session.decisions else "Y/n"
        console.print(f"[yellow]Run this?[/yellow] [grey50]({short})[/grey50]")
        hints = ", ".join(DECISION_HINTS[d] for d in session.decisions)
        console.print(hints, style="cyan", end="")

    def _edit(self, session: CommandSession) -> SessionEvent:
        if session.error:
            print_error(session.error)
        try:
            text = self.line_editor(session.proposal.raw)
        except EOFError:
            return Event.EDIT_CANCELLED
        return EditSubmitted(text)
