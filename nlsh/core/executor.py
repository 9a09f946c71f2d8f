"""
Shell injection for nlsh

Runs an accepted command inside the user's shell context and records it in
that shell's history, the way it would have been had the user typed it.
"""

import logging
import os
import subprocess
import sys
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, TextIO

from rich.console import Console
from rich.markup import escape

from nlsh.errors import ExecutionError, InjectionError

logger = logging.getLogger(__name__)
console = Console(stderr=True)

SUPPORTED_SHELLS = ("bash", "zsh", "fish")
INTERACTIVE_SHELLS = ("bash", "zsh", "fish")

# exit status of a shell that could not find the command
EXIT_NOT_FOUND = 127


@dataclass
class ExecutionResult:
    """Result of running an accepted command"""
    command: str
    exit_code: int
    history_recorded: bool
    execution_time: float

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class ShellIntegration(ABC):
    """Capability a target shell must provide: record a line, run a line"""

    shell: str = "sh"

    @abstractmethod
    def append_history(self, command: str) -> None:
        """Record ``command`` in the shell's history. Raises InjectionError."""

    @abstractmethod
    def execute(self, command: str) -> int:
        """Run ``command`` in the shell's context and return its exit status"""


class HandoffIntegration(ShellIntegration):
    """
    Hands the command back to the live shell through the nlsh wrapper function.

    The wrapper captures stdout, adds the line to history with the shell's
    own builtin (``history -s``, ``print -s``, ``history append``) and
    ``eval``s it, so it runs with the shell's variables, aliases, functions
    and working directory, and its exit status becomes the wrapper's.
    """

    def __init__(self, shell: Optional[str] = None, stream: Optional[TextIO] = None):
        self.shell = shell or Path(os.environ.get("SHELL", "sh")).name
        self.stream = stream

    def append_history(self, command: str) -> None:
        # recorded natively by the wrapper before it evals the line
        pass

    def execute(self, command: str) -> int:
        stream = self.stream or sys.stdout
        stream.write(command + "\n")
        stream.flush()
        return 0


class SubshellIntegration(ShellIntegration):
    """
    Runs the command through ``$SHELL -i -c`` and appends it to the history file.

    The interactive flag loads the user's rc file, so aliases and functions
    defined there are in scope. Environment and working directory are
    inherited from this process, which inherited them from the shell.
    """

    def __init__(
        self,
        shell_path: Optional[str] = None,
        history_file: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
    ):
        self.shell_path = shell_path or os.environ.get("SHELL") or "/bin/sh"
        self.shell = Path(self.shell_path).name
        self.history_file = history_file
        self.env = env
        self.cwd = cwd

    def history_path(self) -> Optional[Path]:
        """The history file the invoking shell writes to"""
        if self.history_file is not None:
            return self.history_file

        environ = self.env if self.env is not None else os.environ
        histfile = environ.get("HISTFILE")
        if histfile and self.shell != "fish":
            return Path(histfile).expanduser()

        home = Path(environ.get("HOME") or Path.home())
        if self.shell == "bash":
            return home / ".bash_history"
        if self.shell == "zsh":
            return Path(environ.get("ZDOTDIR") or home) / ".zsh_history"
        if self.shell == "fish":
            data_home = Path(environ.get("XDG_DATA_HOME") or home / ".local" / "share")
            session = environ.get("fish_history") or "fish"
            return data_home / "fish" / f"{session}_history"
        return None

    def format_entry(self, command: str, timestamp: Optional[int] = None) -> str:
        """One history entry in the shell's on-disk format"""
        when = int(time.time()) if timestamp is None else timestamp
        if self.shell == "zsh":
            # extended history; embedded newlines are backslash-continued
            return f": {when}:0;" + command.replace("\n", "\\\n") + "\n"
        if self.shell == "fish":
            escaped = command.replace("\\", "\\\\").replace("\n", "\\n")
            return f"- cmd: {escaped}\n  when: {when}\n"
        return command + "\n"

    def append_history(self, command: str) -> None:
        path = self.history_path()
        if path is None:
            raise InjectionError(f"no history file known for {self.shell}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(self.format_entry(command))
        except OSError as e:
            raise InjectionError(f"could not write history file {path}: {e}") from e
        logger.debug("Appended command to %s", path)

    def execute(self, command: str) -> int:
        args = [self.shell_path]
        if self.shell in INTERACTIVE_SHELLS:
            args.append("-i")
        args.extend(["-c", command])

        try:
            process = subprocess.run(
                args,
                cwd=self.cwd or os.getcwd(),
                env=self.env,
                check=False,  # Don't raise on non-zero exit
            )
        except OSError as e:
            console.print(f"[bold red]error:[/bold red] could not start {escape(self.shell_path)}: {escape(str(e))}")
            return EXIT_NOT_FOUND
        return process.returncode


class ShellInjector:
    """Runs accepted commands through a ShellIntegration"""

    def __init__(self, integration: ShellIntegration):
        self.integration = integration

    def run(self, command: str) -> ExecutionResult:
        """Record, then execute. History failure never blocks execution."""
        start_time = time.time()

        recorded = True
        try:
            self.integration.append_history(command)
        except InjectionError as e:
            logger.warning("History injection failed: %s", e)
            console.print(f"[yellow]warning:[/yellow] {escape(str(e))}")
            recorded = False

        exit_code = self.integration.execute(command)
        if exit_code != 0:
            logger.info("%s", ExecutionError(command, exit_code))

        return ExecutionResult(
            command=command,
            exit_code=exit_code,
            history_recorded=recorded,
            execution_time=time.time() - start_time,
        )


def select_integration(stdout: Optional[TextIO] = None) -> ShellIntegration:
    """
    Pick how to reach the invoking shell.

    Under the wrapper function stdout is a pipe and the command is handed
    back; on a terminal (or with NLSH_FORCE_INTERACTIVE set) it runs directly.
    """
    stdout = stdout or sys.stdout
    if os.environ.get("NLSH_FORCE_INTERACTIVE") or stdout.isatty():
        return SubshellIntegration()
    return HandoffIntegration(stream=stdout)


_POSIX_WRAPPER = """nlsh() {{
    local arg request="" skip=""
    for arg in "$@"; do
        if [ -n "$skip" ]; then
            skip=""
            continue
        fi
        case "$arg" in
            -h|--help|-v|--version|--install-completion*|--show-completion*)
                request=""
                break
                ;;
            -l|--log-level) skip=1 ;;
            -*) ;;
            *)
                request="$arg"
                break
                ;;
        esac
    done
    case "$request" in
        ""|api|prompt|explain|init)
            command nlsh "$@"
            return $?
            ;;
    esac
    local cmd
    cmd=$(command nlsh "$@")
    local exit_code=$?
    if [ $exit_code -ne 0 ] || [ -z "$cmd" ]; then
        return $exit_code
    fi
    {record} "$cmd"
    eval "$cmd"
}}"""

_FISH_WRAPPER = """function nlsh
    set -l request ""
    set -l skip 0
    for arg in $argv
        if test $skip -eq 1
            set skip 0
            continue
        end
        switch $arg
            case -h --help -v --version '--install-completion*' '--show-completion*'
                set request ""
                break
            case -l --log-level
                set skip 1
            case '-*'
            case '*'
                set request $arg
                break
        end
    end
    switch "$request"
        case '' api prompt explain init
            command nlsh $argv
            return $status
    end
    set -l cmd (command nlsh $argv | string collect)
    set -l exit_code $pipestatus[1]
    if test $exit_code -ne 0 -o -z "$cmd"
        return $exit_code
    end
    builtin history append -- $cmd 2>/dev/null
    eval $cmd
end"""


def wrapper_script(shell: str) -> str:
    """Shell function that lets nlsh hand accepted commands back to the shell"""
    if shell == "bash":
        return _POSIX_WRAPPER.format(record="history -s")
    if shell == "zsh":
        return _POSIX_WRAPPER.format(record="print -s --")
    if shell == "fish":
        return _FISH_WRAPPER
    raise ValueError(f"unsupported shell '{shell}' (supported: {', '.join(SUPPORTED_SHELLS)})")
