"""
Core functionality for nlsh
"""

from .llm import CommandSource, ProposedCommand, ProviderClient, extract_command
from .prompts import PromptTemplate, PromptTemplateStore, TemplateName
from .session import CommandSession, EditSubmitted, Event, ScriptedEvents, SessionState, drive
from .executor import (
    ExecutionResult,
    HandoffIntegration,
    ShellInjector,
    ShellIntegration,
    SubshellIntegration,
    select_integration,
)

__all__ = [
    "CommandSource",
    "ProposedCommand",
    "ProviderClient",
    "extract_command",
    "PromptTemplate",
    "PromptTemplateStore",
    "TemplateName",
    "CommandSession",
    "EditSubmitted",
    "Event",
    "ScriptedEvents",
    "SessionState",
    "drive",
    "ExecutionResult",
    "HandoffIntegration",
    "ShellInjector",
    "ShellIntegration",
    "SubshellIntegration",
    "select_integration",
]
