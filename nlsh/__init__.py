"""
nlsh - natural language to shell commands

Turns a plain-English request into a shell command using an AI provider,
lets the user accept, edit or explain it, and runs it inside the invoking
shell so it lands in that shell's history.
"""
__version__ = "0.1.0"
__description__ = "Natural language to shell commands, confirmed before they run"


from nlsh.config import ProviderConfig, ProviderKind, Settings

__all__ = [
    "__version__",
    "__description__",
    "ProviderConfig",
    "ProviderKind",
    "Settings",
]
