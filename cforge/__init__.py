"""convo-forge: chat with language models from the terminal.

Features
--------
1. Plain text history: every turn is appended to a human-readable file that can be
   edited by hand and is replayed as the conversation history on the next prompt.
2. Profiles and tiers: each profile names a provider (openai, ollama or anthropic) and
   offers a fast, balanced and deep model; switch with `:profile` and `:model`.
3. Context and prompt files: attach a file to every prompt with `:context`, or wrap a
   prompt in a reusable template with `:prompt`.

Run `cforge <history_file>` or `python -m cforge`.
"""
from .core import SessionState, TranscriptLog, UserConfig
from .commands import create_command_registry
from .processor import CommandProcessor
from .cli import ChatCLI, run_cli

__all__ = [
    "SessionState",
    "TranscriptLog",
    "UserConfig",
    "create_command_registry",
    "CommandProcessor",
    "ChatCLI",
    "run_cli",
]
