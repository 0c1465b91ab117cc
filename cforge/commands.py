"""Colon commands: outcomes, descriptors, the registry and every handler.

Handlers never mutate the session themselves when a change has to be
validated or persisted. They return an outcome and the
:class:`~cforge.processor.CommandProcessor` applies it.
"""
from __future__ import annotations

import os
import shlex
import subprocess
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Union

import questionary

from .core.client import ChatClient
from .core.profiles import Tier
from .core.tools import ToolContext, find_tool, get_tools
from .core.transcript import TranscriptLog
from .utils import Ansi, ERROR_TAG, console, escape, print_raw

# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Continue:
    pass


@dataclass(frozen=True)
class Quit:
    pass


@dataclass(frozen=True)
class SwitchHistory:
    path: str


@dataclass(frozen=True)
class SwitchContext:
    path: Optional[Path]


@dataclass(frozen=True)
class SwitchModel:
    tier: Tier


@dataclass(frozen=True)
class SwitchProfile:
    name: str


@dataclass(frozen=True)
class PrintModels:
    pass


@dataclass(frozen=True)
class PrintProfiles:
    pass


@dataclass(frozen=True)
class HandlePrompt:
    path: Path
    text: Optional[str] = None


Outcome = Union[
    Continue,
    Quit,
    SwitchHistory,
    SwitchContext,
    SwitchModel,
    SwitchProfile,
    PrintModels,
    PrintProfiles,
    HandlePrompt,
]

# ---------------------------------------------------------------------------
# Descriptors and registry
# ---------------------------------------------------------------------------


class FileDirectory(Enum):
    """Directory a file command's argument is completed against."""

    DATA = "data"
    KNOWLEDGE = "knowledge"
    PROMPT = "prompt"


@dataclass
class CommandParams:
    args: List[str]
    client: ChatClient
    transcript: TranscriptLog
    data_dir: Path
    registry: Optional["CommandRegistry"] = None
    knowledge_dir: str = ""


Handler = Callable[[CommandParams], Outcome]


@dataclass(frozen=True)
class CommandDescriptor:
    name: str
    description: str
    handler: Handler
    example: Optional[str] = None
    file_directory: Optional[FileDirectory] = None
    default_prefix: Optional[str] = None

    def execute(self, params: CommandParams) -> Outcome:
        return self.handler(params)

    def display(self) -> str:
        line = f"{self.name:<12} - {self.description}"
        if self.default_prefix:
            line += f" (default prefix: {self.default_prefix})"
        if self.example:
            line += f"\n{'':<15}{self.example}"
        return line


@dataclass(frozen=True)
class CommandRegistry:
    """Immutable name -> descriptor table, built once at startup."""

    commands: Dict[str, CommandDescriptor] = field(default_factory=dict)

    def get(self, name: str) -> Optional[CommandDescriptor]:
        return self.commands.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self.commands

    def __iter__(self) -> Iterator[CommandDescriptor]:
        return iter(self.commands.values())

    def __len__(self) -> int:
        return len(self.commands)

    def sorted_for_help(self) -> List[CommandDescriptor]:
        """General commands first, then file commands, each group by name."""
        return sorted(self, key=lambda c: (c.file_directory is not None, c.name))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def get_editor() -> str:
    """``$EDITOR``, then ``$VISUAL``, else the platform's default editor."""
    editor = os.getenv("EDITOR") or os.getenv("VISUAL")
    if editor:
        return editor
    return "notepad" if sys.platform.startswith("win") else "vi"


def open_in_editor(path: Union[str, Path]) -> bool:
    """Open *path* in the user's editor; return True when it exited cleanly."""
    try:
        command = shlex.split(get_editor()) + [str(path)]
        result = subprocess.run(command)
    except (OSError, ValueError) as exc:
        console.print(f"{ERROR_TAG} Error opening file in editor: {escape(str(exc))}")
        return False
    if result.returncode != 0:
        console.print(f"{ERROR_TAG} Error opening file in editor (exit code {result.returncode})")
        return False
    return True


def list_files(data_dir: Path, pattern: str = "") -> List[str]:
    """Files below *data_dir* whose path contains *pattern*, relative to *data_dir*."""
    if not data_dir.is_dir():
        return []
    found = []
    for path in sorted(data_dir.rglob("*")):
        relative = path.relative_to(data_dir).as_posix()
        if path.is_file() and (not pattern or pattern in relative):
            found.append(relative)
    return found


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def quit_command(params: CommandParams) -> Outcome:
    console.print(
        f"Ending conversation. All interactions saved to '{escape(params.transcript.filename)}'"
    )
    return Quit()


def list_command(params: CommandParams) -> Outcome:
    pattern = params.args[0] if params.args else ""
    files = list_files(params.data_dir, pattern)
    if not files:
        console.print("(no matching files)")
    for name in files:
        print_raw(name)
    return Continue()


def switch_command(params: CommandParams) -> Outcome:
    if params.args:
        return SwitchHistory(params.args[0])

    try:
        current = params.transcript.path.relative_to(params.data_dir).as_posix()
    except ValueError:
        current = None
    options = [f for f in list_files(params.data_dir) if f != current]
    if not options:
        console.print(f"{ERROR_TAG} No history file specified. Usage: :switch <history_file>")
        return Continue()

    try:
        selection = questionary.select("Switch to history file:", choices=options).ask()
    except (KeyboardInterrupt, EOFError):
        console.print()
        return Continue()

    return SwitchHistory(selection) if selection else Continue()


def help_command(params: CommandParams) -> Outcome:
    registry = params.registry or create_command_registry()
    commands = registry.sorted_for_help()

    console.print(Ansi.style("General commands:", Ansi.FG_GREEN, Ansi.BOLD))
    for cmd in commands:
        if cmd.file_directory is None:
            print_raw(cmd.display())

    console.print()
    console.print(
        Ansi.style("File commands", Ansi.FG_GREEN, Ansi.BOLD) + " (supports file completion):"
    )
    for cmd in commands:
        if cmd.file_directory is not None:
            print_raw(cmd.display())
    return Continue()


def edit_command(params: CommandParams) -> Outcome:
    if open_in_editor(params.transcript.path):
        params.transcript.reload()
    return Continue()


def sysprompt_command(params: CommandParams) -> Outcome:
    if not params.args:
        console.print(Ansi.style("Current system prompt:", Ansi.BOLD))
        print_raw(params.client.system_prompt())
        return Continue()
    params.client.set_system_prompt(" ".join(params.args))
    console.print("System prompt updated for this session")
    return Continue()


def context_command(params: CommandParams) -> Outcome:
    if params.args:
        return SwitchContext(Path(params.args[0]))
    return SwitchContext(None)


def prompt_command(params: CommandParams) -> Outcome:
    if not params.args:
        console.print(f"{ERROR_TAG} No prompt file specified. Usage: :prompt <prompt_file>")
        return Continue()
    text = " ".join(params.args[1:]) if len(params.args) > 1 else None
    return HandlePrompt(Path(params.args[0]), text)


def model_command(params: CommandParams) -> Outcome:
    if not params.args:
        return PrintModels()
    try:
        return SwitchModel(Tier.parse(params.args[0]))
    except ValueError as exc:
        console.print(f"{ERROR_TAG} {escape(str(exc))}. Usage: :model <model_type>")
        return PrintModels()


def profile_command(params: CommandParams) -> Outcome:
    if params.args:
        return SwitchProfile(params.args[0])
    return PrintProfiles()


def tools_command(params: CommandParams) -> Outcome:
    if not params.args:
        support = "supports" if params.client.supports_tools() else "does not support"
        console.print(f"The active model {support} tool calls.")
        for tool in get_tools():
            console.print(f"{Ansi.style('Name:', Ansi.FG_CYAN, Ansi.BOLD)} {escape(tool.name)}")
            console.print(Ansi.style("Description:", Ansi.FG_CYAN, Ansi.BOLD))
            print_raw(tool.description)
            console.print()
        return Continue()

    tool = find_tool(params.args[0])
    if tool is None:
        names = ", ".join(t.name for t in get_tools())
        console.print(f"{ERROR_TAG} Unknown tool: {escape(params.args[0])} (available: {names})")
        return Continue()

    tool_args = {}
    rest = " ".join(params.args[1:])
    for name in tool.required_args:
        tool_args[name] = rest
    print_raw(tool.run(tool_args, ToolContext(knowledge_dir=params.knowledge_dir)))
    return Continue()


def clear_command(params: CommandParams) -> Outcome:
    params.transcript.clear()
    console.print(f"History cleared: {escape(params.transcript.filename)}")
    return Continue()


def create_command_registry(default_prefixes: Optional[Dict[str, str]] = None) -> CommandRegistry:
    prefixes = default_prefixes or {}
    descriptors = [
        CommandDescriptor("q", "Exit the program", quit_command),
        CommandDescriptor(
            "list",
            "List files in the data directory. Optionally, you can provide a pattern to filter the results.",
            list_command,
            example=":list <optional pattern>",
            file_directory=FileDirectory.DATA,
            default_prefix=prefixes.get("list"),
        ),
        CommandDescriptor(
            "switch",
            "Switch to a different history file. Either relative to the data directory "
            "or absolute path. Creates the file if it doesn't exist.",
            switch_command,
            example=":switch <history file>",
            file_directory=FileDirectory.DATA,
            default_prefix=prefixes.get("switch"),
        ),
        CommandDescriptor("help", "Show this help message", help_command),
        CommandDescriptor("edit", "Open the history file in your editor", edit_command),
        CommandDescriptor(
            "sysprompt",
            "Set the system prompt for current session",
            sysprompt_command,
            example=":sysprompt <prompt>",
        ),
        CommandDescriptor(
            "context",
            "Set or unset current context file",
            context_command,
            example=":context <optional path>",
            file_directory=FileDirectory.KNOWLEDGE,
            default_prefix=prefixes.get("context"),
        ),
        CommandDescriptor(
            "prompt",
            "Select or edit a prompt file. Either relative to the prompt directory or absolute "
            "path. Creates the file if it doesn't exist.",
            prompt_command,
            example=":prompt <prompt file> <actual prompt to use with the file>",
            file_directory=FileDirectory.PROMPT,
            default_prefix=prefixes.get("prompt"),
        ),
        CommandDescriptor(
            "model",
            "Change current model type. Valid model types are 'fast', 'balanced', or 'deep'. "
            "If no model type is specified, the available models are printed.",
            model_command,
            example=":model <model_type>",
        ),
        CommandDescriptor(
            "profile",
            "Change current profile by the profile name. If no profile is specified, "
            "the available profiles are printed.",
            profile_command,
            example=":profile <profile>",
        ),
        CommandDescriptor(
            "tools",
            "List the local tools, or run one by name",
            tools_command,
            example=":tools <optional tool name> <optional arguments>",
        ),
        CommandDescriptor(
            "clear",
            "Clear the current history file (empties its contents).",
            clear_command,
            example=":clear",
        ),
    ]
    return CommandRegistry({d.name: d for d in descriptors})
