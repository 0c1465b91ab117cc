"""Local tools the user can list and run from the chat prompt."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

GREP_TIMEOUT_SECONDS = 3
MAX_OUTPUT_BYTES = 1_048_576  # 1 MiB
_ALLOWED_PATTERN_CHARS = set("-_. ")


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    run_fn: Callable[[Dict[str, Any], "ToolContext"], str]
    parameters: Dict[str, Any] = field(default_factory=dict)

    def run(self, args: Dict[str, Any], context: "ToolContext") -> str:
        return self.run_fn(args, context)

    @property
    def required_args(self) -> List[str]:
        return list(self.parameters.get("required", []))


@dataclass
class ToolContext:
    knowledge_dir: str = ""


def _pwd(_args: Dict[str, Any], _context: ToolContext) -> str:
    return os.getcwd()


def _pattern_allowed(pattern: str) -> bool:
    return all(c.isalnum() or c.isspace() or c in _ALLOWED_PATTERN_CHARS for c in pattern)


def _grep(args: Dict[str, Any], context: ToolContext) -> str:
    pattern = args.get("pattern")
    if pattern is None:
        return "Error: Missing pattern"
    pattern = str(pattern)
    if not pattern:
        return "Error: Empty pattern"

    if not context.knowledge_dir:
        return "Error: Knowledge dir path is empty"
    knowledge_dir = Path(context.knowledge_dir).expanduser()
    try:
        root = knowledge_dir.resolve(strict=True)
    except OSError:
        return f"Error: '{context.knowledge_dir}' cannot be resolved to a real directory"
    if not root.is_dir():
        return f"Error: '{root}' is not a directory"

    if not _pattern_allowed(pattern):
        return (
            "Error: Pattern contains characters outside of the allowlist:\n"
            "- alphanumeric\n- whitespace\n- -_."
        )

    try:
        result = subprocess.run(
            ["grep", "-F", "-I", "-r", "--max-count=1000", pattern],
            cwd=root,
            capture_output=True,
            timeout=GREP_TIMEOUT_SECONDS,
        )
    except subprocess.TimeoutExpired:
        return "Error: `grep` timed out"
    except OSError as exc:
        return f"Error launching grep: {exc}"

    if len(result.stdout) > MAX_OUTPUT_BYTES:
        return "Error: Output exceeds size limit"

    output = result.stdout.decode("utf-8", errors="replace").rstrip()
    if result.returncode != 0:
        if result.returncode == 1 and not output.strip():
            return "No matches found"
        return f"Error: `grep` failed (code {result.returncode})\nMessage: {output}"
    return output or "No matches found"


def get_tools() -> List[Tool]:
    return [
        Tool(
            name="grep",
            description=(
                "Search for a pattern using 'grep' from the knowledge dir\n"
                "Command: `grep -F --max-count=1000 <pattern> *`"
            ),
            run_fn=_grep,
            parameters={
                "type": "object",
                "properties": {"pattern": {"type": "string"}},
                "required": ["pattern"],
            },
        ),
        Tool(
            name="pwd",
            description="Show current working directory",
            run_fn=_pwd,
            parameters={"type": "object", "properties": {}, "required": []},
        ),
    ]


def find_tool(name: str) -> Optional[Tool]:
    return next((t for t in get_tools() if t.name == name.lower()), None)
