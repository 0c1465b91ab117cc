"""Transcript persistence: a flat text file of delimited conversation turns."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from .errors import TranscriptError
from ..utils.ansi import WARNING_TAG, console, escape

logger = logging.getLogger(__name__)

# Both banners must stay byte-identical so older transcripts keep parsing.
USER_DELIMITER = (
    "\n\n-------------------------------------------------------------------\n"
    "                        --- User Input ---\n"
    "-------------------------------------------------------------------\n"
)
ASSISTANT_DELIMITER = (
    "\n\n-------------------------------------------------------------------\n"
    "                        --- AI Response ---\n"
    "-------------------------------------------------------------------\n"
)

_DELIMITER_PATTERN = re.compile(
    f"({re.escape(USER_DELIMITER)}|{re.escape(ASSISTANT_DELIMITER)})"
)

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"


@dataclass(frozen=True)
class Message:
    """A single role-tagged entry reconstructed from the transcript."""

    role: str
    content: str

    def as_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


def _maybe_message(role: str, text: str) -> Optional[Message]:
    stripped = text.strip()
    if not stripped:
        return None
    return Message(role=role, content=stripped)


def parse_messages(content: str) -> List[Message]:
    """Split *content* into messages following the delimiter banners.

    Text written before the first banner always belongs to the user. Segments
    that are empty once trimmed are dropped, and consecutive messages with the
    same role are kept apart so the history replays exactly as written.
    """
    matches = list(_DELIMITER_PATTERN.finditer(content))
    messages: List[Message] = []

    if not matches:
        message = _maybe_message(USER_ROLE, content)
        return [message] if message else []

    if matches[0].start() > 0:
        message = _maybe_message(USER_ROLE, content[: matches[0].start()])
        if message:
            messages.append(message)

    for index, match in enumerate(matches):
        role = USER_ROLE if match.group(0) == USER_DELIMITER else ASSISTANT_ROLE
        end = matches[index + 1].start() if index + 1 < len(matches) else len(content)
        message = _maybe_message(role, content[match.end() : end])
        if message:
            messages.append(message)

    return messages


def _read_text(path: Path) -> str:
    # newline="" keeps the mirror byte-identical to the file.
    with path.open("r", encoding="utf-8", newline="") as handle:
        return handle.read()


class TranscriptLog:
    """One transcript file on disk together with its in-memory mirror."""

    def __init__(self, path: Path, content: str = "") -> None:
        self.path = path
        self._content = content

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def content(self) -> str:
        return self._content

    @classmethod
    def open(cls, path: Union[str, Path], base_dir: Union[str, Path]) -> "TranscriptLog":
        """Open *path* (relative to *base_dir* unless absolute), creating it if needed."""
        candidate = Path(path).expanduser()
        full_path = candidate if candidate.is_absolute() else Path(base_dir) / candidate

        if full_path.is_dir():
            raise TranscriptError(f"'{full_path}' is a directory, not a transcript file")

        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.touch(exist_ok=True)
            content = _read_text(full_path)
        except UnicodeDecodeError as exc:
            raise TranscriptError(f"'{full_path}' is not valid UTF-8: {exc}") from exc
        except OSError as exc:
            raise TranscriptError(f"Could not open transcript '{full_path}': {exc}") from exc

        logger.info("Opened transcript %s (%d chars)", full_path, len(content))
        return cls(full_path, content)

    def _append(self, entry: str) -> None:
        try:
            with self.path.open("a", encoding="utf-8", newline="") as handle:
                handle.write(entry)
        except OSError as exc:
            raise TranscriptError(f"Could not write to '{self.path}': {exc}") from exc
        self._content += entry

    def append_user(self, text: str) -> None:
        self._append(f"{USER_DELIMITER}{text}")

    def append_assistant(self, text: str) -> str:
        """Append an assistant turn and return exactly what was written."""
        entry = f"{ASSISTANT_DELIMITER}{text}"
        self._append(entry)
        return entry

    def reload(self) -> None:
        """Re-read the file, keeping the current mirror if that fails."""
        try:
            self._content = _read_text(self.path)
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Failed to reload transcript %s: %s", self.path, exc)
            console.print(f"{WARNING_TAG} Could not reload '{escape(str(self.path))}': {escape(str(exc))}")
            return
        logger.info("Reloaded transcript %s", self.path)

    def clear(self) -> None:
        try:
            with self.path.open("w", encoding="utf-8", newline=""):
                pass
        except OSError as exc:
            raise TranscriptError(f"Could not truncate '{self.path}': {exc}") from exc
        self.reload()

    def to_messages(self) -> List[Message]:
        return parse_messages(self._content)

    def estimate_token_count(self) -> int:
        # Roughly four characters per token for English text.
        return math.ceil(len(self._content) / 4)
