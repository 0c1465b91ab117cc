"""Turns one line of user input into a chat turn or an applied command."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Union

from .commands import (
    CommandParams,
    CommandRegistry,
    Continue,
    HandlePrompt,
    Outcome,
    PrintModels,
    PrintProfiles,
    Quit,
    SwitchContext,
    SwitchHistory,
    SwitchModel,
    SwitchProfile,
    open_in_editor,
)
from .core.client import ChatClient, build_chat_client
from .core.config import AppPaths, UserConfig
from .core.errors import ConfigurationError, TranscriptError
from .core.profiles import Model, Profile
from .core.state import SessionState
from .core.transcript import TranscriptLog
from .utils import ERROR_TAG, WARNING_TAG, console, escape, print_raw

logger = logging.getLogger(__name__)

PROMPT_PLACEHOLDER = "${{user_prompt}}"

ClientFactory = Callable[[Profile, Model, str, int], ChatClient]


@dataclass(frozen=True)
class Command:
    name: str
    args: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Prompt:
    text: str


def parse_input(line: str) -> Union[Command, Prompt]:
    """Classify *line*: ``:name arg ...`` is a command, anything else a prompt."""
    stripped = line.strip()
    if stripped.startswith(":"):
        parts = stripped[1:].split()
        if not parts:
            return Command("", [])
        return Command(parts[0].lower(), parts[1:])
    return Prompt(stripped)


def combine(template: str, text: str) -> str:
    """Insert *text* into a prompt template, or append it when there is no placeholder."""
    if PROMPT_PLACEHOLDER in template:
        return template.replace(PROMPT_PLACEHOLDER, text)
    return f"{template}{text}"


def read_template(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Could not read prompt file %s: %s", path, exc)
        console.print(
            f"{WARNING_TAG} Could not read prompt file '{escape(str(path))}', using it as empty"
        )
        return ""


class CommandProcessor:
    """Owns the live session objects and applies every command outcome to them."""

    def __init__(
        self,
        state: SessionState,
        transcript: TranscriptLog,
        client: ChatClient,
        registry: CommandRegistry,
        paths: AppPaths,
        config: UserConfig,
        client_factory: ClientFactory = build_chat_client,
    ) -> None:
        self.state = state
        self.transcript = transcript
        self.client = client
        self.registry = registry
        self.paths = paths
        self.config = config
        self.client_factory = client_factory

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def process(self, line: str) -> Outcome:
        """Handle one input line and return ``Quit`` or ``Continue``.

        ``ChatClientError`` and ``TranscriptError`` raised by a chat turn
        propagate to the caller.
        """
        parsed = parse_input(line)
        if isinstance(parsed, Prompt):
            if parsed.text:
                self.handle_prompt(parsed.text)
            return Continue()

        command = self.registry.get(parsed.name)
        if command is None:
            console.print(f"{ERROR_TAG} Unknown command: {escape(parsed.name)}")
            return Continue()

        params = CommandParams(
            args=parsed.args,
            client=self.client,
            transcript=self.transcript,
            data_dir=self.paths.data_dir,
            registry=self.registry,
            knowledge_dir=self.config.knowledge_dir,
        )
        logger.debug("Running command %s with %d args", parsed.name, len(parsed.args))
        return self.apply(command.execute(params))

    # ------------------------------------------------------------------
    # Chat turns
    # ------------------------------------------------------------------

    def read_context(self) -> Optional[str]:
        path = self.state.active_context_path
        if path is None:
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read context file %s: %s", path, exc)
            console.print(
                f"{WARNING_TAG} Could not read context file '{escape(str(path))}', continuing without it"
            )
            return None

    def handle_prompt(self, prompt: str) -> None:
        history = self.transcript.to_messages()
        response = self.client.generate(history, prompt, self.read_context())

        self.transcript.append_user(prompt)
        entry = self.transcript.append_assistant(response.content)
        print_raw(entry)

        for call in response.tool_calls or []:
            logger.info("Model requested tool %s with %s", call.name, call.arguments)
            console.print(
                f"{WARNING_TAG} The model requested tool '{escape(call.name)}' "
                f"with arguments {escape(call.arguments or '{}')}; tool calls are not executed"
            )

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def _resolve_context(self, path: Path) -> Path:
        path = path.expanduser()
        if not path.is_absolute() and self.config.knowledge_dir:
            return Path(self.config.knowledge_dir).expanduser() / path
        return path

    def _resolve_prompt(self, path: Path) -> Path:
        path = path.expanduser()
        return path if path.is_absolute() else self.paths.prompt_dir / path

    def _rebuild_client(self) -> None:
        system_prompt = self.client.system_prompt()
        try:
            self.client = self.client_factory(
                self.state.active_profile,
                self.state.active_model,
                system_prompt,
                self.config.max_tokens,
            )
        except ConfigurationError as exc:
            logger.error("Could not rebuild chat client: %s", exc)
            console.print(f"{ERROR_TAG} {escape(str(exc))}; keeping the previous chat client")

    def switch_history(self, path: str) -> None:
        try:
            transcript = TranscriptLog.open(path, self.paths.data_dir)
        except TranscriptError as exc:
            logger.error("Could not switch history to %s: %s", path, exc)
            console.print(f"{ERROR_TAG} {escape(str(exc))}")
            return
        self.transcript = transcript
        self.state.switch_history(str(transcript.path))
        print_raw(transcript.content)
        console.print(f"Switched to history file: {escape(transcript.filename)}")

    def apply(self, outcome: Outcome) -> Outcome:
        if isinstance(outcome, (Quit, Continue)):
            return outcome

        if isinstance(outcome, SwitchHistory):
            self.switch_history(outcome.path)
        elif isinstance(outcome, SwitchContext):
            path = self._resolve_context(outcome.path) if outcome.path is not None else None
            self.state.switch_context(path)
        elif isinstance(outcome, SwitchModel):
            if self.state.switch_model(outcome.tier):
                self._rebuild_client()
        elif isinstance(outcome, SwitchProfile):
            if self.state.switch_profile(outcome.name):
                self._rebuild_client()
        elif isinstance(outcome, PrintModels):
            for line in self.state.active_profile.render_models(self.state.active_model.tier):
                console.print(line)
        elif isinstance(outcome, PrintProfiles):
            for line in self.state.catalog.render(
                self.state.active_profile.name, self.state.active_model.tier
            ):
                console.print(line)
        elif isinstance(outcome, HandlePrompt):
            prompt_path = self._resolve_prompt(outcome.path)
            if outcome.text is None:
                try:
                    prompt_path.parent.mkdir(parents=True, exist_ok=True)
                except OSError as exc:
                    logger.error("Could not create prompt directory %s: %s", prompt_path.parent, exc)
                    console.print(
                        f"{ERROR_TAG} Could not create '{escape(str(prompt_path.parent))}': "
                        f"{escape(str(exc))}"
                    )
                    return Continue()
                open_in_editor(prompt_path)
            else:
                self.handle_prompt(combine(read_template(prompt_path), outcome.text))
        else:  # pragma: no cover
            raise TypeError(f"Unhandled outcome: {outcome!r}")
        return Continue()
