"""Terminal entry point: argument parsing, startup wiring and the REPL."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich.panel import Panel

from .commands import Quit, create_command_registry
from .core.client import build_chat_client
from .core.config import AppPaths, CacheStore, UserConfig, write_example_config
from .core.errors import ChatClientError, ConfigurationError, TranscriptError
from .core.state import SessionState
from .core.transcript import TranscriptLog
from .processor import CommandProcessor
from .utils import (
    Ansi,
    ERROR_TAG,
    USER_LABEL,
    WARNING_TAG,
    console,
    escape,
    print_raw,
    setup_logging,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# REPL
# ---------------------------------------------------------------------------


class ChatCLI:
    """High-level orchestration class for the interactive REPL."""

    def __init__(self, processor: CommandProcessor, token_estimation: bool = True):
        self.processor = processor
        self.token_estimation = token_estimation

    def token_usage(self) -> Optional[str]:
        """One-line estimate of how much of the model's context the transcript fills."""
        if not self.token_estimation:
            return None
        context_size = self.processor.client.model_context_size()
        if not context_size:
            return None
        used = self.processor.transcript.estimate_token_count()
        percent = used * 100 / context_size
        colour = Ansi.FG_RED if percent >= 90 else Ansi.FG_YELLOW if percent >= 70 else Ansi.DIM
        return Ansi.style(f"~{used} / {context_size} tokens ({percent:.0f}%)", colour)

    def _banner(self) -> None:
        state = self.processor.state
        console.print(Panel.fit("convo-forge", style="bold magenta"))
        console.print(
            Ansi.style("Type your message and press Enter. Commands start with ':'.", Ansi.FG_YELLOW),
            Ansi.style(
                f"Profile: {state.active_profile.name}, model: {state.active_model.model} "
                f"({state.active_model.tier}).",
                Ansi.FG_YELLOW,
            ),
            Ansi.style(f"History file: {self.processor.transcript.filename}.", Ansi.FG_YELLOW),
            Ansi.style("Type :help for help.", Ansi.FG_YELLOW),
            sep="\n",
        )

    def repl(self) -> int:
        """Run the read-eval-print loop; return the process exit status."""
        self._banner()

        while True:
            usage = self.token_usage()
            if usage:
                console.print(usage)

            try:
                line = console.input(f"{USER_LABEL}> ")
            except (EOFError, KeyboardInterrupt):
                console.print()
                console.print(
                    "Ending conversation. All interactions saved to "
                    f"'{escape(self.processor.transcript.filename)}'"
                )
                return 0

            if not line.strip():
                continue

            try:
                outcome = self.processor.process(line)
            except KeyboardInterrupt:
                console.print()
                console.print(f"{WARNING_TAG} Request interrupted, nothing was saved")
                continue
            except (ChatClientError, TranscriptError) as exc:
                logger.error("Ending session: %s", exc)
                console.print(f"{ERROR_TAG} {escape(str(exc))}")
                return 1

            if isinstance(outcome, Quit):
                return 0


# ---------------------------------------------------------------------------
# Entrypoint helpers
# ---------------------------------------------------------------------------


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cforge",
        description="Chat with language models from the terminal; every turn is kept in a plain text history file.",
    )
    parser.add_argument(
        "history_file",
        nargs="?",
        help="History file, relative to the data directory or absolute (default: the last one used)",
    )
    parser.add_argument("-f", "--file", help="Context file sent along with every prompt")
    return parser.parse_args(argv)


def _fail(message: str) -> None:
    console.print(f"{ERROR_TAG} {escape(message)}")
    sys.exit(1)


def run_cli(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)

    paths = AppPaths.from_env()
    try:
        paths.ensure()
    except OSError as exc:
        _fail(f"Could not create application directories: {exc}")
    setup_logging(paths.log_file)

    try:
        if write_example_config(paths.config_file):
            console.print(f"Wrote an example config to {escape(str(paths.config_file))}")
    except OSError as exc:
        logger.warning("Could not write example config %s: %s", paths.config_file, exc)

    try:
        config = UserConfig.load(paths.config_file)
    except ConfigurationError as exc:
        _fail(str(exc))

    state = SessionState.from_cache(config.profiles, CacheStore(paths.cache_file))

    history_file = args.history_file or state.active_history_path
    if not history_file:
        _fail("No history file specified and no previous one remembered. Usage: cforge <history_file>")

    try:
        transcript = TranscriptLog.open(history_file, paths.data_dir)
    except TranscriptError as exc:
        _fail(str(exc))
    state.switch_history(str(transcript.path))
    print_raw(transcript.content)

    if args.file:
        state.switch_context(Path(args.file).expanduser().resolve())

    try:
        client = build_chat_client(
            state.active_profile, state.active_model, config.system_prompt, config.max_tokens
        )
    except ConfigurationError as exc:
        _fail(str(exc))

    processor = CommandProcessor(
        state=state,
        transcript=transcript,
        client=client,
        registry=create_command_registry(config.default_prefixes),
        paths=paths,
        config=config,
    )
    status = ChatCLI(processor, token_estimation=config.token_estimation).repl()
    if status:
        sys.exit(status)


if __name__ == "__main__":  # pragma: no cover
    run_cli()
