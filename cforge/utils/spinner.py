"""Spinner shown next to a prefix while the model is thinking."""
from __future__ import annotations

from yaspin import yaspin

from .ansi import console


class Spinner:
    """Display a small spinner next to a prefix while work is done.

    Nothing is drawn when the console is not a terminal, so piped output and
    tests stay clean.
    """

    def __init__(self, prefix: str = "", enabled: bool | None = None):
        self._prefix = prefix
        self._enabled = console.is_terminal if enabled is None else enabled
        self._started = False
        # spinner after the text so prefix stays at the start
        self._spinner = yaspin(text="", side="right")

    def start(self) -> None:
        if self._started or not self._enabled:
            return
        console.print(self._prefix, end="")
        console.file.flush()
        self._spinner.start()
        self._started = True

    def stop(self) -> None:
        if not self._started:
            return
        self._spinner.stop()
        console.print(f"\r{self._prefix}")
        console.file.flush()
        self._started = False

    def __enter__(self) -> "Spinner":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
