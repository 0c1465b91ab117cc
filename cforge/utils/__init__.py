from .ansi import (
    Ansi,
    USER_LABEL,
    ASSISTANT_LABEL,
    ERROR_LABEL,
    WARNING_LABEL,
    ERROR_TAG,
    WARNING_TAG,
    console,
    escape,
    print_raw,
)
from .log import setup_logging
from .spinner import Spinner

__all__ = [
    "Ansi",
    "USER_LABEL",
    "ASSISTANT_LABEL",
    "ERROR_LABEL",
    "WARNING_LABEL",
    "ERROR_TAG",
    "WARNING_TAG",
    "console",
    "escape",
    "print_raw",
    "setup_logging",
    "Spinner",
]
