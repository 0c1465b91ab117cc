"""Exception hierarchy shared by the whole package."""


class CforgeError(Exception):
    """Base exception for convo-forge failures."""


class ConfigurationError(CforgeError):
    """Raised when the user config or profile catalog is unusable."""


class TranscriptError(CforgeError, OSError):
    """Raised when the transcript file cannot be opened, read or written."""


class ChatClientError(CforgeError):
    """Raised when the chat backend fails to produce a response."""
