from .errors import CforgeError, ConfigurationError, TranscriptError, ChatClientError
from .transcript import (
    Message,
    TranscriptLog,
    USER_DELIMITER,
    ASSISTANT_DELIMITER,
    parse_messages,
)
from .profiles import Tier, Model, Profile, ProfileCatalog
from .config import AppPaths, UserConfig, CacheRecord, CacheStore
from .state import SessionState

__all__ = [
    "CforgeError",
    "ConfigurationError",
    "TranscriptError",
    "ChatClientError",
    "Message",
    "TranscriptLog",
    "USER_DELIMITER",
    "ASSISTANT_DELIMITER",
    "parse_messages",
    "Tier",
    "Model",
    "Profile",
    "ProfileCatalog",
    "AppPaths",
    "UserConfig",
    "CacheRecord",
    "CacheStore",
    "SessionState",
]
