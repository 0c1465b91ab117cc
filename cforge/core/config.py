"""User configuration, cache persistence and directory layout."""

from __future__ import annotations

import json
import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from platformdirs import user_cache_dir, user_config_dir, user_data_dir

from .errors import ConfigurationError
from .profiles import ProfileCatalog, Tier, default_profiles

logger = logging.getLogger(__name__)

APP_NAME = "cforge"
CONFIG_FILE = "cforge.toml"
CACHE_FILE = "cforge.cache.json"

DEFAULT_SYSTEM_PROMPT = (
    "You are an AI assistant receiving input from a command-line application "
    "called convo-forge (cforge). The user may include additional context from "
    "another file, this is included as a separate user prompt. Your responses "
    "are displayed in the terminal and saved to the history file. Keep your "
    "answers helpful, concise, and relevant to both the user's direct query and "
    "any file context provided."
)


@dataclass
class AppPaths:
    """Where convo-forge keeps its config, transcripts, prompts and cache."""

    config_dir: Path
    data_root: Path
    cache_dir: Path

    @property
    def data_dir(self) -> Path:
        return self.data_root / "chats"

    @property
    def prompt_dir(self) -> Path:
        return self.data_root / "prompts"

    @property
    def config_file(self) -> Path:
        return self.config_dir / CONFIG_FILE

    @property
    def cache_file(self) -> Path:
        return self.cache_dir / CACHE_FILE

    @property
    def log_file(self) -> Path:
        return self.data_root / f"{APP_NAME}.log"

    @classmethod
    def from_env(cls) -> "AppPaths":
        return cls(
            config_dir=Path(os.getenv("CFORGE_CONFIG_DIR") or user_config_dir(APP_NAME)),
            data_root=Path(os.getenv("CFORGE_DATA_DIR") or user_data_dir(APP_NAME)),
            cache_dir=Path(os.getenv("CFORGE_CACHE_DIR") or user_cache_dir(APP_NAME)),
        )

    def ensure(self) -> None:
        for directory in (self.config_dir, self.data_dir, self.prompt_dir, self.cache_dir):
            directory.mkdir(parents=True, exist_ok=True)


@dataclass
class UserConfig:
    """Settings read from ``cforge.toml``."""

    profiles: ProfileCatalog = field(default_factory=lambda: ProfileCatalog(default_profiles()))
    knowledge_dir: str = ""
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    token_estimation: bool = True
    max_tokens: int = 1024
    default_prefixes: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserConfig":
        defaults = cls()
        profile_entries = data.get("profiles")
        profiles = (
            ProfileCatalog.from_list(profile_entries)
            if profile_entries is not None
            else defaults.profiles
        )
        prefixes = data.get("default_prefixes", {})
        if not isinstance(prefixes, dict):
            raise ConfigurationError("'default_prefixes' must be a table of command = prefix")
        try:
            max_tokens = int(data.get("max_tokens", defaults.max_tokens))
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"'max_tokens' must be an integer: {exc}") from exc
        return cls(
            profiles=profiles,
            knowledge_dir=str(data.get("knowledge_dir", defaults.knowledge_dir)),
            system_prompt=str(data.get("system_prompt", defaults.system_prompt)),
            token_estimation=bool(data.get("token_estimation", defaults.token_estimation)),
            max_tokens=max_tokens,
            default_prefixes={str(k): str(v) for k, v in prefixes.items()},
        )

    @classmethod
    def load(cls, path: Path) -> "UserConfig":
        """Load and validate the config at *path*; a missing file yields the defaults."""
        if not path.exists():
            logger.info("No config file at %s, using defaults", path)
            config = cls()
        else:
            try:
                with path.open("rb") as handle:
                    data = tomllib.load(handle)
            except tomllib.TOMLDecodeError as exc:
                raise ConfigurationError(f"Could not parse config toml {path}: {exc}") from exc
            except OSError as exc:
                raise ConfigurationError(f"Could not read config file {path}: {exc}") from exc
            config = cls.from_dict(data)

        config.profiles.validate()
        return config


def _cached_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None or isinstance(value, str):
        return value
    logger.warning("Ignoring cached %s of type %s", key, type(value).__name__)
    return None


@dataclass
class CacheRecord:
    """State remembered between runs."""

    last_history_file: Optional[str] = None
    last_profile_name: Optional[str] = None
    profile_models: Dict[str, Tier] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_history_file": self.last_history_file,
            "last_profile_name": self.last_profile_name,
            "profile_models": {name: tier.value for name, tier in self.profile_models.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheRecord":
        profile_models: Dict[str, Tier] = {}
        raw_models = data.get("profile_models") or {}
        if not isinstance(raw_models, dict):
            logger.warning("Ignoring cached profile_models of type %s", type(raw_models).__name__)
            raw_models = {}
        for name, value in raw_models.items():
            try:
                profile_models[name] = Tier.parse(str(value))
            except ValueError:
                logger.warning("Ignoring cached model type %r for profile %s", value, name)
        return cls(
            last_history_file=_cached_str(data, "last_history_file"),
            last_profile_name=_cached_str(data, "last_profile_name"),
            profile_models=profile_models,
        )


class CacheStore:
    """Reads and writes the :class:`CacheRecord` as JSON."""

    def __init__(self, path: Optional[Path]) -> None:
        self.path = path

    def load(self) -> CacheRecord:
        if self.path is None or not self.path.exists():
            return CacheRecord()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Failed to read cache file %s: %s", self.path, exc)
            return CacheRecord()
        if not isinstance(data, dict):
            logger.warning("Cache file %s does not hold an object, ignoring it", self.path)
            return CacheRecord()
        return CacheRecord.from_dict(data)

    def save(self, record: CacheRecord) -> bool:
        """Write *record* atomically; return False (after logging) on failure."""
        if self.path is None:
            return False
        tmp_path = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(record.to_dict(), indent=2), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as exc:
            logger.error("Failed to write cache file %s: %s", self.path, exc)
            return False
        return True


def example_config() -> str:
    """Return a commented ``cforge.toml`` users can start from."""
    return "\n".join(
        [
            "# convo-forge configuration",
            'knowledge_dir = ""',
            "token_estimation = true",
            "max_tokens = 1024",
            "",
            "[default_prefixes]",
            '# switch = "work/"',
            "",
            "[[profiles]]",
            'name = "local"',
            'provider = "ollama"',
            "",
            "[[profiles.models]]",
            'model = "qwen3:4b"',
            'model_type = "fast"',
            "",
        ]
    )


def write_example_config(path: Path) -> bool:
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(example_config(), encoding="utf-8")
    return True
