"""Model profiles: named providers offering models at three speed/quality tiers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import ConfigurationError
from ..utils.ansi import Ansi, WARNING_TAG, console, escape

logger = logging.getLogger(__name__)


class Tier(str, Enum):
    FAST = "fast"
    BALANCED = "balanced"
    DEEP = "deep"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str) -> "Tier":
        """Return the tier named *value* (case-insensitive) or raise ``ValueError``."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid = ", ".join(f"'{t.value}'" for t in cls)
            raise ValueError(f"Invalid model type '{value}'. Valid model types are {valid}") from None


DEFAULT_TIER = Tier.BALANCED


@dataclass(frozen=True)
class Model:
    model: str
    tier: Tier = DEFAULT_TIER
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Model":
        if "model" not in data:
            raise ConfigurationError(f"Model entry is missing the 'model' field: {data}")
        try:
            tier = Tier.parse(str(data.get("model_type", DEFAULT_TIER.value)))
        except ValueError as exc:
            raise ConfigurationError(f"Model '{data['model']}': {exc}") from exc
        return cls(model=str(data["model"]), tier=tier, description=data.get("description"))


@dataclass(frozen=True)
class Profile:
    name: str
    provider: str
    models: List[Model] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Profile":
        for key in ("name", "provider"):
            if key not in data:
                raise ConfigurationError(f"Profile entry is missing the '{key}' field: {data}")
        models = [Model.from_dict(m) for m in data.get("models", [])]
        return cls(name=str(data["name"]), provider=str(data["provider"]), models=models)

    def validate(self) -> None:
        if not self.models:
            raise ConfigurationError(f"Profile {self.name} has no models")
        seen: List[Tier] = []
        for model in self.models:
            if model.tier in seen:
                raise ConfigurationError(
                    f"Profile {self.name} has a duplicate model type: {model.tier}"
                )
            seen.append(model.tier)

    def maybe_model_for_tier(self, tier: Tier) -> Optional[Model]:
        return next((m for m in self.models if m.tier == tier), None)

    def model_for_tier(self, tier: Tier) -> Model:
        """Return the model for *tier*, falling back to the first model with a warning."""
        model = self.maybe_model_for_tier(tier)
        if model is not None:
            return model
        fallback = self.models[0]
        logger.warning(
            "Profile %s has no %s model, using %s (%s)", self.name, tier, fallback.model, fallback.tier
        )
        console.print(
            f"{WARNING_TAG} Model type '{tier}' not found in profile '{escape(self.name)}', "
            f"using '{fallback.tier}' ({escape(fallback.model)}) instead"
        )
        return fallback

    def render_models(self, current_tier: Optional[Tier] = None, indent: str = "  ") -> List[str]:
        lines = []
        for model in self.models:
            marker = " <- current" if model.tier == current_tier else ""
            colour = Ansi.FG_GREEN if marker else Ansi.FG_CYAN
            label = Ansi.style(f"{model.tier.value:<9}", colour, Ansi.BOLD)
            line = f"{indent}{label} {escape(model.model)}{marker}"
            if model.description:
                line += f"\n{indent}          {escape(model.description)}"
            lines.append(line)
        return lines


class ProfileCatalog:
    """All configured profiles in the order the user wrote them."""

    def __init__(self, profiles: List[Profile]) -> None:
        self.profiles = list(profiles)

    @classmethod
    def from_list(cls, entries: List[Dict[str, Any]]) -> "ProfileCatalog":
        return cls([Profile.from_dict(entry) for entry in entries])

    def __iter__(self):
        return iter(self.profiles)

    def __len__(self) -> int:
        return len(self.profiles)

    @property
    def first(self) -> Profile:
        return self.profiles[0]

    def validate(self) -> None:
        """Raise ``ConfigurationError`` describing the first problem found."""
        if not self.profiles:
            raise ConfigurationError("No profiles defined")
        names: List[str] = []
        for profile in self.profiles:
            if profile.name in names:
                raise ConfigurationError(f"Profile name {profile.name} is not unique")
            names.append(profile.name)
            profile.validate()

    def find_profile(self, name: str) -> Profile:
        """Return the profile called *name*, or the first profile if there is none."""
        for profile in self.profiles:
            if profile.name == name:
                return profile
        fallback = self.first
        logger.warning("Profile %s not found, falling back to %s", name, fallback.name)
        console.print(
            f"{WARNING_TAG} Profile '{escape(name)}' not found, using '{escape(fallback.name)}' instead"
        )
        return fallback

    def maybe_profile(self, name: str) -> Optional[Profile]:
        wanted = name.lower()
        return next((p for p in self.profiles if p.name.lower() == wanted), None)

    def render(self, current_profile: str, current_tier: Optional[Tier]) -> List[str]:
        lines = []
        for profile in self.profiles:
            active = profile.name == current_profile
            marker = " <- current" if active else ""
            colour = Ansi.FG_GREEN if active else Ansi.FG_MAGENTA
            lines.append(f"{Ansi.style(profile.name, colour, Ansi.BOLD)} ({escape(profile.provider)}){marker}")
            lines.extend(profile.render_models(current_tier if active else None))
            lines.append("")
        return lines


def default_profiles() -> List[Profile]:
    return [
        Profile(
            name="local",
            provider="ollama",
            models=[Model(model="qwen3:4b", tier=Tier.FAST)],
        )
    ]
