"""Mutable session state: active profile, model, transcript and context file."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional

from .config import CacheRecord, CacheStore
from .profiles import Model, Profile, ProfileCatalog, Tier
from ..utils.ansi import ERROR_TAG, WARNING_TAG, console, escape

logger = logging.getLogger(__name__)


class SessionState:
    """Which profile, model, transcript and context file are currently active.

    Every ``switch_*`` method either applies the whole change and persists it
    through the :class:`CacheStore`, or reports the problem and leaves the
    state exactly as it was.
    """

    def __init__(
        self,
        catalog: ProfileCatalog,
        cache: CacheRecord,
        store: CacheStore,
        active_profile: Profile,
        active_model: Model,
        active_history_path: Optional[str] = None,
        active_context_path: Optional[Path] = None,
    ) -> None:
        self.catalog = catalog
        self.cache = cache
        self.store = store
        self.active_profile = active_profile
        self.active_model = active_model
        self.active_history_path = active_history_path
        self.active_context_path = active_context_path

    @classmethod
    def from_cache(cls, catalog: ProfileCatalog, store: CacheStore) -> "SessionState":
        """Restore the last used profile and tier, falling back to catalog defaults."""
        cache = store.load()
        profile = catalog.find_profile(cache.last_profile_name or catalog.first.name)
        tier = cache.profile_models.get(profile.name, profile.models[0].tier)
        model = profile.model_for_tier(tier)

        cache.last_profile_name = profile.name
        cache.profile_models[profile.name] = model.tier
        store.save(cache)

        logger.info("Session starts with profile %s, model %s (%s)", profile.name, model.model, model.tier)
        return cls(
            catalog=catalog,
            cache=cache,
            store=store,
            active_profile=profile,
            active_model=model,
            active_history_path=cache.last_history_file,
        )

    @property
    def tier_by_profile_name(self) -> Dict[str, Tier]:
        return self.cache.profile_models

    def snapshot(self) -> Dict[str, object]:
        """Plain-data view of the state, handy for comparisons and debugging."""
        return {
            "active_profile": self.active_profile.name,
            "active_model": self.active_model.model,
            "active_tier": self.active_model.tier.value,
            "active_history_path": self.active_history_path,
            "active_context_path": str(self.active_context_path) if self.active_context_path else None,
            "cache": self.cache.to_dict(),
        }

    def _persist(self) -> None:
        if not self.store.save(self.cache):
            console.print(f"{WARNING_TAG} Could not save session defaults to the cache file")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def switch_profile(self, name: str) -> bool:
        profile = self.catalog.maybe_profile(name)
        if profile is None:
            console.print(f"{ERROR_TAG} No profile found with name: {escape(name)}")
            console.print("Usage: :profile <profile>  (run :profile to list profiles)")
            return False

        remembered = self.cache.profile_models.get(profile.name)
        model = profile.maybe_model_for_tier(remembered) if remembered else None
        if model is None:
            model = profile.models[0]

        self.active_profile = profile
        self.active_model = model
        self.cache.last_profile_name = profile.name
        self.cache.profile_models[profile.name] = model.tier
        self._persist()

        logger.info("Switched to profile %s, model %s", profile.name, model.model)
        console.print(
            f"Switched to profile '{escape(profile.name)}' and model '{escape(model.model)}' ({model.tier})"
        )
        return True

    def switch_model(self, tier: Tier) -> bool:
        model = self.active_profile.maybe_model_for_tier(tier)
        if model is None:
            console.print(
                f"{ERROR_TAG} Model of type {tier} not found in profile {escape(self.active_profile.name)}"
            )
            for line in self.active_profile.render_models(self.active_model.tier):
                console.print(line)
            return False

        self.active_model = model
        self.cache.profile_models[self.active_profile.name] = model.tier
        self._persist()

        logger.info("Switched to model %s (%s)", model.model, model.tier)
        console.print(f"Switched to model: {escape(model.model)} ({model.tier})")
        return True

    def switch_history(self, path: str) -> None:
        self.active_history_path = path
        self.cache.last_history_file = path
        self._persist()

    def switch_context(self, path: Optional[Path]) -> None:
        self.active_context_path = path
        if path is None:
            console.print("Removed context file")
        else:
            console.print(f"Updated context file: {escape(str(path))}")
