"""Load/save tracker settings."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import ValidationError

from external_updates.config.models import AppSettings, TrackerSettings
from external_updates.paths import settings_path


class SettingsStore:
    def __init__(self, path: Path | None = None) -> None:
        self.path = path or settings_path()

    def load(self) -> AppSettings:
        if not self.path.exists():
            settings = AppSettings()
            self.save(settings)
            return settings

        raw = self.path.read_text(encoding="utf-8")
        try:
            data = json.loads(raw)
            return AppSettings.model_validate(data)
        except (json.JSONDecodeError, ValidationError):
            # Fall back to defaults while preserving corrupt payload for debugging.
            backup = self.path.with_suffix(".corrupt.json")
            backup.write_text(raw, encoding="utf-8")
            settings = AppSettings()
            self.save(settings)
            return settings

    def save(self, settings: AppSettings) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(settings.model_dump(mode="json"), indent=2, sort_keys=True)
        self.path.write_text(f"{payload}\n", encoding="utf-8")

    def add_tracker(self, tracker: TrackerSettings) -> AppSettings:
        settings = self.load()
        trackers = [item for item in settings.trackers if item.slug != tracker.slug]
        trackers.append(tracker)
        updated = settings.model_copy(update={"trackers": trackers})
        self.save(updated)
        return updated

    def remove_tracker(self, slug: str) -> AppSettings:
        settings = self.load()
        trackers = [item for item in settings.trackers if item.slug != slug]
        if len(trackers) == len(settings.trackers):
            raise KeyError(f"Unknown tracker: {slug}")
        updated = settings.model_copy(update={"trackers": trackers})
        self.save(updated)
        return updated
