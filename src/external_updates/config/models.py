"""Settings schema for tracked components."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

VersionSource = Literal["header", "distribution", "static"]


class LoggingSettings(BaseModel):
    level: Literal["off", "error", "warning", "info", "debug"] = Field(default="warning")
    file: str | None = Field(default=None, description="JSONL sink; defaults to the state dir")


class TrackerSettings(BaseModel):
    metadata_url: str
    component_id: str
    slug: str = Field(default="")
    version_source: VersionSource = Field(default="header")
    components_root: str = Field(default_factory=lambda: str(Path.cwd()))
    installed_version: str | None = Field(default=None, description="Used by the static source")
    check_period_hours: float = Field(default=12, ge=0)
    option_name: str | None = Field(default=None)
    timeout: float = Field(default=10.0, gt=0)
    debug_mode: bool = Field(default=False)

    @field_validator("metadata_url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("metadata_url must be an http(s) URL")
        return value

    @field_validator("components_root")
    @classmethod
    def validate_root(cls, value: str) -> str:
        return str(Path(value).expanduser())

    @model_validator(mode="after")
    def derive_slug(self) -> "TrackerSettings":
        # 'my-plugin/my-plugin.php' -> 'my-plugin'
        if not self.slug:
            if self.version_source == "header":
                self.slug = Path(self.component_id).stem
            else:
                self.slug = self.component_id
        return self


class AppSettings(BaseModel):
    schema_version: int = Field(default=1)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    state_db: str | None = Field(default=None, description="SQLite option store path")
    trackers: list[TrackerSettings] = Field(default_factory=list)

    def tracker(self, slug: str) -> TrackerSettings | None:
        for tracker in self.trackers:
            if tracker.slug == slug:
                return tracker
        return None
