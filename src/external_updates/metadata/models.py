"""Typed records for remote component metadata."""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_TEXT_FIELDS = (
    "name",
    "slug",
    "homepage",
    "download_url",
    "author",
    "author_homepage",
    "requires",
    "tested",
    "last_updated",
    "upgrade_notice",
)


def _as_text(value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "1" if value else ""
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, sort_keys=True)


def _as_number(value: Any, cast: type) -> Any:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", "")
    try:
        return cast(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


class PackageInfo(BaseModel):
    """Full metadata for a remote component, as served by its info endpoint.

    Only ``name`` and ``version`` are required. Optional fields with an
    unexpected type are coerced to text, or dropped to ``None`` when they
    cannot be read as the number they describe.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    slug: str = ""
    id: int | str = 0
    homepage: str | None = None
    download_url: str | None = None
    author: str | None = None
    author_homepage: str | None = None
    requires: str | None = None
    tested: str | None = None
    rating: float | None = None
    num_ratings: int | None = None
    downloaded: int | None = None
    last_updated: str | None = None
    sections: dict[str, str] | None = None
    upgrade_notice: str | None = None
    extra: dict[str, str] = Field(default_factory=dict)

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> str | None:
        return _as_text(value)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> int | str:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return _as_text(value) or 0

    @field_validator("rating", mode="before")
    @classmethod
    def coerce_rating(cls, value: Any) -> float | None:
        return _as_number(value, float)

    @field_validator("num_ratings", "downloaded", mode="before")
    @classmethod
    def coerce_count(cls, value: Any) -> int | None:
        return _as_number(value, int)

    @field_validator("sections", mode="before")
    @classmethod
    def coerce_sections(cls, value: Any) -> dict[str, str] | None:
        if not isinstance(value, dict):
            return None
        return {str(key): _as_text(text) or "" for key, text in value.items()}


class UpdateRecord(BaseModel):
    """The subset of :class:`PackageInfo` needed to offer an update."""

    model_config = ConfigDict(frozen=True)

    id: int | str = 0
    slug: str = ""
    version: str = ""
    homepage: str | None = None
    download_url: str | None = None
    upgrade_notice: str | None = None

    @classmethod
    def from_package_info(cls, info: PackageInfo) -> "UpdateRecord":
        return cls(
            id=info.id,
            slug=info.slug,
            version=info.version,
            homepage=info.homepage,
            download_url=info.download_url,
            upgrade_notice=info.upgrade_notice,
        )

    def to_host_format(self) -> dict[str, Any]:
        """Shape used in the host's pending-updates list."""

        payload: dict[str, Any] = {
            "id": self.id,
            "slug": self.slug,
            "new_version": self.version,
            "url": self.homepage,
            "package": self.download_url,
        }
        if self.upgrade_notice:
            payload["upgrade_notice"] = self.upgrade_notice
        return payload


class InfoView(BaseModel):
    """Detail-page presentation of a component."""

    model_config = ConfigDict(frozen=True)

    name: str
    slug: str | None
    version: str
    requires: str | None
    tested: str | None
    rating: float | None
    upgrade_notice: str | None
    num_ratings: int | None
    downloaded: int | None
    homepage: str | None
    last_updated: str | None
    download_link: str | None
    author: str | None
    sections: dict[str, str]
