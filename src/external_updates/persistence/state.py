"""Persisted bookkeeping for periodic update checks."""

from __future__ import annotations

import json
import sqlite3

from pydantic import AliasChoices, BaseModel, Field, ValidationError

from external_updates.errors import StoreError
from external_updates.metadata.models import UpdateRecord
from external_updates.persistence.options import OptionStore

STATE_SCHEMA_VERSION = 1


class CheckState(BaseModel):
    """Last check time, the installed version it saw, and any pending update.

    Older payloads spelled the first two keys ``lastCheck`` and
    ``checkedVersion``; both spellings load. Unknown keys are ignored and
    missing ones fall back to their zero values.
    """

    schema_version: int = STATE_SCHEMA_VERSION
    last_check: float = Field(default=0.0, validation_alias=AliasChoices("last_check", "lastCheck"))
    checked_version: str = Field(
        default="",
        validation_alias=AliasChoices("checked_version", "checkedVersion"),
    )
    update: UpdateRecord | None = None


class CheckStateStore:
    def __init__(self, options: OptionStore) -> None:
        self.options = options

    def load(self, key: str) -> CheckState | None:
        try:
            raw = self.options.get(key)
        except (OSError, sqlite3.Error) as exc:
            raise StoreError(f"cannot read option {key}: {exc}") from exc
        if not raw:
            return None

        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise StoreError(f"option {key} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreError(f"option {key} does not hold a check state object")

        try:
            return CheckState.model_validate(data)
        except ValidationError as exc:
            raise StoreError(f"option {key} holds an unreadable check state: {exc}") from exc

    def save(self, key: str, state: CheckState) -> None:
        payload = state.model_dump_json().encode("utf-8")
        try:
            self.options.set(key, payload)
        except (OSError, sqlite3.Error) as exc:
            raise StoreError(f"cannot write option {key}: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self.options.delete(key)
        except (OSError, sqlite3.Error) as exc:
            raise StoreError(f"cannot delete option {key}: {exc}") from exc
