"""Exception taxonomy for the update-check pipeline."""

from __future__ import annotations

from enum import Enum


class UpdateCheckError(Exception):
    """Base class for everything the engine catches at its boundary."""


class NoInstalledVersion(UpdateCheckError):
    def __init__(self, component_id: str) -> None:
        super().__init__(f"installed version unknown for {component_id}")
        self.component_id = component_id


class FetchError(UpdateCheckError):
    def __init__(self, url: str, message: str) -> None:
        super().__init__(message)
        self.url = url


class TransportError(FetchError):
    pass


class BadStatusError(FetchError):
    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(url, f"HTTP response code is {status_code} (expected: 200)")
        self.status_code = status_code


class EmptyBodyError(FetchError):
    def __init__(self, url: str) -> None:
        super().__init__(url, "response body is empty")


class ParseErrorKind(str, Enum):
    MALFORMED = "malformed"
    MISSING_REQUIRED_FIELDS = "missing_required_fields"


class ParseError(UpdateCheckError):
    def __init__(self, kind: ParseErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class FilterError(UpdateCheckError):
    def __init__(self, stage: str, cause: Exception) -> None:
        super().__init__(f"{stage} filter failed: {type(cause).__name__}: {cause}")
        self.stage = stage


class StoreError(UpdateCheckError):
    pass


class SettingsError(Exception):
    pass
