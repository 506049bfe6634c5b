"""Installed-version lookups for tracked components.

Every oracle answers ``installed_version(component_id)`` with a version string
or ``None`` when the component cannot be located or carries no readable
version. Missing components are an expected outcome, not an error.
"""

from __future__ import annotations

import re
from importlib import metadata
from pathlib import Path
from typing import Mapping, Protocol

HEADER_READ_BYTES = 8192

_VERSION_HEADER = re.compile(r"^[ \t/*#@]*Version:(.*)$", re.MULTILINE | re.IGNORECASE)


class VersionOracle(Protocol):
    def installed_version(self, component_id: str) -> str | None: ...


class HeaderVersionOracle:
    """Reads a ``Version:`` header near the top of a component's main file."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def installed_version(self, component_id: str) -> str | None:
        path = self.root / component_id
        try:
            with path.open("r", encoding="utf-8", errors="replace") as handle:
                head = handle.read(HEADER_READ_BYTES)
        except OSError:
            return None

        match = _VERSION_HEADER.search(head)
        if match is None:
            return None
        version = match.group(1).strip().rstrip("*/").strip()
        return version or None


class DistributionVersionOracle:
    """Looks up an installed Python distribution by name."""

    def installed_version(self, component_id: str) -> str | None:
        try:
            version = metadata.version(component_id)
        except metadata.PackageNotFoundError:
            return None
        return version or None


class StaticVersionOracle:
    def __init__(self, versions: Mapping[str, str] | None = None) -> None:
        self.versions: dict[str, str] = dict(versions or {})

    def set(self, component_id: str, version: str | None) -> None:
        if version is None:
            self.versions.pop(component_id, None)
        else:
            self.versions[component_id] = version

    def installed_version(self, component_id: str) -> str | None:
        return self.versions.get(component_id) or None
