"""Version ordering used to decide whether remote metadata is newer.

Versions compare as dot-separated segments, left to right. Each segment is a
number plus an optional suffix; missing segments count as ``0``. A segment
carrying a suffix (``3-beta``, ``0-post1``) sorts below the same number
without one, and two suffixes compare naturally (``a9`` < ``a10``). Empty or
missing versions sort lowest.

Pre-release spellings that ``packaging`` understands (``1.0-beta``,
``1.0.0.RC1``) are first rewritten to their canonical form so equivalent
spellings compare equal. Post, dev, local and epoch forms are left as written.
"""

from __future__ import annotations

import re
from itertools import zip_longest

from packaging.version import InvalidVersion, Version

_SEGMENT = re.compile(r"^(\d*)(.*)$")
_CHUNK = re.compile(r"\d+|\D+")

# (number, suffix key); an empty suffix key (1,) outranks any (0, ...) suffix.
Segment = tuple[int, tuple]

_ZERO: Segment = (0, (1,))


def compare_versions(left: str | None, right: str | None) -> int:
    """Return -1, 0 or 1 as ``left`` is lower, equal or higher than ``right``."""

    left_key = version_key(left)
    right_key = version_key(right)
    if not left_key or not right_key:
        return (bool(left_key) > bool(right_key)) - (bool(left_key) < bool(right_key))

    for lhs, rhs in zip_longest(left_key, right_key, fillvalue=_ZERO):
        if lhs != rhs:
            return -1 if lhs < rhs else 1
    return 0


def is_newer(candidate: str | None, installed: str | None) -> bool:
    return compare_versions(candidate, installed) > 0


def version_key(version: str | None) -> list[Segment]:
    version = (version or "").strip()
    if version[:1] in {"v", "V"}:
        version = version[1:]
    if not version:
        return []
    return [_segment(chunk) for chunk in _canonical(version).split(".")]


def _canonical(version: str) -> str:
    try:
        parsed = Version(version)
    except InvalidVersion:
        return version
    if parsed.is_postrelease or parsed.is_devrelease or parsed.local or parsed.epoch:
        return version
    return str(parsed)


def _segment(chunk: str) -> Segment:
    match = _SEGMENT.match(chunk.strip())
    digits, suffix = match.groups() if match else ("", chunk)
    number = int(digits) if digits else 0
    if not suffix:
        return (number, (1,))
    parts = tuple(
        (1, int(part), "") if part.isdigit() else (0, 0, part)
        for part in _CHUNK.findall(suffix.lower())
    )
    return (number, (0, parts))
