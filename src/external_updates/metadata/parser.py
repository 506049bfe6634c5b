"""Validation of raw metadata payloads and presentation transforms."""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from external_updates.errors import ParseError, ParseErrorKind
from external_updates.metadata.models import InfoView, PackageInfo

REQUIRED_FIELDS = ("name", "version")

_KNOWN_FIELDS = frozenset(PackageInfo.model_fields) - {"extra"}

# Copied verbatim into the detail view.
_SAME_FORMAT_FIELDS = (
    "name",
    "slug",
    "version",
    "requires",
    "tested",
    "rating",
    "upgrade_notice",
    "num_ratings",
    "downloaded",
    "homepage",
    "last_updated",
)


def parse_package_info(raw: bytes | str) -> PackageInfo:
    """Build a :class:`PackageInfo` from a JSON metadata document.

    Raises :class:`ParseError` when the payload is not a non-empty JSON object
    or when ``name`` or ``version`` is missing or empty. Optional fields of the
    wrong type are coerced by the model rather than rejected. Unknown keys are
    kept in ``extra`` as strings.
    """

    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ParseError(ParseErrorKind.MALFORMED, f"metadata is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict) or not payload:
        raise ParseError(ParseErrorKind.MALFORMED, "metadata must be a non-empty JSON object")

    missing = [key for key in REQUIRED_FIELDS if not _present(payload.get(key))]
    if missing:
        raise ParseError(
            ParseErrorKind.MISSING_REQUIRED_FIELDS,
            f"metadata does not contain the required keys: {', '.join(missing)}",
        )

    known: dict[str, Any] = {}
    extra: dict[str, str] = {}
    for key, value in payload.items():
        if key in _KNOWN_FIELDS:
            known[key] = value
        else:
            extra[str(key)] = value if isinstance(value, str) else json.dumps(value, sort_keys=True)

    known["version"] = str(known["version"]).strip()
    if known.get("slug") is None:
        known.pop("slug", None)
    if known.get("id") is None:
        known.pop("id", None)

    try:
        return PackageInfo.model_validate({**known, "extra": extra})
    except ValidationError as exc:
        raise ParseError(ParseErrorKind.MALFORMED, f"metadata has invalid fields: {exc}") from exc


def to_info_view(info: PackageInfo) -> InfoView:
    data: dict[str, Any] = {field: getattr(info, field) for field in _SAME_FORMAT_FIELDS}
    data["slug"] = info.slug or None
    data["download_link"] = info.download_url

    if info.author_homepage:
        data["author"] = f'<a href="{info.author_homepage}">{info.author or ""}</a>'
    else:
        data["author"] = info.author

    data["sections"] = dict(info.sections) if info.sections is not None else {"description": ""}
    return InfoView.model_validate(data)


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (dict, list)):
        return False
    return bool(value)
