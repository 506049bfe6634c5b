"""Structured JSONL runtime logging for update checks.

Every event is one JSON object per line with ``ts``, ``level``, ``event`` and
``pid`` keys plus whatever fields the caller passes. Engines log through a
:class:`BoundLogger` so each event carries the component it concerns, which
is what :func:`read_events` filters on.
"""

from __future__ import annotations

import json
import os
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Iterator, Literal

from external_updates.paths import runtime_log_path

LogLevel = Literal["off", "error", "warning", "info", "debug"]

LEVEL_ENV = "EXTERNAL_UPDATES_LOG_LEVEL"
FILE_ENV = "EXTERNAL_UPDATES_LOG_FILE"

_SEVERITY: dict[str, int] = {
    "debug": 10,
    "info": 20,
    "warning": 30,
    "error": 40,
    "off": 100,
}
_ALIASES = {"warn": "warning", "none": "off", "disabled": "off", "0": "off"}

_runtime_logger: "RuntimeLogger | None" = None


def parse_level(value: str | None, default: LogLevel = "warning") -> LogLevel:
    normalized = (value or "").strip().lower()
    normalized = _ALIASES.get(normalized, normalized)
    if normalized in _SEVERITY:
        return normalized  # type: ignore[return-value]
    return default


def resolve_log_file(path: str | Path | None) -> Path:
    if path is None:
        return runtime_log_path()
    return Path(path).expanduser().resolve()


@dataclass(slots=True)
class RuntimeLogger:
    level: LogLevel
    sink_path: Path
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def enabled(self, level: str) -> bool:
        threshold = _SEVERITY.get(self.level, _SEVERITY["warning"])
        if threshold >= _SEVERITY["off"]:
            return False
        return _SEVERITY.get(level, _SEVERITY["debug"]) >= threshold

    def log(self, level: str, event: str, **fields: Any) -> None:
        if not self.enabled(level):
            return
        record = {
            **fields,
            "ts": datetime.now(UTC).isoformat(),
            "level": level,
            "event": event,
            "pid": os.getpid(),
        }
        self._write(json.dumps(record, sort_keys=True, default=str))

    def _write(self, line: str) -> None:
        with self._lock:
            self.sink_path.parent.mkdir(parents=True, exist_ok=True)
            with self.sink_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")

    def bind(self, **context: Any) -> "BoundLogger":
        """Return a view of this logger that adds ``context`` to every event."""

        return BoundLogger(self, dict(context))

    def debug(self, event: str, **fields: Any) -> None:
        self.log("debug", event, **fields)

    def info(self, event: str, **fields: Any) -> None:
        self.log("info", event, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        self.log("warning", event, **fields)

    def error(self, event: str, **fields: Any) -> None:
        self.log("error", event, **fields)


@dataclass(slots=True, frozen=True)
class BoundLogger:
    target: RuntimeLogger
    context: dict[str, Any]

    def bind(self, **context: Any) -> "BoundLogger":
        return BoundLogger(self.target, {**self.context, **context})

    def log(self, level: str, event: str, **fields: Any) -> None:
        # Explicit fields win over bound context.
        self.target.log(level, event, **{**self.context, **fields})

    def debug(self, event: str, **fields: Any) -> None:
        self.log("debug", event, **fields)

    def info(self, event: str, **fields: Any) -> None:
        self.log("info", event, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        self.log("warning", event, **fields)

    def error(self, event: str, **fields: Any) -> None:
        self.log("error", event, **fields)


class _DisabledLogger(RuntimeLogger):
    def __init__(self) -> None:
        super().__init__(level="off", sink_path=Path(os.devnull))

    def log(self, level: str, event: str, **fields: Any) -> None:  # noqa: ARG002
        return


def disabled_logger() -> RuntimeLogger:
    return _DisabledLogger()


def iter_events(path: str | Path) -> Iterator[dict[str, Any]]:
    """Yield decoded events from a JSONL sink, skipping lines that are not objects."""

    file_path = Path(path)
    if not file_path.exists():
        return
    with file_path.open("r", encoding="utf-8", errors="replace") as handle:
        for line in handle:
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(record, dict):
                yield record


def read_events(
    path: str | Path,
    *,
    limit: int | None = None,
    level: str | None = None,
    **match: Any,
) -> list[dict[str, Any]]:
    """Return the newest events from ``path`` that equal every ``match`` field.

    ``level`` keeps events at or above that severity. ``limit`` keeps only the
    last N matching events, oldest first.
    """

    threshold = _SEVERITY[parse_level(level, default="debug")] if level else 0
    selected: deque[dict[str, Any]] = deque(maxlen=limit if limit and limit > 0 else None)
    for record in iter_events(path):
        if _SEVERITY.get(str(record.get("level")), 0) < threshold:
            continue
        if all(record.get(key) == value for key, value in match.items()):
            selected.append(record)
    return list(selected)


def configure_runtime_logging(
    *,
    level: str | None = None,
    log_file: str | Path | None = None,
) -> RuntimeLogger:
    """Install the process-wide logger; arguments override the environment."""

    global _runtime_logger

    effective_level = parse_level(level or os.getenv(LEVEL_ENV))
    if effective_level == "off":
        _runtime_logger = _DisabledLogger()
        return _runtime_logger

    sink = resolve_log_file(log_file or os.getenv(FILE_ENV))
    _runtime_logger = RuntimeLogger(level=effective_level, sink_path=sink)
    _runtime_logger.info("logging.configured", configured_level=effective_level, sink_path=str(sink))
    return _runtime_logger


def get_runtime_logger() -> RuntimeLogger:
    if _runtime_logger is None:
        return configure_runtime_logging()
    return _runtime_logger
