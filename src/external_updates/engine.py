"""Update-check state machine for one tracked component.

The engine decides when a check is due, runs the fetch -> parse -> project
pipeline, and keeps one :class:`CheckState` per component in an option store.
Failures never escape :meth:`UpdateCheckEngine.run_check`; they are reported
through the runtime logger and leave the cached update as it was.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Literal

from external_updates.components.oracle import VersionOracle
from external_updates.errors import (
    FilterError,
    NoInstalledVersion,
    StoreError,
    UpdateCheckError,
)
from external_updates.metadata.models import InfoView, PackageInfo, UpdateRecord
from external_updates.metadata.parser import parse_package_info, to_info_view
from external_updates.persistence.state import CheckState, CheckStateStore
from external_updates.remote.fetcher import (
    DEFAULT_TIMEOUT,
    FetchResult,
    MetadataFetcher,
    default_request_options,
)
from external_updates.runtime_logging import BoundLogger, RuntimeLogger, get_runtime_logger
from external_updates.scheduling import Scheduler
from external_updates.versioning import is_newer

OPTION_PREFIX = "external_updates-"
HOOK_PREFIX = "check_updates-"

EngineStatus = Literal["unchecked", "fresh", "stale", "checking"]

QueryArgFilter = Callable[[dict[str, str]], dict[str, str]]
RequestOptionFilter = Callable[[dict[str, Any]], dict[str, Any]]
ResultFilter = Callable[[PackageInfo | None, FetchResult | None], PackageInfo | None]

_slug_locks: dict[str, threading.Lock] = {}
_slug_locks_guard = threading.Lock()


def _slug_lock(slug: str) -> threading.Lock:
    with _slug_locks_guard:
        return _slug_locks.setdefault(slug, threading.Lock())


class CheckOutcome(str, Enum):
    UPDATE_AVAILABLE = "update_available"
    UP_TO_DATE = "up_to_date"
    FAILED = "failed"
    SKIPPED_NO_VERSION = "skipped_no_version"
    STORE_FAILED = "store_failed"
    ALREADY_RUNNING = "already_running"


@dataclass(slots=True, frozen=True)
class CheckReport:
    outcome: CheckOutcome
    state: CheckState | None
    error: str | None = None


class UpdateCheckEngine:
    def __init__(
        self,
        *,
        slug: str,
        component_id: str,
        metadata_url: str,
        oracle: VersionOracle,
        fetcher: MetadataFetcher,
        state_store: CheckStateStore,
        check_period_hours: float = 12,
        option_name: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        debug_mode: bool = False,
        logger: RuntimeLogger | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not slug:
            raise ValueError("slug must not be empty")
        self.slug = slug
        self.component_id = component_id
        self.metadata_url = metadata_url
        self.oracle = oracle
        self.fetcher = fetcher
        self.state_store = state_store
        self.check_period_hours = max(0.0, float(check_period_hours))
        self.option_name = option_name or f"{OPTION_PREFIX}{slug}"
        self.timeout = timeout
        self.debug_mode = debug_mode
        self.logger = logger or get_runtime_logger()
        self._log: BoundLogger = self.logger.bind(slug=slug, component_id=component_id)
        self._clock = clock
        self._query_arg_filters: list[QueryArgFilter] = []
        self._request_option_filters: list[RequestOptionFilter] = []
        self._result_filters: list[ResultFilter] = []

    @property
    def hook_name(self) -> str:
        return f"{HOOK_PREFIX}{self.slug}"

    @property
    def interval_seconds(self) -> float:
        return self.check_period_hours * 3600

    @property
    def enabled(self) -> bool:
        return self.check_period_hours > 0

    # Host wiring

    def install_hooks(self, scheduler: Scheduler) -> None:
        """Register the periodic check, or clear it when checks are disabled."""

        if not self.enabled:
            scheduler.clear(self.hook_name)
            self._log.debug("engine.hooks.disabled")
            return

        if not scheduler.is_scheduled(self.hook_name):
            scheduler.schedule(self.hook_name, self.interval_seconds, self.maybe_check)
        scheduler.on_deactivate(self.component_id, lambda: scheduler.clear(self.hook_name))
        self._log.debug(
            "engine.hooks.installed",
            hook=self.hook_name,
            interval_seconds=self.interval_seconds,
        )

    def add_query_arg_filter(self, callback: QueryArgFilter) -> None:
        self._query_arg_filters.append(callback)

    def add_http_request_arg_filter(self, callback: RequestOptionFilter) -> None:
        self._request_option_filters.append(callback)

    def add_result_filter(self, callback: ResultFilter) -> None:
        self._result_filters.append(callback)

    # State

    def installed_version(self) -> str | None:
        version = self.oracle.installed_version(self.component_id)
        if version is None:
            self._report("engine.installed_version.unknown")
        return version

    def load_state(self) -> CheckState | None:
        try:
            return self.state_store.load(self.option_name)
        except StoreError as exc:
            self._report("engine.state.unreadable", option=self.option_name, error=str(exc))
            return None

    def forget(self) -> None:
        self.state_store.delete(self.option_name)
        self._log.info("engine.state.deleted", option=self.option_name)

    def is_due(self, now: float | None = None) -> bool:
        if not self.enabled:
            return False
        state = self.load_state()
        if state is None:
            return True
        return self._now(now) - state.last_check >= self.interval_seconds

    def status(self, now: float | None = None) -> EngineStatus:
        if _slug_lock(self.slug).locked():
            return "checking"
        state = self.load_state()
        if state is None:
            return "unchecked"
        if self._now(now) - state.last_check >= self.interval_seconds:
            return "stale"
        return "fresh"

    # Checks

    def maybe_check(self, now: float | None = None) -> CheckReport | None:
        """Run a check only when the configured interval has elapsed."""

        if not self.is_due(now):
            return None
        return self.run_check(now)

    def run_check(self, now: float | None = None) -> CheckReport:
        lock = _slug_lock(self.slug)
        if not lock.acquire(blocking=False):
            self._log.debug("engine.check.already_running")
            return CheckReport(outcome=CheckOutcome.ALREADY_RUNNING, state=None)
        try:
            return self._run_check(self._now(now))
        finally:
            lock.release()

    def _run_check(self, now: float) -> CheckReport:
        installed = self.oracle.installed_version(self.component_id)
        if installed is None:
            error = NoInstalledVersion(self.component_id)
            self._report("engine.check.skipped_no_version", error=str(error))
            return CheckReport(
                outcome=CheckOutcome.SKIPPED_NO_VERSION,
                state=None,
                error=str(error),
            )

        self._log.debug("engine.check.start", installed_version=installed)
        state = self.load_state() or CheckState()
        state = state.model_copy(update={"last_check": now, "checked_version": installed})

        # Persisted before the request so a hung fetch still counts as a check.
        try:
            self.state_store.save(self.option_name, state)
        except StoreError as exc:
            self._report("engine.check.store_failed", error=str(exc))
            return CheckReport(outcome=CheckOutcome.STORE_FAILED, state=state, error=str(exc))

        error: str | None = None
        try:
            info = self._request_package_info({"checking_for_updates": "1"})
        except UpdateCheckError as exc:
            error = str(exc)
            outcome = CheckOutcome.FAILED
            self._report(
                "engine.check.failed",
                url=getattr(exc, "url", self.metadata_url),
                error_type=type(exc).__name__,
                error=error,
            )
        else:
            record = UpdateRecord.from_package_info(info)
            if is_newer(record.version, installed):
                state = state.model_copy(update={"update": record})
                outcome = CheckOutcome.UPDATE_AVAILABLE
            else:
                state = state.model_copy(update={"update": None})
                outcome = CheckOutcome.UP_TO_DATE

        try:
            self.state_store.save(self.option_name, state)
        except StoreError as exc:
            self._report("engine.check.store_failed", error=str(exc))
            return CheckReport(outcome=CheckOutcome.STORE_FAILED, state=state, error=str(exc))

        self._log.info(
            "engine.check.complete",
            outcome=outcome.value,
            installed_version=installed,
            available_version=state.update.version if state.update else None,
        )
        return CheckReport(outcome=outcome, state=state, error=error)

    # Queries

    def query_update(self) -> UpdateRecord | None:
        """Return the cached update if it is still newer than what is installed."""

        state = self.load_state()
        if state is None or state.update is None:
            return None
        installed = self.installed_version()
        if installed is None or not is_newer(state.update.version, installed):
            return None
        return state.update

    def query_info(self) -> InfoView | None:
        info = self.request_info()
        if info is None:
            return None
        return to_info_view(info)

    def request_info(self, query_args: dict[str, str] | None = None) -> PackageInfo | None:
        try:
            return self._request_package_info(query_args or {})
        except UpdateCheckError as exc:
            self._report(
                "engine.request_info.failed",
                url=getattr(exc, "url", self.metadata_url),
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return None

    def request_update(self) -> UpdateRecord | None:
        info = self.request_info({"checking_for_updates": "1"})
        if info is None:
            return None
        return UpdateRecord.from_package_info(info)

    def _request_package_info(self, query_args: dict[str, str]) -> PackageInfo:
        installed = self.oracle.installed_version(self.component_id)
        params = {**query_args, "installed_version": installed if installed is not None else ""}
        for query_filter in self._query_arg_filters:
            params = _apply_filter("query_args", query_filter, params)

        options = default_request_options(self.timeout)
        for option_filter in self._request_option_filters:
            options = _apply_filter("request_options", option_filter, options)

        info: PackageInfo | None = None
        result: FetchResult | None = None
        failure: UpdateCheckError | None = None
        try:
            result = self.fetcher.fetch(self.metadata_url, params, options)
            info = parse_package_info(result.body)
        except UpdateCheckError as exc:
            # Result filters may still recover; callers log whatever is raised.
            failure = exc

        for result_filter in self._result_filters:
            info = _apply_filter("result", result_filter, info, result)

        if info is None:
            raise failure or UpdateCheckError("metadata discarded by a result filter")
        if not info.slug:
            info = info.model_copy(update={"slug": self.slug})
        return info

    def _report(self, event: str, **fields: Any) -> None:
        if self.debug_mode:
            self._log.warning(event, **fields)
        else:
            self._log.debug(event, **fields)

    def _now(self, now: float | None) -> float:
        return self._clock() if now is None else now


def _apply_filter(stage: str, callback: Callable[..., Any], *args: Any) -> Any:
    try:
        return callback(*args)
    except UpdateCheckError:
        raise
    except Exception as exc:
        raise FilterError(stage, exc) from exc
