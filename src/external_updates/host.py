"""Host-facing surface over a set of update-check engines."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from external_updates.components.oracle import (
    DistributionVersionOracle,
    HeaderVersionOracle,
    StaticVersionOracle,
    VersionOracle,
)
from external_updates.config.models import AppSettings, TrackerSettings
from external_updates.engine import CheckReport, UpdateCheckEngine
from external_updates.errors import SettingsError
from external_updates.metadata.models import InfoView, UpdateRecord
from external_updates.persistence.options import OptionStore
from external_updates.persistence.state import CheckStateStore
from external_updates.remote.fetcher import MetadataFetcher
from external_updates.runtime_logging import RuntimeLogger, get_runtime_logger
from external_updates.scheduling import Scheduler


def build_oracle(tracker: TrackerSettings) -> VersionOracle:
    if tracker.version_source == "distribution":
        return DistributionVersionOracle()
    if tracker.version_source == "static":
        versions = {tracker.component_id: tracker.installed_version} if tracker.installed_version else {}
        return StaticVersionOracle(versions)
    return HeaderVersionOracle(Path(tracker.components_root))


def build_engine(
    tracker: TrackerSettings,
    *,
    options: OptionStore,
    fetcher: MetadataFetcher,
    logger: RuntimeLogger | None = None,
    oracle: VersionOracle | None = None,
) -> UpdateCheckEngine:
    return UpdateCheckEngine(
        slug=tracker.slug,
        component_id=tracker.component_id,
        metadata_url=tracker.metadata_url,
        oracle=oracle or build_oracle(tracker),
        fetcher=fetcher,
        state_store=CheckStateStore(options),
        check_period_hours=tracker.check_period_hours,
        option_name=tracker.option_name,
        timeout=tracker.timeout,
        debug_mode=tracker.debug_mode,
        logger=logger,
    )


class UpdateHost:
    def __init__(
        self,
        scheduler: Scheduler | None = None,
        logger: RuntimeLogger | None = None,
    ) -> None:
        self.scheduler = scheduler
        self.logger = logger or get_runtime_logger()
        self._engines: dict[str, UpdateCheckEngine] = {}

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        *,
        options: OptionStore,
        fetcher: MetadataFetcher,
        scheduler: Scheduler | None = None,
        logger: RuntimeLogger | None = None,
    ) -> "UpdateHost":
        host = cls(scheduler=scheduler, logger=logger)
        for tracker in settings.trackers:
            host.register(build_engine(tracker, options=options, fetcher=fetcher, logger=host.logger))
        return host

    def register(self, engine: UpdateCheckEngine) -> UpdateCheckEngine:
        if engine.slug in self._engines:
            raise SettingsError(f"Duplicate tracker slug: {engine.slug}")
        self._engines[engine.slug] = engine
        if self.scheduler is not None:
            engine.install_hooks(self.scheduler)
        self.logger.info("host.engine.registered", slug=engine.slug, enabled=engine.enabled)
        return engine

    def engine(self, slug: str) -> UpdateCheckEngine:
        try:
            return self._engines[slug]
        except KeyError:
            raise SettingsError(f"Unknown tracker: {slug}") from None

    def engines(self) -> list[UpdateCheckEngine]:
        return [self._engines[slug] for slug in sorted(self._engines)]

    def get_info(self, slug: str) -> InfoView | None:
        engine = self._engines.get(slug)
        if engine is None:
            return None
        return engine.query_info()

    def get_update(self, slug: str) -> UpdateRecord | None:
        engine = self._engines.get(slug)
        if engine is None:
            return None
        return engine.query_update()

    def inject_updates(self, updates: dict[str, dict[str, Any]]) -> dict[str, dict[str, Any]]:
        """Add pending updates, keyed by component id, to a host update list."""

        for engine in self.engines():
            record = engine.query_update()
            if record is not None:
                updates[engine.component_id] = record.to_host_format()
        return updates

    def maybe_check_all(self, now: float | None = None) -> dict[str, CheckReport]:
        reports: dict[str, CheckReport] = {}
        for engine in self.engines():
            report = engine.maybe_check(now)
            if report is not None:
                reports[engine.slug] = report
        return reports

    def uninstall(self, slug: str) -> None:
        engine = self.engine(slug)
        if self.scheduler is not None:
            self.scheduler.clear(engine.hook_name)
        engine.forget()
        del self._engines[slug]
        self.logger.info("host.engine.uninstalled", slug=slug)
