from __future__ import annotations

import json
import sqlite3
import tempfile
import unittest
from pathlib import Path

from external_updates.components.oracle import (
    DistributionVersionOracle,
    HeaderVersionOracle,
    StaticVersionOracle,
)
from external_updates.config.models import TrackerSettings
from external_updates.config.store import SettingsStore
from external_updates.errors import ParseError, ParseErrorKind, StoreError
from external_updates.metadata.models import UpdateRecord
from external_updates.metadata.parser import parse_package_info, to_info_view
from external_updates.persistence.options import MemoryOptionStore, SqliteOptionStore
from external_updates.persistence.state import CheckState, CheckStateStore
from external_updates.scheduling import IntervalScheduler
from external_updates.versioning import compare_versions, is_newer


class VersionOrderingTests(unittest.TestCase):
    def test_numeric_segments_compare_numerically(self) -> None:
        self.assertEqual(compare_versions("1.10", "1.9"), 1)
        self.assertEqual(compare_versions("1.2.0", "1.0.0"), 1)
        self.assertEqual(compare_versions("1.0", "1.0.0"), 0)
        self.assertEqual(compare_versions("v1.2", "1.1"), 1)

    def test_empty_versions_sort_lowest(self) -> None:
        self.assertEqual(compare_versions("", "0.1"), -1)
        self.assertEqual(compare_versions("0.1", None), 1)
        self.assertEqual(compare_versions(None, ""), 0)
        self.assertFalse(is_newer("", "1.0"))

    def test_suffix_sorts_below_plain_release(self) -> None:
        self.assertEqual(compare_versions("1.0.0-beta", "1.0.0"), -1)
        self.assertEqual(compare_versions("2.0-custom", "2.0"), -1)
        self.assertEqual(compare_versions("2.0", "2.0-custom"), 1)
        self.assertEqual(compare_versions("1.0-foo", "1.1"), -1)
        self.assertTrue(is_newer("2.1-custom", "2.0"))

    def test_post_release_spellings_sort_below_plain_release(self) -> None:
        for version in ("1.0.0-post1", "1.0.0-rev2", "1.0.0-r1", "1.0.0.post3"):
            with self.subTest(version=version):
                self.assertEqual(compare_versions(version, "1.0.0"), -1)
                self.assertFalse(is_newer(version, "1.0.0"))

    def test_prerelease_spellings_are_equivalent(self) -> None:
        self.assertEqual(compare_versions("1.0.0-beta", "1.0.0b0"), 0)
        self.assertEqual(compare_versions("1.0.0-beta", "1.0.0b1"), -1)
        self.assertEqual(compare_versions("1.0a10", "1.0a9"), 1)
        self.assertEqual(compare_versions("1.0rc1", "1.0b2"), 1)

    def test_ordering_is_transitive(self) -> None:
        versions = [
            "1.0.0-post1",
            "1.0.0",
            "1.0.0-x",
            "1.0.0b1",
            "1.0a10",
            "1.0a5x",
            "1.0a9",
            "1.0.dev1",
            "0.9",
            "1.0.1",
            "",
        ]
        for a in versions:
            for b in versions:
                for c in versions:
                    if compare_versions(a, b) <= 0 and compare_versions(b, c) <= 0:
                        with self.subTest(a=a, b=b, c=c):
                            self.assertLessEqual(compare_versions(a, c), 0)


class PackageInfoParsingTests(unittest.TestCase):
    def test_parses_known_fields_and_keeps_extras(self) -> None:
        raw = json.dumps(
            {
                "name": "Demo",
                "slug": "demo",
                "version": "1.2.0",
                "download_url": "http://x/y.zip",
                "rating": "92",
                "sections": {"description": "Hello", "changelog": "Fixes"},
                "license": "GPL",
                "meta": {"a": 1},
            }
        ).encode("utf-8")

        info = parse_package_info(raw)

        self.assertEqual(info.name, "Demo")
        self.assertEqual(info.version, "1.2.0")
        self.assertEqual(info.rating, 92.0)
        self.assertEqual(info.sections, {"description": "Hello", "changelog": "Fixes"})
        self.assertEqual(info.extra, {"license": "GPL", "meta": '{"a": 1}'})
        self.assertEqual(info.id, 0)

    def test_numeric_version_is_stringified(self) -> None:
        info = parse_package_info('{"name": "Demo", "version": 1.5}')
        self.assertEqual(info.version, "1.5")

    def test_missing_name_is_rejected(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            parse_package_info('{"version": "1.0.0"}')
        self.assertEqual(ctx.exception.kind, ParseErrorKind.MISSING_REQUIRED_FIELDS)

    def test_blank_version_is_rejected(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            parse_package_info('{"name": "Demo", "version": "  "}')
        self.assertEqual(ctx.exception.kind, ParseErrorKind.MISSING_REQUIRED_FIELDS)

    def test_malformed_payloads(self) -> None:
        for raw in (b"not json", b"[1, 2]", b"{}", b'"text"'):
            with self.subTest(raw=raw):
                with self.assertRaises(ParseError) as ctx:
                    parse_package_info(raw)
                self.assertEqual(ctx.exception.kind, ParseErrorKind.MALFORMED)

    def test_unreadable_counts_are_dropped(self) -> None:
        info = parse_package_info(
            '{"name": "Demo", "version": "1.0", "num_ratings": "many", "downloaded": "1,204", "rating": ""}'
        )
        self.assertIsNone(info.num_ratings)
        self.assertEqual(info.downloaded, 1204)
        self.assertIsNone(info.rating)

    def test_loosely_typed_optional_fields_are_coerced(self) -> None:
        info = parse_package_info(
            json.dumps(
                {
                    "name": "Demo",
                    "version": "1.0",
                    "tested": 6.4,
                    "requires": 5,
                    "rating": "88.5",
                    "num_ratings": 12.0,
                    "author": {"name": "Jane"},
                    "sections": {"changelog": ["a", "b"], "faq": None},
                }
            )
        )
        self.assertEqual(info.tested, "6.4")
        self.assertEqual(info.requires, "5")
        self.assertEqual(info.rating, 88.5)
        self.assertEqual(info.num_ratings, 12)
        self.assertEqual(info.author, '{"name": "Jane"}')
        self.assertEqual(info.sections, {"changelog": '["a", "b"]', "faq": ""})
        view = to_info_view(info)
        self.assertEqual(view.tested, "6.4")

    def test_non_mapping_sections_are_dropped(self) -> None:
        info = parse_package_info('{"name": "Demo", "version": "1.0", "sections": ["a"]}')
        self.assertIsNone(info.sections)
        self.assertEqual(to_info_view(info).sections, {"description": ""})


class InfoViewTests(unittest.TestCase):
    def test_renames_and_links_author(self) -> None:
        info = parse_package_info(
            json.dumps(
                {
                    "name": "Demo",
                    "slug": "demo",
                    "version": "2.0",
                    "download_url": "https://example.com/demo.zip",
                    "author": "Jane",
                    "author_homepage": "https://jane.example.com",
                    "sections": {"description": "Hi"},
                }
            )
        )

        view = to_info_view(info).model_dump()

        self.assertEqual(view["download_link"], "https://example.com/demo.zip")
        self.assertEqual(view["author"], '<a href="https://jane.example.com">Jane</a>')
        self.assertEqual(view["sections"], {"description": "Hi"})
        self.assertNotIn("download_url", view)

    def test_absent_fields_are_explicit_nulls(self) -> None:
        view = to_info_view(parse_package_info('{"name": "Demo", "version": "2.0", "author": "Jane"}'))
        dumped = view.model_dump()

        self.assertEqual(dumped["author"], "Jane")
        self.assertEqual(dumped["sections"], {"description": ""})
        for key in ("slug", "requires", "tested", "rating", "homepage", "last_updated", "download_link"):
            self.assertIn(key, dumped)
            self.assertIsNone(dumped[key])


class UpdateRecordTests(unittest.TestCase):
    def test_projection_and_host_format(self) -> None:
        info = parse_package_info(
            '{"name": "Demo", "slug": "demo", "version": "1.2.0", "homepage": "https://h",'
            ' "download_url": "http://x/y.zip", "tested": "6.4"}'
        )
        record = UpdateRecord.from_package_info(info)

        self.assertEqual(
            record.model_dump(),
            {
                "id": 0,
                "slug": "demo",
                "version": "1.2.0",
                "homepage": "https://h",
                "download_url": "http://x/y.zip",
                "upgrade_notice": None,
            },
        )
        self.assertEqual(
            record.to_host_format(),
            {"id": 0, "slug": "demo", "new_version": "1.2.0", "url": "https://h", "package": "http://x/y.zip"},
        )

    def test_host_format_keeps_upgrade_notice(self) -> None:
        info = parse_package_info('{"name": "Demo", "version": "1.2", "upgrade_notice": "Back up first"}')
        payload = UpdateRecord.from_package_info(info).to_host_format()
        self.assertEqual(payload["upgrade_notice"], "Back up first")


class CheckStateStoreTests(unittest.TestCase):
    def _record(self) -> UpdateRecord:
        info = parse_package_info('{"name": "Demo", "slug": "demo", "version": "1.2.0", "download_url": "http://x/y.zip"}')
        return UpdateRecord.from_package_info(info)

    def test_roundtrip_with_and_without_update(self) -> None:
        store = CheckStateStore(MemoryOptionStore())
        for update in (self._record(), None):
            with self.subTest(update=update):
                state = CheckState(last_check=1234.5, checked_version="1.0.0", update=update)
                store.save("external_updates-demo", state)
                loaded = store.load("external_updates-demo")
                self.assertEqual(loaded, state)
                assert loaded is not None
                self.assertEqual(loaded.update, update)

    def test_missing_key_loads_none(self) -> None:
        self.assertIsNone(CheckStateStore(MemoryOptionStore()).load("external_updates-none"))

    def test_tolerates_legacy_and_partial_payloads(self) -> None:
        options = MemoryOptionStore()
        options.set(
            "legacy",
            b'{"lastCheck": 5, "checkedVersion": "0.9", "future": true,'
            b' "update": {"slug": "demo", "version": "1.1", "download_url": "x"}}',
        )
        options.set("partial", b'{"last_check": 7}')
        store = CheckStateStore(options)

        legacy = store.load("legacy")
        partial = store.load("partial")

        assert legacy is not None and partial is not None
        self.assertEqual(legacy.last_check, 5)
        self.assertEqual(legacy.checked_version, "0.9")
        assert legacy.update is not None
        self.assertEqual(legacy.update.version, "1.1")
        self.assertIsNone(legacy.update.homepage)
        self.assertEqual(partial.checked_version, "")
        self.assertIsNone(partial.update)

    def test_unparseable_payload_raises_store_error(self) -> None:
        options = MemoryOptionStore()
        store = CheckStateStore(options)
        for raw in (b"not json", b"[1]", b'{"last_check": "soon"}'):
            with self.subTest(raw=raw):
                options.set("broken", raw)
                with self.assertRaises(StoreError):
                    store.load("broken")

    def test_sqlite_backend_roundtrip_and_delete(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            options = SqliteOptionStore(Path(tmp) / "options.sqlite3")
            store = CheckStateStore(options)
            state = CheckState(last_check=10, checked_version="1.0.0", update=self._record())

            store.save("external_updates-demo", state)
            store.save("external_updates-demo", state.model_copy(update={"last_check": 20.0}))

            reloaded = CheckStateStore(SqliteOptionStore(Path(tmp) / "options.sqlite3"))
            loaded = reloaded.load("external_updates-demo")
            assert loaded is not None
            self.assertEqual(loaded.last_check, 20.0)
            self.assertEqual(options.keys(), ["external_updates-demo"])

            store.delete("external_updates-demo")
            self.assertIsNone(store.load("external_updates-demo"))

    def test_backend_failures_become_store_errors(self) -> None:
        class BrokenOptions(MemoryOptionStore):
            def set(self, key: str, value: bytes) -> None:
                raise sqlite3.OperationalError("database is locked")

        with self.assertRaises(StoreError):
            CheckStateStore(BrokenOptions()).save("k", CheckState())


class VersionOracleTests(unittest.TestCase):
    def test_reads_version_header(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "demo").mkdir()
            (root / "demo" / "demo.php").write_text(
                "<?php\n/*\nPlugin Name: Demo\n * Version: 1.4.2\n*/\n",
                encoding="utf-8",
            )
            (root / "plain.py").write_text("print('hi')\n", encoding="utf-8")
            oracle = HeaderVersionOracle(root)

            self.assertEqual(oracle.installed_version("demo/demo.php"), "1.4.2")
            self.assertIsNone(oracle.installed_version("plain.py"))
            self.assertIsNone(oracle.installed_version("missing/missing.php"))

    def test_distribution_lookup(self) -> None:
        oracle = DistributionVersionOracle()
        self.assertIsNotNone(oracle.installed_version("packaging"))
        self.assertIsNone(oracle.installed_version("definitely-not-installed-dist-xyz"))

    def test_static_versions(self) -> None:
        oracle = StaticVersionOracle({"demo": "1.0"})
        self.assertEqual(oracle.installed_version("demo"), "1.0")
        oracle.set("demo", None)
        self.assertIsNone(oracle.installed_version("demo"))


class SettingsStoreTests(unittest.TestCase):
    def test_add_tracker_derives_slug_and_persists(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "settings.json"
            store = SettingsStore(path)

            settings = store.load()
            self.assertTrue(path.exists())
            self.assertEqual(settings.trackers, [])

            store.add_tracker(
                TrackerSettings(
                    metadata_url="https://updates.example.com/demo/info.json",
                    component_id="demo/demo-plugin.php",
                )
            )
            reloaded = store.load()
            tracker = reloaded.tracker("demo-plugin")
            assert tracker is not None
            self.assertEqual(tracker.check_period_hours, 12)
            self.assertIsNone(tracker.option_name)

            store.remove_tracker("demo-plugin")
            self.assertEqual(store.load().trackers, [])

    def test_corrupt_settings_are_backed_up(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "settings.json"
            path.write_text("{broken", encoding="utf-8")

            settings = SettingsStore(path).load()

            self.assertEqual(settings.trackers, [])
            self.assertEqual(path.with_suffix(".corrupt.json").read_text(encoding="utf-8"), "{broken")

    def test_rejects_invalid_tracker_values(self) -> None:
        with self.assertRaises(ValueError):
            TrackerSettings(metadata_url="ftp://example.com", component_id="demo.php")
        with self.assertRaises(ValueError):
            TrackerSettings(
                metadata_url="https://example.com",
                component_id="demo.php",
                check_period_hours=-1,
            )


class IntervalSchedulerTests(unittest.TestCase):
    def test_runs_due_hooks_once_per_interval(self) -> None:
        calls: list[str] = []
        scheduler = IntervalScheduler(clock=lambda: 100.0)
        scheduler.schedule("check_updates-demo", 3600, lambda: calls.append("demo"))

        self.assertEqual(scheduler.run_pending(100.0), ["check_updates-demo"])
        self.assertEqual(scheduler.run_pending(200.0), [])
        self.assertEqual(scheduler.run_pending(3700.0), ["check_updates-demo"])
        self.assertEqual(calls, ["demo", "demo"])

    def test_deactivation_callbacks_run_once(self) -> None:
        scheduler = IntervalScheduler()
        scheduler.schedule("check_updates-demo", 60, lambda: None)
        scheduler.on_deactivate("demo/demo.php", lambda: scheduler.clear("check_updates-demo"))

        scheduler.deactivate("demo/demo.php")
        scheduler.deactivate("demo/demo.php")

        self.assertFalse(scheduler.is_scheduled("check_updates-demo"))

    def test_rejects_non_positive_interval(self) -> None:
        with self.assertRaises(ValueError):
            IntervalScheduler().schedule("hook", 0, lambda: None)


if __name__ == "__main__":
    unittest.main()
