"""Tests for the feed ingestion pipeline."""

from __future__ import annotations

import threading
from datetime import timedelta

from depcheck.errors import StoreError
from depcheck.feeds.pipeline import (
    FeedIngestionPipeline,
    FeedOutcome,
    FeedState,
    is_stale,
)
from depcheck.feeds.source import DirectoryFeedSource
from depcheck.models import FeedMetadata, Vulnerability
from depcheck.search.index import CatalogIndex
from depcheck.stores import Database, VulnerabilityStore
from tests._fixtures.feed_builder import (
    FIXED_NOW,
    FeedDirectory,
    current_entry,
    current_feed,
    prior_entry,
    prior_feed,
)

LATER = FIXED_NOW + timedelta(days=1)


def _write_2012(feed_dir: FeedDirectory, *, summary: str = "OGNL injection.") -> None:
    feed_dir.write_current(
        "2012",
        current_feed(
            current_entry("CVE-2012-0391", ["cpe:/a:apache:struts:2.1.2"], summary=summary),
            current_entry("CVE-2012-0392", ["cpe:/a:apache:struts:2.2.1"], summary=summary),
            current_entry("CVE-2012-0001", ["cpe:/o:microsoft:windows_7"], summary="Kernel."),
        ),
    )
    feed_dir.write_prior(
        "2012",
        prior_feed(
            prior_entry("CVE-2012-0391", {("apache", "struts"): [("2.0.11", True)]}),
        ),
    )


def _pipeline(
    database: Database,
    store: VulnerabilityStore,
    index: CatalogIndex,
    feed_dir: FeedDirectory,
    *,
    now=FIXED_NOW,
) -> FeedIngestionPipeline:
    return FeedIngestionPipeline(
        database,
        store,
        index,
        DirectoryFeedSource(feed_dir.root),
        max_workers=2,
        clock=lambda: now,
    )


def test_ingest_commits_records_and_metadata(
    database: Database, store: VulnerabilityStore, index: CatalogIndex, feed_dir: FeedDirectory
) -> None:
    _write_2012(feed_dir)

    report = _pipeline(database, store, index, feed_dir).run()

    result = report.results["2012"]
    assert result.outcome is FeedOutcome.COMMITTED
    assert result.transitions == [
        FeedState.STALE,
        FeedState.DOWNLOADING,
        FeedState.PARSING,
        FeedState.MERGING,
        FeedState.PERSISTING,
        FeedState.COMMITTED,
    ]
    assert (result.processed, result.persisted, result.discarded) == (3, 2, 1)
    assert not report.degraded
    assert store.get_metadata("2012") == FeedMetadata("2012", FIXED_NOW, "2.0")


def test_records_without_application_entries_are_never_persisted(
    database: Database, store: VulnerabilityStore, index: CatalogIndex, feed_dir: FeedDirectory
) -> None:
    _write_2012(feed_dir)

    _pipeline(database, store, index, feed_dir).run()

    assert store.get("CVE-2012-0001") is None
    assert store.find_by_catalog_key("o", "microsoft", "windows_7") == []
    assert store.find_catalog_entries("microsoft", "windows_7") == []
    assert index.count() == 3


def test_prior_schema_ranges_are_merged(
    database: Database, store: VulnerabilityStore, index: CatalogIndex, feed_dir: FeedDirectory
) -> None:
    _write_2012(feed_dir)

    _pipeline(database, store, index, feed_dir).run()

    loaded = store.get("CVE-2012-0391")
    assert loaded is not None
    assert {(item.uri, item.previous_versions) for item in loaded.ranges} == {
        ("cpe:/a:apache:struts:2.1.2", False),
        ("cpe:/a:apache:struts:2.0.11", True),
    }


def test_compressed_feeds_are_read(
    database: Database, store: VulnerabilityStore, index: CatalogIndex, feed_dir: FeedDirectory
) -> None:
    feed_dir.write_current(
        "modified",
        current_feed(current_entry("CVE-2013-0001", ["cpe:/a:apache:tomcat:7.0.30"])),
        compress=True,
    )

    report = _pipeline(database, store, index, feed_dir).run()

    assert report.results["modified"].outcome is FeedOutcome.COMMITTED
    assert store.get("CVE-2013-0001") is not None


class _FailingStore(VulnerabilityStore):
    """Fails on the second upsert of a run to simulate a mid-feed storage error."""

    def __init__(self, database: Database) -> None:
        super().__init__(database)
        self.calls = 0

    def upsert(self, vulnerability: Vulnerability, session=None) -> None:
        self.calls += 1
        if self.calls == 2:
            raise StoreError("disk full")
        super().upsert(vulnerability, session)


def test_partial_failure_keeps_previous_timestamp(
    database: Database, store: VulnerabilityStore, index: CatalogIndex, feed_dir: FeedDirectory
) -> None:
    _write_2012(feed_dir)
    _pipeline(database, store, index, feed_dir).run()
    _write_2012(feed_dir, summary="Updated summary.")

    failing = _FailingStore(database)
    report = _pipeline(database, failing, index, feed_dir, now=LATER).run(force=True)

    result = report.results["2012"]
    assert result.outcome is FeedOutcome.FAILED
    assert result.error is not None
    assert result.error.state == FeedState.MERGING.value
    assert report.degraded
    assert store.get_metadata("2012").last_updated == FIXED_NOW
    loaded = store.get("CVE-2012-0391")
    assert loaded is not None
    assert loaded.description == "OGNL injection."


def test_corrupt_feed_fails_without_metadata(
    database: Database, store: VulnerabilityStore, index: CatalogIndex, feed_dir: FeedDirectory
) -> None:
    truncated = current_feed(current_entry("CVE-2012-0391", ["cpe:/a:apache:struts:2.1.2"]))
    feed_dir.write_current("2012", truncated[: len(truncated) // 2])
    feed_dir.write_current(
        "2013", current_feed(current_entry("CVE-2013-0001", ["cpe:/a:apache:tomcat:7.0.30"]))
    )

    report = _pipeline(database, store, index, feed_dir).run()

    assert report.results["2012"].outcome is FeedOutcome.FAILED
    assert report.results["2013"].outcome is FeedOutcome.COMMITTED
    assert report.by_outcome(FeedOutcome.FAILED) == ["2012"]
    assert store.get_metadata("2012").last_updated is None
    assert store.get("CVE-2012-0391") is None
    assert store.get("CVE-2013-0001") is not None


class _MisconfiguredSource(DirectoryFeedSource):
    """Raises a non-feed error for one feed id, as a bad URL template would."""

    def open(self, feed_id: str, *, prior: bool = False):  # type: ignore[override]
        if feed_id == "2012":
            raise KeyError("feed_id template")
        return super().open(feed_id, prior=prior)


def test_unexpected_error_is_contained_to_its_feed(
    database: Database, store: VulnerabilityStore, index: CatalogIndex, feed_dir: FeedDirectory
) -> None:
    for feed_id, cve in (("2012", "CVE-2012-0391"), ("2013", "CVE-2013-0001")):
        feed_dir.write_current(
            feed_id, current_feed(current_entry(cve, ["cpe:/a:apache:struts:2.1.2"]))
        )
    pipeline = FeedIngestionPipeline(
        database,
        store,
        index,
        _MisconfiguredSource(feed_dir.root),
        max_workers=2,
        clock=lambda: FIXED_NOW,
    )

    report = pipeline.run()

    failed = report.results["2012"]
    assert failed.outcome is FeedOutcome.FAILED
    assert failed.error is not None
    assert failed.error.state == FeedState.DOWNLOADING.value
    assert isinstance(failed.error.__cause__, KeyError)
    assert report.results["2013"].outcome is FeedOutcome.COMMITTED
    assert report.degraded
    assert store.get_metadata("2012").last_updated is None
    assert store.get("CVE-2013-0001") is not None


def test_missing_feed_file_is_reported(
    database: Database, store: VulnerabilityStore, index: CatalogIndex, feed_dir: FeedDirectory
) -> None:
    report = _pipeline(database, store, index, feed_dir).run(["2009"])

    result = report.results["2009"]
    assert result.outcome is FeedOutcome.FAILED
    assert result.error is not None
    assert result.error.feed_id == "2009"
    assert result.error.state == FeedState.DOWNLOADING.value


def test_fresh_feeds_are_skipped(
    database: Database, store: VulnerabilityStore, index: CatalogIndex, feed_dir: FeedDirectory
) -> None:
    _write_2012(feed_dir)
    store.save_metadata(FeedMetadata("2012", FIXED_NOW - timedelta(hours=1), "2.0"))

    report = _pipeline(database, store, index, feed_dir).run()

    assert report.results["2012"].outcome is FeedOutcome.SKIPPED
    assert store.get("CVE-2012-0391") is None


def test_cancellation_leaves_feed_uncommitted(
    database: Database, store: VulnerabilityStore, index: CatalogIndex, feed_dir: FeedDirectory
) -> None:
    _write_2012(feed_dir)
    cancel = threading.Event()
    cancel.set()

    report = _pipeline(database, store, index, feed_dir).run(cancel_event=cancel)

    assert report.results["2012"].outcome is FeedOutcome.CANCELLED
    assert not report.degraded
    assert store.get_metadata("2012").last_updated is None
    assert store.count() == 0


def test_is_stale() -> None:
    window = timedelta(hours=4)

    assert is_stale(FeedMetadata("2012"), FIXED_NOW, window)
    assert is_stale(FeedMetadata("2012", FIXED_NOW - timedelta(hours=5)), FIXED_NOW, window)
    assert not is_stale(FeedMetadata("2012", FIXED_NOW - timedelta(hours=3)), FIXED_NOW, window)
