"""Incremental ingestion of vulnerability feeds into the local knowledge base."""

from __future__ import annotations

import threading
import zlib
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from lxml import etree

from ..errors import FeedIngestionError, FeedSourceError, StoreError
from ..logging import feed_logger, get_logger
from ..models import FeedMetadata
from ..search.index import CatalogIndex
from ..stores.database import Database
from ..stores.vulnerability_store import VulnerabilityStore
from .parsers import (
    CURRENT_SCHEMA_VERSION,
    FeedFormatError,
    ParseStatistics,
    iter_current_feed,
    parse_prior_feed,
)
from .source import FeedSource

DEFAULT_STALENESS_WINDOW = timedelta(hours=4)

_FEED_ERRORS = (
    FeedSourceError,
    FeedFormatError,
    etree.XMLSyntaxError,
    StoreError,
    OSError,
    EOFError,
    zlib.error,
)


class FeedState(str, Enum):
    STALE = "stale"
    DOWNLOADING = "downloading"
    PARSING = "parsing"
    MERGING = "merging"
    PERSISTING = "persisting"
    COMMITTED = "committed"
    FAILED = "failed"


class FeedOutcome(str, Enum):
    COMMITTED = "committed"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"


class _Cancelled(Exception):
    pass


@dataclass
class FeedResult:
    """What happened to one feed id during an ingestion run."""

    feed_id: str
    outcome: FeedOutcome = FeedOutcome.SKIPPED
    state: FeedState = FeedState.STALE
    transitions: List[FeedState] = field(default_factory=lambda: [FeedState.STALE])
    processed: int = 0
    persisted: int = 0
    discarded: int = 0
    error: Optional[FeedIngestionError] = None

    def enter(self, state: FeedState) -> None:
        self.state = state
        self.transitions.append(state)


@dataclass
class IngestionReport:
    results: Dict[str, FeedResult] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def degraded(self) -> bool:
        """True when at least one feed failed; committed data stays usable."""
        return any(result.outcome is FeedOutcome.FAILED for result in self.results.values())

    @property
    def errors(self) -> List[FeedIngestionError]:
        return [result.error for result in self.results.values() if result.error is not None]

    def by_outcome(self, outcome: FeedOutcome) -> List[str]:
        return sorted(
            feed_id for feed_id, result in self.results.items() if result.outcome is outcome
        )


def is_stale(metadata: FeedMetadata, now: datetime, window: timedelta) -> bool:
    """Return True when the feed has never committed or is older than ``window``."""
    if metadata.last_updated is None:
        return True
    return now - metadata.last_updated > window


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FeedIngestionPipeline:
    """Synchronises feeds into the vulnerability store and catalog index.

    Each feed id is one unit of work: its records and its metadata update are
    committed in a single transaction, so a failure or cancellation leaves the
    feed's timestamp untouched. Feed ids run concurrently on a bounded pool.
    """

    def __init__(
        self,
        database: Database,
        store: VulnerabilityStore,
        index: CatalogIndex,
        source: FeedSource,
        *,
        staleness_window: timedelta = DEFAULT_STALENESS_WINDOW,
        max_workers: int = 4,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.database = database
        self.store = store
        self.index = index
        self.source = source
        self.staleness_window = staleness_window
        self.max_workers = max(1, max_workers)
        self.clock = clock
        self.logger = get_logger("feeds.pipeline")

    def run(
        self,
        feed_ids: Optional[Sequence[str]] = None,
        *,
        force: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> IngestionReport:
        """Ingest every stale feed id and report per-feed outcomes."""
        report = IngestionReport(started_at=self.clock())
        requested = list(feed_ids) if feed_ids is not None else self.source.feed_ids()
        eligible: List[str] = []
        for feed_id in requested:
            try:
                metadata = self.store.get_metadata(feed_id)
            except StoreError as exc:
                report.results[feed_id] = self._failed(feed_id, FeedResult(feed_id), exc)
                continue
            if force or is_stale(metadata, report.started_at, self.staleness_window):
                eligible.append(feed_id)
            else:
                self.logger.debug("Feed %s is current; skipping", feed_id)
                report.results[feed_id] = FeedResult(feed_id)

        if eligible:
            workers = min(self.max_workers, len(eligible))
            self.logger.info("Updating %d feed(s) with %d worker(s)", len(eligible), workers)
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="depcheck-feed") as pool:
                futures = {
                    pool.submit(self.ingest, feed_id, cancel_event): feed_id
                    for feed_id in eligible
                }
                for future in as_completed(futures):
                    result = future.result()
                    report.results[result.feed_id] = result

        report.finished_at = self.clock()
        committed = report.by_outcome(FeedOutcome.COMMITTED)
        failed = report.by_outcome(FeedOutcome.FAILED)
        self.logger.info(
            "Feed update finished: %d committed, %d failed, %d skipped",
            len(committed),
            len(failed),
            len(report.by_outcome(FeedOutcome.SKIPPED)),
        )
        if failed:
            self.logger.warning(
                "Feeds %s failed to update; results may not include recent vulnerabilities",
                ", ".join(failed),
            )
        return report

    def ingest(self, feed_id: str, cancel_event: Optional[threading.Event] = None) -> FeedResult:
        """Run one feed id through download, parse, merge and commit."""
        result = FeedResult(feed_id)
        try:
            self._check_cancelled(cancel_event)
            self._ingest(feed_id, result, cancel_event)
        except _Cancelled:
            result.outcome = FeedOutcome.CANCELLED
            feed_logger(feed_id).info("Cancelled during %s", result.state.value)
        except _FEED_ERRORS as exc:
            self._failed(feed_id, result, exc)
        except Exception as exc:
            feed_logger(feed_id).debug("Unexpected error", exc_info=True)
            self._failed(feed_id, result, exc)
        return result

    def _ingest(
        self, feed_id: str, result: FeedResult, cancel_event: Optional[threading.Event]
    ) -> None:
        started = self.clock()
        log = feed_logger(feed_id)
        log.info("Processing")
        result.enter(FeedState.DOWNLOADING)
        with ExitStack() as stack:
            prior_stream = None
            if self.source.has_prior(feed_id):
                prior_stream = stack.enter_context(self.source.open(feed_id, prior=True))
            current_stream = stack.enter_context(self.source.open(feed_id))
            self._check_cancelled(cancel_event)

            result.enter(FeedState.PARSING)
            prior = parse_prior_feed(prior_stream) if prior_stream is not None else {}
            log.debug("%d prior-schema range group(s)", len(prior))

            result.enter(FeedState.MERGING)
            stats = ParseStatistics()
            with self.database.transaction() as session:
                for vulnerability in iter_current_feed(current_stream, stats):
                    self._check_cancelled(cancel_event)
                    extra = prior.get(vulnerability.id)
                    if extra:
                        vulnerability.merge_ranges(extra)
                    for item in vulnerability.ranges:
                        self.index.insert(item.entry, session)
                    self.store.upsert(vulnerability, session)
                    result.persisted += 1

                result.enter(FeedState.PERSISTING)
                self.store.save_metadata(
                    FeedMetadata(feed_id, last_updated=started, schema_version=CURRENT_SCHEMA_VERSION),
                    session,
                )
            result.processed = stats.processed
            result.discarded = stats.discarded

        result.enter(FeedState.COMMITTED)
        result.outcome = FeedOutcome.COMMITTED
        log.info("Committed %d record(s), %d discarded", result.persisted, result.discarded)

    def _failed(self, feed_id: str, result: FeedResult, exc: BaseException) -> FeedResult:
        failed_in = result.state
        error = FeedIngestionError(feed_id, str(exc), state=failed_in.value)
        error.__cause__ = exc
        result.error = error
        result.outcome = FeedOutcome.FAILED
        result.enter(FeedState.FAILED)
        feed_logger(feed_id).warning("Failed while %s: %s", failed_in.value, exc)
        return result

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise _Cancelled()


__all__ = [
    "DEFAULT_STALENESS_WINDOW",
    "FeedIngestionPipeline",
    "FeedOutcome",
    "FeedResult",
    "FeedState",
    "IngestionReport",
    "is_stale",
]
