"""Phase-ordered orchestration of scanning, identification and lookup."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from . import __version__
from .analyzers import (
    AnalysisContext,
    AnalysisPhase,
    Analyzer,
    build_default_analyzers,
    supported_extensions,
)
from .config import Settings
from .errors import CatalogStatus, DepcheckError, MatchError, NoCatalogDataError
from .feeds.pipeline import FeedIngestionPipeline, IngestionReport
from .feeds.source import FeedSource, HttpFeedSource
from .feeds.version_check import EngineVersionCheck
from .logging import get_logger
from .models import Component
from .scanner import ComponentScanner
from .search.index import CatalogIndex
from .stores.database import Database, open_database
from .stores.vulnerability_store import VulnerabilityStore

STALE_DATA_WARNING = (
    "One or more feeds failed to update; results may not include recent vulnerabilities."
)


@dataclass
class ScanResult:
    """Final component set plus what ran to produce it."""

    components: List[Component]
    analyzers: List[str]
    warnings: List[str] = field(default_factory=list)
    ingestion: Optional[IngestionReport] = None

    @property
    def stale(self) -> bool:
        return STALE_DATA_WARNING in self.warnings

    @property
    def vulnerable(self) -> List[Component]:
        return [component for component in self.components if component.vulnerabilities]


class Engine:
    """Coordinates discovery, analyzer phases and optional feed updates.

    Analyzers run phase by phase; within a phase each analyzer completes over
    a snapshot of the working set before its requested additions and
    removals are applied and the next analyzer starts.
    """

    def __init__(
        self,
        index: CatalogIndex,
        analyzers: Iterable[Analyzer],
        *,
        scanner: ComponentScanner | None = None,
        store: VulnerabilityStore | None = None,
        pipeline: FeedIngestionPipeline | None = None,
        version_check: EngineVersionCheck | None = None,
        database: Database | None = None,
    ) -> None:
        self.index = index
        self.analyzers: List[Analyzer] = sorted(analyzers, key=lambda analyzer: analyzer.phase)
        self.scanner = scanner or ComponentScanner(supported_extensions(self.analyzers))
        self.store = store
        self.pipeline = pipeline
        self.version_check = version_check
        self.database = database
        self.components: List[Component] = []
        self.logger = get_logger("engine")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        database: Database | None = None,
        source: FeedSource | None = None,
    ) -> "Engine":
        """Build an engine wired to the configured database and feed source."""
        database = database or open_database(settings.resolved_database_url)
        store = VulnerabilityStore(database)
        index = CatalogIndex(database)
        analyzers = build_default_analyzers(index, store, settings)
        pipeline = FeedIngestionPipeline(
            database,
            store,
            index,
            source or HttpFeedSource(settings.feeds),
            staleness_window=timedelta(hours=settings.feeds.staleness_hours),
            max_workers=settings.feeds.max_workers,
        )
        version_check = None
        if settings.version_check_url:
            version_check = EngineVersionCheck(
                store, settings.engine_version or __version__, settings.version_check_url
            )
        return cls(
            index,
            analyzers,
            store=store,
            pipeline=pipeline,
            version_check=version_check,
            database=database,
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    def scan(self, paths: Iterable[str | Path]) -> List[Component]:
        """Discover components under ``paths`` and add them to the working set."""
        found = self.scanner.scan(paths)
        self.components.extend(found)
        self.logger.info("Scanned %d component(s)", len(found))
        return found

    def update(
        self,
        *,
        feed_ids: Optional[Sequence[str]] = None,
        force: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> IngestionReport:
        """Refresh stale feeds; failures are reported, not raised."""
        if self.pipeline is None:
            raise DepcheckError("No feed ingestion pipeline configured")
        report = self.pipeline.run(feed_ids, force=force, cancel_event=cancel_event)
        if self.version_check is not None:
            self.version_check.check()
        return report

    def ensure_catalog(self) -> None:
        """Raise NoCatalogDataError when the catalog is empty or cannot be reached."""
        status = self.index.status()
        if status is CatalogStatus.EMPTY:
            raise NoCatalogDataError(
                "The product catalog is empty; run `depcheck update` to download vulnerability data."
            )
        if status is CatalogStatus.UNREACHABLE:
            raise NoCatalogDataError(
                "The product catalog could not be opened; check the database settings "
                "and run `depcheck update`."
            )

    def analyze(self, components: Optional[Sequence[Component]] = None) -> ScanResult:
        """Run every analyzer phase over the working set."""
        self.ensure_catalog()
        working = list(components) if components is not None else list(self.components)
        ran: List[str] = []
        by_phase: Dict[AnalysisPhase, List[Analyzer]] = {}
        for analyzer in self.analyzers:
            by_phase.setdefault(analyzer.phase, []).append(analyzer)
        try:
            for phase in AnalysisPhase:
                for analyzer in by_phase.get(phase, []):
                    working = self._run_analyzer(analyzer, working)
                    ran.append(analyzer.name)
        finally:
            self._close_analyzers()
        self.components = working
        failures = sum(len(component.failures) for component in working)
        self.logger.info(
            "Analysis complete: %d component(s), %d with vulnerabilities, %d failure(s)",
            len(working),
            sum(1 for component in working if component.vulnerabilities),
            failures,
        )
        return ScanResult(components=working, analyzers=ran)

    def run(
        self,
        paths: Iterable[str | Path],
        *,
        update: bool = True,
        cancel_event: Optional[threading.Event] = None,
    ) -> ScanResult:
        """Optionally refresh feeds, then scan ``paths`` and analyze the result."""
        report: Optional[IngestionReport] = None
        warnings: List[str] = []
        if update and self.pipeline is not None:
            report = self.update(cancel_event=cancel_event)
            if report.degraded:
                self.logger.warning(STALE_DATA_WARNING)
                warnings.append(STALE_DATA_WARNING)
        self.scan(paths)
        result = self.analyze()
        result.ingestion = report
        result.warnings = warnings + result.warnings
        return result

    def close(self) -> None:
        if self.database is not None:
            self.database.dispose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _run_analyzer(self, analyzer: Analyzer, working: Sequence[Component]) -> List[Component]:
        context = AnalysisContext(working)
        self.logger.debug("Running analyzer %s (%s)", analyzer.name, analyzer.phase.name)
        for component in context.components:
            if context.is_removed(component) or not analyzer.supports(component):
                continue
            try:
                analyzer.analyze(component, context)
            except MatchError as exc:
                self._record_failure(component, analyzer, exc)
            except DepcheckError as exc:
                self._record_failure(
                    component,
                    analyzer,
                    MatchError(component.display_name, str(exc), analyzer=analyzer.name),
                )
            except Exception as exc:  # pragma: no cover
                self._log_exception(f"Analyzer {analyzer.name} failed on {component.file_name}", exc)
                self._record_failure(
                    component,
                    analyzer,
                    MatchError(component.display_name, str(exc), analyzer=analyzer.name),
                )
        if context.added or context.removed:
            self.logger.debug(
                "%s added %d and removed %d component(s)",
                analyzer.name,
                len(context.added),
                len(context.removed),
            )
        return context.apply(working)

    def _record_failure(self, component: Component, analyzer: Analyzer, error: MatchError) -> None:
        if error.analyzer is None:
            error.analyzer = analyzer.name
        component.add_failure(error)
        self.logger.warning("%s", error)

    def _close_analyzers(self) -> None:
        for analyzer in self.analyzers:
            try:
                analyzer.close()
            except Exception as exc:  # pragma: no cover
                self._log_exception(f"Failed to close analyzer {analyzer.name}", exc)

    def _log_exception(self, message: str, exc: Exception) -> None:
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.exception("%s: %s", message, exc)
        else:
            self.logger.error("%s: %s", message, exc)


__all__ = ["Engine", "STALE_DATA_WARNING", "ScanResult"]
