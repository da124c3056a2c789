"""Analyzer implementations and explicit construction of the default pipeline."""

from __future__ import annotations

from typing import FrozenSet, Iterable, List, Optional, Sequence

from ..config import Settings
from ..errors import ConfigurationError
from ..logging import get_logger
from ..lookup import VulnerabilityLookup
from ..search.index import CatalogIndex
from ..stores.vulnerability_store import VulnerabilityStore
from .archive import ARCHIVE_EXTENSIONS, ArchiveManifestAnalyzer
from .base import AnalysisContext, AnalysisPhase, Analyzer
from .bundling import BundlingAnalyzer
from .cpe import CpeAnalyzer, CpeMatcher
from .false_positive import FalsePositiveAnalyzer
from .filename import FileNameAnalyzer
from .vulnerabilities import VulnerabilityAnalyzer

DEFAULT_EXTENSIONS: FrozenSet[str] = ARCHIVE_EXTENSIONS | {"zip"}

_logger = get_logger("analyzers")


def build_default_analyzers(
    index: CatalogIndex,
    store: VulnerabilityStore,
    settings: Settings,
    enabled: Optional[Sequence[str]] = None,
) -> List[Analyzer]:
    """Return the analyzer pipeline ordered by phase, honoring optional enabled names."""
    analyzers: List[Analyzer] = [
        FileNameAnalyzer(DEFAULT_EXTENSIONS),
        ArchiveManifestAnalyzer(),
        CpeAnalyzer(CpeMatcher(index, settings.matcher)),
        FalsePositiveAnalyzer(deep_scan=settings.deep_scan),
        BundlingAnalyzer(),
        VulnerabilityAnalyzer(
            VulnerabilityLookup(store, settings.matcher.version_family_products)
        ),
    ]
    names = list(enabled) if enabled is not None else list(settings.analyzers.enabled)
    if names:
        wanted = {name.lower() for name in names}
        known = {analyzer.name for analyzer in analyzers}
        unknown = sorted(wanted - known)
        if unknown:
            _logger.warning(
                "%s",
                ConfigurationError(f"Unknown analyzers ignored: {', '.join(unknown)}"),
            )
        selected = [analyzer for analyzer in analyzers if analyzer.name in wanted]
        if selected:
            analyzers = selected
        else:
            _logger.warning("No known analyzers enabled; using the default set")
    return sorted(analyzers, key=lambda analyzer: analyzer.phase)


def supported_extensions(analyzers: Iterable[Analyzer]) -> FrozenSet[str]:
    extensions: set[str] = set()
    for analyzer in analyzers:
        extensions.update(analyzer.extensions)
    return frozenset(extensions)


__all__ = [
    "AnalysisContext",
    "AnalysisPhase",
    "Analyzer",
    "ArchiveManifestAnalyzer",
    "BundlingAnalyzer",
    "CpeAnalyzer",
    "CpeMatcher",
    "DEFAULT_EXTENSIONS",
    "FalsePositiveAnalyzer",
    "FileNameAnalyzer",
    "VulnerabilityAnalyzer",
    "build_default_analyzers",
    "supported_extensions",
]
