"""Removal of spurious and over-broad catalog identifiers."""

from __future__ import annotations

from typing import List, Optional, Tuple

from ..logging import get_logger
from ..models import CatalogEntry, Component, Identifier
from .base import AnalysisContext, AnalysisPhase, Analyzer

RUNTIME_ARCHIVE = "rt.jar"
_PLATFORM_PREFIXES = ("cpe:/a:sun:java:", "cpe:/a:oracle:jre", "cpe:/a:oracle:jdk")


class FalsePositiveAnalyzer(Analyzer):
    """Drops platform runtime identifiers and less specific duplicate CPEs."""

    name = "false-positive"
    phase = AnalysisPhase.POST_IDENTIFIER_ANALYSIS

    def __init__(self, *, deep_scan: bool = False) -> None:
        self.deep_scan = deep_scan
        self.logger = get_logger("analyzers.false_positive")

    def supports(self, component: Component) -> bool:
        return bool(component.identifiers)

    def analyze(self, component: Component, context: AnalysisContext) -> None:
        removed = remove_platform_identifiers(component)
        if not self.deep_scan:
            removed += remove_spurious_identifiers(component)
        if removed:
            self.logger.debug("Removed %d identifier(s) from %s", removed, component.file_name)


def remove_platform_identifiers(component: Component) -> int:
    """Drop Java runtime CPEs unless the component is the runtime archive itself."""
    if component.file_name == RUNTIME_ARCHIVE:
        return 0
    kept = [
        identifier
        for identifier in component.identifiers
        if not (
            identifier.type == "cpe" and identifier.value.lower().startswith(_PLATFORM_PREFIXES)
        )
    ]
    removed = len(component.identifiers) - len(kept)
    component.identifiers[:] = kept
    return removed


def remove_spurious_identifiers(component: Component) -> int:
    """Drop the less specific CPE of any pair differing only by a prefixed version or product."""
    parsed: List[Tuple[Identifier, Optional[CatalogEntry]]] = [
        (identifier, CatalogEntry.try_parse(identifier.value))
        for identifier in component.cpe_identifiers()
    ]
    doomed: List[Identifier] = []
    for position, (current, current_entry) in enumerate(parsed):
        if current_entry is None:
            continue
        for other, other_entry in parsed[position + 1 :]:
            if other_entry is None:
                continue
            loser = _less_specific(current, current_entry, other, other_entry)
            if loser is not None and loser not in doomed:
                doomed.append(loser)
    if not doomed:
        return 0
    component.identifiers[:] = [
        identifier for identifier in component.identifiers if identifier not in doomed
    ]
    return len(doomed)


def _less_specific(
    left: Identifier, left_entry: CatalogEntry, right: Identifier, right_entry: CatalogEntry
) -> Optional[Identifier]:
    if left_entry.vendor != right_entry.vendor:
        return None
    if left_entry.product == right_entry.product:
        if left_entry.version == right_entry.version:
            return None
        if right_entry.version.startswith(left_entry.version):
            return left
        if left_entry.version.startswith(right_entry.version):
            return right
        return None
    if left_entry.version == right_entry.version:
        if right_entry.product.startswith(left_entry.product):
            return left
        if left_entry.product.startswith(right_entry.product):
            return right
    return None


__all__ = [
    "FalsePositiveAnalyzer",
    "RUNTIME_ARCHIVE",
    "remove_platform_identifiers",
    "remove_spurious_identifiers",
]
