"""Attaches applicable vulnerabilities to identified components."""

from __future__ import annotations

from ..errors import MatchError, StoreError
from ..lookup import VulnerabilityLookup
from ..models import CatalogEntry, Component
from .base import AnalysisContext, AnalysisPhase, Analyzer


class VulnerabilityAnalyzer(Analyzer):
    """Looks up every CPE identifier of a component in the vulnerability store."""

    name = "vulnerabilities"
    phase = AnalysisPhase.FINDING_ANALYSIS

    def __init__(self, lookup: VulnerabilityLookup) -> None:
        self.lookup = lookup

    def supports(self, component: Component) -> bool:
        return bool(component.cpe_identifiers())

    def analyze(self, component: Component, context: AnalysisContext) -> None:
        for identifier in component.cpe_identifiers():
            entry = CatalogEntry.try_parse(identifier.value)
            if entry is None:
                continue
            try:
                found = self.lookup.find_applicable(entry)
            except StoreError as exc:
                raise MatchError(component.display_name, str(exc), analyzer=self.name) from exc
            for vulnerability in found:
                component.add_vulnerability(vulnerability)


__all__ = ["VulnerabilityAnalyzer"]
