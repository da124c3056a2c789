"""Fuzzy identification of components against the product catalog."""

from __future__ import annotations

import math
from typing import List, Optional
from urllib.parse import quote

from ..config import MatcherSettings
from ..errors import MatchError, StoreError
from ..logging import get_logger
from ..models import CatalogEntry, Component, Confidence, EvidenceType, Identifier
from ..search.index import CatalogHit, CatalogIndex
from ..search.query import WeightedQuery, build_query
from ..search.tokenizer import cleanse, concatenate_pairs, tokenize
from .base import AnalysisContext, AnalysisPhase, Analyzer

NVD_CPE_SEARCH_URL = "https://nvd.nist.gov/products/cpe/search/results?keyword={}"
_TIERS = (Confidence.HIGHEST, Confidence.HIGH, Confidence.MEDIUM, Confidence.LOW)
_CANDIDATE_FACTOR = 3


class CpeMatcher:
    """Builds weighted catalog queries from evidence and picks the best entries."""

    def __init__(self, index: CatalogIndex, settings: Optional[MatcherSettings] = None) -> None:
        self.index = index
        self.settings = settings or MatcherSettings()
        self.logger = get_logger("analyzers.cpe")

    def build_query(self, component: Component, minimum: Confidence) -> Optional[WeightedQuery]:
        """Return a query for evidence at or above ``minimum``; None without vendor and product text."""
        vendor_text = _collect_text(component, EvidenceType.VENDOR, minimum)
        product_text = _collect_text(component, EvidenceType.PRODUCT, minimum)
        if not vendor_text or not product_text:
            return None
        return build_query(
            vendor_text,
            product_text,
            _best_version(component),
            component.vendor_weightings,
            component.product_weightings,
            weighting_boost=self.settings.weighting_boost,
            version_boost=self.settings.version_boost,
            weighted_version_boost=self.settings.weighted_version_boost,
        )

    def search(self, query: WeightedQuery) -> List[CatalogHit]:
        """Return up to three times ``result_limit`` ranked candidates for corroboration."""
        return self.index.query(query, limit=self.settings.result_limit * _CANDIDATE_FACTOR)

    def determine_identifiers(self, component: Component) -> List[Identifier]:
        """Return the best catalog match(es) for the component.

        Evidence tiers are tried from most to least trusted; the first tier with
        a corroborated hit wins. A unique top hit yields HIGHEST confidence,
        tied top hits are all returned with HIGH confidence.
        """
        for tier in _TIERS:
            query = self.build_query(component, tier)
            if query is None:
                continue
            vendor_text = _collect_text(component, EvidenceType.VENDOR, tier)
            product_text = _collect_text(component, EvidenceType.PRODUCT, tier)
            hits = [
                hit
                for hit in self.search(query)
                if _corroborated(hit.entry, vendor_text, product_text, component)
            ][: self.settings.result_limit]
            if not hits:
                continue
            top_score = hits[0].score
            top = [hit for hit in hits if math.isclose(hit.score, top_score, rel_tol=1e-9)]
            confidence = Confidence.HIGHEST if len(top) == 1 else Confidence.HIGH
            self.logger.debug(
                "%s matched %d entr%s at %s evidence",
                component.file_name,
                len(top),
                "y" if len(top) == 1 else "ies",
                tier.name,
            )
            return [
                Identifier(
                    type="cpe",
                    value=hit.entry.uri,
                    confidence=confidence,
                    url=NVD_CPE_SEARCH_URL.format(quote(hit.entry.uri, safe="")),
                )
                for hit in top
            ]
        return []


class CpeAnalyzer(Analyzer):
    """Attaches catalog identifiers to components with vendor and product evidence."""

    name = "cpe"
    phase = AnalysisPhase.IDENTIFIER_ANALYSIS

    def __init__(self, matcher: CpeMatcher) -> None:
        self.matcher = matcher

    def supports(self, component: Component) -> bool:
        return bool(component.evidence)

    def analyze(self, component: Component, context: AnalysisContext) -> None:
        try:
            identifiers = self.matcher.determine_identifiers(component)
        except StoreError as exc:
            raise MatchError(component.display_name, str(exc), analyzer=self.name) from exc
        for identifier in identifiers:
            component.add_identifier(identifier)


def _collect_text(component: Component, category: EvidenceType, minimum: Confidence) -> str:
    return cleanse(" ".join(item.value for item in component.evidence_for(category, minimum)))


def _best_version(component: Component) -> Optional[str]:
    candidates = component.evidence_for(EvidenceType.VERSION)
    if not candidates:
        return None
    best = max(candidates, key=lambda item: item.confidence)
    return best.value


def _corroborated(
    entry: CatalogEntry, vendor_text: str, product_text: str, component: Component
) -> bool:
    """Require every word of the entry's vendor and product to appear in the evidence."""
    vendor_words = set(concatenate_pairs(tokenize(vendor_text))) | component.vendor_weightings
    product_words = set(concatenate_pairs(tokenize(product_text))) | component.product_weightings
    vendor_terms = tokenize(entry.vendor)
    product_terms = tokenize(entry.product)
    return (
        bool(vendor_terms)
        and bool(product_terms)
        and all(term in vendor_words for term in vendor_terms)
        and all(term in product_words for term in product_terms)
    )


__all__ = ["CpeAnalyzer", "CpeMatcher", "NVD_CPE_SEARCH_URL"]
