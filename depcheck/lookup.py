"""Resolution of catalog identifiers to the vulnerabilities affecting them."""

from __future__ import annotations

from typing import Iterable, List, Optional

from .logging import get_logger
from .models import CatalogEntry, Identifier, Vulnerability, VulnerableRange
from .stores.vulnerability_store import VulnerabilityStore
from .versions import PLACEHOLDER, compare, matches_at_least_three_levels, versions_equal


def is_affected(
    version: str, vulnerable: VulnerableRange, *, version_family: bool = False
) -> bool:
    """Return True when ``version`` falls inside the range.

    A range without a concrete version covers everything. An unknown
    component version only matches open-ended ranges. Products listed as
    version families additionally require the component to share the
    range's three-level version family before an open-ended range applies.
    """
    range_version = vulnerable.entry.version
    if not range_version or range_version == PLACEHOLDER:
        return True
    if not version or version == PLACEHOLDER:
        return vulnerable.previous_versions
    if versions_equal(version, range_version):
        return True
    if vulnerable.previous_versions and compare(version, range_version) <= 0:
        if version_family:
            return matches_at_least_three_levels(version, range_version)
        return True
    return False


class VulnerabilityLookup:
    """Finds vulnerabilities whose ranges include an identified product version."""

    def __init__(
        self,
        store: VulnerabilityStore,
        version_family_products: Optional[Iterable[str]] = None,
    ) -> None:
        self.store = store
        self.version_family_products = {
            item.lower() for item in (version_family_products or ())
        }
        self.logger = get_logger("lookup")

    def find_applicable(self, target: Identifier | CatalogEntry) -> List[Vulnerability]:
        """Return vulnerabilities applicable to the identifier's concrete version.

        Store failures propagate as StoreError; no matching range yields an
        empty list.
        """
        entry = target if isinstance(target, CatalogEntry) else CatalogEntry.parse(target.value)
        candidates = self.store.find_by_catalog_key(entry.part, entry.vendor, entry.product)
        family = f"{entry.vendor}:{entry.product}" in self.version_family_products
        applicable: List[Vulnerability] = []
        for vulnerability in candidates:
            for vulnerable in vulnerability.ranges:
                if vulnerable.entry.key != entry.key:
                    continue
                if is_affected(entry.version, vulnerable, version_family=family):
                    applicable.append(vulnerability)
                    break
        self.logger.debug(
            "%s: %d of %d candidate vulnerabilities apply",
            entry.uri,
            len(applicable),
            len(candidates),
        )
        return applicable


__all__ = ["VulnerabilityLookup", "is_affected"]
