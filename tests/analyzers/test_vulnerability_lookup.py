"""Tests for range evaluation and the vulnerability analyzer."""

from __future__ import annotations

from pathlib import Path

import pytest

from depcheck.analyzers import AnalysisContext, VulnerabilityAnalyzer
from depcheck.errors import MatchError, StoreError
from depcheck.lookup import VulnerabilityLookup, is_affected
from depcheck.models import (
    CatalogEntry,
    Component,
    Confidence,
    Identifier,
    Vulnerability,
    VulnerableRange,
)
from depcheck.stores import VulnerabilityStore


def _range(uri: str, previous: bool = False) -> VulnerableRange:
    return VulnerableRange(CatalogEntry.parse(uri), previous)


@pytest.mark.parametrize(
    "version, uri, previous, expected",
    [
        ("2.1.2", "cpe:/a:apache:struts:2.1.2", False, True),
        ("2.1.3", "cpe:/a:apache:struts:2.1.2", False, False),
        ("2.0.0", "cpe:/a:apache:struts:2.1.2", True, True),
        ("2.2.0", "cpe:/a:apache:struts:2.1.2", True, False),
        ("1.0", "cpe:/a:apache:struts", False, True),
        ("1.0", "cpe:/a:apache:struts:-", False, True),
        ("", "cpe:/a:apache:struts:2.1.2", True, True),
        ("", "cpe:/a:apache:struts:2.1.2", False, False),
    ],
)
def test_is_affected(version: str, uri: str, previous: bool, expected: bool) -> None:
    assert is_affected(version, _range(uri, previous)) is expected


def test_version_family_products_narrow_open_ended_ranges() -> None:
    vulnerable = _range("cpe:/a:apache:struts:2.3.16.1", True)

    assert is_affected("2.3.16", vulnerable, version_family=True) is True
    assert is_affected("2.0.0", vulnerable, version_family=True) is False
    assert is_affected("2.0.0", vulnerable) is True


def _seed(store: VulnerabilityStore) -> None:
    store.upsert(
        Vulnerability(
            id="CVE-2012-0391",
            ranges=[_range("cpe:/a:apache:struts:2.1.2"), _range("cpe:/a:apache:struts:2.0.11", True)],
        )
    )
    store.upsert(Vulnerability(id="CVE-2013-2251", ranges=[_range("cpe:/a:apache:struts:2.3.15")]))
    store.upsert(Vulnerability(id="CVE-2013-0001", ranges=[_range("cpe:/a:apache:tomcat:7.0")]))


def test_lookup_returns_applicable_vulnerabilities(store: VulnerabilityStore) -> None:
    _seed(store)
    lookup = VulnerabilityLookup(store)

    assert [item.id for item in lookup.find_applicable(CatalogEntry.parse("cpe:/a:apache:struts:2.1.2"))] == [
        "CVE-2012-0391"
    ]
    found = lookup.find_applicable(Identifier("cpe", "cpe:/a:apache:struts:2.0.5"))
    assert [item.id for item in found] == ["CVE-2012-0391"]
    assert lookup.find_applicable(CatalogEntry.parse("cpe:/a:apache:struts:2.3.16")) == []


def test_vulnerability_analyzer_attaches_findings(store: VulnerabilityStore, tmp_path: Path) -> None:
    _seed(store)
    component = Component(path=tmp_path / "struts2-core-2.1.2.jar")
    component.add_identifier(Identifier("cpe", "cpe:/a:apache:struts:2.1.2", Confidence.HIGHEST))
    analyzer = VulnerabilityAnalyzer(VulnerabilityLookup(store))

    assert analyzer.supports(component)
    analyzer.analyze(component, AnalysisContext([component]))

    assert [item.id for item in component.vulnerabilities] == ["CVE-2012-0391"]


def test_vulnerability_analyzer_reports_store_failures(tmp_path: Path) -> None:
    class _BrokenStore:
        def find_by_catalog_key(self, part: str, vendor: str, product: str):
            raise StoreError("unable to open database file")

    component = Component(path=tmp_path / "struts.jar")
    component.add_identifier(Identifier("cpe", "cpe:/a:apache:struts:2.1.2"))
    analyzer = VulnerabilityAnalyzer(VulnerabilityLookup(_BrokenStore()))  # type: ignore[arg-type]

    with pytest.raises(MatchError) as excinfo:
        analyzer.analyze(component, AnalysisContext([component]))

    assert "unable to open database file" in str(excinfo.value)
