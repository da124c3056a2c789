"""Tests for the file-name and archive manifest analyzers."""

from __future__ import annotations

from pathlib import Path

import pytest

from depcheck.analyzers import DEFAULT_EXTENSIONS, AnalysisContext
from depcheck.analyzers.archive import ArchiveManifestAnalyzer, parse_manifest
from depcheck.analyzers.filename import FileNameAnalyzer
from depcheck.errors import MatchError
from depcheck.models import Component, Confidence, EvidenceType
from tests._fixtures.feed_builder import STRUTS_MANIFEST, write_jar


def _values(component: Component, category: EvidenceType, minimum=Confidence.LOW) -> list[str]:
    return [item.value for item in component.evidence_for(category, minimum)]


def test_file_name_analyzer_splits_name_and_version(tmp_path: Path) -> None:
    component = Component(path=tmp_path / "struts2-core-2.1.2.jar")
    analyzer = FileNameAnalyzer(DEFAULT_EXTENSIONS)

    assert analyzer.supports(component)
    analyzer.analyze(component, AnalysisContext([component]))

    assert _values(component, EvidenceType.PRODUCT) == ["struts2-core"]
    assert _values(component, EvidenceType.VENDOR) == ["struts2-core"]
    assert _values(component, EvidenceType.VERSION) == ["2.1.2"]
    assert not analyzer.supports(Component(path=tmp_path / "notes.txt"))


def test_manifest_analyzer_collects_weighted_evidence(tmp_path: Path) -> None:
    jar = write_jar(tmp_path / "struts2-core-2.1.2.jar", STRUTS_MANIFEST)
    component = Component(path=jar)

    ArchiveManifestAnalyzer().analyze(component, AnalysisContext([component]))

    assert _values(component, EvidenceType.PRODUCT, Confidence.HIGH) == ["Struts 2 Core"]
    assert _values(component, EvidenceType.VENDOR, Confidence.HIGH) == ["Apache Software Foundation"]
    assert _values(component, EvidenceType.VERSION, Confidence.HIGH) == ["2.1.2"]
    assert "apache" in _values(component, EvidenceType.VENDOR)
    assert component.vendor_weightings == {"apache"}
    assert component.product_weightings == {"struts", "struts2-core"}


def test_manifest_analyzer_ignores_archives_without_manifest(tmp_path: Path) -> None:
    component = Component(path=write_jar(tmp_path / "plain.jar"))

    ArchiveManifestAnalyzer().analyze(component, AnalysisContext([component]))

    assert component.evidence == []


def test_manifest_analyzer_raises_match_error_for_corrupt_archive(tmp_path: Path) -> None:
    broken = tmp_path / "broken.jar"
    broken.write_bytes(b"not a zip")
    component = Component(path=broken)

    with pytest.raises(MatchError) as excinfo:
        ArchiveManifestAnalyzer().analyze(component, AnalysisContext([component]))

    assert excinfo.value.analyzer == "archive-manifest"


def test_parse_manifest_handles_continuations_and_sections() -> None:
    text = (
        "Manifest-Version: 1.0\r\n"
        "Implementation-Title: A very long title that wraps onto\r\n"
        "  the next line\r\n"
        "\r\n"
        "Name: org/example/\r\n"
        "Implementation-Title: ignored\r\n"
    )

    attributes = parse_manifest(text)

    assert attributes["implementation-title"] == "A very long title that wraps onto the next line"
    assert "name" not in attributes
