"""Evidence read from Java archive manifests."""

from __future__ import annotations

import zipfile
from typing import Dict, List

from ..errors import MatchError
from ..models import Component, Confidence, EvidenceType
from .base import AnalysisContext, AnalysisPhase, Analyzer

ARCHIVE_EXTENSIONS = frozenset({"jar", "war", "ear"})
_MANIFEST = "META-INF/MANIFEST.MF"
_PACKAGE_NOISE = {"org", "com", "net", "io", "edu", "gov", "www", "java", "javax"}

_MANIFEST_EVIDENCE = {
    "implementation-title": (EvidenceType.PRODUCT, Confidence.HIGH),
    "bundle-name": (EvidenceType.PRODUCT, Confidence.MEDIUM),
    "specification-title": (EvidenceType.PRODUCT, Confidence.MEDIUM),
    "implementation-vendor": (EvidenceType.VENDOR, Confidence.HIGH),
    "bundle-vendor": (EvidenceType.VENDOR, Confidence.MEDIUM),
    "specification-vendor": (EvidenceType.VENDOR, Confidence.LOW),
    "implementation-version": (EvidenceType.VERSION, Confidence.HIGH),
    "bundle-version": (EvidenceType.VERSION, Confidence.HIGH),
    "specification-version": (EvidenceType.VERSION, Confidence.LOW),
}
_PACKAGE_KEYS = ("implementation-vendor-id", "bundle-symbolicname")


class ArchiveManifestAnalyzer(Analyzer):
    """Collects vendor, product and version evidence from ``META-INF/MANIFEST.MF``."""

    name = "archive-manifest"
    phase = AnalysisPhase.INFORMATION_COLLECTION
    extensions = ARCHIVE_EXTENSIONS

    def supports(self, component: Component) -> bool:
        return component.extension in ARCHIVE_EXTENSIONS

    def analyze(self, component: Component, context: AnalysisContext) -> None:
        try:
            with zipfile.ZipFile(component.path) as archive:
                if _MANIFEST not in archive.namelist():
                    return
                raw = archive.read(_MANIFEST)
        except (zipfile.BadZipFile, OSError) as exc:
            raise MatchError(
                component.display_name, f"unable to read archive: {exc}", analyzer=self.name
            ) from exc

        attributes = parse_manifest(raw.decode("utf-8", errors="replace"))
        for key, value in attributes.items():
            mapped = _MANIFEST_EVIDENCE.get(key)
            if mapped is not None:
                category, confidence = mapped
                component.add_evidence(category, "manifest", key, value, confidence)

        for key in _PACKAGE_KEYS:
            parts = _package_parts(attributes.get(key, ""))
            if not parts:
                continue
            component.vendor_weightings.add(parts[0])
            component.add_evidence(EvidenceType.VENDOR, "manifest", key, parts[0], Confidence.LOW)
            for part in parts[1:]:
                component.product_weightings.add(part)


def parse_manifest(text: str) -> Dict[str, str]:
    """Parse the main section of a JAR manifest into lower-cased attribute names."""
    attributes: Dict[str, str] = {}
    last_key = None
    for line in text.splitlines():
        if line.startswith(" ") and last_key is not None:
            attributes[last_key] += line[1:]
            continue
        if not line.strip():
            if attributes:
                break
            continue
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        last_key = key.strip().lower()
        attributes[last_key] = value.strip()
    return {key: value.strip() for key, value in attributes.items()}


def _package_parts(value: str) -> List[str]:
    head = value.split(";", 1)[0].strip().lower()
    return [part for part in head.split(".") if part and part not in _PACKAGE_NOISE]


__all__ = ["ARCHIVE_EXTENSIONS", "ArchiveManifestAnalyzer", "parse_manifest"]
