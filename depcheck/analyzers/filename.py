"""Evidence derived from a component's file name."""

from __future__ import annotations

import re
from typing import FrozenSet

from ..models import Component, Confidence, EvidenceType
from ..versions import parse_version_from_filename
from .base import AnalysisContext, AnalysisPhase, Analyzer

_VERSION_SUFFIX = re.compile(r"[-_.]v?\d")


class FileNameAnalyzer(Analyzer):
    """Treats the name part of the file name as vendor and product evidence."""

    name = "file-name"
    phase = AnalysisPhase.INFORMATION_COLLECTION

    def __init__(self, extensions: FrozenSet[str]) -> None:
        self.extensions = extensions

    def supports(self, component: Component) -> bool:
        return component.extension in self.extensions

    def analyze(self, component: Component, context: AnalysisContext) -> None:
        stem = component.path.stem
        base = _VERSION_SUFFIX.split(stem, maxsplit=1)[0] or stem
        component.add_evidence(EvidenceType.PRODUCT, "file", "name", base, Confidence.HIGH)
        component.add_evidence(EvidenceType.VENDOR, "file", "name", base, Confidence.HIGH)
        version = parse_version_from_filename(component.file_name)
        if version is not None:
            component.add_evidence(
                EvidenceType.VERSION, "file", "version", str(version), Confidence.HIGH
            )


__all__ = ["FileNameAnalyzer"]
