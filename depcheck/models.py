"""Core data models shared across depcheck components."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum, IntEnum
from pathlib import Path
from typing import Dict, Iterable, List, Optional
from urllib.parse import quote, unquote

from .errors import MatchError

CPE_PREFIX = "cpe:/"
CPE_PARTS = {"a", "h", "o"}
_CPE_SAFE_CHARS = "~._-!*'()+"


class Confidence(IntEnum):
    """Trust level attached to evidence and identifiers."""

    LOW = 1
    MEDIUM = 2
    HIGH = 3
    HIGHEST = 4


class EvidenceType(str, Enum):
    VENDOR = "vendor"
    PRODUCT = "product"
    VERSION = "version"


@dataclass(frozen=True)
class Evidence:
    """Text fragment harvested from a component's content."""

    category: EvidenceType
    source: str
    name: str
    value: str
    confidence: Confidence = Confidence.MEDIUM


@dataclass(frozen=True)
class Identifier:
    """Resolved claim about what a component is.

    Equality only considers ``type`` and ``value`` so identifier sets compare
    by what they name rather than how sure we are.
    """

    type: str
    value: str
    confidence: Confidence = field(default=Confidence.MEDIUM, compare=False)
    url: Optional[str] = field(default=None, compare=False)


@dataclass(frozen=True)
class CatalogEntry:
    """Parsed canonical product identifier (CPE 2.2 URI)."""

    part: str
    vendor: str
    product: str
    version: str = ""
    update: str = ""
    edition: str = ""
    language: str = ""

    @classmethod
    def parse(cls, uri: str) -> "CatalogEntry":
        """Parse ``cpe:/part:vendor:product[:version[:update[:edition[:language]]]]``.

        Raises ValueError for anything that is not a well-formed CPE URI.
        """
        if not isinstance(uri, str) or not uri.lower().startswith(CPE_PREFIX):
            raise ValueError(f"Not a CPE URI: {uri!r}")
        fields = uri[len(CPE_PREFIX):].split(":")
        if len(fields) < 3 or len(fields) > 7:
            raise ValueError(f"Unexpected number of CPE fields in {uri!r}")
        decoded = [unquote(value).strip().lower() for value in fields]
        decoded.extend([""] * (7 - len(decoded)))
        part, vendor, product = decoded[:3]
        if part not in CPE_PARTS or not vendor or not product:
            raise ValueError(f"Malformed CPE URI: {uri!r}")
        return cls(part, vendor, product, *decoded[3:])

    @classmethod
    def try_parse(cls, uri: str) -> Optional["CatalogEntry"]:
        try:
            return cls.parse(uri)
        except ValueError:
            return None

    @property
    def uri(self) -> str:
        values = [
            self.part,
            self.vendor,
            self.product,
            self.version,
            self.update,
            self.edition,
            self.language,
        ]
        while values and not values[-1]:
            values.pop()
        return CPE_PREFIX + ":".join(quote(value, safe=_CPE_SAFE_CHARS) for value in values)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.part, self.vendor, self.product)

    @property
    def is_application(self) -> bool:
        return self.part == "a"

    def __str__(self) -> str:
        return self.uri


@dataclass(frozen=True)
class VulnerableRange:
    """Catalog entry a vulnerability applies to.

    ``previous_versions`` marks an open-ended range covering every version up
    to and including ``entry.version``.
    """

    entry: CatalogEntry
    previous_versions: bool = False

    @property
    def uri(self) -> str:
        return self.entry.uri


@dataclass
class Reference:
    url: str
    name: str = ""
    source: str = ""


@dataclass
class Vulnerability:
    """Published vulnerability record with the ranges it affects."""

    id: str
    description: str = ""
    references: List[Reference] = field(default_factory=list)
    ranges: List[VulnerableRange] = field(default_factory=list)

    def merge_ranges(self, incoming: Iterable[VulnerableRange]) -> None:
        self.ranges = merge_ranges(self.ranges, incoming)


def merge_ranges(
    existing: Iterable[VulnerableRange], incoming: Iterable[VulnerableRange]
) -> List[VulnerableRange]:
    """Union two range lists by URI, OR-ing the open-ended flag."""
    merged: Dict[str, VulnerableRange] = {}
    for item in list(existing) + list(incoming):
        current = merged.get(item.uri)
        if current is None:
            merged[item.uri] = item
        elif item.previous_versions and not current.previous_versions:
            merged[item.uri] = replace(current, previous_versions=True)
    return list(merged.values())


@dataclass
class FeedMetadata:
    """Bookkeeping for the last committed ingestion of a feed."""

    feed_id: str
    last_updated: Optional[datetime] = None
    schema_version: Optional[str] = None


@dataclass(eq=False)
class Component:
    """A file discovered in the scanned project.

    Identity is the object itself; the engine owns the working set and
    analyzers mutate components in place.
    """

    path: Path
    sha1: Optional[str] = None
    md5: Optional[str] = None
    evidence: List[Evidence] = field(default_factory=list)
    identifiers: List[Identifier] = field(default_factory=list)
    vulnerabilities: List[Vulnerability] = field(default_factory=list)
    related: List["Component"] = field(default_factory=list)
    failures: List[MatchError] = field(default_factory=list)
    vendor_weightings: set[str] = field(default_factory=set)
    product_weightings: set[str] = field(default_factory=set)

    @property
    def file_name(self) -> str:
        return self.path.name

    @property
    def extension(self) -> str:
        return self.path.suffix.lstrip(".").lower()

    @property
    def display_name(self) -> str:
        return str(self.path)

    def add_evidence(
        self,
        category: EvidenceType,
        source: str,
        name: str,
        value: str,
        confidence: Confidence = Confidence.MEDIUM,
    ) -> None:
        value = (value or "").strip()
        if not value:
            return
        item = Evidence(category, source, name, value, confidence)
        if item not in self.evidence:
            self.evidence.append(item)

    def evidence_for(
        self, category: EvidenceType, minimum: Confidence = Confidence.LOW
    ) -> List[Evidence]:
        return [
            item
            for item in self.evidence
            if item.category is category and item.confidence >= minimum
        ]

    def add_identifier(self, identifier: Identifier) -> None:
        if identifier not in self.identifiers:
            self.identifiers.append(identifier)

    def cpe_identifiers(self) -> List[Identifier]:
        return [identifier for identifier in self.identifiers if identifier.type == "cpe"]

    def add_vulnerability(self, vulnerability: Vulnerability) -> None:
        if all(existing.id != vulnerability.id for existing in self.vulnerabilities):
            self.vulnerabilities.append(vulnerability)

    def add_failure(self, error: MatchError) -> None:
        self.failures.append(error)


__all__ = [
    "CPE_PREFIX",
    "CatalogEntry",
    "Component",
    "Confidence",
    "Evidence",
    "EvidenceType",
    "FeedMetadata",
    "Identifier",
    "Reference",
    "Vulnerability",
    "VulnerableRange",
    "merge_ranges",
]
