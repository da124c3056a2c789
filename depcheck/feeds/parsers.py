"""Streaming parsers for the two supported vulnerability feed schemas.

The current schema (2.0) carries full records; the prior schema (1.2) is
only read for its "all previous versions" markers, which the current schema
does not express.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO, Dict, Iterator, List, Optional

from lxml import etree

from ..models import CatalogEntry, Reference, Vulnerability, VulnerableRange

CURRENT_SCHEMA_VERSION = "2.0"
PRIOR_SCHEMA_VERSION = "1.2"

_XML_LANG = "{http://www.w3.org/XML/1998/namespace}lang"
_APPLICATION_PREFIX = "cpe:/a:"


class FeedFormatError(ValueError):
    """Raised when a feed document is not in the expected schema."""


@dataclass
class ParseStatistics:
    processed: int = 0
    discarded: int = 0


def iter_current_feed(
    stream: BinaryIO, stats: Optional[ParseStatistics] = None
) -> Iterator[Vulnerability]:
    """Yield records that name at least one application CPE.

    Records without any application entry are counted as discarded and never
    yielded.
    """
    stats = stats if stats is not None else ParseStatistics()
    root_checked = False
    for event, element in _iterparse(stream):
        name = _localname(element)
        if event == "start":
            if not root_checked:
                _check_root(element, CURRENT_SCHEMA_VERSION)
                root_checked = True
            continue
        if name != "entry":
            continue
        vulnerability = _read_current_entry(element)
        _release(element)
        stats.processed += 1
        if vulnerability is None or not vulnerability.ranges:
            stats.discarded += 1
            continue
        yield vulnerability


def parse_prior_feed(stream: BinaryIO) -> Dict[str, List[VulnerableRange]]:
    """Map vulnerability ids to their open-ended ranges from a prior-schema feed."""
    ranges: Dict[str, List[VulnerableRange]] = {}
    root_checked = False
    for event, element in _iterparse(stream):
        if event == "start":
            if not root_checked:
                _check_root(element, PRIOR_SCHEMA_VERSION)
                root_checked = True
            continue
        if _localname(element) != "entry":
            continue
        vulnerability_id = element.get("name")
        if vulnerability_id and element.get("reject") != "1":
            found = _read_prior_ranges(element)
            if found:
                ranges.setdefault(vulnerability_id, []).extend(found)
        _release(element)
    return ranges


def _iterparse(stream: BinaryIO) -> Iterator[tuple[str, etree._Element]]:
    return etree.iterparse(
        stream,
        events=("start", "end"),
        huge_tree=True,
        resolve_entities=False,
        no_network=True,
        remove_comments=True,
    )


def _check_root(element: etree._Element, expected: str) -> None:
    version = element.get("nvd_xml_version")
    if _localname(element) != "nvd" or version != expected:
        raise FeedFormatError(
            f"Expected nvd feed version {expected}, found <{_localname(element)}> "
            f"version {version!r}"
        )


def _read_current_entry(element: etree._Element) -> Optional[Vulnerability]:
    vulnerability_id = element.get("id")
    if not vulnerability_id:
        return None
    vulnerability = Vulnerability(id=vulnerability_id)
    for child in element.iter(etree.Element):
        name = _localname(child)
        if name == "product":
            text = (child.text or "").strip()
            if not text.lower().startswith(_APPLICATION_PREFIX):
                continue
            entry = CatalogEntry.try_parse(text)
            if entry is not None:
                vulnerability.merge_ranges([VulnerableRange(entry)])
        elif name == "summary":
            vulnerability.description = (child.text or "").strip()
        elif name == "references":
            if child.get(_XML_LANG, "en") != "en":
                continue
            vulnerability.references.extend(_read_references(child))
    return vulnerability


def _read_references(group: etree._Element) -> List[Reference]:
    source = ""
    links: List[Reference] = []
    for child in group:
        if not isinstance(child.tag, str):
            continue
        name = _localname(child)
        if name == "source":
            source = (child.text or "").strip()
        elif name == "reference":
            url = child.get("href", "").strip()
            if url:
                links.append(Reference(url=url, name=(child.text or "").strip()))
    for link in links:
        link.source = source
    return links


def _read_prior_ranges(element: etree._Element) -> List[VulnerableRange]:
    found: List[VulnerableRange] = []
    for product in element.iter(etree.Element):
        if _localname(product) != "prod":
            continue
        vendor = _normalise_name(product.get("vendor"))
        name = _normalise_name(product.get("name"))
        if not vendor or not name:
            continue
        for version in product:
            if not isinstance(version.tag, str) or _localname(version) != "vers":
                continue
            if version.get("prev") != "1":
                continue
            # 1.2 feeds carry the update qualifier in the edition attribute.
            entry = CatalogEntry(
                part="a",
                vendor=vendor,
                product=name,
                version=(version.get("num") or "").strip().lower(),
                update=(version.get("edition") or "").strip().lower(),
            )
            found.append(VulnerableRange(entry, previous_versions=True))
    return found


def _normalise_name(value: Optional[str]) -> str:
    return (value or "").strip().lower().replace(" ", "_")


def _localname(element: etree._Element) -> str:
    return etree.QName(element).localname


def _release(element: etree._Element) -> None:
    element.clear(keep_tail=True)
    parent = element.getparent()
    if parent is None:
        return
    while element.getprevious() is not None:
        del parent[0]


__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "FeedFormatError",
    "PRIOR_SCHEMA_VERSION",
    "ParseStatistics",
    "iter_current_feed",
    "parse_prior_feed",
]
