"""Helpers for writing small NVD feed documents and archives in tests."""

from __future__ import annotations

import gzip
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Mapping, Sequence, Tuple
from xml.sax.saxutils import escape, quoteattr

FIXED_NOW = datetime(2013, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

CURRENT_HEADER = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<nvd xmlns="http://scap.nist.gov/schema/feed/vulnerability/2.0" '
    'xmlns:vuln="http://scap.nist.gov/schema/vulnerability/0.4" '
    'nvd_xml_version="2.0" pub_date="2013-01-01T00:00:00">\n'
)
PRIOR_HEADER = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<nvd xmlns="http://nvd.nist.gov/feeds/cve/1.2" nvd_xml_version="1.2" '
    'pub_date="2013-01-01">\n'
)


def current_entry(
    cve: str,
    products: Iterable[str],
    *,
    summary: str = "",
    references: Sequence[Tuple[str, str, str]] = (),
) -> str:
    """Render one 2.0 entry; ``references`` holds ``(source, href, text)`` tuples."""
    lines = [f"  <entry id={quoteattr(cve)}>", "    <vuln:vulnerable-software-list>"]
    lines.extend(f"      <vuln:product>{escape(product)}</vuln:product>" for product in products)
    lines.append("    </vuln:vulnerable-software-list>")
    for source, href, text in references:
        lines.append('    <vuln:references xml:lang="en" reference_type="UNKNOWN">')
        lines.append(f"      <vuln:source>{escape(source)}</vuln:source>")
        lines.append(
            f'      <vuln:reference href={quoteattr(href)} xml:lang="en">{escape(text)}</vuln:reference>'
        )
        lines.append("    </vuln:references>")
    if summary:
        lines.append(f"    <vuln:summary>{escape(summary)}</vuln:summary>")
    lines.append("  </entry>")
    return "\n".join(lines)


def current_feed(*entries: str) -> str:
    return CURRENT_HEADER + "\n".join(entries) + "\n</nvd>\n"


def prior_entry(
    cve: str,
    products: Mapping[Tuple[str, str], Sequence[Tuple[str, bool]]],
    *,
    reject: bool = False,
) -> str:
    """Render one 1.2 entry; ``products`` maps ``(vendor, name)`` to ``(num, prev)`` pairs."""
    flag = ' reject="1"' if reject else ""
    lines = [f'  <entry type="CVE" name={quoteattr(cve)}{flag}>', "    <vuln_soft>"]
    for (vendor, name), versions in products.items():
        lines.append(f"      <prod name={quoteattr(name)} vendor={quoteattr(vendor)}>")
        for number, previous in versions:
            prev = ' prev="1"' if previous else ""
            lines.append(f"        <vers num={quoteattr(number)}{prev}/>")
        lines.append("      </prod>")
    lines.append("    </vuln_soft>")
    lines.append("  </entry>")
    return "\n".join(lines)


def prior_feed(*entries: str) -> str:
    return PRIOR_HEADER + "\n".join(entries) + "\n</nvd>\n"


class FeedDirectory:
    """Writes feed files using the naming scheme understood by DirectoryFeedSource."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def write_current(self, feed_id: str, document: str, *, compress: bool = False) -> Path:
        return self._write(f"nvdcve-2.0-{feed_id}.xml", document, compress)

    def write_prior(self, feed_id: str, document: str, *, compress: bool = False) -> Path:
        return self._write(f"nvdcve-{feed_id}.xml", document, compress)

    def _write(self, name: str, document: str, compress: bool) -> Path:
        data = document.encode("utf-8")
        if compress:
            path = self.root / f"{name}.gz"
            path.write_bytes(gzip.compress(data))
        else:
            path = self.root / name
            path.write_bytes(data)
        return path


def write_jar(path: Path, manifest: Mapping[str, str] | None = None) -> Path:
    """Create a minimal archive with an optional main-section manifest."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as archive:
        if manifest is not None:
            body = "Manifest-Version: 1.0\r\n" + "".join(
                f"{key}: {value}\r\n" for key, value in manifest.items()
            )
            archive.writestr("META-INF/MANIFEST.MF", body + "\r\n")
        archive.writestr("placeholder.class", b"\xca\xfe\xba\xbe")
    return path


STRUTS_MANIFEST = {
    "Implementation-Title": "Struts 2 Core",
    "Implementation-Vendor": "Apache Software Foundation",
    "Implementation-Version": "2.1.2",
    "Bundle-SymbolicName": "org.apache.struts.struts2-core",
}


__all__ = [
    "FIXED_NOW",
    "FeedDirectory",
    "STRUTS_MANIFEST",
    "current_entry",
    "current_feed",
    "prior_entry",
    "prior_feed",
    "write_jar",
]
