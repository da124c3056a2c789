"""Persistent store of vulnerability records and feed bookkeeping."""

from __future__ import annotations

from datetime import timezone
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..errors import StoreError
from ..logging import get_logger
from ..models import (
    CatalogEntry,
    FeedMetadata,
    Reference,
    Vulnerability,
    VulnerableRange,
)
from .database import Database
from .schema import (
    FeedMetadataRecord,
    PropertyRecord,
    ReferenceRecord,
    SoftwareRecord,
    VulnerabilityRecord,
)


class VulnerabilityStore:
    """Upsert-by-id store of vulnerabilities with range lookup by product key."""

    def __init__(self, database: Database) -> None:
        self.database = database
        self.logger = get_logger("stores.vulnerabilities")

    # ------------------------------------------------------------------
    # Vulnerabilities
    # ------------------------------------------------------------------
    def upsert(self, vulnerability: Vulnerability, session: Session | None = None) -> None:
        """Insert or update a vulnerability, merging ranges with what is stored."""
        with self.database.scope(session) as active:
            record = active.execute(
                select(VulnerabilityRecord).where(VulnerabilityRecord.cve == vulnerability.id)
            ).scalar_one_or_none()
            if record is None:
                record = VulnerabilityRecord(cve=vulnerability.id)
                active.add(record)
            record.description = vulnerability.description
            record.references = [
                ReferenceRecord(url=ref.url, name=ref.name, source=ref.source)
                for ref in vulnerability.references
            ]
            existing: Dict[str, SoftwareRecord] = {row.cpe: row for row in record.software}
            for item in vulnerability.ranges:
                uri = item.entry.uri
                row = existing.get(uri)
                if row is None:
                    row = SoftwareRecord(
                        cpe=uri,
                        part=item.entry.part,
                        vendor=item.entry.vendor,
                        product=item.entry.product,
                        version=item.entry.version,
                        previous_versions=item.previous_versions,
                    )
                    record.software.append(row)
                    existing[uri] = row
                elif item.previous_versions:
                    row.previous_versions = True

    def get(self, vulnerability_id: str) -> Optional[Vulnerability]:
        try:
            with self.database.read_session() as session:
                record = session.execute(
                    select(VulnerabilityRecord)
                    .where(VulnerabilityRecord.cve == vulnerability_id)
                    .options(
                        selectinload(VulnerabilityRecord.references),
                        selectinload(VulnerabilityRecord.software),
                    )
                ).scalar_one_or_none()
                return _to_vulnerability(record) if record is not None else None
        except SQLAlchemyError as exc:
            raise StoreError(f"Unable to load {vulnerability_id}: {exc}") from exc

    def find_by_catalog_key(self, part: str, vendor: str, product: str) -> List[Vulnerability]:
        """Return every vulnerability with a range naming ``part:vendor:product``."""
        try:
            with self.database.read_session() as session:
                matching_ids = (
                    select(SoftwareRecord.vulnerability_id)
                    .where(
                        SoftwareRecord.part == part,
                        SoftwareRecord.vendor == vendor,
                        SoftwareRecord.product == product,
                    )
                    .distinct()
                )
                records = (
                    session.execute(
                        select(VulnerabilityRecord)
                        .where(VulnerabilityRecord.id.in_(matching_ids))
                        .options(
                            selectinload(VulnerabilityRecord.references),
                            selectinload(VulnerabilityRecord.software),
                        )
                        .order_by(VulnerabilityRecord.cve)
                    )
                    .scalars()
                    .all()
                )
                return [_to_vulnerability(record) for record in records]
        except SQLAlchemyError as exc:
            raise StoreError(f"Lookup failed for {vendor}:{product}: {exc}") from exc

    def find_catalog_entries(self, vendor: str, product: str) -> List[CatalogEntry]:
        """List the distinct vulnerable catalog entries recorded for a product."""
        try:
            with self.database.read_session() as session:
                rows = session.execute(
                    select(SoftwareRecord.cpe).where(
                        SoftwareRecord.vendor == vendor.lower(),
                        SoftwareRecord.product == product.lower(),
                    ).distinct()
                ).scalars()
                entries = [CatalogEntry.try_parse(uri) for uri in rows]
        except SQLAlchemyError as exc:
            raise StoreError(f"Lookup failed for {vendor}:{product}: {exc}") from exc
        return sorted((entry for entry in entries if entry is not None), key=lambda e: e.uri)

    def count(self) -> int:
        try:
            with self.database.read_session() as session:
                return int(
                    session.execute(select(func.count(VulnerabilityRecord.id))).scalar_one()
                )
        except SQLAlchemyError as exc:
            raise StoreError(f"Unable to count vulnerabilities: {exc}") from exc

    # ------------------------------------------------------------------
    # Feed metadata
    # ------------------------------------------------------------------
    def get_metadata(self, feed_id: str) -> FeedMetadata:
        try:
            with self.database.read_session() as session:
                record = session.get(FeedMetadataRecord, feed_id)
                if record is None:
                    return FeedMetadata(feed_id=feed_id)
                return _to_metadata(record)
        except SQLAlchemyError as exc:
            raise StoreError(f"Unable to read metadata for {feed_id}: {exc}") from exc

    def all_metadata(self) -> List[FeedMetadata]:
        try:
            with self.database.read_session() as session:
                records = session.execute(
                    select(FeedMetadataRecord).order_by(FeedMetadataRecord.feed_id)
                ).scalars()
                return [_to_metadata(record) for record in records]
        except SQLAlchemyError as exc:
            raise StoreError(f"Unable to read feed metadata: {exc}") from exc

    def save_metadata(self, metadata: FeedMetadata, session: Session | None = None) -> None:
        with self.database.scope(session) as active:
            record = active.get(FeedMetadataRecord, metadata.feed_id)
            if record is None:
                record = FeedMetadataRecord(feed_id=metadata.feed_id)
                active.add(record)
            record.last_updated = metadata.last_updated
            record.schema_version = metadata.schema_version

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    def get_property(self, key: str, default: Optional[str] = None) -> Optional[str]:
        try:
            with self.database.read_session() as session:
                record = session.get(PropertyRecord, key)
                return record.value if record is not None else default
        except SQLAlchemyError as exc:
            raise StoreError(f"Unable to read property {key}: {exc}") from exc

    def save_property(self, key: str, value: str, session: Session | None = None) -> None:
        with self.database.scope(session) as active:
            record = active.get(PropertyRecord, key)
            if record is None:
                active.add(PropertyRecord(key=key, value=value))
            else:
                record.value = value


def _to_vulnerability(record: VulnerabilityRecord) -> Vulnerability:
    ranges: List[VulnerableRange] = []
    for row in record.software:
        entry = CatalogEntry.try_parse(row.cpe)
        if entry is not None:
            ranges.append(VulnerableRange(entry, bool(row.previous_versions)))
    return Vulnerability(
        id=record.cve,
        description=record.description or "",
        references=[
            Reference(url=ref.url, name=ref.name or "", source=ref.source or "")
            for ref in record.references
        ],
        ranges=ranges,
    )


def _to_metadata(record: FeedMetadataRecord) -> FeedMetadata:
    last_updated = record.last_updated
    if last_updated is not None and last_updated.tzinfo is None:
        last_updated = last_updated.replace(tzinfo=timezone.utc)
    return FeedMetadata(
        feed_id=record.feed_id,
        last_updated=last_updated,
        schema_version=record.schema_version,
    )


__all__ = ["VulnerabilityStore"]
