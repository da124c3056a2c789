"""SQLAlchemy tables backing the vulnerability store and product catalog."""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class VulnerabilityRecord(Base):
    __tablename__ = "vulnerabilities"

    id = Column(Integer, primary_key=True)
    cve = Column(String(64), unique=True, nullable=False, index=True)
    description = Column(Text, default="")

    references = relationship(
        "ReferenceRecord",
        back_populates="vulnerability",
        cascade="all, delete-orphan",
        order_by="ReferenceRecord.id",
    )
    software = relationship(
        "SoftwareRecord",
        back_populates="vulnerability",
        cascade="all, delete-orphan",
        order_by="SoftwareRecord.id",
    )


class ReferenceRecord(Base):
    __tablename__ = "vulnerability_references"

    id = Column(Integer, primary_key=True)
    vulnerability_id = Column(
        Integer, ForeignKey("vulnerabilities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    url = Column(String(1024), nullable=False)
    name = Column(Text, default="")
    source = Column(String(255), default="")

    vulnerability = relationship("VulnerabilityRecord", back_populates="references")


class SoftwareRecord(Base):
    """A catalog entry a vulnerability applies to."""

    __tablename__ = "vulnerable_software"
    __table_args__ = (
        UniqueConstraint("vulnerability_id", "cpe", name="uq_vulnerable_software"),
        Index("ix_vulnerable_software_key", "part", "vendor", "product"),
    )

    id = Column(Integer, primary_key=True)
    vulnerability_id = Column(
        Integer, ForeignKey("vulnerabilities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    cpe = Column(String(512), nullable=False)
    part = Column(String(1), nullable=False)
    vendor = Column(String(255), nullable=False)
    product = Column(String(255), nullable=False)
    version = Column(String(255), default="")
    previous_versions = Column(Boolean, default=False, nullable=False)

    vulnerability = relationship("VulnerabilityRecord", back_populates="software")


class CatalogEntryRecord(Base):
    __tablename__ = "cpe_entries"

    id = Column(Integer, primary_key=True)
    uri = Column(String(512), unique=True, nullable=False, index=True)
    part = Column(String(1), nullable=False)
    vendor = Column(String(255), nullable=False)
    product = Column(String(255), nullable=False)
    version = Column(String(255), default="")
    update = Column(String(255), default="")
    edition = Column(String(255), default="")
    language = Column(String(64), default="")
    vendor_length = Column(Integer, default=1, nullable=False)
    product_length = Column(Integer, default=1, nullable=False)

    terms = relationship("CatalogTermRecord", cascade="all, delete-orphan")


class CatalogTermRecord(Base):
    """Inverted index row: one searchable term of one catalog entry field."""

    __tablename__ = "cpe_terms"
    __table_args__ = (Index("ix_cpe_terms_lookup", "field", "term"),)

    id = Column(Integer, primary_key=True)
    entry_id = Column(
        Integer, ForeignKey("cpe_entries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    field = Column(String(16), nullable=False)
    term = Column(String(255), nullable=False)


class FeedMetadataRecord(Base):
    __tablename__ = "feed_metadata"

    feed_id = Column(String(64), primary_key=True)
    last_updated = Column(DateTime(timezone=True))
    schema_version = Column(String(16))


class PropertyRecord(Base):
    __tablename__ = "properties"

    key = Column(String(128), primary_key=True)
    value = Column(Text)


__all__ = [
    "Base",
    "CatalogEntryRecord",
    "CatalogTermRecord",
    "FeedMetadataRecord",
    "PropertyRecord",
    "ReferenceRecord",
    "SoftwareRecord",
    "VulnerabilityRecord",
]
