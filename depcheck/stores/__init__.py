"""Persistence layer for vulnerability records, catalog terms and feed metadata."""

from .database import Database, open_database
from .vulnerability_store import VulnerabilityStore

__all__ = ["Database", "VulnerabilityStore", "open_database"]
