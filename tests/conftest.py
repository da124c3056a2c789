from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from depcheck.search.index import CatalogIndex
from depcheck.stores import Database, VulnerabilityStore, open_database
from tests._fixtures.feed_builder import FeedDirectory


@pytest.fixture
def database(tmp_path: Path) -> Iterator[Database]:
    """Provide a fresh SQLite knowledge base under the pytest tmp_path."""
    db = open_database(f"sqlite:///{tmp_path / 'kb' / 'depcheck.db'}")
    yield db
    db.dispose()


@pytest.fixture
def store(database: Database) -> VulnerabilityStore:
    return VulnerabilityStore(database)


@pytest.fixture
def index(database: Database) -> CatalogIndex:
    return CatalogIndex(database)


@pytest.fixture
def feed_dir(tmp_path: Path) -> FeedDirectory:
    """Provide a local feed mirror directory."""
    return FeedDirectory(tmp_path / "feeds")
