"""Full-text catalog of canonical product identifiers."""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import CatalogStatus, StoreError
from ..logging import get_logger
from ..models import CatalogEntry
from ..stores.database import Database
from ..stores.schema import CatalogEntryRecord, CatalogTermRecord
from ..versions import versions_equal
from .query import PRODUCT_FIELD, VENDOR_FIELD, QueryClause, WeightedQuery
from .tokenizer import concatenate_pairs, tokenize, unique

_CHUNK_SIZE = 500


@dataclass(frozen=True)
class CatalogHit:
    entry: CatalogEntry
    score: float
    exact_version: bool = False


class CatalogIndex:
    """Inverted term index over catalog entries stored in the database.

    Vendor and product clauses are required: an entry must match at least one
    term of each. Term scores are ``boost * idf`` normalised by the square
    root of the field's term count; the optional version clause adds its
    boost when the entry's version equals the queried one.
    """

    def __init__(self, database: Database) -> None:
        self.database = database
        self.logger = get_logger("search.index")

    def insert(self, entry: CatalogEntry, session: Session | None = None) -> bool:
        """Add ``entry`` unless already indexed. Returns True when a row was created."""
        uri = entry.uri
        with self.database.scope(session) as active:
            existing = active.execute(
                select(CatalogEntryRecord.id).where(CatalogEntryRecord.uri == uri)
            ).first()
            if existing is not None:
                return False
            vendor_terms = unique(tokenize(entry.vendor))
            product_terms = unique(tokenize(entry.product))
            record = CatalogEntryRecord(
                uri=uri,
                part=entry.part,
                vendor=entry.vendor,
                product=entry.product,
                version=entry.version,
                update=entry.update,
                edition=entry.edition,
                language=entry.language,
                vendor_length=max(1, len(vendor_terms)),
                product_length=max(1, len(product_terms)),
            )
            record.terms = [
                CatalogTermRecord(field=VENDOR_FIELD, term=term) for term in vendor_terms
            ] + [CatalogTermRecord(field=PRODUCT_FIELD, term=term) for term in product_terms]
            active.add(record)
            return True

    def count(self) -> int:
        try:
            with self.database.read_session() as session:
                return int(
                    session.execute(select(func.count(CatalogEntryRecord.id))).scalar_one()
                )
        except SQLAlchemyError as exc:
            raise StoreError(f"Unable to count catalog entries: {exc}") from exc

    def status(self) -> CatalogStatus:
        """Report whether the catalog can be used for matching."""
        try:
            total = self.count()
        except StoreError as exc:
            self.logger.debug("Catalog status check failed: %s", exc)
            return CatalogStatus.UNREACHABLE
        return CatalogStatus.READY if total > 0 else CatalogStatus.EMPTY

    def query(self, query: WeightedQuery, limit: int = 10) -> List[CatalogHit]:
        """Return the best ``limit`` entries ordered by score, exact versions first on ties."""
        required = [
            clause
            for clause in query.clauses
            if clause.required and clause.field in (VENDOR_FIELD, PRODUCT_FIELD)
        ]
        if not required or any(not clause.terms for clause in required):
            return []
        version = query.version
        version_clause = query.clause("version")
        version_boost = version_clause.terms[0].boost if version_clause and version_clause.terms else 0.0

        hits: List[CatalogHit] = []
        try:
            with self.database.read_session() as session:
                total = int(session.execute(select(func.count(CatalogEntryRecord.id))).scalar_one())
                if total == 0:
                    return []
                clause_scores = [self._score_clause(session, clause, total) for clause in required]
                candidates = set(clause_scores[0])
                for scores in clause_scores[1:]:
                    candidates &= set(scores)
                for chunk in _chunks(sorted(candidates), _CHUNK_SIZE):
                    records = session.execute(
                        select(CatalogEntryRecord).where(CatalogEntryRecord.id.in_(chunk))
                    ).scalars()
                    for record in records:
                        score = 0.0
                        for clause, scores in zip(required, clause_scores):
                            length = (
                                record.vendor_length
                                if clause.field == VENDOR_FIELD
                                else record.product_length
                            )
                            score += scores[record.id] / math.sqrt(max(1, length))
                        entry = _to_entry(record)
                        exact = bool(version) and versions_equal(entry.version, version or "")
                        if exact:
                            score += version_boost
                        hits.append(CatalogHit(entry, score, exact))
        except SQLAlchemyError as exc:
            raise StoreError(f"Catalog query failed: {exc}") from exc

        hits.sort(key=lambda hit: (-hit.score, not hit.exact_version, hit.entry.uri))
        self.logger.debug("Query %s returned %d candidate(s)", query, len(hits))
        return hits[:limit]

    def search(self, query: WeightedQuery, limit: int = 10) -> List[CatalogEntry]:
        return [hit.entry for hit in self.query(query, limit)]

    def _score_clause(
        self, session: Session, clause: QueryClause, total: int
    ) -> Dict[int, float]:
        weights = _expand_terms(clause)
        rows = session.execute(
            select(CatalogTermRecord.entry_id, CatalogTermRecord.term).where(
                CatalogTermRecord.field == clause.field,
                CatalogTermRecord.term.in_(list(weights)),
            )
        ).all()
        frequencies = Counter(term for _, term in rows)
        scores: Dict[int, float] = {}
        for entry_id, term in rows:
            idf = 1.0 + math.log(total / (frequencies[term] + 1))
            scores[entry_id] = scores.get(entry_id, 0.0) + weights[term] * idf
        return scores


def _expand_terms(clause: QueryClause) -> Dict[str, float]:
    weights: Dict[str, float] = {}
    for term in clause.terms:
        weights[term.text] = max(weights.get(term.text, 0.0), term.boost)
    for term in concatenate_pairs(term.text for term in clause.terms):
        weights.setdefault(term, 1.0)
    return weights


def _to_entry(record: CatalogEntryRecord) -> CatalogEntry:
    return CatalogEntry(
        part=record.part,
        vendor=record.vendor,
        product=record.product,
        version=record.version or "",
        update=record.update or "",
        edition=record.edition or "",
        language=record.language or "",
    )


def _chunks(values: Sequence[int], size: int) -> Iterator[List[int]]:
    for start in range(0, len(values), size):
        yield list(values[start : start + size])


def index_entries(index: CatalogIndex, entries: Iterable[CatalogEntry]) -> int:
    """Insert several entries in one unit of work, returning how many were new."""
    created = 0
    with index.database.transaction() as session:
        for entry in entries:
            if index.insert(entry, session):
                created += 1
    return created


__all__ = ["CatalogHit", "CatalogIndex", "index_entries"]
