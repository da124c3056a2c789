"""Weighted catalog queries built from component evidence."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .tokenizer import equals_ignoring_non_alpha, tokenize, unique

WEIGHTING_BOOST = 5.0
VERSION_BOOST = 0.7
WEIGHTED_VERSION_BOOST = 0.2

VENDOR_FIELD = "vendor"
PRODUCT_FIELD = "product"
VERSION_FIELD = "version"


@dataclass(frozen=True)
class QueryTerm:
    text: str
    boost: float = 1.0

    def render(self) -> str:
        if self.boost == 1.0:
            return self.text
        return f"{self.text}^{self.boost:g}"


@dataclass
class QueryClause:
    """Disjunction of terms against one catalog field."""

    field: str
    terms: List[QueryTerm] = field(default_factory=list)
    required: bool = True

    @property
    def weighted(self) -> bool:
        return any(term.boost != 1.0 for term in self.terms)

    def render(self) -> str:
        return f"{self.field}:({' '.join(term.render() for term in self.terms)})"


@dataclass
class WeightedQuery:
    clauses: List[QueryClause] = field(default_factory=list)

    def clause(self, name: str) -> Optional[QueryClause]:
        for clause in self.clauses:
            if clause.field == name:
                return clause
        return None

    @property
    def version(self) -> Optional[str]:
        clause = self.clause(VERSION_FIELD)
        if clause is None or not clause.terms:
            return None
        return clause.terms[0].text

    def render(self) -> str:
        return " AND ".join(clause.render() for clause in self.clauses)

    def __str__(self) -> str:
        return self.render()


def build_query(
    vendor_text: str,
    product_text: str,
    version: Optional[str] = None,
    vendor_weightings: Optional[Iterable[str]] = None,
    product_weightings: Optional[Iterable[str]] = None,
    *,
    weighting_boost: float = WEIGHTING_BOOST,
    version_boost: float = VERSION_BOOST,
    weighted_version_boost: float = WEIGHTED_VERSION_BOOST,
) -> WeightedQuery:
    """Combine evidence text into product, vendor and optional version clauses.

    Words matching a weighting (ignoring case and non-letters) are boosted and
    the weighting word itself is added as an alias when it differs. The
    version clause weight drops once any weighting applies so it never
    outweighs an alias hit.
    """
    product = _weighted_clause(PRODUCT_FIELD, product_text, product_weightings, weighting_boost)
    vendor = _weighted_clause(VENDOR_FIELD, vendor_text, vendor_weightings, weighting_boost)
    query = WeightedQuery(clauses=[product, vendor])
    version_text = (version or "").strip().lower()
    if version_text:
        boost = weighted_version_boost if product.weighted or vendor.weighted else version_boost
        query.clauses.append(
            QueryClause(VERSION_FIELD, [QueryTerm(version_text, boost)], required=False)
        )
    return query


def _weighted_clause(
    name: str,
    text: str,
    weightings: Optional[Iterable[str]],
    boost: float,
) -> QueryClause:
    weights = unique(word.lower() for word in (weightings or ()) if word)
    terms: List[QueryTerm] = []
    seen: set[str] = set()
    for word in unique(tokenize(text)):
        aliases = [weight for weight in weights if equals_ignoring_non_alpha(word, weight)]
        if not aliases:
            if word not in seen:
                terms.append(QueryTerm(word))
                seen.add(word)
            continue
        for candidate in [word] + [alias for alias in aliases if alias != word]:
            if candidate not in seen:
                terms.append(QueryTerm(candidate, boost))
                seen.add(candidate)
    return QueryClause(name, terms)


__all__ = [
    "PRODUCT_FIELD",
    "QueryClause",
    "QueryTerm",
    "VENDOR_FIELD",
    "VERSION_BOOST",
    "VERSION_FIELD",
    "WEIGHTED_VERSION_BOOST",
    "WEIGHTING_BOOST",
    "WeightedQuery",
    "build_query",
]
