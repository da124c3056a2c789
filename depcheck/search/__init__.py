"""Catalog search: tokenisation, weighted queries and the identifier index."""

from .index import CatalogHit, CatalogIndex, index_entries
from .query import QueryClause, QueryTerm, WeightedQuery, build_query

__all__ = [
    "CatalogHit",
    "CatalogIndex",
    "QueryClause",
    "QueryTerm",
    "WeightedQuery",
    "build_query",
    "index_entries",
]
