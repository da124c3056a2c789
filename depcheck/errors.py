"""Error taxonomy shared by ingestion, matching and the engine."""

from __future__ import annotations

from enum import Enum


class DepcheckError(RuntimeError):
    """Base class for all depcheck failures."""


class ConfigurationError(DepcheckError):
    """Raised when a settings value is invalid and no default can be applied."""


class NoCatalogDataError(DepcheckError):
    """Raised when the identification catalog is empty or unreachable before matching."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "The product catalog is empty or unreachable; run `depcheck update` and retry."
        )


class FeedSourceError(DepcheckError):
    """Raised by feed sources when a feed cannot be downloaded or opened."""


class StoreError(DepcheckError):
    """Raised by the persistence layer when the database cannot be used."""


class FeedIngestionError(DepcheckError):
    """A single feed failed to download, parse or persist."""

    def __init__(self, feed_id: str, message: str, *, state: str | None = None) -> None:
        super().__init__(f"feed '{feed_id}': {message}")
        self.feed_id = feed_id
        self.state = state


class MatchError(DepcheckError):
    """A component's evidence or identifiers could not be evaluated."""

    def __init__(self, component: str, message: str, *, analyzer: str | None = None) -> None:
        super().__init__(message)
        self.component = component
        self.analyzer = analyzer

    def __str__(self) -> str:
        prefix = f"[{self.analyzer}] " if self.analyzer else ""
        return f"{prefix}{self.component}: {self.args[0]}"


class CatalogStatus(str, Enum):
    """Outcome of probing the identification catalog before a run."""

    READY = "ready"
    EMPTY = "empty"
    UNREACHABLE = "unreachable"


__all__ = [
    "CatalogStatus",
    "ConfigurationError",
    "DepcheckError",
    "FeedIngestionError",
    "FeedSourceError",
    "MatchError",
    "NoCatalogDataError",
    "StoreError",
]
