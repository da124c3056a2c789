"""Analyzer capability interface and the per-run analysis context."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import IntEnum
from typing import FrozenSet, List, Sequence, Tuple

from ..models import Component


class AnalysisPhase(IntEnum):
    """Phases run in declaration order; each completes before the next starts."""

    INITIAL = 0
    INFORMATION_COLLECTION = 1
    PRE_IDENTIFIER_ANALYSIS = 2
    IDENTIFIER_ANALYSIS = 3
    POST_IDENTIFIER_ANALYSIS = 4
    PRE_FINDING_ANALYSIS = 5
    FINDING_ANALYSIS = 6
    POST_FINDING_ANALYSIS = 7
    FINAL = 8


class AnalysisContext:
    """Immutable snapshot of the working set plus requested additions and removals.

    Analyzers never mutate the working set directly; the engine applies the
    recorded changes once the analyzer has finished.
    """

    def __init__(self, components: Sequence[Component]) -> None:
        self._snapshot: Tuple[Component, ...] = tuple(components)
        self._added: List[Component] = []
        self._removed: List[Component] = []

    @property
    def components(self) -> Tuple[Component, ...]:
        return self._snapshot

    @property
    def added(self) -> Tuple[Component, ...]:
        return tuple(self._added)

    @property
    def removed(self) -> Tuple[Component, ...]:
        return tuple(self._removed)

    def add(self, component: Component) -> None:
        if all(existing is not component for existing in self._added):
            self._added.append(component)

    def remove(self, component: Component) -> None:
        if all(existing is not component for existing in self._removed):
            self._removed.append(component)

    def is_removed(self, component: Component) -> bool:
        return any(existing is component for existing in self._removed)

    def apply(self, working: Sequence[Component]) -> List[Component]:
        """Return a new working set with this context's changes applied."""
        removed_ids: FrozenSet[int] = frozenset(id(component) for component in self._removed)
        result = [component for component in working if id(component) not in removed_ids]
        present = {id(component) for component in result}
        for component in self._added:
            if id(component) not in present and id(component) not in removed_ids:
                result.append(component)
                present.add(id(component))
        return result


class Analyzer(ABC):
    """Contract for analyzers run by the engine."""

    name: str = "analyzer"
    phase: AnalysisPhase = AnalysisPhase.INITIAL
    extensions: FrozenSet[str] = frozenset()

    @abstractmethod
    def supports(self, component: Component) -> bool:
        """Return True when this analyzer should inspect the component."""

    @abstractmethod
    def analyze(self, component: Component, context: AnalysisContext) -> None:
        """Inspect or enrich the component, recording working-set changes on the context."""

    def close(self) -> None:
        """Release resources and reset per-run state."""


__all__ = ["AnalysisContext", "AnalysisPhase", "Analyzer"]
