"""Merges components that are really the same logical artifact."""

from __future__ import annotations

import re
from pathlib import PurePath
from typing import List, Sequence

from ..logging import get_logger
from ..models import Component
from ..versions import parse_version_from_filename
from .base import AnalysisContext, AnalysisPhase, Analyzer

_STARTING_TEXT = re.compile(r"^[a-zA-Z]*")
_REPOSITORY_DIR = "repository"


class BundlingAnalyzer(Analyzer):
    """Folds duplicate components (sources jars, split artifacts) into one.

    The whole working set is processed on the first call of a run; later
    calls in the same run are no-ops until ``close`` resets the guard.
    """

    name = "bundling"
    phase = AnalysisPhase.PRE_FINDING_ANALYSIS

    def __init__(self) -> None:
        self._analyzed = False
        self.logger = get_logger("analyzers.bundling")

    def supports(self, component: Component) -> bool:
        return True

    def analyze(self, component: Component, context: AnalysisContext) -> None:
        if self._analyzed:
            return
        self._analyzed = True
        merged = self.bundle(context)
        if merged:
            self.logger.debug("Bundled %d duplicate component(s)", merged)

    def bundle(self, context: AnalysisContext) -> int:
        """Merge duplicate pairs, recording removals on ``context``. Returns the merge count."""
        components: Sequence[Component] = context.components
        merged = 0
        for position, left in enumerate(components):
            if context.is_removed(left):
                continue
            for right in components[position + 1 :]:
                if context.is_removed(right) or not should_merge(left, right):
                    continue
                if is_core(left, right):
                    winner, loser = left, right
                else:
                    winner, loser = right, left
                _absorb(winner, loser)
                context.remove(loser)
                merged += 1
                if loser is left:
                    break
        return merged

    def close(self) -> None:
        self._analyzed = False


def should_merge(left: Component, right: Component) -> bool:
    return (
        identifiers_match(left, right)
        and same_base_path(left.path, right.path)
        and file_names_match(left.file_name, right.file_name)
    )


def identifiers_match(left: Component, right: Component) -> bool:
    if not left.identifiers or not right.identifiers:
        return False
    return set(left.identifiers) == set(right.identifiers)


def same_base_path(left: PurePath, right: PurePath) -> bool:
    left_parent = left.parent.as_posix()
    right_parent = right.parent.as_posix()
    if left_parent.lower() == right_parent.lower():
        return True
    left_parts = _lower_parts(left.parent)
    right_parts = _lower_parts(right.parent)
    if _REPOSITORY_DIR in left_parts and _REPOSITORY_DIR in right_parts:
        return base_repository_path(left) == base_repository_path(right)
    return False


def base_repository_path(path: PurePath) -> str:
    """Truncate a local package repository path to the repository root plus two segments.

    ``.../repository/group/artifact/1.0/artifact-1.0.jar`` becomes
    ``.../repository/group/artifact``.
    """
    parts = list(path.parent.parts)
    lowered = [part.lower() for part in parts]
    if _REPOSITORY_DIR not in lowered:
        return path.parent.as_posix().lower()
    position = lowered.index(_REPOSITORY_DIR)
    return PurePath(*parts[: position + 3]).as_posix().lower()


def file_names_match(left: str, right: str) -> bool:
    left_version = parse_version_from_filename(left)
    right_version = parse_version_from_filename(right)
    if left_version is not None and right_version is not None and left_version != right_version:
        return False
    left_stem = _STARTING_TEXT.match(left)
    right_stem = _STARTING_TEXT.match(right)
    if left_stem is None or right_stem is None:
        return False
    return bool(left_stem.group(0)) and left_stem.group(0) == right_stem.group(0)


def is_core(left: Component, right: Component) -> bool:
    """Return True when ``left`` should survive a merge with ``right``."""
    left_name = left.file_name.lower()
    right_name = right.file_name.lower()
    if "core" in right_name and "core" not in left_name:
        return False
    if "core" in left_name and "core" not in right_name:
        return True
    return len(left_name) <= len(right_name)


def _absorb(winner: Component, loser: Component) -> None:
    related: List[Component] = [loser] + list(loser.related)
    loser.related.clear()
    for item in related:
        if all(existing is not item for existing in winner.related):
            winner.related.append(item)


def _lower_parts(path: PurePath) -> List[str]:
    return [part.lower() for part in path.parts]


__all__ = [
    "BundlingAnalyzer",
    "base_repository_path",
    "file_names_match",
    "identifiers_match",
    "is_core",
    "same_base_path",
    "should_merge",
]
