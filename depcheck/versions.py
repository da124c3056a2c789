"""Version parsing and ordering used across matching and vulnerability lookup."""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Iterator, List, Optional, Sequence, Tuple, Union

PLACEHOLDER = "-"

_TOKEN_PATTERN = re.compile(r"(\d+[a-z]{1,3}$|[a-z]+\d+|\d+|(?:release|beta|alpha)$)")
_NUMERIC = re.compile(r"\d+")
_FILENAME_VERSION = re.compile(
    r"\d+(?:\.\d+){1,6}(?:[._-]?(?:release|[a-zA-Z_-]{1,3}\d{1,3}))?"
)

VersionLike = Union[str, "DependencyVersion"]


def parse_version(raw: str) -> List[str]:
    """Split a version string into comparable tokens.

    Separators are ignored; alphanumeric runs such as ``r1`` or ``x6`` stay
    whole. Word qualifiers other than a trailing ``release``, ``beta`` or
    ``alpha`` are dropped, so ``3.0.0.Final`` and ``1.0-SNAPSHOT`` tokenise
    like ``3.0.0`` and ``1.0``. Input without any recognisable run becomes a
    single token.
    """
    text = (raw or "").strip().lower()
    if not text:
        return []
    tokens = [match.group(0) for match in _TOKEN_PATTERN.finditer(text)]
    return tokens or [text]


@total_ordering
@dataclass(frozen=True)
class DependencyVersion:
    """Tokenised version value with a total order."""

    tokens: Tuple[str, ...]

    @classmethod
    def parse(cls, raw: str) -> "DependencyVersion":
        return cls(tuple(parse_version(raw)))

    @property
    def is_placeholder(self) -> bool:
        return self.tokens == (PLACEHOLDER,)

    def compare(self, other: "DependencyVersion") -> int:
        if self.tokens == other.tokens:
            return 0
        if self.is_placeholder:
            return -1
        if other.is_placeholder:
            return 1
        for left, right in zip(self.tokens, other.tokens):
            if left == right:
                continue
            result = _compare_tokens(left, right)
            if result:
                return result
        if len(self.tokens) == len(other.tokens):
            return 0
        return -1 if len(self.tokens) < len(other.tokens) else 1

    def matches_at_least_three_levels(self, other: "DependencyVersion") -> bool:
        """Return True when ``other`` belongs to the same three-level version family.

        The first three tokens must agree; beyond that ``self`` must sort before
        ``other`` at every shared position. Versions whose lengths differ by
        three or more tokens never match.
        """
        if abs(len(self.tokens) - len(other.tokens)) >= 3:
            return False
        for index, (left, right) in enumerate(zip(self.tokens, other.tokens)):
            if index >= 3:
                if left.lower() >= right.lower():
                    return False
            elif left != right:
                return False
        return True

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, DependencyVersion):
            return NotImplemented
        return self.compare(other) < 0

    def __iter__(self) -> Iterator[str]:
        return iter(self.tokens)

    def __len__(self) -> int:
        return len(self.tokens)

    def __str__(self) -> str:
        return ".".join(self.tokens)


def _compare_tokens(left: str, right: str) -> int:
    if _NUMERIC.fullmatch(left) and _NUMERIC.fullmatch(right):
        result = _sign(int(left), int(right))
        # "01" and "1" share a value but not a spelling; keep them distinct
        return result or _sign(left, right)
    return _sign(left.lower(), right.lower())


def _sign(left: Union[int, str], right: Union[int, str]) -> int:
    if left < right:  # type: ignore[operator]
        return -1
    if left > right:  # type: ignore[operator]
        return 1
    return 0


def _coerce(value: VersionLike) -> DependencyVersion:
    if isinstance(value, DependencyVersion):
        return value
    return DependencyVersion.parse(value)


def compare(left: VersionLike, right: VersionLike) -> int:
    """Return -1, 0 or 1 ordering ``left`` against ``right``."""
    return _coerce(left).compare(_coerce(right))


def versions_equal(left: VersionLike, right: VersionLike) -> bool:
    """Return True when both versions tokenise identically."""
    return _coerce(left).tokens == _coerce(right).tokens


def matches_at_least_three_levels(base: VersionLike, other: VersionLike) -> bool:
    return _coerce(base).matches_at_least_three_levels(_coerce(other))


def sort_versions(values: Sequence[str]) -> List[str]:
    return sorted(values, key=DependencyVersion.parse)


def parse_version_from_filename(name: str) -> Optional[DependencyVersion]:
    """Extract the single version-looking run from a file name.

    Returns None when no candidate exists or when more than one does, since
    the file name is then ambiguous.
    """
    if not name:
        return None
    matches = _FILENAME_VERSION.findall(name)
    if len(matches) != 1:
        return None
    return DependencyVersion.parse(matches[0])


__all__ = [
    "DependencyVersion",
    "PLACEHOLDER",
    "compare",
    "matches_at_least_three_levels",
    "parse_version",
    "parse_version_from_filename",
    "sort_versions",
    "versions_equal",
]
