"""Tokenisation shared by the catalog index and query builder."""

from __future__ import annotations

import re
from typing import Iterable, List

_TOKEN_PATTERN = re.compile(r"[a-z0-9]+")
_NON_ALPHA = re.compile(r"[^a-z]")


def tokenize(text: str) -> List[str]:
    """Lower-case ``text`` and split it into alphanumeric runs."""
    return _TOKEN_PATTERN.findall((text or "").lower())


def unique(tokens: Iterable[str]) -> List[str]:
    seen: set[str] = set()
    ordered: List[str] = []
    for token in tokens:
        if token and token not in seen:
            seen.add(token)
            ordered.append(token)
    return ordered


def cleanse(text: str) -> str:
    """Normalise free text into space separated, de-duplicated words."""
    return " ".join(unique(tokenize(text)))


def concatenate_pairs(tokens: Iterable[str]) -> List[str]:
    """Emit each token followed by its concatenation with the next one.

    ``["struts", "2", "core"]`` becomes
    ``["struts", "struts2", "2", "2core", "core"]``.
    """
    words = list(tokens)
    expanded: List[str] = []
    for index, word in enumerate(words):
        expanded.append(word)
        if index + 1 < len(words):
            expanded.append(word + words[index + 1])
    return expanded


def equals_ignoring_non_alpha(left: str, right: str) -> bool:
    """Compare two words after dropping case and every non-letter character."""
    if left is None or right is None:
        return False
    stripped_left = _NON_ALPHA.sub("", left.lower())
    return bool(stripped_left) and stripped_left == _NON_ALPHA.sub("", right.lower())


__all__ = [
    "cleanse",
    "concatenate_pairs",
    "equals_ignoring_non_alpha",
    "tokenize",
    "unique",
]
