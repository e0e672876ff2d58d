"""Case-insensitive comparisons against lower-case keywords."""

from __future__ import annotations

from collections.abc import Iterable

_ASCII_LOWER = str.maketrans(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz"
)


class AmbiguousMatchError(LookupError):
    """More than one keyword could complete the given text."""

    def __init__(self, text: str, candidates: list[str]) -> None:
        super().__init__(f"'{text}' is ambiguous: {', '.join(candidates)}")
        self.text = text
        self.candidates = candidates


def _lower(text: str) -> str:
    return text.translate(_ASCII_LOWER)


def starts_with(text: str, prefix: str) -> bool:
    """True if ``text`` starts with the lower-case ``prefix``, ignoring case."""
    return _lower(text[:len(prefix)]) == prefix and len(text) >= len(prefix)


def iequals(text: str, other: str) -> bool:
    """True if ``text`` equals the lower-case ``other``, ignoring case."""
    return _lower(text) == other


def autocomplete(text: str, matches: Iterable[str]) -> int | None:
    """Index of the single keyword that ``text`` abbreviates.

    Returns None when nothing matches and raises AmbiguousMatchError when
    more than one keyword does.
    """
    lowered = _lower(text)
    found = [
        (index, entry)
        for index, entry in enumerate(matches)
        if entry.startswith(lowered)
    ]
    if not found:
        return None
    if len(found) > 1:
        raise AmbiguousMatchError(text, [entry for _, entry in found])
    return found[0][0]