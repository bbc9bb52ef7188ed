"""Phrase adjacency detection for multi-word queries.

A document earns the phrase bonus when every query token appears
contiguously, in query order, inside a single field. Positions are taken
after stop-word removal, so "policy of agriculture" matches "policy for
agriculture".
"""

from __future__ import annotations

from collections.abc import Sequence


def contains_phrase(field_tokens: Sequence[str], phrase: Sequence[str]) -> bool:
    """Return True when ``phrase`` occurs as a contiguous run in ``field_tokens``."""
    if not phrase:
        return False
    width = len(phrase)
    if width > len(field_tokens):
        return False
    first = phrase[0]
    for start in range(len(field_tokens) - width + 1):
        if field_tokens[start] != first:
            continue
        if all(field_tokens[start + offset] == phrase[offset] for offset in range(1, width)):
            return True
    return False
