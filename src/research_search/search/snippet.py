"""Snippet extraction with sentence-boundary awareness.

Snippets are cut from the original (markup-stripped, untokenized) field
text so readers see real sentences:
- Tries to start/end on sentence boundaries
- Falls back to word boundaries if no sentence found
- Highlights whole-word matches of the query tokens

The returned snippet is an HTML fragment; all source text in it is escaped.
"""

from __future__ import annotations

from collections.abc import Sequence
from functools import lru_cache
import html
import re


# Sentence-ending punctuation pattern
SENTENCE_END_PATTERN = re.compile(r"[.!?]\s+")
# Word boundary pattern (for fallback)
WORD_BOUNDARY_PATTERN = re.compile(r"\s+")

ELLIPSIS = "..."


@lru_cache(maxsize=512)
def term_pattern(term: str) -> re.Pattern[str]:
    """Case-insensitive pattern matching ``term`` as a whole token.

    Token boundaries mirror the tokenizer: any non-alphanumeric character,
    including underscore, separates tokens.
    """
    return re.compile(rf"(?<![^\W_]){re.escape(term)}(?![^\W_])", re.IGNORECASE)


def find_sentence_start(text: str, position: int, max_lookback: int = 200) -> int:
    """Find the start of the sentence containing the position.

    Args:
        text: The full text to search in.
        position: The position to find sentence start for.
        max_lookback: Maximum characters to look back.

    Returns:
        Index of sentence start, or position - max_lookback if not found.
    """
    if position == 0:
        return 0

    start_search = max(0, position - max_lookback)
    search_text = text[start_search:position]

    matches = list(SENTENCE_END_PATTERN.finditer(search_text))
    if matches:
        return start_search + matches[-1].end()

    if start_search == 0:
        return 0

    # No sentence boundary; avoid starting mid-word
    words = list(WORD_BOUNDARY_PATTERN.finditer(search_text))
    if words:
        quarter_pos = len(search_text) // 4
        for match in words:
            if match.start() >= quarter_pos:
                return start_search + match.end()

    return start_search


def find_sentence_end(text: str, position: int, max_lookahead: int = 200) -> int:
    """Find the end of the sentence containing the position.

    Args:
        text: The full text to search in.
        position: The position to find sentence end for.
        max_lookahead: Maximum characters to look ahead.

    Returns:
        Index of sentence end, or position + max_lookahead if not found.
    """
    if position >= len(text):
        return len(text)

    end_search = min(len(text), position + max_lookahead)
    search_text = text[position:end_search]

    match = SENTENCE_END_PATTERN.search(search_text)
    if match:
        return position + match.end()

    if end_search == len(text):
        return end_search

    words = list(WORD_BOUNDARY_PATTERN.finditer(search_text))
    if words:
        three_quarter_pos = (len(search_text) * 3) // 4
        for match in reversed(words):
            if match.start() <= three_quarter_pos:
                return position + match.start()

    return end_search


def extract_sentence_snippet(
    text: str,
    match_position: int,
    match_length: int,
    max_chars: int = 300,
    surrounding_context: int = 100,
) -> tuple[str, int, int]:
    """Extract a snippet that respects sentence boundaries.

    Args:
        text: The full text to extract from.
        match_position: Position of the matching term.
        match_length: Length of the matching term.
        max_chars: Maximum characters for the snippet.
        surrounding_context: Minimum context around the match.

    Returns:
        Tuple of (snippet_text, snippet_start, snippet_end) where the bounds
        index into ``text``.
    """
    if not text:
        return "", 0, 0

    # Expand from the match to the enclosing sentence, at most surrounding_context each way
    sentence_start = find_sentence_start(text, match_position, max_lookback=surrounding_context)
    sentence_end = find_sentence_end(text, match_position + match_length, max_lookahead=surrounding_context)

    # If too long, trim to max_chars centered on match
    if sentence_end - sentence_start > max_chars:
        half_max = max_chars // 2
        center = match_position + (match_length // 2)
        sentence_start = max(0, center - half_max)
        sentence_end = min(len(text), sentence_start + max_chars)

    return text[sentence_start:sentence_end].strip(), sentence_start, sentence_end


def highlight_terms_in_snippet(snippet: str, terms: Sequence[str], max_highlights: int = 5) -> str:
    """Highlight whole-word matches of ``terms`` in a plain-text snippet.

    The result is an HTML fragment: matches are wrapped in ``<mark>`` and
    every other character is escaped, so markup that was stored as entities
    in the source stays inert text.

    Args:
        snippet: The plain snippet text to highlight.
        terms: Terms to highlight.
        max_highlights: Maximum number of matches to highlight.

    Returns:
        Escaped snippet with highlighted terms.
    """
    if not snippet:
        return ""

    matches: list[tuple[int, int]] = []
    for term in terms:
        if not term or len(term) < 2:
            continue
        matches.extend((match.start(), match.end()) for match in term_pattern(term).finditer(snippet))

    # Sort by start position, then by length (longer matches first to prefer them)
    matches.sort(key=lambda x: (x[0], -(x[1] - x[0])))

    selected: list[tuple[int, int]] = []
    for start, end in matches:
        if any(start < selected_end and end > selected_start for selected_start, selected_end in selected):
            continue
        selected.append((start, end))
        if len(selected) >= max_highlights:
            break

    pieces: list[str] = []
    cursor = 0
    for start, end in sorted(selected):
        pieces.append(html.escape(snippet[cursor:start]))
        pieces.append(f"<mark>{html.escape(snippet[start:end])}</mark>")
        cursor = end
    pieces.append(html.escape(snippet[cursor:]))
    return "".join(pieces)


def find_first_match(text: str, terms: Sequence[str]) -> tuple[int, str] | None:
    """Return (position, matched_text) of the earliest whole-word match of any term."""
    best: tuple[int, str] | None = None
    for term in terms:
        if not term:
            continue
        match = term_pattern(term).search(text)
        if match and (best is None or match.start() < best[0]):
            best = (match.start(), match.group(0))
    return best


def build_smart_snippet(
    text: str,
    terms: Sequence[str],
    max_chars: int = 300,
    surrounding_context: int = 100,
) -> str:
    """Build a snippet with sentence awareness and highlighting.

    This is the main entry point for snippet generation. Truncated edges are
    marked with an ellipsis.

    Args:
        text: The full plain text to extract snippet from.
        terms: Terms to find and highlight.
        max_chars: Maximum characters for the snippet (before markers).
        surrounding_context: Minimum context around matches.

    Returns:
        An HTML-escaped snippet with <mark> highlights, respecting sentence
        boundaries.
    """
    if not text:
        return ""

    first = find_first_match(text, terms) if terms else None
    if first is None:
        head = html.escape(text[:max_chars].strip())
        return head + ELLIPSIS if len(text) > max_chars else head

    position, matched = first
    snippet, start, end = extract_sentence_snippet(
        text,
        position,
        len(matched),
        max_chars=max_chars,
        surrounding_context=surrounding_context,
    )

    highlighted = highlight_terms_in_snippet(snippet, terms)
    if start > 0:
        highlighted = ELLIPSIS + highlighted
    if end < len(text):
        highlighted = highlighted + ELLIPSIS
    return highlighted
