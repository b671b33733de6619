"""Canonicalize SQL text so structurally identical queries share one key."""

from __future__ import annotations

import re
from typing import Callable

from .config import get_settings

Normalizer = Callable[[str], str]

PLACEHOLDER = "?"

# Comments, quoted identifiers and string literals, matched in one left-to-right
# scan so a quote inside a comment (or a comment marker inside a string) is inert.
_LEXICAL_PATTERN = re.compile(
    r"(?P<comment>--[^\n]*|/\*.*?\*/)"
    r"|(?P<identifier>\"(?:[^\"]|\"\")*\")"
    r"|(?P<dollar>\$(?P<tag>[A-Za-z_][A-Za-z0-9_]*|)\$.*?\$(?P=tag)\$)"
    r"|(?P<string>(?:(?<!\w)[EeNnBbXx])?'(?:[^'\\]|\\.|'')*')",
    flags=re.DOTALL,
)
_POSITIONAL_PATTERN = re.compile(r"\$\d+|%\([A-Za-z_][A-Za-z0-9_]*\)s|%s")
_HEX_PATTERN = re.compile(r"\b0x[0-9A-Fa-f]+\b")
_NUMBER_PATTERN = re.compile(r"(?<![\w$.])\d+(?:\.\d*)?(?:[eE][-+]?\d+)?(?![\w$])")
_BOOLEAN_PATTERN = re.compile(r"\b(?:TRUE|FALSE)\b", flags=re.IGNORECASE)
_NULL_PATTERN = re.compile(r"\bNULL\b", flags=re.IGNORECASE)
_NULL_PREDICATE_PATTERN = re.compile(r"\b(?:IS|NOT)\s+$", flags=re.IGNORECASE)
_IN_LIST_PATTERN = re.compile(r"\bIN\s*\(\s*\?(?:\s*,\s*\?)*\s*\)", flags=re.IGNORECASE)
_REPEATED_ROWS_PATTERN = re.compile(r"(\([^()]*\))(?:\s*,\s*\1)+")

_VALUE_PATTERNS = [_POSITIONAL_PATTERN, _HEX_PATTERN, _NUMBER_PATTERN, _BOOLEAN_PATTERN]


def _replace_null(match: re.Match) -> str:
    # ``IS NULL`` / ``NOT NULL`` are predicates and constraints, not values.
    if _NULL_PREDICATE_PATTERN.search(match.string, 0, match.start()):
        return match.group(0)
    return PLACEHOLDER


def _strip_values(segment: str) -> str:
    for pattern in _VALUE_PATTERNS:
        segment = pattern.sub(PLACEHOLDER, segment)
    return _NULL_PATTERN.sub(_replace_null, segment)


def strip_literals(query: str) -> str:
    """Replace literal values in ``query`` with ``?`` and drop comments."""

    parts = []
    position = 0
    for match in _LEXICAL_PATTERN.finditer(query):
        parts.append(_strip_values(query[position:match.start()]))
        if match.group("comment") is not None:
            parts.append(" ")
        elif match.group("identifier") is not None:
            parts.append(match.group(0))
        else:
            parts.append(PLACEHOLDER)
        position = match.end()
    parts.append(_strip_values(query[position:]))
    return "".join(parts)


def reduce_lists(query: str) -> str:
    """Collapse ``IN (?, ?, ...)`` and repeated ``VALUES`` rows to one element."""

    reduced = _IN_LIST_PATTERN.sub("IN (?)", query)
    return _REPEATED_ROWS_PATTERN.sub(r"\1", reduced)


def normalize_query(query: str, *, reduce_lists_enabled: bool | None = None) -> str:
    """Return the canonical key for ``query``.

    ``SELECT 1 FROM t`` and ``SELECT 2 FROM t`` both map to ``SELECT ? FROM t``.
    When ``reduce_lists_enabled`` is ``None`` the ``QUERY_COUNTERS_REDUCE_LISTS``
    setting decides whether enumerations collapse to a single element.
    """

    if reduce_lists_enabled is None:
        reduce_lists_enabled = get_settings().reduce_lists

    canonical = " ".join(strip_literals(str(query)).split())
    if reduce_lists_enabled:
        canonical = reduce_lists(canonical)
    return canonical


__all__ = ["Normalizer", "normalize_query", "reduce_lists", "strip_literals"]
