"""Whole-word column reference matching.

The validator and the resolver both go through this module so that they
agree on what "references a column" means.  A reference is a
case-insensitive occurrence of a field name bounded on each side by a
character outside ``[A-Za-z0-9_]`` or by the edge of the text, so a
field named ``tax`` is not found inside ``taxi``.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable

_WORD_CHARS = "A-Za-z0-9_"

_IDENTIFIER_RE = re.compile(rf"(?<![{_WORD_CHARS}])[A-Za-z_][{_WORD_CHARS}]*")


@lru_cache(maxsize=1024)
def field_pattern(field: str) -> re.Pattern[str]:
    """Compile the whole-word, case-insensitive pattern for *field*."""
    return re.compile(
        rf"(?<![{_WORD_CHARS}]){re.escape(field)}(?![{_WORD_CHARS}])",
        re.IGNORECASE,
    )


def references_field(text: str, field: str) -> bool:
    """Return True if *text* references *field* as a whole word."""
    return field_pattern(field).search(text) is not None


def longest_first(fields: Iterable[str]) -> list[str]:
    """Order field names longest first, keeping catalog order among ties."""
    unique = list(dict.fromkeys(f for f in fields if f))
    return sorted(unique, key=len, reverse=True)


def find_references(text: str, fields: Iterable[str]) -> list[str]:
    """Return the fields that *text* references, longest name first.

    Args:
        text: Formula source text.
        fields: Candidate field names, spelled as in the catalog.

    Returns:
        The referenced field names (catalog spelling, de-duplicated).
    """
    return [f for f in longest_first(fields) if references_field(text, f)]


def find_identifiers(text: str) -> list[str]:
    """Return the identifier-like words in *text*, in order of appearance."""
    return list(dict.fromkeys(_IDENTIFIER_RE.findall(text)))


def reference_pattern(fields: Iterable[str]) -> re.Pattern[str] | None:
    """Build one alternation matching any of *fields* as a whole word.

    Alternatives are tried longest first.  Returns None when there is
    nothing to match.
    """
    ordered = longest_first(fields)
    if not ordered:
        return None
    alternation = "|".join(re.escape(f) for f in ordered)
    return re.compile(
        rf"(?<![{_WORD_CHARS}])(?:{alternation})(?![{_WORD_CHARS}])",
        re.IGNORECASE,
    )
