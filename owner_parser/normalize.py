"""
Text normalization shared by both parsers and the reconciler.

Slovak names arrive with diacritics, mixed case and stray punctuation. The
helpers here fold those differences away for comparison and search, and
format extracted names for display.
"""

from __future__ import annotations

import re
import unicodedata

FEMININE_SUFFIXES: tuple[str, ...] = ("ová", "ná")

_PARENTHESES = re.compile(r"\([^)]*\)")
_ISOLATED_MARKERS = re.compile(r"(?<!\w)[rmž]\.")
_NON_WORD = re.compile(r"[^\w\s]")
_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def remove_diacritics(text: str) -> str:
    """Strip combining marks: 'Ľubomír Šťastný' → 'Lubomir Stastny'."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def format_name(name: str) -> str:
    """Capitalize each whitespace-delimited word: 'JAROŠ štefan' → 'Jaroš Štefan'."""
    if not name:
        return name
    return " ".join(word[0].upper() + word[1:].lower() for word in name.split())


def is_all_caps(token: str) -> bool:
    """True for tokens like 'BATÓOVÁ' — at least one letter, none lowercase."""
    return token == token.upper() and token != token.lower()


def has_feminine_suffix(token: str) -> bool:
    """Slovak feminine surnames end in -ová or -ná."""
    return token.lower().endswith(FEMININE_SUFFIXES)


def clean_name(text: str) -> str:
    """Searchable form of a raw name.

    Lowercase, no diacritics, no parenthetical content, no isolated one-letter
    markers (r., m., ž.), punctuation turned into spaces, whitespace collapsed.
    """
    lowered = text.lower()
    lowered = _PARENTHESES.sub(" ", lowered)
    lowered = _ISOLATED_MARKERS.sub(" ", lowered)
    lowered = remove_diacritics(lowered)
    lowered = _NON_WORD.sub(" ", lowered)
    return _WHITESPACE.sub(" ", lowered).strip()


def normalize_tag_value(value: str) -> str:
    """Comparison key for tag values: 'Ján ' and 'jan' normalize identically."""
    folded = remove_diacritics(value.lower())
    folded = _NON_ALNUM.sub(" ", folded)
    return _WHITESPACE.sub(" ", folded).strip()
