"""
Given-name dictionary — the one lookup both parsers share.

Answers a single question: "is this token a known given name?". Lookups fold
case and diacritics, so 'JÁN', 'Ján' and 'Jan' are all recognised. The
dictionary is read-only once built, which lets parallel workers share one
instance without locking.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path

from .exceptions import DictionaryLoadError
from .normalize import remove_diacritics

logger = logging.getLogger(__name__)

DEFAULT_GIVEN_NAMES_PATH = Path(__file__).parent / "given_names.json"


class GivenNameDictionary:
    """Immutable, case- and diacritic-insensitive set of given names."""

    def __init__(self, names: list[str]):
        keys: set[str] = set()
        for name in names:
            lowered = name.strip().lower()
            if lowered:
                keys.add(lowered)
                keys.add(remove_diacritics(lowered))
        self._keys = frozenset(keys)
        self._size = len({n.strip().lower() for n in names if n.strip()})

    def __len__(self) -> int:
        return self._size

    def __contains__(self, token: object) -> bool:
        return isinstance(token, str) and self.is_given_name(token)

    def is_given_name(self, token: str) -> bool:
        cleaned = token.strip().strip(",.;:").lower()
        if not cleaned:
            return False
        return cleaned in self._keys or remove_diacritics(cleaned) in self._keys


def load_given_names(path: str | Path | None = None) -> GivenNameDictionary:
    """Load the dictionary from a JSON array of names.

    Args:
        path: Path to a JSON file. Defaults to the packaged given_names.json.

    Raises:
        DictionaryLoadError: if the file is missing, unreadable, or not a list
            of strings.
    """
    resolved = DEFAULT_GIVEN_NAMES_PATH if path is None else Path(path)

    try:
        with resolved.open(encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise DictionaryLoadError(
            f"Could not read given-name dictionary '{resolved}': {exc}",
            details={"path": str(resolved)},
        ) from exc

    if not isinstance(data, list) or not all(isinstance(n, str) for n in data):
        raise DictionaryLoadError(
            f"Given-name dictionary '{resolved}' must be a JSON array of strings.",
            details={"path": str(resolved)},
        )

    dictionary = GivenNameDictionary(data)
    logger.debug("Loaded %d given names from %s", len(dictionary), resolved)
    return dictionary


@lru_cache(maxsize=None)
def default_given_names() -> GivenNameDictionary:
    """Process-wide dictionary built from the packaged data file."""
    return load_given_names()
