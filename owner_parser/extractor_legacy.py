"""
Legacy tagger — the flat tag vocabulary historical records were stored with.

This is deliberately a second, independent reading of the same raw name. It
has its own marker lists (legacy_markers.json), its own clause order and its
own name split, and it will sometimes disagree with the advanced parser.
That disagreement is what the reconciler is for; do not "fix" this module
by routing it through the advanced rules, or stored tags stop being
reproducible.

Differences worth knowing:
  - Name split order is ALL-CAPS first token, then an -ová token, then the
    given-name dictionary, then "last token is the surname". The advanced
    parser checks both -ová and -ná and only falls back to the dictionary
    after the suffix test on two-token names.
  - Each parenthesis is split on commas and every clause is consumed by the
    first rule that fires (death, birth, status, spouse, relation, origin,
    maiden). A death keyword therefore hides a spouse mentioned in the same
    clause.
  - Spouse tags are keyed by the owner's gender, guessed from the name.
  - Name suffixes stay in the name split: "Novák Ján ml." stores the
    surname "Novák Ml." where the advanced parser reports a separate
    name_suffix. Reconciling such records flags a priezvisko conflict.
"""

from __future__ import annotations

import json
import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ValidationError

from .exceptions import RuleConfigError
from .given_names import GivenNameDictionary, default_given_names
from .models import Gender, LegacyTag
from .normalize import format_name, is_all_caps, remove_diacritics
from .rules import LOWER, UPPER, alias_regex

logger = logging.getLogger(__name__)

DEFAULT_LEGACY_MARKERS_PATH = Path(__file__).parent / "legacy_markers.json"

UNKNOWN_DEATH_DATE = "neznámy"

_PAREN_GROUP = re.compile(r"\(([^)]*)\)")
_DATE = re.compile(r"(\d{1,2})[./-](\d{1,2})[./-](\d{4})")
_WORD = rf"[{UPPER}][{LOWER}]*"
_MASCULINE_ENDING = re.compile(r"[^aáeéiíoóuúyý]$")


# ─── Configuration ──────────────────────────────────────────────────


class LegacyMarkers(BaseModel):
    """Marker vocabulary of the legacy tagger."""

    maiden: list[str]
    spouse_female: list[str]
    spouse_male: list[str]
    relations: dict[str, list[str]]  # tag key → aliases
    status: dict[str, list[str]]  # stored value → aliases
    origin: list[str]
    death: list[str]
    birth: list[str]

    address_towns: list[str]
    address_countries: list[str]
    address_street_words: list[str]

    female_names: list[str]
    male_names: list[str]


def load_legacy_markers(path: str | Path | None = None) -> LegacyMarkers:
    """Load the legacy marker vocabulary.

    Raises:
        RuleConfigError: if the file is unreadable or malformed.
    """
    resolved = DEFAULT_LEGACY_MARKERS_PATH if path is None else Path(path)

    try:
        with resolved.open(encoding="utf-8") as f:
            data = json.load(f)
        return LegacyMarkers.model_validate(data)
    except (OSError, json.JSONDecodeError) as exc:
        raise RuleConfigError(
            f"Could not read legacy markers '{resolved}': {exc}",
            details={"path": str(resolved)},
        ) from exc
    except ValidationError as exc:
        raise RuleConfigError(
            f"Legacy markers '{resolved}' are invalid: {exc.error_count()} error(s)",
            details={"path": str(resolved), "errors": exc.errors(include_url=False)},
        ) from exc


def _prefixed(alias: str) -> str:
    """Alias regex that cannot start in the middle of a word."""
    body = alias_regex(alias)
    return r"(?<!\w)" + body if alias[0].isalnum() else body


def _any_of(aliases: list[str]) -> str:
    return "|".join(re.escape(a) for a in sorted(aliases, key=len, reverse=True))


# ─── Tagger ─────────────────────────────────────────────────────────


class LegacyTagger:
    """Compiled legacy matchers plus the dictionary they share."""

    def __init__(self, markers: LegacyMarkers, given_names: GivenNameDictionary):
        self.markers = markers
        self.given_names = given_names
        ic = re.IGNORECASE

        self.maiden_main = [
            re.compile(rf"{_prefixed(a)}\s+([^,]+)", ic) for a in markers.maiden
        ]
        self.maiden_clause = [
            re.compile(rf"{_prefixed(a)}\s+([{UPPER}][^,)]*?)(?:[,)]|$)", ic)
            for a in markers.maiden
        ]
        self.spouse_with_maiden = [
            re.compile(rf"{_prefixed(a)}\s*({_WORD})\s+r\.\s*({_WORD})", ic)
            for a in markers.spouse_female
        ]
        self.spouse_female = [
            re.compile(rf"{_prefixed(a)}\s*({_WORD}(?:\s+{_WORD})?)", ic)
            for a in markers.spouse_female
        ]
        self.spouse_male = [
            re.compile(rf"{_prefixed(a)}\s*({_WORD}(?:\s+{_WORD})?)(?:\s+r\.|$)", ic)
            for a in markers.spouse_male
        ]
        self.relations = [
            (key, re.compile(rf"{_prefixed(a)}\s+([{UPPER}][^,]*?)(?:\s+r\.|$)", ic))
            for key, aliases in markers.relations.items()
            for a in aliases
        ]
        self.origin = [
            re.compile(rf"{_prefixed(a)}\s+([^,]+)", ic) for a in markers.origin
        ]

        self.address_patterns = [
            re.compile(r"\d+"),
            re.compile(rf"(?<!\w)(?:{_any_of(markers.address_towns)})(?!\w)", ic),
            re.compile(rf"(?<!\w)(?:{_any_of(markers.address_countries)})(?!\w)", ic),
            re.compile(rf"\d+.*(?<!\w)(?:{_any_of(markers.address_street_words)})", ic),
        ]

        self.female_names = frozenset(markers.female_names)
        self.male_names = frozenset(markers.male_names)

    # ── Entry point ──

    def tag(self, raw: str) -> list[LegacyTag]:
        """All legacy tags for one raw name, in the order they were found."""
        if not raw or not raw.strip():
            return []

        main = _PAREN_GROUP.sub("", raw).strip()
        tags, given, surname = self._tag_main(main)
        owner_gender = self.owner_gender(given, surname)
        has_maiden = any(t.key == "rodné_priezvisko" for t in tags)

        for content in _PAREN_GROUP.findall(raw):
            for clause in (c.strip() for c in content.split(",")):
                if not clause:
                    continue
                clause_tags = (
                    self._death(clause)
                    or self._birth(clause)
                    or self._status(clause)
                    or self._spouse(clause, owner_gender, surname)
                    or self._relation(clause)
                    or self._origin(clause)
                    or (None if has_maiden else self._maiden(clause))
                )
                if clause_tags is None:
                    clause_tags = [LegacyTag(key="poznámka", value=clause, uncertain=True, rule="RULE_NOTE")]
                elif clause_tags[0].key == "rodné_priezvisko":
                    has_maiden = True
                tags += clause_tags

        if given:
            tags.append(LegacyTag(key="meno", value=given, uncertain=True, rule="RULE_COMPAT_GIVEN"))
        if surname:
            tags.append(LegacyTag(key="meno", value=surname, rule="RULE_COMPAT_SURNAME"))

        logger.debug("Legacy tagger produced %d tags for %r", len(tags), raw)
        return tags

    # ── Main part ──

    def _tag_main(self, main: str) -> tuple[list[LegacyTag], str, str]:
        tags: list[LegacyTag] = []
        working = main

        name_part, comma, rest = main.partition(",")
        rest = rest.strip()
        if comma and rest and self.is_address(rest):
            working = name_part.strip()
            tags.append(LegacyTag(key="adresa", value=rest, rule="RULE_ADDRESS_DETECTION"))

        for pattern in self.maiden_main:
            match = pattern.search(working)
            if match:
                tags.append(LegacyTag(
                    key="rodné_priezvisko",
                    value=format_name(match.group(1).strip()),
                    rule="RULE_MAIDEN_MAIN",
                ))
                working = (working[:match.start()] + working[match.end():]).strip()
                break

        tokens = [t.replace(",", "").strip() for t in working.split()]
        tokens = [t for t in tokens if t]
        name_tags, given, surname = self.split_name(tokens)
        return tags + name_tags, given, surname

    def split_name(self, tokens: list[str]) -> tuple[list[LegacyTag], str, str]:
        """Legacy given/surname split.

        Returns:
            (tags, given name, surname), with "" for a part not found.
        """
        if not tokens:
            return [], "", ""

        if len(tokens) == 1:
            token = format_name(tokens[0])
            if self.given_names.is_given_name(token):
                return [LegacyTag(key="krstné_meno", value=token, rule="RULE_GIVEN_SINGLE")], token, ""
            return [LegacyTag(
                key="priezvisko", value=token, uncertain=True, rule="RULE_SURNAME_SINGLE"
            )], "", token

        uncertain = False
        if is_all_caps(tokens[0]):
            surname, rest, rule = tokens[0], tokens[1:], "RULE_SURNAME_CAPS"
        elif any(t.lower().endswith("ová") for t in tokens):
            index = next(i for i, t in enumerate(tokens) if t.lower().endswith("ová"))
            surname, rest, rule = tokens[index], tokens[:index] + tokens[index + 1:], "RULE_SURNAME_SUFFIX"
        elif any(self.given_names.is_given_name(t) for t in tokens):
            index = next(i for i, t in enumerate(tokens) if self.given_names.is_given_name(t))
            given = format_name(tokens[index])
            surname = format_name(" ".join(tokens[:index] + tokens[index + 1:]))
            return [
                LegacyTag(key="krstné_meno", value=given, rule="RULE_GIVEN_DICTIONARY"),
                LegacyTag(key="priezvisko", value=surname, rule="RULE_SURNAME_DICTIONARY"),
            ], given, surname
        else:
            surname, rest, rule = tokens[-1], tokens[:-1], "RULE_SURNAME_LAST_FALLBACK"
            uncertain = True

        given = format_name(" ".join(rest))
        surname = format_name(surname)
        return [
            LegacyTag(key="krstné_meno", value=given, uncertain=uncertain, rule="RULE_GIVEN_HEURISTIC"),
            LegacyTag(key="priezvisko", value=surname, uncertain=uncertain, rule=rule),
        ], given, surname

    def is_address(self, text: str) -> bool:
        return any(p.search(text) for p in self.address_patterns)

    def owner_gender(self, given: str, surname: str) -> Optional[Gender]:
        """Guess the owner's gender from the name alone; None if unknown."""
        if surname:
            if surname.endswith(("ová", "á", "ná")):
                return Gender.FEMALE
            if _MASCULINE_ENDING.search(surname):
                return Gender.MALE
        if given:
            first = format_name(given.split()[0])
            if first in self.female_names:
                return Gender.FEMALE
            if first in self.male_names:
                return Gender.MALE
        return None

    # ── Clause rules (None = rule did not fire) ──

    def _death(self, clause: str) -> list[LegacyTag] | None:
        lowered = clause.lower()
        if not any(marker.lower() in lowered for marker in self.markers.death):
            return None
        date = _DATE.search(clause)
        if date is None:
            return [LegacyTag(key="✝️", value=UNKNOWN_DEATH_DATE, uncertain=True, rule="RULE_DEATH_MARKER")]
        return [LegacyTag(key="✝️", value=_dotted_date(date), rule="RULE_DEATH_DATE")]

    def _birth(self, clause: str) -> list[LegacyTag] | None:
        lowered = clause.lower()
        if not any(marker.lower() in lowered for marker in self.markers.birth):
            return None
        date = _DATE.search(clause)
        if date is None:
            return None
        return [LegacyTag(key="narodenie", value=_dotted_date(date), rule="RULE_BIRTH_DATE")]

    def _status(self, clause: str) -> list[LegacyTag] | None:
        lowered = clause.lower()
        for value, aliases in self.markers.status.items():
            if any(alias.lower() in lowered for alias in aliases):
                return [LegacyTag(key="stav", value=value, rule="RULE_STATUS")]
        return None

    def _spouse(
        self, clause: str, owner_gender: Optional[Gender], owner_surname: str
    ) -> list[LegacyTag] | None:
        key = "manžel" if owner_gender == Gender.FEMALE else "manželka"

        for with_maiden, simple in zip(self.spouse_with_maiden, self.spouse_female):
            match = with_maiden.search(clause)
            maiden = match.group(2) if match else None
            match = match or simple.search(clause)
            if match is None:
                continue

            words = match.group(1).split()
            if len(words) > 1:
                spouse_name = " ".join(words)
            elif owner_surname:
                spouse_name = f"{words[0]} {spouse_surname(owner_surname, owner_gender)}"
            else:
                spouse_name = words[0]

            tags = [LegacyTag(key=key, value=format_name(spouse_name), rule="RULE_SPOUSE_FEMALE")]
            if maiden:
                tags.append(LegacyTag(
                    key="manželka_rodné", value=format_name(maiden), rule="RULE_SPOUSE_MAIDEN"
                ))
            return tags

        for pattern in self.spouse_male:
            match = pattern.search(clause)
            if match:
                return [LegacyTag(
                    key=key, value=format_name(match.group(1).strip()), rule="RULE_SPOUSE_MALE"
                )]
        return None

    def _relation(self, clause: str) -> list[LegacyTag] | None:
        for key, pattern in self.relations:
            match = pattern.search(clause)
            if match:
                rule = f"RULE_FAMILY_{remove_diacritics(key).upper()}"
                return [LegacyTag(key=key, value=match.group(1).strip(), rule=rule)]
        return None

    def _origin(self, clause: str) -> list[LegacyTag] | None:
        for pattern in self.origin:
            match = pattern.search(clause)
            if match:
                return [LegacyTag(key="pôvod", value=match.group(1).strip(), rule="RULE_ORIGIN")]
        return None

    def _maiden(self, clause: str) -> list[LegacyTag] | None:
        for pattern in self.maiden_clause:
            match = pattern.search(clause)
            if match:
                return [LegacyTag(
                    key="rodné_priezvisko", value=match.group(1).strip(), rule="RULE_MAIDEN_PARENTHESES"
                )]
        return None


def spouse_surname(owner_surname: str, owner_gender: Optional[Gender]) -> str:
    """The spouse's form of the owner's surname.

    A female owner's husband drops the feminine ending (Nováková → Novák,
    Hronská → Hronský); a male owner's wife gains one (Novák → Nováková).
    """
    if owner_gender == Gender.FEMALE:
        if owner_surname.endswith("ová"):
            return owner_surname[:-3]
        if owner_surname.endswith(("ská", "cká")):
            return owner_surname[:-1] + "ý"
        return owner_surname

    if owner_surname.endswith(("ský", "cký")):
        return owner_surname[:-1] + "á"
    if owner_surname.endswith(("ová", "á")):
        return owner_surname
    return owner_surname + "ová"


def _dotted_date(match: re.Match) -> str:
    day, month, year = match.groups()
    return f"{int(day):02d}.{int(month):02d}.{year}"


# ─── Public API ─────────────────────────────────────────────────────


@lru_cache(maxsize=None)
def default_legacy_tagger() -> LegacyTagger:
    """Process-wide tagger over the packaged markers and dictionary."""
    return LegacyTagger(load_legacy_markers(), default_given_names())


def extract_legacy(
    raw: str,
    markers: LegacyMarkers | None = None,
    given_names: GivenNameDictionary | None = None,
) -> list[LegacyTag]:
    """Tag a raw name in the legacy vocabulary. Never raises on bad text."""
    if markers is None and given_names is None:
        return default_legacy_tagger().tag(raw)
    tagger = LegacyTagger(
        markers or load_legacy_markers(), given_names or default_given_names()
    )
    return tagger.tag(raw)
