"""
Marker rule set — alias word-lists as data, compiled once into matchers.

The alias lists (how the ledgers spell "née", "wife", "deceased", …) live in
markers.json. ParseRules turns them into regular expressions at startup; the
extractors only ever read the compiled patterns, so one ParseRules instance
can be shared by every worker thread.

Pattern conventions:
  - Aliases are literals. They are regex-escaped; inner spaces match any run
    of whitespace ("s bydliskom" also matches "s  bydliskom").
  - An abbreviation ending in "." may be glued to the following word
    ("ž.Marta"); a whole-word alias needs whitespace ("žena Marta").
  - Aliases match case-insensitively. Captured names must start with a
    capital letter, so "ž. Mária zomrela" never yields a surname "Zomrela".
"""

from __future__ import annotations

import json
import logging
import re
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import RuleConfigError

logger = logging.getLogger(__name__)

DEFAULT_MARKERS_PATH = Path(__file__).parent / "markers.json"

UPPER = "A-ZÁÄČĎÉÍĹĽŇÓÔŔŠŤÚÝŽÖÜŐŰ"
LOWER = "a-záäčďéíĺľňóôŕšťúýžöüőű"
NAME = rf"[{UPPER}][{UPPER}{LOWER}]+"
PLACE = rf"{NAME}(?:\s+{NAME})*"


# ─── Configuration ──────────────────────────────────────────────────


class StatusKeywords(BaseModel):
    minor: list[str]
    widow: list[str]
    divorced: list[str]
    single: list[str]


class ParseConfig(BaseModel):
    """Alias lists and thresholds for the advanced parser."""

    conf_low: float = Field(default=0.3, ge=0.0, le=1.0)
    conf_warn: float = Field(default=0.6, ge=0.0, le=1.0)
    problematic_if_no_tags: bool = True

    maiden_aliases: list[str]
    spouse_aliases_f: list[str]
    spouse_aliases_m: list[str]

    death_kw: list[str]
    birth_kw: list[str]
    residence_kw: list[str]
    origin_kw: list[str]
    birth_place_kw: list[str]

    status_kw: StatusKeywords
    minor_female: list[str]
    minor_male: list[str]

    name_suffixes: list[str]
    spf_phrases: list[str]
    spf_canonical: str

    @field_validator(
        "maiden_aliases", "spouse_aliases_f", "spouse_aliases_m", "death_kw",
        "birth_kw", "residence_kw", "origin_kw", "birth_place_kw",
        "name_suffixes", "spf_phrases",
    )
    @classmethod
    def aliases_not_empty(cls, aliases: list[str]) -> list[str]:
        cleaned = [a.strip() for a in aliases if a.strip()]
        if not cleaned:
            raise ValueError("alias list must contain at least one entry")
        return cleaned


def load_parse_config(path: str | Path | None = None) -> ParseConfig:
    """Load marker configuration from JSON.

    Args:
        path: Path to a markers file. Defaults to the packaged markers.json.

    Raises:
        RuleConfigError: if the file is unreadable or fails validation.
    """
    resolved = DEFAULT_MARKERS_PATH if path is None else Path(path)

    try:
        with resolved.open(encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise RuleConfigError(
            f"Could not read marker rules '{resolved}': {exc}",
            details={"path": str(resolved)},
        ) from exc

    try:
        return ParseConfig.model_validate(data)
    except ValidationError as exc:
        raise RuleConfigError(
            f"Marker rules '{resolved}' are invalid: {exc.error_count()} error(s)",
            details={"path": str(resolved), "errors": exc.errors(include_url=False)},
        ) from exc


# ─── Pattern Builders ───────────────────────────────────────────────


def alias_regex(alias: str) -> str:
    """Escape a literal alias; inner whitespace becomes \\s+."""
    return r"\s+".join(re.escape(part) for part in alias.split())


def bounded(alias: str) -> str:
    """Alias regex with word boundaries on the sides that are word characters."""
    body = alias_regex(alias)
    if alias[0].isalnum():
        body = r"(?<!\w)" + body
    if alias[-1].isalnum():
        body += r"(?!\w)"
    return body


def alternation(aliases: list[str]) -> str:
    """Bounded aliases joined longest-first, so 'manželka' beats 'manžel'."""
    ordered = sorted(set(aliases), key=lambda a: (-len(a), a))
    return "|".join(bounded(a) for a in ordered)


def marker_prefix(aliases: list[str]) -> str:
    """A marker followed by the separator its spelling allows."""
    ordered = sorted(set(aliases), key=lambda a: (-len(a), a))
    parts = []
    for alias in ordered:
        separator = r"\s*" if alias.endswith(".") else r"\s+"
        body = alias_regex(alias) + separator
        if alias[0].isalnum():
            body = r"(?<!\w)" + body
        parts.append(body)
    return "(?i:" + "|".join(parts) + ")"


# ─── Compiled Rules ─────────────────────────────────────────────────


class ParseRules:
    """Every matcher the advanced parser uses, compiled from a ParseConfig."""

    def __init__(self, config: ParseConfig):
        self.config = config

        # Rodné priezvisko: r. Nováková, rod. Svobodová, rodená Krásna
        self.MAIDEN = re.compile(rf"{marker_prefix(config.maiden_aliases)}({NAME})")

        # Manželka / manžel: ž. Mária Nová, m.Ján
        spouse_tail = rf"(?P<given>{NAME})(?:\s+(?P<surname>{NAME}))?"
        self.SPOUSE_F = re.compile(marker_prefix(config.spouse_aliases_f) + spouse_tail)
        self.SPOUSE_M = re.compile(marker_prefix(config.spouse_aliases_m) + spouse_tail)

        # Statusy
        status = config.status_kw
        self.STATUS_MINOR = re.compile(rf"(?i:({alternation(status.minor)}))")
        self.STATUS_WIDOW = re.compile(rf"(?i:({alternation(status.widow)}))")
        self.STATUS_DIVORCED = re.compile(rf"(?i:({alternation(status.divorced)}))")
        self.STATUS_SINGLE = re.compile(rf"(?i:({alternation(status.single)}))")

        # Miesta: z obce XY, bytom v XY, nar. v XY
        self.ORIGIN = re.compile(rf"{marker_prefix(config.origin_kw)}({PLACE})")
        self.RESIDENCE = re.compile(
            rf"{marker_prefix(config.residence_kw)}(?:(?i:vo|v)\s+)?({PLACE})"
        )
        self.BIRTH_PL = re.compile(
            rf"(?i:{alternation(config.birth_place_kw)})\s*(?i:vo|v)\s+({PLACE})"
        )

        # Dátumy: DD.MM.YYYY, DD/MM/YYYY, DD-MM-YYYY
        self.DATE = re.compile(r"(?<!\d)(\d{1,2})[./-](\d{1,2})[./-](\d{4})(?!\d)")
        self.BIRTH_KW = re.compile(rf"(?i:{alternation(config.birth_kw)})")
        self.DEATH_KW = re.compile(rf"(?i:{alternation(config.death_kw)})")

        # Suffixy: ml., st. / I., II., III.
        self.SUFFIX_MLST = re.compile(
            rf"(?i:(?<!\w)({alternation(config.name_suffixes)})(?!\w))"
        )
        self.SUFFIX_ROMAN = re.compile(r"(?<!\w)([IVX]+\.)(?!\w)")

        self.SPF = re.compile(rf"(?i:{alternation(config.spf_phrases)})")
        self.SPF_CANONICAL = re.compile(rf"(?i:{bounded(config.spf_canonical)})")

        # Markers left standing alone in the head once their value is gone
        self.STRAY_MARKERS = re.compile(
            rf"(?i:{alternation(config.maiden_aliases + config.spouse_aliases_f + config.spouse_aliases_m)})"
        )

    @property
    def minor_female(self) -> frozenset[str]:
        return frozenset(s.lower() for s in self.config.minor_female)

    @property
    def minor_male(self) -> frozenset[str]:
        return frozenset(s.lower() for s in self.config.minor_male)


@lru_cache(maxsize=None)
def default_rules() -> ParseRules:
    """Process-wide rules compiled from the packaged markers.json."""
    rules = ParseRules(load_parse_config())
    logger.debug("Compiled default marker rules")
    return rules
