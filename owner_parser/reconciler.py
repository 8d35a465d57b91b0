"""
Tag reconciler — one consistent tag set out of two parsers that disagree.

The advanced parser's fields are re-expressed in the legacy vocabulary and
merged key by key with the legacy tags:

    only one source has the key   → kept, confidence × source weight
    both agree (similarity > 0.8) → higher weighted confidence wins
    both disagree                 → same winner, confidence × 0.8,
                                    flagged as a conflict for review

Which source is trusted for which key lives in one static table,
TAG_PRIORITY_RULES, so the arbitration can be audited without reading the
algorithm.
"""

from __future__ import annotations

import logging
from enum import Enum
from types import MappingProxyType
from typing import NamedTuple

from rapidfuzz.distance import Levenshtein

from .extractor_advanced import RULE_SPOUSE_F
from .models import (
    CandidateField,
    FieldType,
    LegacyTag,
    MergedTag,
    ParsedRecord,
    TagSource,
    TagWithSource,
)
from .normalize import normalize_tag_value

logger = logging.getLogger(__name__)

AGREEMENT_THRESHOLD = 0.8
CONFLICT_FACTOR = 0.8

LEGACY_CONFIDENCE = 0.7
LEGACY_UNCERTAIN_CONFIDENCE = 0.3


# ─── Priority Table ──────────────────────────────────────────────────


class Preference(str, Enum):
    ADVANCED = "advanced"
    SYSTEM = "system"
    NEUTRAL = "neutral"


class TagPriority(NamedTuple):
    preferred: Preference
    weight: float


NEUTRAL_PRIORITY = TagPriority(Preference.NEUTRAL, 0.5)

TAG_PRIORITY_RULES: MappingProxyType[str, TagPriority] = MappingProxyType({
    # Dictionary lookup makes the advanced split more reliable
    "krstné_meno": TagPriority(Preference.ADVANCED, 0.8),
    "priezvisko": TagPriority(Preference.ADVANCED, 0.8),
    "pohlavie": TagPriority(Preference.ADVANCED, 0.85),
    # Family relations
    "manželka": TagPriority(Preference.SYSTEM, 0.9),
    "manžel": TagPriority(Preference.SYSTEM, 0.9),
    "manželka_rodné": TagPriority(Preference.SYSTEM, 0.9),
    "rodné_priezvisko": TagPriority(Preference.SYSTEM, 0.7),
    "otec": TagPriority(Preference.SYSTEM, 0.8),
    "matka": TagPriority(Preference.SYSTEM, 0.8),
    "syn": TagPriority(Preference.SYSTEM, 0.8),
    "dcéra": TagPriority(Preference.SYSTEM, 0.8),
    # Addresses and places
    "adresa": TagPriority(Preference.SYSTEM, 0.9),
    "lokalita": TagPriority(Preference.SYSTEM, 0.8),
})


def tag_weight(key: str, source: TagSource) -> float:
    """Weight of a source for a key: the preferred side gets the weight,
    the other side its complement, neutral keys 0.5 either way."""
    priority = TAG_PRIORITY_RULES.get(key, NEUTRAL_PRIORITY)
    if priority.preferred == Preference.NEUTRAL:
        return NEUTRAL_PRIORITY.weight
    if priority.preferred.value == source.value:
        return priority.weight
    return 1 - priority.weight


# ─── Similarity ──────────────────────────────────────────────────────


def tag_similarity(a: str, b: str) -> float:
    """1 - Levenshtein distance / longer length, over the normalized values."""
    return Levenshtein.normalized_similarity(normalize_tag_value(a), normalize_tag_value(b))


# ─── Source Conversion ───────────────────────────────────────────────

# Field types stored under a different key in the legacy vocabulary
_FIELD_KEYS: MappingProxyType[FieldType, str] = MappingProxyType({
    FieldType.GIVEN: "krstné_meno",
    FieldType.SURNAME: "priezvisko",
    FieldType.MAIDEN_SURNAME: "rodné_priezvisko",
    FieldType.STATUS: "stav",
    FieldType.ORIGIN_PLACE: "pôvod",
    FieldType.RESIDENCE: "adresa",
    FieldType.BIRTH_DATE: "narodenie",
    FieldType.DEATH_DATE: "✝️",
})

_DATE_FIELDS = (FieldType.BIRTH_DATE, FieldType.DEATH_DATE)


def _dotted(iso: str) -> str:
    year, month, day = iso.split("-")
    return f"{day}.{month}.{year}"


def record_to_tags(parsed: ParsedRecord) -> list[TagWithSource]:
    """The advanced parser's selected fields in the legacy vocabulary."""

    def tag(key: str, value: str, candidate: CandidateField) -> TagWithSource:
        return TagWithSource(
            key=key,
            value=value,
            confidence=candidate.confidence,
            source=TagSource.ADVANCED,
            uncertain=candidate.uncertain,
            rule=candidate.source_rule_id,
        )

    tags: list[TagWithSource] = []

    for field_type in (
        FieldType.GIVEN, FieldType.SURNAME, FieldType.MAIDEN_SURNAME,
        FieldType.STATUS, FieldType.ORIGIN_PLACE, FieldType.RESIDENCE,
        FieldType.BIRTH_PLACE, FieldType.BIRTH_DATE, FieldType.DEATH_DATE,
        FieldType.UNKNOWN_DATE, FieldType.NAME_SUFFIX, FieldType.NAME_SUFFIX_ROMAN,
    ):
        candidate = getattr(parsed, field_type.value)
        if candidate is None:
            continue
        value = _dotted(candidate.value) if field_type in _DATE_FIELDS else candidate.value
        tags.append(tag(_FIELD_KEYS.get(field_type, field_type.value), value, candidate))

    if parsed.spouse_given is not None:
        # The marker names the spouse: a wife marker tags "manželka"
        key = "manželka" if parsed.spouse_given.source_rule_id == RULE_SPOUSE_F else "manžel"
        value = parsed.spouse_given.value
        if parsed.spouse_surname is not None:
            value = f"{value} {parsed.spouse_surname.value}"
        tags.append(tag(key, value, parsed.spouse_given))

    gender = parsed.selected(FieldType.GENDER)
    if gender is not None:
        tags.append(tag("pohlavie", gender.value, gender))

    spf = parsed.selected(FieldType.IS_SPF)
    if spf is not None:
        tags.append(tag("spf", spf.value, spf))

    return tags


def legacy_to_tags(legacy_tags: list[LegacyTag]) -> list[TagWithSource]:
    """Legacy tags carry no confidence; derive it from the uncertain flag."""
    return [
        TagWithSource(
            key=t.key,
            value=t.value,
            confidence=LEGACY_UNCERTAIN_CONFIDENCE if t.uncertain else LEGACY_CONFIDENCE,
            source=TagSource.SYSTEM,
            uncertain=t.uncertain,
            rule=t.rule or None,
        )
        for t in legacy_tags
    ]


# ─── Merge ───────────────────────────────────────────────────────────


def merge_tags(
    advanced: list[TagWithSource], system: list[TagWithSource]
) -> list[MergedTag]:
    """Merge both tag lists into one MergedTag per key.

    The first tag of each source decides; further tags with the same key are
    kept as alternatives. The result is sorted by descending confidence,
    keys of equal confidence staying in first-seen order.
    """
    keys = list(dict.fromkeys([t.key for t in advanced] + [t.key for t in system]))
    merged: list[MergedTag] = []

    for key in keys:
        adv = [t for t in advanced if t.key == key]
        legacy = [t for t in system if t.key == key]
        extras = adv[1:] + legacy[1:]

        if adv and legacy:
            merged.append(_merge_pair(key, adv[0], legacy[0], extras))
            continue

        only = (adv or legacy)[0]
        weighted = only.confidence * tag_weight(key, only.source)
        parser = "advanced parser" if only.source == TagSource.ADVANCED else "legacy tagger"
        merged.append(MergedTag(
            key=key,
            value=only.value,
            confidence=round(weighted, 4),
            source=only.source,
            alternatives=extras,
            reasoning=f"Only the {parser} produced this tag",
            rule=only.rule,
            uncertain=only.uncertain,
        ))

    merged.sort(key=lambda t: -t.confidence)
    conflicts = sum(1 for t in merged if t.conflict)
    if conflicts:
        logger.debug("Merged %d tags, %d conflict(s)", len(merged), conflicts)
    return merged


def _merge_pair(
    key: str, adv: TagWithSource, legacy: TagWithSource, extras: list[TagWithSource]
) -> MergedTag:
    similarity = tag_similarity(adv.value, legacy.value)
    adv_weight = tag_weight(key, TagSource.ADVANCED) * adv.confidence
    sys_weight = tag_weight(key, TagSource.SYSTEM) * legacy.confidence

    # Ties go to the legacy tagger
    winner, loser = (adv, legacy) if adv_weight > sys_weight else (legacy, adv)
    best = max(adv_weight, sys_weight)

    if similarity > AGREEMENT_THRESHOLD:
        return MergedTag(
            key=key,
            value=winner.value,
            confidence=round(best, 4),
            source=winner.source,
            alternatives=[loser] + extras,
            reasoning=(
                f"{winner.source.value} source has the higher weight for {key} "
                f"({adv_weight:.2f} vs {sys_weight:.2f})"
            ),
            rule=winner.rule,
            uncertain=winner.uncertain,
        )

    return MergedTag(
        key=key,
        value=winner.value,
        confidence=round(best * CONFLICT_FACTOR, 4),
        source=TagSource.MERGED,
        alternatives=[loser] + extras,
        conflict=True,
        reasoning=(
            f"CONFLICT: {adv.value} (advanced) vs {legacy.value} (system), "
            f"similarity: {similarity * 100:.0f}%"
        ),
        rule=winner.rule,
        uncertain=True,
    )


def reconcile(parsed: ParsedRecord, legacy_tags: list[LegacyTag]) -> list[MergedTag]:
    """Merge one record's advanced fields with its legacy tags."""
    return merge_tags(record_to_tags(parsed), legacy_to_tags(legacy_tags))


# ─── Queries ─────────────────────────────────────────────────────────


def get_best_tag(tags: list[MergedTag], key: str) -> MergedTag | None:
    best: MergedTag | None = None
    for tag in tags:
        if tag.key == key and (best is None or tag.confidence > best.confidence):
            best = tag
    return best


def get_conflicts(tags: list[MergedTag]) -> list[MergedTag]:
    return [t for t in tags if t.conflict]
