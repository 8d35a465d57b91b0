"""
Conflict detection and record scoring for the advanced parser.

Both functions are pure: they take the candidate list and return a new one
(or a number). Nothing is dropped when a conflict is found. Competing
candidates are demoted and marked uncertain so a reviewer still sees every
value the text offered.
"""

from __future__ import annotations

from types import MappingProxyType

from .models import CandidateField, FieldType, ParseErrorCode
from .normalize import normalize_tag_value

# ─── Constants ───────────────────────────────────────────────────────

FIELD_WEIGHTS: MappingProxyType[FieldType, float] = MappingProxyType({
    FieldType.BIRTH_DATE: 2.0,
    FieldType.DEATH_DATE: 2.0,
    FieldType.MAIDEN_SURNAME: 1.5,
    FieldType.SPOUSE_GIVEN: 1.5,
    FieldType.SPOUSE_SURNAME: 1.5,
    FieldType.GIVEN: 1.0,
    FieldType.SURNAME: 1.0,
    FieldType.STATUS: 1.0,
})
DEFAULT_WEIGHT = 0.5

CONFLICT_PENALTY = 0.1
DEMOTED_CONFIDENCE = 0.5

CONFLICT_CODES: frozenset[ParseErrorCode] = frozenset({
    ParseErrorCode.CONFLICT_MAIDEN,
    ParseErrorCode.CONFLICT_SPOUSE,
    ParseErrorCode.CONFLICT_DATES,
})

_DUPLICATE_CHECKS: tuple[tuple[FieldType, ParseErrorCode], ...] = (
    (FieldType.MAIDEN_SURNAME, ParseErrorCode.CONFLICT_MAIDEN),
    (FieldType.SPOUSE_GIVEN, ParseErrorCode.CONFLICT_SPOUSE),
)


# ─── Selection ───────────────────────────────────────────────────────


def select_best(
    candidates: list[CandidateField], field_type: FieldType
) -> CandidateField | None:
    """Highest confidence wins; on a tie the earlier extraction wins."""
    best: CandidateField | None = None
    for candidate in candidates:
        if candidate.field_type == field_type and (
            best is None or candidate.confidence > best.confidence
        ):
            best = candidate
    return best


# ─── Conflicts ───────────────────────────────────────────────────────


def detect_conflicts(
    candidates: list[CandidateField],
) -> tuple[list[CandidateField], list[ParseErrorCode]]:
    """Find internal contradictions in one record's candidates.

    - Two or more maiden surnames that differ after normalization
      → CONFLICT_MAIDEN; every maiden candidate drops to 0.5, uncertain.
    - Same for spouse given names → CONFLICT_SPOUSE.
    - Selected birth date not before selected death date
      → CONFLICT_DATES; both marked uncertain, confidence untouched.

    Returns:
        (new candidate list, error codes in detection order)
    """
    result = list(candidates)
    errors: list[ParseErrorCode] = []

    for field_type, code in _DUPLICATE_CHECKS:
        values = {normalize_tag_value(c.value) for c in result if c.field_type == field_type}
        if len(values) > 1:
            errors.append(code)
            result = [
                c.model_copy(update={"confidence": DEMOTED_CONFIDENCE, "uncertain": True})
                if c.field_type == field_type
                else c
                for c in result
            ]

    birth = select_best(result, FieldType.BIRTH_DATE)
    death = select_best(result, FieldType.DEATH_DATE)
    # ISO dates compare chronologically as strings
    if birth is not None and death is not None and birth.value >= death.value:
        errors.append(ParseErrorCode.CONFLICT_DATES)
        result = [
            c.model_copy(update={"uncertain": True}) if c is birth or c is death else c
            for c in result
        ]

    return result, errors


# ─── Score ───────────────────────────────────────────────────────────


def calculate_score(
    candidates: list[CandidateField], errors: list[ParseErrorCode]
) -> float:
    """Weighted-average confidence minus 0.1 per conflict, clamped to [0, 1]."""
    if not candidates:
        return 0.0

    total_weight = 0.0
    weighted_sum = 0.0
    for candidate in candidates:
        weight = FIELD_WEIGHTS.get(candidate.field_type, DEFAULT_WEIGHT)
        total_weight += weight
        weighted_sum += candidate.confidence * weight

    base = weighted_sum / total_weight
    penalty = CONFLICT_PENALTY * sum(1 for e in errors if e in CONFLICT_CODES)
    return round(max(0.0, min(1.0, base - penalty)), 4)
