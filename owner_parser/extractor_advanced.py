"""
Advanced extraction — typed, span-tagged, confidence-scored owner fields.

The record runs through a sequence of passes:

    1. Markers    — maiden name, spouse, status, places, dates, suffixes
                    in the head and in every parenthetical clause
    2. Name split — given/surname heuristic over what is left of the head
    3. Gender     — spouse marker or minor status first, then the surname
    4. SPF        — state land fund mentions in the name or other columns
    5. Conflicts  — contradictory candidates demoted, record scored

Every pass returns a fresh list of CandidateField; the record is assembled
from their concatenation. Nothing here raises on malformed text: whatever
cannot be read ends up in notes, unmatched_tokens or parse_errors.
"""

from __future__ import annotations

import logging

from .given_names import GivenNameDictionary, default_given_names
from .models import (
    CandidateField,
    EvidenceSpan,
    FieldType,
    Gender,
    ParsedRecord,
    ParseErrorCode,
    RawRecord,
    SegmentPart,
    SpfReason,
)
from .normalize import clean_name, format_name, has_feminine_suffix, is_all_caps
from .rules import ParseRules, default_rules
from .scoring import calculate_score, detect_conflicts, select_best
from .segmenter import segment

logger = logging.getLogger(__name__)

# Field types that get a slot of their own on ParsedRecord
SELECTABLE_FIELDS: tuple[FieldType, ...] = (
    FieldType.GIVEN,
    FieldType.SURNAME,
    FieldType.MAIDEN_SURNAME,
    FieldType.SPOUSE_GIVEN,
    FieldType.SPOUSE_SURNAME,
    FieldType.STATUS,
    FieldType.ORIGIN_PLACE,
    FieldType.RESIDENCE,
    FieldType.BIRTH_PLACE,
    FieldType.BIRTH_DATE,
    FieldType.DEATH_DATE,
    FieldType.UNKNOWN_DATE,
    FieldType.NAME_SUFFIX,
    FieldType.NAME_SUFFIX_ROMAN,
)

RULE_SPOUSE_F = "RULE_SPOUSE_F"
RULE_SPOUSE_M = "RULE_SPOUSE_M"
RULE_NAME_HEURISTIC = "RULE_NAME_HEURISTIC"
RULE_SPF_DETECTION = "RULE_SPF_DETECTION"

DATE_NEAR_WINDOW = 15
DATE_WIDE_BEFORE = 30
DATE_WIDE_AFTER = 15

_TOKEN_PUNCTUATION = ".,;:\"'–-"


def extract_advanced(
    record: RawRecord | str,
    rules: ParseRules | None = None,
    given_names: GivenNameDictionary | None = None,
) -> ParsedRecord:
    """Parse one owner record.

    Args:
        record: Input row, or a bare raw name.
        rules: Compiled marker rules. Defaults to the packaged set.
        given_names: Dictionary for the name split. Defaults to the packaged list.

    Returns:
        ParsedRecord with the selected candidate per field, the full candidate
        list, score and non-fatal errors.
    """
    if isinstance(record, str):
        record = RawRecord(raw_name=record)
    rules = rules or default_rules()
    given_names = given_names or default_given_names()

    raw = record.raw_name
    errors: list[ParseErrorCode] = []

    sequence_number, sequence_invalid = parse_number(record.sequence_number)
    list_number, list_invalid = parse_number(record.ownership_list_number)

    if not raw.strip():
        errors.append(ParseErrorCode.NO_MATCH)
    if sequence_invalid or list_invalid:
        errors.append(ParseErrorCode.NUMERIC_INVALID)

    base = {
        "territory": record.territory,
        "sequence_number": sequence_number,
        "ownership_list_number": list_number,
        "raw_name": raw,
        "clean_name": clean_name(raw),
    }

    if ParseErrorCode.NO_MATCH in errors:
        logger.debug("Empty raw name, nothing to extract")
        return ParsedRecord(**base, parse_errors=errors)

    parts = segment(raw)

    # ── Pass 1: markers ──
    head_candidates = extract_markers(parts.head, rules)
    clause_candidates: list[CandidateField] = []
    for clause in parts.parentheticals:
        clause_candidates += extract_markers(clause, rules)

    # ── Pass 2: name split ──
    name_candidates, unmatched = extract_name_heuristic(
        parts.head, head_candidates, rules, given_names
    )
    unmatched += [t for t in parts.tail.text.split() if _has_letters(t)]

    candidates = head_candidates + clause_candidates + name_candidates

    # ── Pass 3: gender ──
    candidates = candidates + [infer_gender(candidates, parts.head, raw, rules)]

    # ── Pass 4: SPF ──
    candidates = candidates + detect_spf(record, rules)

    # ── Pass 5: conflicts and score ──
    candidates, conflict_errors = detect_conflicts(candidates)
    errors += conflict_errors
    score = calculate_score(candidates, errors)

    selected = {ft.value: select_best(candidates, ft) for ft in SELECTABLE_FIELDS}

    gender = select_best(candidates, FieldType.GENDER)
    spf = select_best(candidates, FieldType.IS_SPF)
    spf_reason = select_best(candidates, FieldType.SPF_REASON)

    parsed = ParsedRecord(
        **base,
        **selected,
        gender=Gender(gender.value),
        gender_confidence=gender.confidence,
        is_spf=spf is not None,
        spf_confidence=spf.confidence if spf else 0.0,
        spf_reason=SpfReason(spf_reason.value) if spf_reason else None,
        parse_score=score,
        parse_errors=errors,
        notes=_unused_clauses(parts.parentheticals, candidates),
        unmatched_tokens=unmatched,
        evidence_spans=[
            EvidenceSpan(type=c.field_type, span=c.span, text=raw[c.span[0]:c.span[1]])
            for c in candidates
        ],
        candidates=candidates,
    )
    logger.debug(
        "Parsed %r: %d candidates, score=%.2f, errors=%s",
        raw, len(candidates), score, [e.value for e in errors],
    )
    return parsed


# ─── Pass 1: Markers ─────────────────────────────────────────────────


def extract_markers(part: SegmentPart, rules: ParseRules) -> list[CandidateField]:
    """Apply every marker rule to one clause, in fixed order.

    Spans are mapped back to raw-string coordinates via the clause offset.
    """
    text = part.text
    if not text.strip():
        return []

    def candidate(field_type, value, match, rule_id, confidence=1.0):
        start, end = match.span()
        return CandidateField(
            field_type=field_type,
            value=value,
            confidence=confidence,
            source_rule_id=rule_id,
            span=(part.start + start, part.start + end),
        )

    found: list[CandidateField] = []

    for m in rules.MAIDEN.finditer(text):
        found.append(candidate(
            FieldType.MAIDEN_SURNAME, format_name(m.group(1)), m, "RULE_MAIDEN_SURNAME"
        ))

    for pattern, rule_id in ((rules.SPOUSE_F, RULE_SPOUSE_F), (rules.SPOUSE_M, RULE_SPOUSE_M)):
        for m in pattern.finditer(text):
            found.append(candidate(
                FieldType.SPOUSE_GIVEN, format_name(m.group("given")), m, rule_id
            ))
            if m.group("surname"):
                found.append(candidate(
                    FieldType.SPOUSE_SURNAME, format_name(m.group("surname")), m, rule_id,
                    confidence=0.9,
                ))

    for pattern, rule_id in (
        (rules.STATUS_MINOR, "RULE_STATUS_MINOR"),
        (rules.STATUS_WIDOW, "RULE_STATUS_WIDOW"),
        (rules.STATUS_DIVORCED, "RULE_STATUS_DIVORCED"),
        (rules.STATUS_SINGLE, "RULE_STATUS_SINGLE"),
    ):
        for m in pattern.finditer(text):
            found.append(candidate(FieldType.STATUS, m.group(1).lower(), m, rule_id))

    for pattern, field_type, rule_id in (
        (rules.ORIGIN, FieldType.ORIGIN_PLACE, "RULE_ORIGIN_PLACE"),
        (rules.RESIDENCE, FieldType.RESIDENCE, "RULE_RESIDENCE"),
        (rules.BIRTH_PL, FieldType.BIRTH_PLACE, "RULE_BIRTH_PLACE"),
    ):
        for m in pattern.finditer(text):
            found.append(candidate(field_type, m.group(1), m, rule_id))

    found += extract_dates(part, rules)

    for m in rules.SUFFIX_MLST.finditer(text):
        found.append(candidate(FieldType.NAME_SUFFIX, m.group(1).lower(), m, "RULE_NAME_SUFFIX"))
    for m in rules.SUFFIX_ROMAN.finditer(text):
        found.append(candidate(
            FieldType.NAME_SUFFIX_ROMAN, m.group(1), m, "RULE_NAME_SUFFIX_ROMAN"
        ))

    return found


def extract_dates(part: SegmentPart, rules: ParseRules) -> list[CandidateField]:
    """Find dates in a clause and decide whether each is a birth or a death.

    A keyword in the 15 characters before the date decides at 1.0 (birth
    keywords are checked first). Failing that, a keyword anywhere from 30
    characters before to 15 after decides at 0.9. A date with no keyword
    nearby becomes an unknown_date at 0.7. Impossible days or months are
    skipped.
    """
    text = part.text
    found: list[CandidateField] = []

    for m in rules.DATE.finditer(text):
        day, month, year = (int(g) for g in m.groups())
        if not (1 <= day <= 31 and 1 <= month <= 12):
            continue

        near = text[max(0, m.start() - DATE_NEAR_WINDOW):m.start()]
        wide = (
            text[max(0, m.start() - DATE_WIDE_BEFORE):m.start()]
            + " "
            + text[m.end():m.end() + DATE_WIDE_AFTER]
        )

        if rules.BIRTH_KW.search(near):
            field_type, confidence = FieldType.BIRTH_DATE, 1.0
        elif rules.DEATH_KW.search(near):
            field_type, confidence = FieldType.DEATH_DATE, 1.0
        elif rules.BIRTH_KW.search(wide):
            field_type, confidence = FieldType.BIRTH_DATE, 0.9
        elif rules.DEATH_KW.search(wide):
            field_type, confidence = FieldType.DEATH_DATE, 0.9
        else:
            field_type, confidence = FieldType.UNKNOWN_DATE, 0.7

        found.append(CandidateField(
            field_type=field_type,
            value=f"{year:04d}-{month:02d}-{day:02d}",
            confidence=confidence,
            source_rule_id=f"RULE_{field_type.value.upper()}_CONTEXT",
            span=(part.start + m.start(), part.start + m.end()),
        ))

    return found


# ─── Pass 2: Name Split ──────────────────────────────────────────────


def extract_name_heuristic(
    head: SegmentPart,
    head_candidates: list[CandidateField],
    rules: ParseRules,
    given_names: GivenNameDictionary,
) -> tuple[list[CandidateField], list[str]]:
    """Split what remains of the head into given name and surname.

    Marker matches (the whole maiden phrase included) and SPF mentions are
    blanked out first, then standalone markers. Only the text before the
    first comma is split; tokens after it are returned as unmatched.

    Returns:
        (given/surname candidates, unmatched tokens)
    """
    if not head.text:
        return [], []

    chars = list(head.text)
    spans = [c.span for c in head_candidates]
    spans += [
        (head.start + m.start(), head.start + m.end()) for m in rules.SPF.finditer(head.text)
    ]
    for start, end in spans:
        for i in range(max(start, head.start), min(end, head.end)):
            chars[i - head.start] = " "

    remaining = rules.STRAY_MARKERS.sub(" ", "".join(chars))
    name_part, _, rest = remaining.partition(",")

    tokens = _tokens(name_part)
    unmatched = _tokens(rest)

    split = split_name(tokens, given_names)
    if split is None:
        return [], unmatched

    given, surname, confidence = split
    span = (head.start, head.end)
    found: list[CandidateField] = []
    if given:
        found.append(CandidateField(
            field_type=FieldType.GIVEN, value=format_name(given), confidence=confidence,
            source_rule_id=RULE_NAME_HEURISTIC, span=span,
        ))
    found.append(CandidateField(
        field_type=FieldType.SURNAME, value=format_name(surname), confidence=confidence,
        source_rule_id=RULE_NAME_HEURISTIC, span=span,
    ))
    return found, unmatched


def split_name(
    tokens: list[str], given_names: GivenNameDictionary
) -> tuple[str, str, float] | None:
    """Decide which tokens are the given name and which the surname.

    Returns:
        (given, surname, confidence), with given "" for a lone token, or None
        when there are no tokens.
    """
    if not tokens:
        return None

    if len(tokens) == 1:
        return "", tokens[0], 0.4

    if len(tokens) == 2:
        first, second = tokens

        caps = [is_all_caps(first), is_all_caps(second)]
        if caps.count(True) == 1:
            return (second, first, 0.8) if caps[0] else (first, second, 0.8)

        if has_feminine_suffix(first):
            return second, first, 0.8
        if has_feminine_suffix(second):
            return first, second, 0.8

        known = [given_names.is_given_name(first), given_names.is_given_name(second)]
        if known == [True, False]:
            return first, second, 0.85
        if known == [False, True]:
            return second, first, 0.85
        if known == [True, True]:
            return first, second, 0.7

        # "Surname Given" is the register's usual order
        return second, first, 0.6

    for i, token in enumerate(tokens):
        if is_all_caps(token) or has_feminine_suffix(token):
            return " ".join(tokens[:i] + tokens[i + 1:]), token, 0.7

    return " ".join(tokens[:-1]), tokens[-1], 0.5


def _tokens(text: str) -> list[str]:
    stripped = (t.strip(_TOKEN_PUNCTUATION) for t in text.split())
    return [t for t in stripped if _has_letters(t)]


def _has_letters(token: str) -> bool:
    return any(ch.isalpha() for ch in token)


# ─── Pass 3: Gender ──────────────────────────────────────────────────


def infer_gender(
    candidates: list[CandidateField],
    head: SegmentPart,
    raw: str,
    rules: ParseRules,
) -> CandidateField:
    """Exactly one gender candidate, male at 0.6 unless evidence says otherwise.

    A husband marker ("m. Ján") or a feminine minor status makes the owner
    female at 0.9; a wife marker ("ž. Marta") or a masculine minor status
    makes the owner male at 0.9. An alias shared by both spouse lists
    ("manž.") says nothing about gender. Without such evidence a -ová/-ná
    surname gives female at 0.8.
    """
    spouse_f_spans = {c.span for c in candidates if c.source_rule_id == RULE_SPOUSE_F}
    spouse_m_spans = {c.span for c in candidates if c.source_rule_id == RULE_SPOUSE_M}
    statuses = [c for c in candidates if c.field_type == FieldType.STATUS]

    female_evidence = [
        c for c in candidates
        if c.field_type == FieldType.SPOUSE_GIVEN
        and c.source_rule_id == RULE_SPOUSE_M
        and c.span not in spouse_f_spans
    ] + [c for c in statuses if c.value in rules.minor_female]

    male_evidence = [
        c for c in candidates
        if c.field_type == FieldType.SPOUSE_GIVEN
        and c.source_rule_id == RULE_SPOUSE_F
        and c.span not in spouse_m_spans
    ] + [c for c in statuses if c.value in rules.minor_male]

    def gender(value: Gender, confidence: float, rule_id: str, span: tuple[int, int]):
        return CandidateField(
            field_type=FieldType.GENDER, value=value.value, confidence=confidence,
            source_rule_id=rule_id, span=span,
        )

    if female_evidence:
        return gender(Gender.FEMALE, 0.9, "RULE_GENDER_MARKER", female_evidence[0].span)
    if male_evidence:
        return gender(Gender.MALE, 0.9, "RULE_GENDER_MARKER", male_evidence[0].span)

    surname = select_best(candidates, FieldType.SURNAME)
    if surname is not None:
        if has_feminine_suffix(surname.value):
            return gender(Gender.FEMALE, 0.8, "RULE_GENDER_SURNAME", surname.span)
        return gender(Gender.MALE, 0.6, "RULE_GENDER_SURNAME", surname.span)

    if head.text:
        span = (head.start, head.end)
    else:
        lead = len(raw) - len(raw.lstrip())
        span = (lead, lead + len(raw.strip()))
    return gender(Gender.MALE, 0.6, "RULE_GENDER_DEFAULT", span)


# ─── Pass 4: SPF ─────────────────────────────────────────────────────


def detect_spf(record: RawRecord, rules: ParseRules) -> list[CandidateField]:
    """Flag records that belong to the state land fund.

    A mention in the name scores 0.8 (1.0 with the full canonical phrase).
    A mention in any other column scores at least 0.9 and is reported as
    FIELD_MATCH. Nothing is emitted when neither fires.
    """
    raw = record.raw_name
    confidence = 0.0
    reason: SpfReason | None = None
    span: tuple[int, int] | None = None

    match = rules.SPF.search(raw)
    if match:
        confidence = 1.0 if rules.SPF_CANONICAL.search(raw) else 0.8
        reason = SpfReason.TEXT_MATCH
        span = match.span()

    other_values = [
        v
        for v in (
            record.territory,
            record.sequence_number,
            record.ownership_list_number,
            *record.extra_fields().values(),
        )
        if isinstance(v, str)
    ]
    if any(rules.SPF.search(value) for value in other_values):
        confidence = max(confidence, 0.9)
        reason = SpfReason.FIELD_MATCH
        lead = len(raw) - len(raw.lstrip())
        span = (lead, lead + len(raw.strip()))

    if reason is None:
        return []

    return [
        CandidateField(
            field_type=FieldType.IS_SPF, value="true", confidence=confidence,
            source_rule_id=RULE_SPF_DETECTION, span=span,
        ),
        CandidateField(
            field_type=FieldType.SPF_REASON, value=reason.value, confidence=confidence,
            source_rule_id=RULE_SPF_DETECTION, span=span,
        ),
    ]


# ─── Record Helpers ──────────────────────────────────────────────────


def parse_number(value: int | str | None) -> tuple[int | None, bool]:
    """Read a sequence or list number.

    Returns:
        (number or None, True if a non-empty value could not be parsed)
    """
    if value is None:
        return None, False
    if isinstance(value, int):
        return value, False

    text = str(value).strip()
    if not text:
        return None, False
    try:
        return int(text), False
    except ValueError:
        pass
    try:
        number = float(text.replace(",", "."))
    except ValueError:
        return None, True
    if number.is_integer():
        return int(number), False
    return None, True


def _unused_clauses(
    clauses: list[SegmentPart], candidates: list[CandidateField]
) -> list[str]:
    """Parenthetical clauses that produced no candidate."""
    notes = []
    for clause in clauses:
        text = clause.text.strip()
        if not text:
            continue
        if not any(clause.start <= c.span[0] and c.span[1] <= clause.end for c in candidates):
            notes.append(text)
    return notes
