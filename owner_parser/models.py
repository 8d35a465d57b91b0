"""
Pydantic models for owner records — strict typing at every boundary.

Raw input, extracted candidates, legacy tags and merged tags each get their
own model. Confidence values are validated to [0, 1] wherever they appear, so
an out-of-range score fails loudly at construction instead of leaking into
the database.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ─── Enumerations ───────────────────────────────────────────────────


class FieldType(str, Enum):
    """Every kind of value the advanced parser can extract."""

    GIVEN = "given"
    SURNAME = "surname"
    MAIDEN_SURNAME = "maiden_surname"
    SPOUSE_GIVEN = "spouse_given"
    SPOUSE_SURNAME = "spouse_surname"
    STATUS = "status"
    ORIGIN_PLACE = "origin_place"
    RESIDENCE = "residence"
    BIRTH_PLACE = "birth_place"
    BIRTH_DATE = "birth_date"
    DEATH_DATE = "death_date"
    UNKNOWN_DATE = "unknown_date"  # Date found, but no birth/death keyword near it
    NAME_SUFFIX = "name_suffix"  # ml. / st.
    NAME_SUFFIX_ROMAN = "name_suffix_roman"  # I. / II. / III.
    GENDER = "gender"
    IS_SPF = "is_spf"
    SPF_REASON = "spf_reason"


class Gender(str, Enum):
    MALE = "muž"
    FEMALE = "žena"


class SpfReason(str, Enum):
    TEXT_MATCH = "TEXT_MATCH"  # Found in the name itself
    FIELD_MATCH = "FIELD_MATCH"  # Found in another column of the record


class ParseErrorCode(str, Enum):
    """Non-fatal problems attached to a record (never raised)."""

    NO_MATCH = "NO_MATCH"
    NUMERIC_INVALID = "NUMERIC_INVALID"
    CONFLICT_MAIDEN = "CONFLICT_MAIDEN"
    CONFLICT_SPOUSE = "CONFLICT_SPOUSE"
    CONFLICT_DATES = "CONFLICT_DATES"


class TagSource(str, Enum):
    ADVANCED = "advanced"
    SYSTEM = "system"
    MERGED = "merged"


# ─── Segmentation ───────────────────────────────────────────────────


class SegmentPart(BaseModel):
    """A piece of the raw string with its [start, end) offsets."""

    model_config = ConfigDict(frozen=True)

    text: str
    start: int
    end: int


class Segment(BaseModel):
    """Head, parenthetical clauses and tail of one raw name."""

    model_config = ConfigDict(frozen=True)

    raw: str
    head: SegmentPart
    parentheticals: list[SegmentPart] = Field(default_factory=list)
    tail: SegmentPart


# ─── Advanced Parser Output ─────────────────────────────────────────


class CandidateField(BaseModel):
    """One extracted value with provenance and text-span evidence."""

    model_config = ConfigDict(frozen=True)

    field_type: FieldType
    value: str
    confidence: float = Field(ge=0.0, le=1.0)
    source_rule_id: str  # e.g. "RULE_MAIDEN_SURNAME"
    span: tuple[int, int]  # Offsets into the raw name
    uncertain: bool = False


class EvidenceSpan(BaseModel):
    """Audit entry: which text produced which candidate."""

    type: FieldType
    span: tuple[int, int]
    text: str


class RawRecord(BaseModel):
    """One input row. Columns beyond the four known ones are kept as-is."""

    model_config = ConfigDict(extra="allow")

    territory: str = ""
    sequence_number: Optional[int | str] = None
    ownership_list_number: Optional[int | str] = None
    raw_name: str = ""

    def extra_fields(self) -> dict[str, object]:
        """Passthrough columns (everything not in the input contract)."""
        return dict(self.model_extra or {})


class ParsedRecord(BaseModel):
    """The advanced parser's final output for one record."""

    territory: str
    sequence_number: Optional[int] = None
    ownership_list_number: Optional[int] = None
    raw_name: str
    clean_name: str  # Normalized, searchable form

    # Selected (highest-confidence) candidate per field type
    given: Optional[CandidateField] = None
    surname: Optional[CandidateField] = None
    maiden_surname: Optional[CandidateField] = None
    spouse_given: Optional[CandidateField] = None
    spouse_surname: Optional[CandidateField] = None
    status: Optional[CandidateField] = None
    origin_place: Optional[CandidateField] = None
    residence: Optional[CandidateField] = None
    birth_place: Optional[CandidateField] = None
    birth_date: Optional[CandidateField] = None
    death_date: Optional[CandidateField] = None
    unknown_date: Optional[CandidateField] = None
    name_suffix: Optional[CandidateField] = None
    name_suffix_roman: Optional[CandidateField] = None

    gender: Gender = Gender.MALE
    gender_confidence: float = Field(default=0.6, ge=0.0, le=1.0)

    is_spf: bool = False
    spf_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    spf_reason: Optional[SpfReason] = None

    parse_score: float = Field(default=0.0, ge=0.0, le=1.0)
    parse_errors: list[ParseErrorCode] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)  # Parentheticals no rule matched
    unmatched_tokens: list[str] = Field(default_factory=list)
    evidence_spans: list[EvidenceSpan] = Field(default_factory=list)
    candidates: list[CandidateField] = Field(default_factory=list)

    def selected(self, field_type: FieldType) -> CandidateField | None:
        """Highest-confidence candidate of a type; ties go to the earliest."""
        best: CandidateField | None = None
        for candidate in self.candidates:
            if candidate.field_type != field_type:
                continue
            if best is None or candidate.confidence > best.confidence:
                best = candidate
        return best


# ─── Legacy Tagger Output ───────────────────────────────────────────


class LegacyTag(BaseModel):
    """Flat tag in the legacy (system) vocabulary."""

    key: str
    value: str
    uncertain: bool = False
    rule: str = ""


# ─── Reconciliation ─────────────────────────────────────────────────


class TagWithSource(BaseModel):
    """A tag from either parser, prepared for merging."""

    key: str
    value: str
    confidence: float = Field(ge=0.0, le=1.0)
    source: TagSource
    uncertain: bool = False
    rule: Optional[str] = None


class MergedTag(BaseModel):
    """One reconciled tag per key, with the losing values kept for audit."""

    key: str
    value: str
    confidence: float = Field(ge=0.0, le=1.0)
    source: TagSource
    alternatives: list[TagWithSource] = Field(default_factory=list)
    conflict: bool = False
    reasoning: str = ""
    rule: Optional[str] = None
    uncertain: bool = False

    @model_validator(mode="after")
    def check_conflict_alternatives(self) -> MergedTag:
        if self.conflict and not self.alternatives:
            raise ValueError("A conflicting tag must carry at least one alternative")
        return self


# ─── Persistence Hand-off ───────────────────────────────────────────


class OwnerRow(BaseModel):
    """Row handed to the persistence layer for one owner."""

    territory: str
    sequence_number: Optional[int] = None
    ownership_list_number: Optional[int] = None
    raw_name: str
    clean_name: str
    gender: Gender
    has_minor_flag: bool
    parse_score: float
    parse_errors: str  # ";"-joined error codes
    evidence_spans: str  # JSON array


class TagRow(BaseModel):
    """Row handed to the persistence layer for one merged tag."""

    key: str
    value: str
    confidence: float
    source_rule: str
    uncertain: bool


# ─── Pipeline Output ────────────────────────────────────────────────


class ParseReport(BaseModel):
    """Everything produced for one record."""

    record: ParsedRecord
    legacy_tags: list[LegacyTag] = Field(default_factory=list)
    merged_tags: list[MergedTag] = Field(default_factory=list)
    conflicts: list[MergedTag] = Field(default_factory=list)
    owner_row: OwnerRow
    tag_rows: list[TagRow] = Field(default_factory=list)
    original_hash: str = ""  # SHA-256 of the raw name for audit trail


class UnmatchedPattern(BaseModel):
    pattern: str
    count: int


class ImportStats(BaseModel):
    total_records: int = 0
    parsed_successfully: int = 0
    problematic_count: int = 0
    spf_count: int = 0
    gender_stats: dict[str, int] = Field(default_factory=dict)
    tag_stats: dict[str, int] = Field(default_factory=dict)
    most_common_unmatched: list[UnmatchedPattern] = Field(default_factory=list)


class ImportResult(BaseModel):
    """Outcome of a batch run. Failed records appear only in `errors`."""

    reports: list[ParseReport] = Field(default_factory=list)
    stats: ImportStats = Field(default_factory=ImportStats)
    errors: list[str] = Field(default_factory=list)
