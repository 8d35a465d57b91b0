"""
Owner parsing pipeline — orchestrates the full workflow for one record or a batch.

Flow:
  ┌──────────┐
  │ Raw name │
  └────┬─────┘
       │
  ┌────▼─────┐     ┌──────────┐
  │ Advanced │     │  Legacy  │   ← Dual extraction
  │ Extract  │     │  Tagger  │
  └────┬─────┘     └────┬─────┘
       │                │
       └───────┬────────┘
               │
        ┌──────▼──────┐
        │ Reconciler  │   ← One tag per key, conflicts flagged
        └──────┬──────┘
               │
        ┌──────▼──────┐
        │ Hand-off    │   ← Owner row + tag rows for persistence
        └─────────────┘

Design principles:
  - Rules and the dictionary load once; every record after that is a pure
    function of the raw text.
  - Both extractors always run. Neither is allowed to silence the other.
  - The raw name is SHA-256 hashed for audit trail.
  - In a batch, one broken record is logged and skipped, never fatal.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections import Counter
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor

from .config import Settings
from .extractor_advanced import SELECTABLE_FIELDS, extract_advanced
from .extractor_legacy import (
    LegacyTagger,
    default_legacy_tagger,
    load_legacy_markers,
)
from .given_names import default_given_names, load_given_names
from .models import (
    FieldType,
    ImportResult,
    ImportStats,
    LegacyTag,
    MergedTag,
    OwnerRow,
    ParsedRecord,
    ParseReport,
    RawRecord,
    TagRow,
    UnmatchedPattern,
)
from .reconciler import get_conflicts, reconcile
from .rules import ParseConfig, ParseRules, default_rules, load_parse_config

logger = logging.getLogger(__name__)

# Fields counted in the batch tag statistics
STAT_FIELDS: tuple[FieldType, ...] = (
    FieldType.GIVEN,
    FieldType.SURNAME,
    FieldType.MAIDEN_SURNAME,
    FieldType.SPOUSE_GIVEN,
    FieldType.STATUS,
    FieldType.BIRTH_DATE,
    FieldType.DEATH_DATE,
)
TOP_UNMATCHED = 20


class OwnerParsingPipeline:
    """Orchestrates parsing, legacy tagging and reconciliation.

    Usage:
        pipeline = OwnerParsingPipeline()
        report = pipeline.run("JAROŠ Štefan (ž.Marta Virdzeková zomrel 24.04.1997)")
        for tag in report.merged_tags:
            print(tag.key, tag.value, tag.confidence)
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()
        s = self.settings

        if s.given_names_path:
            self.given_names = load_given_names(s.given_names_path)
        else:
            self.given_names = default_given_names()

        if s.markers_path:
            self.rules = ParseRules(load_parse_config(s.markers_path))
        else:
            self.rules = default_rules()

        if s.legacy_markers_path or s.given_names_path:
            self.legacy_tagger = LegacyTagger(
                load_legacy_markers(s.legacy_markers_path), self.given_names
            )
        else:
            self.legacy_tagger = default_legacy_tagger()

        logger.info(
            "Pipeline ready: %d given names, %d batch workers",
            len(self.given_names), s.max_workers,
        )

    # ─── Single Record ──────────────────────────────────────────────

    def parse(self, record: RawRecord | str) -> ParsedRecord:
        return extract_advanced(record, self.rules, self.given_names)

    def tag(self, raw: str) -> list[LegacyTag]:
        return self.legacy_tagger.tag(raw)

    def reconcile(self, parsed: ParsedRecord, legacy_tags: list[LegacyTag]) -> list[MergedTag]:
        return reconcile(parsed, legacy_tags)

    def run(self, record: RawRecord | dict | str) -> ParseReport:
        """Execute the full pipeline on one record.

        Args:
            record: Input row, a dict with the same keys, or a bare raw name.

        Returns:
            ParseReport with all three outputs and the persistence rows.
        """
        record = _coerce(record)

        # ── Step 0: Audit hash of original input ────────────────────
        name_hash = hashlib.sha256(record.raw_name.encode("utf-8")).hexdigest()

        # ── Step 1: Dual extraction ─────────────────────────────────
        logger.debug("Advanced extraction for %r", record.raw_name)
        parsed = self.parse(record)

        logger.debug("Legacy tagging for %r", record.raw_name)
        legacy_tags = self.tag(record.raw_name)

        # ── Step 2: Reconcile ───────────────────────────────────────
        merged = self.reconcile(parsed, legacy_tags)
        conflicts = get_conflicts(merged)
        if conflicts:
            logger.debug(
                "%d tag conflict(s) for %r: %s",
                len(conflicts), record.raw_name, [t.key for t in conflicts],
            )

        # ── Step 3: Hand-off rows ───────────────────────────────────
        return ParseReport(
            record=parsed,
            legacy_tags=legacy_tags,
            merged_tags=merged,
            conflicts=conflicts,
            owner_row=build_owner_row(parsed),
            tag_rows=build_tag_rows(merged),
            original_hash=name_hash,
        )

    # ─── Batch ──────────────────────────────────────────────────────

    def run_batch(
        self,
        records: Iterable[RawRecord | dict | str],
        max_workers: int | None = None,
    ) -> ImportResult:
        """Run many records on a thread pool, preserving input order.

        A record that raises is logged and reported in `errors`; the rest of
        the batch carries on.
        """
        records = list(records)
        workers = max_workers or self.settings.max_workers
        logger.info("Processing %d records with %d workers", len(records), workers)

        reports: list[ParseReport] = []
        errors: list[str] = []

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self.run, record) for record in records]
            for index, future in enumerate(futures, start=1):
                try:
                    reports.append(future.result())
                except Exception as exc:
                    logger.exception("Record %d failed", index)
                    errors.append(f"Record {index}: {exc}")

        stats = compute_stats(reports, len(records), self.rules.config)
        logger.info(
            "Batch done: %d parsed, %d problematic, %d failed",
            stats.parsed_successfully, stats.problematic_count, len(errors),
        )
        return ImportResult(reports=reports, stats=stats, errors=errors)


# ─── Hand-off Rows ───────────────────────────────────────────────────


def build_owner_row(parsed: ParsedRecord) -> OwnerRow:
    """Flatten a parsed record into the owner row the database stores."""
    has_minor = parsed.status is not None and parsed.status.source_rule_id == "RULE_STATUS_MINOR"
    return OwnerRow(
        territory=parsed.territory,
        sequence_number=parsed.sequence_number,
        ownership_list_number=parsed.ownership_list_number,
        raw_name=parsed.raw_name,
        clean_name=parsed.clean_name,
        gender=parsed.gender,
        has_minor_flag=has_minor,
        parse_score=parsed.parse_score,
        parse_errors=";".join(e.value for e in parsed.parse_errors),
        evidence_spans=json.dumps(
            [e.model_dump(mode="json") for e in parsed.evidence_spans], ensure_ascii=False
        ),
    )


def build_tag_rows(merged: list[MergedTag]) -> list[TagRow]:
    return [
        TagRow(
            key=t.key,
            value=t.value,
            confidence=t.confidence,
            source_rule=t.rule or t.source.value,
            uncertain=t.uncertain,
        )
        for t in merged
    ]


# ─── Statistics ──────────────────────────────────────────────────────


def compute_stats(reports: list[ParseReport], total: int, config: ParseConfig) -> ImportStats:
    """Import statistics over the successfully processed records.

    A record counts as parsed successfully when it scores at least
    `conf_warn` and carries no parse errors; otherwise it is problematic.
    With `problematic_if_no_tags`, a record without any selected field is
    problematic too.
    """
    parsed_ok = 0
    spf = 0
    genders: Counter[str] = Counter()
    tags: Counter[str] = Counter()
    unmatched: Counter[str] = Counter()

    for report in reports:
        record = report.record
        untagged = not any(getattr(record, ft.value) is not None for ft in SELECTABLE_FIELDS)
        if (
            record.parse_score >= config.conf_warn
            and not record.parse_errors
            and not (config.problematic_if_no_tags and untagged)
        ):
            parsed_ok += 1
        if record.is_spf:
            spf += 1
        genders[record.gender.value] += 1
        for field_type in STAT_FIELDS:
            if getattr(record, field_type.value) is not None:
                tags[field_type.value] += 1
        unmatched.update(record.unmatched_tokens)

    return ImportStats(
        total_records=total,
        parsed_successfully=parsed_ok,
        problematic_count=len(reports) - parsed_ok,
        spf_count=spf,
        gender_stats=dict(genders),
        tag_stats=dict(tags),
        most_common_unmatched=[
            UnmatchedPattern(pattern=p, count=c) for p, c in unmatched.most_common(TOP_UNMATCHED)
        ],
    )


def _coerce(record: RawRecord | dict | str) -> RawRecord:
    if isinstance(record, RawRecord):
        return record
    if isinstance(record, str):
        return RawRecord(raw_name=record)
    return RawRecord.model_validate(record)
