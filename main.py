#!/usr/bin/env python3
"""
Unknown Owner Parser — Entry Point
===================================

Demonstrates the full pipeline on sample register entries.

Usage:
    python main.py                                  # Built-in samples
    python main.py "JAROŠ Štefan (maloletý)" ...    # Your own names
    OWNER_PARSER_LOG_LEVEL=DEBUG python main.py     # Stage-by-stage logging
"""

from __future__ import annotations

import sys

from dotenv import load_dotenv

from owner_parser.config import Settings, configure_logging
from owner_parser.extractor_advanced import SELECTABLE_FIELDS
from owner_parser.models import ParseReport
from owner_parser.pipeline import OwnerParsingPipeline
from owner_parser.rules import default_rules

# ─── Load .env ───────────────────────────────────────────────────────
load_dotenv()


# ─── Sample Register Entries ────────────────────────────────────────

SAMPLE_NAMES = [
    "Batóová Júlia r. Szivecová, (z Várkonyu, m.Ján)",
    "JAROŠ Štefan (ž.Marta Virdzeková zomrel 24.04.1997)",
    "PETRIĽAK Vasiľ (maloletý)",
    "Novák Ján",
    "Slovenská republika – v správe SPF",
    "Kováčová Anna (nar. 12.3.1950 zomrela 1.1.1940)",
]


# ─── ANSI Color Constants ───────────────────────────────────────────

_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"
_BOLD = "\033[1m"
_RESET = "\033[0m"
_WIDTH = 72


# ─── Pretty Printer Helpers ─────────────────────────────────────────


def _confidence_color(confidence: float) -> str:
    thresholds = default_rules().config
    if confidence >= thresholds.conf_warn:
        return _GREEN
    if confidence >= thresholds.conf_low:
        return _YELLOW
    return _RED


def _print_fields(report: ParseReport) -> None:
    """Print the selected advanced fields."""
    record = report.record
    selected = [getattr(record, ft.value) for ft in SELECTABLE_FIELDS]
    for candidate in sorted((c for c in selected if c is not None), key=lambda c: c.span):
        color = _confidence_color(candidate.confidence)
        flag = f" {_YELLOW}?{_RESET}" if candidate.uncertain else ""
        print(
            f"  {candidate.field_type.value:<18} {_BOLD}{candidate.value}{_RESET} "
            f"{color}({candidate.confidence:.2f}){_RESET}{flag}"
        )
    print(f"  {'gender':<18} {record.gender.value} ({record.gender_confidence:.2f})")
    if record.is_spf:
        print(f"  {'spf':<18} {_CYAN}{record.spf_reason.value}{_RESET} ({record.spf_confidence:.2f})")
    for note in record.notes:
        print(f"  {'note':<18} {_DIM}{note}{_RESET}")


def _print_tags(report: ParseReport) -> None:
    """Print the reconciled tags with conflicts highlighted."""
    print(f"\n  {_BOLD}MERGED TAGS ({len(report.merged_tags)}){_RESET}")
    for tag in report.merged_tags:
        if tag.conflict:
            print(f"    {_RED}[{tag.key}] {tag.value}  {tag.confidence:.2f}{_RESET}")
            print(f"      {_DIM}{tag.reasoning}{_RESET}")
        else:
            print(f"    [{tag.key}] {tag.value}  {_DIM}{tag.confidence:.2f} {tag.source.value}{_RESET}")


# ─── Pretty Printer ─────────────────────────────────────────────────


def print_report(report: ParseReport) -> int:
    """Pretty-print one record's report with ANSI color codes.

    Returns:
        0 if the record parsed without errors, 1 otherwise.
    """
    record = report.record
    print(f"\n{'=' * _WIDTH}")
    print(f"{_BOLD}{_CYAN}  {record.raw_name}{_RESET}")
    print(f"{'=' * _WIDTH}")
    print(f"  Clean name:  {record.clean_name}")
    print(f"  Audit Hash:  {_DIM}{report.original_hash[:16]}...{_RESET}")
    score_color = _confidence_color(record.parse_score)
    print(f"  Score:       {score_color}{_BOLD}{record.parse_score:.2f}{_RESET}")
    print(f"{'─' * _WIDTH}")

    _print_fields(report)
    _print_tags(report)

    print(f"{'─' * _WIDTH}")
    if record.parse_errors:
        codes = ", ".join(e.value for e in record.parse_errors)
        print(f"  {_RED}{_BOLD}PARSE ERRORS  --  {codes}{_RESET}")
        return 1
    print(f"  {_GREEN}{_BOLD}PARSED CLEANLY{_RESET}")
    return 0


# ─── Main ────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> int:
    """Parse the given names (or the samples) and print a report for each."""
    names = (sys.argv[1:] if argv is None else argv) or SAMPLE_NAMES

    settings = Settings.from_env()
    configure_logging(settings)

    print("\n  Starting Unknown Owner Parser...")
    print(f"  Parsing {len(names)} name(s)...")

    pipeline = OwnerParsingPipeline(settings)
    exit_code = 0
    for name in names:
        exit_code = max(exit_code, print_report(pipeline.run(name)))
    print(f"\n{'=' * _WIDTH}\n")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
