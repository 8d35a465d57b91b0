"""
Pipeline tests — persistence rows, batch processing, statistics and settings.
"""

from __future__ import annotations

import json

import pytest

from owner_parser.config import Settings
from owner_parser.exceptions import DictionaryLoadError, RuleConfigError
from owner_parser.models import Gender, ParseErrorCode
from owner_parser.pipeline import OwnerParsingPipeline, compute_stats

MAIDEN_AND_SPOUSE = "Batóová Júlia r. Szivecová, (z Várkonyu, m.Ján)"
DEATH_WITH_DATE = "JAROŠ Štefan (ž.Marta Virdzeková zomrel 24.04.1997)"
MINOR = "PETRIĽAK Vasiľ (maloletý)"


# ═══════════════════════════════════════════════════════════════════════
# SINGLE RECORD
# ═══════════════════════════════════════════════════════════════════════


class TestRun:
    def test_report_contents(self, pipeline):
        report = pipeline.run(MAIDEN_AND_SPOUSE)
        assert report.record.surname.value == "Batóová"
        assert report.legacy_tags
        assert report.merged_tags
        assert report.conflicts == []
        assert len(report.original_hash) == 64

    def test_hash_depends_only_on_raw_name(self, pipeline):
        a = pipeline.run({"raw_name": "Novák Ján", "territory": "Bošany"})
        b = pipeline.run("Novák Ján")
        assert a.original_hash == b.original_hash

    def test_dict_input_with_extra_columns(self, pipeline):
        report = pipeline.run({"raw_name": "Novák Ján", "spravca": "SPF", "sequence_number": "3"})
        assert report.record.is_spf is True
        assert report.record.sequence_number == 3

    def test_parse_and_tag_are_independent(self, pipeline):
        parsed = pipeline.parse(DEATH_WITH_DATE)
        legacy = pipeline.tag(DEATH_WITH_DATE)
        assert parsed.spouse_given.value == "Marta"
        assert "manželka" not in [t.key for t in legacy]
        keys = [t.key for t in pipeline.reconcile(parsed, legacy)]
        assert "manželka" in keys


class TestMergedTagProperties:
    """Invariants of the reconciled tag set, over real records."""

    NAMES = [
        MAIDEN_AND_SPOUSE,
        DEATH_WITH_DATE,
        MINOR,
        "Novák Ján",
        "Slovenská republika – v správe SPF",
        "Kováčová Anna (nar. 12.3.1950 zomrela 1.1.1940)",
        "Nováková Mária (manž. Ján)",
        "Novák Ján, Bratislava (bez podielu) ml.",
        "Novák Ján (ž. Mária, ž. Anna)",
        "Nová Anna (maloletá)",
        "Novák Ján ml.",
        "Horváth Kubík (syn Peter, z Nitry)",
        "(maloletá)",
        "",
        "((((",
        "()",
        "r.",
        ",,,",
    ]

    @pytest.mark.parametrize("raw", NAMES)
    def test_idempotent(self, pipeline, raw):
        assert pipeline.run(raw) == pipeline.run(raw)

    @pytest.mark.parametrize("raw", NAMES)
    def test_one_tag_per_key(self, pipeline, raw):
        merged = pipeline.run(raw).merged_tags
        assert len({t.key for t in merged}) == len(merged)

    @pytest.mark.parametrize("raw", NAMES)
    def test_conflicts_carry_alternatives(self, pipeline, raw):
        report = pipeline.run(raw)
        assert all(t.alternatives for t in report.merged_tags if t.conflict)
        assert report.conflicts == [t for t in report.merged_tags if t.conflict]

    @pytest.mark.parametrize("raw", NAMES)
    def test_confidence_in_range(self, pipeline, raw):
        merged = pipeline.run(raw).merged_tags
        assert all(0.0 <= t.confidence <= 1.0 for t in merged)

    def test_sample_set_contains_conflicts(self, pipeline):
        assert any(pipeline.run(raw).conflicts for raw in self.NAMES)


# ═══════════════════════════════════════════════════════════════════════
# HAND-OFF ROWS
# ═══════════════════════════════════════════════════════════════════════


class TestHandOffRows:
    def test_owner_row(self, pipeline):
        row = pipeline.run({"raw_name": MINOR, "territory": "Bošany", "sequence_number": 7}).owner_row
        assert row.territory == "Bošany"
        assert row.sequence_number == 7
        assert row.gender == Gender.MALE
        assert row.has_minor_flag is True
        assert row.parse_errors == ""
        assert row.clean_name == "petrilak vasil"

    def test_no_minor_flag_without_minor_status(self, pipeline):
        assert pipeline.run("Nováková Anna (vdova)").owner_row.has_minor_flag is False

    def test_errors_are_joined(self, pipeline):
        row = pipeline.run({
            "raw_name": "Kováčová Anna r. Kováčová (rod. Horváthová nar. 12.3.1950 zomrela 1.1.1940)",
            "ownership_list_number": "x",
        }).owner_row
        assert row.parse_errors == "NUMERIC_INVALID;CONFLICT_MAIDEN;CONFLICT_DATES"

    def test_evidence_spans_are_json(self, pipeline):
        report = pipeline.run(DEATH_WITH_DATE)
        spans = json.loads(report.owner_row.evidence_spans)
        assert len(spans) == len(report.record.candidates)
        death = next(s for s in spans if s["type"] == "death_date")
        assert death["text"] == "24.04.1997"

    def test_tag_rows_follow_merged_tags(self, pipeline):
        report = pipeline.run(DEATH_WITH_DATE)
        assert [r.key for r in report.tag_rows] == [t.key for t in report.merged_tags]
        for row, tag in zip(report.tag_rows, report.merged_tags):
            assert row.source_rule == (tag.rule or tag.source.value)
            assert row.confidence == tag.confidence


# ═══════════════════════════════════════════════════════════════════════
# BATCH
# ═══════════════════════════════════════════════════════════════════════


class TestBatch:
    def test_order_is_preserved(self, pipeline):
        names = [MAIDEN_AND_SPOUSE, DEATH_WITH_DATE, MINOR, "Novák Ján", "v správe SPF"]
        result = pipeline.run_batch(names, max_workers=3)
        assert [r.record.raw_name for r in result.reports] == names
        assert result.errors == []
        assert result.stats.total_records == 5

    def test_failing_record_does_not_stop_batch(self, monkeypatch, caplog):
        pipeline = OwnerParsingPipeline()
        original = pipeline.parse

        def flaky(record):
            if record.raw_name == "BOOM":
                raise ValueError("boom")
            return original(record)

        monkeypatch.setattr(pipeline, "parse", flaky)
        result = pipeline.run_batch(["Novák Ján", "BOOM", MINOR])

        assert [r.record.raw_name for r in result.reports] == ["Novák Ján", MINOR]
        assert result.errors == ["Record 2: boom"]
        assert result.stats.total_records == 3
        assert "Record 2 failed" in caplog.text

    def test_invalid_row_is_reported(self, pipeline):
        result = pipeline.run_batch([{"raw_name": ["not", "a", "string"]}, "Novák Ján"])
        assert len(result.reports) == 1
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Record 1:")

    def test_empty_batch(self, pipeline):
        result = pipeline.run_batch([])
        assert result.reports == []
        assert result.stats.total_records == 0


class TestStats:
    def test_counts(self, pipeline):
        result = pipeline.run_batch([
            "Novák Ján, Bratislava",
            "Horváth Peter, Bratislava",
            "Nováková Anna, Nitra",
            "v správe SPF",
        ])
        stats = result.stats
        assert stats.spf_count == 1
        assert stats.gender_stats == {"muž": 3, "žena": 1}
        assert stats.tag_stats["surname"] == 4
        assert stats.most_common_unmatched[0].pattern == "Bratislava"
        assert stats.most_common_unmatched[0].count == 2
        assert stats.parsed_successfully + stats.problematic_count == 4

    def test_conflicting_record_is_problematic(self, pipeline):
        reports = [
            pipeline.run("JAROŠ Štefan (ž.Marta Virdzeková zomrel 24.04.1997)"),
            pipeline.run("Nováková Anna r. Kováčová (rod. Horváthová)"),
        ]
        stats = compute_stats(reports, total=2, config=pipeline.rules.config)
        assert reports[1].record.parse_errors == [ParseErrorCode.CONFLICT_MAIDEN]
        assert stats.parsed_successfully == 1
        assert stats.problematic_count == 1

    def test_untagged_record_is_problematic(self, pipeline):
        reports = [pipeline.run("(bez podielu)")]
        assert reports[0].record.parse_errors == []
        strict = pipeline.rules.config.model_copy(update={"conf_warn": 0.0})
        assert compute_stats(reports, 1, strict).problematic_count == 1
        lenient = strict.model_copy(update={"problematic_if_no_tags": False})
        assert compute_stats(reports, 1, lenient).parsed_successfully == 1


# ═══════════════════════════════════════════════════════════════════════
# SETTINGS
# ═══════════════════════════════════════════════════════════════════════


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.given_names_path is None
        assert settings.max_workers == 4
        assert settings.log_level == "INFO"

    def test_values_from_env(self, tmp_path):
        settings = Settings.from_env({
            "OWNER_PARSER_GIVEN_NAMES": str(tmp_path / "names.json"),
            "OWNER_PARSER_MAX_WORKERS": "8",
            "OWNER_PARSER_LOG_LEVEL": "debug",
        })
        assert settings.given_names_path == tmp_path / "names.json"
        assert settings.max_workers == 8
        assert settings.log_level == "DEBUG"

    @pytest.mark.parametrize("value", ["0", "-2", "many"])
    def test_bad_worker_count_falls_back(self, value):
        assert Settings.from_env({"OWNER_PARSER_MAX_WORKERS": value}).max_workers == 4

    def test_unknown_log_level_falls_back(self):
        assert Settings.from_env({"OWNER_PARSER_LOG_LEVEL": "LOUD"}).log_level == "INFO"

    def test_custom_given_names(self, tmp_path):
        path = tmp_path / "names.json"
        path.write_text(json.dumps(["Xaver"]), encoding="utf-8")
        pipeline = OwnerParsingPipeline(Settings(given_names_path=path))
        parsed = pipeline.parse("Novák Xaver")
        assert parsed.given.value == "Xaver"
        assert parsed.given.confidence == 0.85
        assert len(pipeline.given_names) == 1

    def test_missing_markers_file(self, tmp_path):
        with pytest.raises(RuleConfigError):
            OwnerParsingPipeline(Settings(markers_path=tmp_path / "missing.json"))

    def test_missing_given_names_file(self, tmp_path):
        with pytest.raises(DictionaryLoadError):
            OwnerParsingPipeline(Settings(given_names_path=tmp_path / "missing.json"))
