"""
Tests for tag reconciliation — priority weights, similarity and conflicts.
"""

from __future__ import annotations

import pytest

from owner_parser.extractor_advanced import extract_advanced
from owner_parser.extractor_legacy import extract_legacy
from owner_parser.models import LegacyTag, TagSource, TagWithSource
from owner_parser.reconciler import (
    get_best_tag,
    get_conflicts,
    legacy_to_tags,
    merge_tags,
    reconcile,
    record_to_tags,
    tag_similarity,
    tag_weight,
)


def _adv(key: str, value: str, confidence: float) -> TagWithSource:
    return TagWithSource(key=key, value=value, confidence=confidence, source=TagSource.ADVANCED)


def _sys(key: str, value: str, confidence: float = 0.7) -> TagWithSource:
    return TagWithSource(key=key, value=value, confidence=confidence, source=TagSource.SYSTEM)


# ═══════════════════════════════════════════════════════════════════════
# WEIGHTS & SIMILARITY
# ═══════════════════════════════════════════════════════════════════════


class TestWeights:
    def test_preferred_source_gets_table_weight(self):
        assert tag_weight("krstné_meno", TagSource.ADVANCED) == 0.8
        assert tag_weight("manželka", TagSource.SYSTEM) == 0.9

    def test_other_source_gets_complement(self):
        assert tag_weight("krstné_meno", TagSource.SYSTEM) == pytest.approx(0.2)
        assert tag_weight("adresa", TagSource.ADVANCED) == pytest.approx(0.1)

    def test_unknown_key_is_neutral(self):
        assert tag_weight("stav", TagSource.ADVANCED) == 0.5
        assert tag_weight("stav", TagSource.SYSTEM) == 0.5


class TestSimilarity:
    def test_edit_distance_over_longer_length(self):
        assert tag_similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)

    def test_empty_values(self):
        assert tag_similarity("", "") == 1.0
        assert tag_similarity("", "abc") == 0.0

    def test_normalized_values_are_identical(self):
        assert tag_similarity("Ján", "jan ") == 1.0

    def test_partial(self):
        assert tag_similarity("Novak", "Novik") == pytest.approx(0.8)

    def test_unrelated(self):
        assert tag_similarity("Ján", "Peter") < 0.5


# ═══════════════════════════════════════════════════════════════════════
# MERGE
# ═══════════════════════════════════════════════════════════════════════


class TestMerge:
    def test_agreement_keeps_weighted_winner(self):
        [tag] = merge_tags([_adv("krstné_meno", "Ján", 0.85)], [_sys("krstné_meno", "Jan ")])
        assert tag.value == "Ján"
        assert tag.source == TagSource.ADVANCED
        assert tag.confidence == pytest.approx(0.68)
        assert not tag.conflict
        assert [a.value for a in tag.alternatives] == ["Jan "]

    def test_disagreement_is_a_conflict(self):
        [tag] = merge_tags([_adv("krstné_meno", "Ján", 0.85)], [_sys("krstné_meno", "Peter")])
        assert tag.conflict
        assert tag.uncertain
        assert tag.source == TagSource.MERGED
        assert tag.value == "Ján"
        assert tag.confidence == pytest.approx(0.544)
        assert tag.reasoning.startswith("CONFLICT: Ján (advanced) vs Peter (system)")

    def test_single_source_is_weighted(self):
        merged = merge_tags(
            [_adv("pohlavie", "žena", 0.9), _adv("adresa", "Hlavná", 1.0)],
            [_sys("manželka", "Mária Nováková"), _sys("stav", "vdova")],
        )
        confidence = {t.key: t.confidence for t in merged}
        assert confidence["pohlavie"] == pytest.approx(0.765)
        assert confidence["manželka"] == pytest.approx(0.63)
        assert confidence["stav"] == pytest.approx(0.35)
        assert confidence["adresa"] == pytest.approx(0.1)

    def test_neutral_tie_goes_to_system(self):
        [tag] = merge_tags([_adv("stav", "vdova", 0.7)], [_sys("stav", "vdova")])
        assert tag.source == TagSource.SYSTEM

    def test_sorted_by_confidence(self):
        merged = merge_tags(
            [_adv("stav", "vdova", 0.2), _adv("pohlavie", "muž", 0.9)],
            [_sys("manželka", "Mária")],
        )
        confidences = [t.confidence for t in merged]
        assert confidences == sorted(confidences, reverse=True)

    def test_one_tag_per_key(self):
        merged = merge_tags([], [_sys("meno", "Ján"), _sys("meno", "Novák")])
        assert len(merged) == 1
        assert merged[0].value == "Ján"
        assert [a.value for a in merged[0].alternatives] == ["Novák"]

    def test_empty(self):
        assert merge_tags([], []) == []


# ═══════════════════════════════════════════════════════════════════════
# SOURCE CONVERSION & QUERIES
# ═══════════════════════════════════════════════════════════════════════


class TestConversion:
    def test_record_tags_use_legacy_keys(self):
        parsed = extract_advanced("JAROŠ Štefan (ž.Marta Virdzeková zomrel 24.04.1997)")
        tags = {t.key: t.value for t in record_to_tags(parsed)}
        assert tags["priezvisko"] == "Jaroš"
        assert tags["krstné_meno"] == "Štefan"
        assert tags["manželka"] == "Marta Virdzeková"
        assert tags["✝️"] == "24.04.1997"
        assert tags["pohlavie"] == "muž"

    def test_husband_marker_tags_manzel(self):
        parsed = extract_advanced("Batóová Júlia (m.Ján)")
        keys = [t.key for t in record_to_tags(parsed)]
        assert "manžel" in keys
        assert "manželka" not in keys

    def test_spf_tag(self):
        tags = {t.key: t.value for t in record_to_tags(extract_advanced("v správe SPF"))}
        assert tags["spf"] == "true"

    def test_legacy_confidence_from_uncertain_flag(self):
        tags = legacy_to_tags([
            LegacyTag(key="priezvisko", value="Novák"),
            LegacyTag(key="poznámka", value="?", uncertain=True),
        ])
        assert [t.confidence for t in tags] == [0.7, 0.3]
        assert all(t.source == TagSource.SYSTEM for t in tags)


class TestReconcile:
    def test_agreeing_parsers_produce_no_conflicts(self):
        raw = "Batóová Júlia r. Szivecová, (z Várkonyu, m.Ján)"
        merged = reconcile(extract_advanced(raw), extract_legacy(raw))
        assert get_conflicts(merged) == []
        assert get_best_tag(merged, "rodné_priezvisko").value == "Szivecová"
        assert get_best_tag(merged, "manžel").value == "Ján"

    def test_name_suffix_flags_surname_conflict(self):
        raw = "Novák Ján ml."
        merged = reconcile(extract_advanced(raw), extract_legacy(raw))
        surname = get_best_tag(merged, "priezvisko")
        assert surname.conflict
        assert surname.value == "Novák"
        assert [a.value for a in surname.alternatives] == ["Novák Ml."]
        assert get_best_tag(merged, "name_suffix").value == "ml."

    def test_get_best_tag_missing_key(self):
        assert get_best_tag([], "stav") is None
