"""
Clinical Risk Ensemble Engine
Tests for the chief complaint analyzer
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from risk_ensemble.core.models import AcuityLevel
from risk_ensemble.nlp.complaint_analyzer import (
    ComplaintAnalyzer, ComplaintTextProcessor, analyze_complaint, analyze_complaints
)
from risk_ensemble.nlp.lexicon import SYMPTOM_LEXICON, DIFFERENTIAL_RULES


def _symptom(analysis, term):
    matches = [s for s in analysis.symptoms if s.term == term]
    assert matches, f"{term!r} not found in {[s.term for s in analysis.symptoms]}"
    return matches[0]


class TestLexicon:
    """Test the static clinical vocabulary"""

    def test_lexicon_entries_valid(self):
        assert len(SYMPTOM_LEXICON) >= 50
        for entry in SYMPTOM_LEXICON:
            assert entry.terms
            assert 0 <= entry.base_severity <= 10
            assert entry.icd10

    def test_differential_rules_valid(self):
        for rule in DIFFERENTIAL_RULES:
            assert rule.required
            assert 0 < rule.base_probability < 1
            assert rule.boost > 0


class TestTextProcessing:
    """Test normalization and clause splitting"""

    def test_normalize(self):
        assert ComplaintTextProcessor.normalize("  Chest PAIN!!  since   Monday ") == "chest pain since monday"

    def test_clauses_split_on_but(self):
        clauses = ComplaintTextProcessor.split_clauses("no fever but severe cough")
        assert clauses == ["no fever", "severe cough"]

    def test_clauses_split_on_raw_punctuation(self):
        clauses = ComplaintTextProcessor.split_clauses("No recent travel, Chest pain!")
        assert clauses == ["no recent travel", "chest pain"]

    def test_decimal_point_does_not_split(self):
        clauses = ComplaintTextProcessor.split_clauses("cough for 2.5 days. fever")
        assert clauses == ["cough for 2.5 days", "fever"]


class TestNegation:
    """Test negation scope"""

    @pytest.fixture
    def analyzer(self):
        return ComplaintAnalyzer()

    def test_denies_chest_pain(self, analyzer):
        analysis = analyzer.analyze("denies chest pain")
        symptom = _symptom(analysis, "chest pain")
        assert symptom.is_negated
        assert not symptom.is_red_flag
        assert "chest pain" not in analysis.red_flags
        assert analysis.acuity == AcuityLevel.ROUTINE

    def test_negation_stops_at_clause_boundary(self, analyzer):
        analysis = analyzer.analyze("no chest pain, but has nausea")
        assert _symptom(analysis, "chest pain").is_negated
        assert not _symptom(analysis, "nausea").is_negated

    def test_negation_stops_at_comma(self, analyzer):
        analysis = analyzer.analyze("no recent travel, chest pain")
        symptom = _symptom(analysis, "chest pain")
        assert not symptom.is_negated
        assert "chest pain" in analysis.red_flags

    def test_negation_stops_at_semicolon(self, analyzer):
        analysis = analyzer.analyze("denies trauma; severe headache")
        assert not _symptom(analysis, "headache").is_negated

    def test_negation_flips_only_next_symptom(self, analyzer):
        analysis = analyzer.analyze("denies fever and reports cough")
        assert _symptom(analysis, "fever").is_negated
        assert not _symptom(analysis, "cough").is_negated

    def test_negation_window_is_bounded(self, analyzer):
        analysis = analyzer.analyze("no history of anything relevant other than chest pain")
        assert not _symptom(analysis, "chest pain").is_negated
        assert "chest pain" in analysis.red_flags

    def test_multi_word_cue(self, analyzer):
        analysis = analyzer.analyze("negative for shortness of breath")
        assert _symptom(analysis, "shortness of breath").is_negated
        assert analysis.red_flags == []

    def test_affirmed_mention_replaces_negated(self, analyzer):
        analysis = analyzer.analyze("no cough yesterday. now coughing a lot")
        cough = [s for s in analysis.symptoms if s.body_system == "respiratory"]
        assert len(cough) == 1
        assert not cough[0].is_negated


class TestSeverityAndAcuity:
    """Test severity modifiers, duration and acuity"""

    @pytest.fixture
    def analyzer(self):
        return ComplaintAnalyzer()

    def test_severe_boosts_only_its_clause(self, analyzer):
        analysis = analyzer.analyze("no fever but severe cough")
        assert _symptom(analysis, "cough").severity == 6
        assert _symptom(analysis, "fever").severity == 4
        assert analysis.acuity == AcuityLevel.SEMI_URGENT

    def test_mild_reduces_severity(self, analyzer):
        analysis = analyzer.analyze("mild back pain for 3 weeks")
        assert _symptom(analysis, "back pain").severity == 2
        assert analysis.duration.estimated_days == 21
        assert analysis.duration.acute_vs_chronic == "subacute"

    def test_greedy_match_prefers_longer_term(self, analyzer):
        analysis = analyzer.analyze("worst headache of my life")
        terms = [s.term for s in analysis.symptoms]
        assert "worst headache" in terms
        assert "headache" not in terms
        assert analysis.acuity == AcuityLevel.EMERGENT

    @pytest.mark.parametrize("text,days,bucket", [
        ("cough for 2 days", 2, "acute"),
        ("cough for two weeks", 14, "subacute"),
        ("joint pain for 6 months", 180, "chronic"),
        ("joint pain for years", 365, "chronic"),
        ("chronic back pain", 365, "chronic"),
        ("fever since yesterday", 1, "acute"),
    ])
    def test_duration_buckets(self, analyzer, text, days, bucket):
        duration = analyzer.analyze(text).duration
        assert duration is not None
        assert duration.estimated_days == pytest.approx(days)
        assert duration.acute_vs_chronic == bucket

    def test_sudden_onset_escalates_acuity(self, analyzer):
        gradual = analyzer.analyze("mild headache for 3 days")
        sudden = analyzer.analyze("mild headache since this morning")
        assert gradual.acuity == AcuityLevel.ROUTINE
        assert sudden.acuity == AcuityLevel.SEMI_URGENT

    def test_two_red_flags_emergent(self, analyzer):
        analysis = analyzer.analyze("chest pain and shortness of breath")
        assert set(analysis.red_flags) == {"chest pain", "shortness of breath"}
        assert analysis.acuity == AcuityLevel.EMERGENT


class TestDifferentials:
    """Test differential ranking and follow-up questions"""

    @pytest.fixture
    def analyzer(self):
        return ComplaintAnalyzer()

    def test_acute_coronary_syndrome(self, analyzer):
        analysis = analyzer.analyze("chest pain with nausea and shortness of breath")
        acs = [d for d in analysis.differentials if "Acute Coronary" in d.condition]
        assert acs
        assert acs[0].probability > 0.2
        assert acs[0].icd10_category == "I21"
        assert "nausea" in acs[0].related_symptoms

    def test_differentials_sorted_and_capped(self, analyzer):
        analysis = analyzer.analyze("chest pain, shortness of breath, cough, fever, headache, nausea")
        probabilities = [d.probability for d in analysis.differentials]
        assert probabilities == sorted(probabilities, reverse=True)
        assert len(analysis.differentials) <= 5
        assert all(0 <= p <= 0.95 for p in probabilities)

    def test_partial_term_does_not_trigger_rule(self, analyzer):
        analysis = analyzer.analyze("ankle swelling for two weeks")
        assert _symptom(analysis, "ankle swelling")
        assert not any(d.condition == "Anaphylaxis" for d in analysis.differentials)

    def test_whole_term_triggers_rule(self, analyzer):
        analysis = analyzer.analyze("facial swelling and itching")
        anaphylaxis = [d for d in analysis.differentials if d.condition == "Anaphylaxis"]
        assert anaphylaxis
        assert anaphylaxis[0].related_symptoms == ["itching"]

    def test_negated_symptoms_do_not_drive_differentials(self, analyzer):
        analysis = analyzer.analyze("denies chest pain")
        assert analysis.differentials == []

    def test_questions_follow_body_systems(self, analyzer):
        analysis = analyzer.analyze("chest pain and cough")
        assert "Does the pain radiate to arm, jaw, or back?" in analysis.suggested_questions
        assert "Are you producing sputum? What color?" in analysis.suggested_questions
        assert len(analysis.suggested_questions) <= 5
        assert len(set(analysis.suggested_questions)) == len(analysis.suggested_questions)


class TestEdgeCases:
    """Test empty and unrecognized complaints"""

    def test_empty_text(self):
        analysis = analyze_complaint("")
        assert analysis.symptoms == []
        assert analysis.confidence == 0
        assert analysis.acuity == AcuityLevel.ROUTINE
        assert analysis.body_systems == ["general"]
        assert analysis.suggested_questions == ["Could you describe your main symptoms?"]

    def test_unrecognized_text(self):
        analysis = analyze_complaint("xyzzy plugh")
        assert analysis.symptoms == []
        assert analysis.confidence == 0
        assert analysis.body_systems == ["general"]
        assert analysis.acuity == AcuityLevel.ROUTINE

    def test_confidence_rises_with_symptoms(self):
        one = analyze_complaint("cough")
        three = analyze_complaint("cough, fever and chills for 2 days")
        assert 0 < one.confidence < three.confidence <= 95

    def test_analyze_multiple_concatenates(self):
        analysis = analyze_complaints(["chest pain", "", "shortness of breath"])
        assert analysis.normalized_text == "chest pain. shortness of breath"
        assert {s.term for s in analysis.positive_symptoms} == {"chest pain", "shortness of breath"}

    def test_to_dict(self):
        data = analyze_complaint("severe headache").to_dict()
        assert data["acuity"] in ("routine", "semi-urgent", "urgent", "emergent")
        assert isinstance(data["symptoms"], list)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
