"""
Clinical Risk Ensemble Engine
Tests for allergy cross-reactivity checking
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from risk_ensemble.core.models import AlertType
from risk_ensemble.allergy.cross_reactivity import (
    AllergyChecker, CROSS_REACTIVITY_GROUPS, check_allergies, cross_reactivity_groups,
    fuzzy_match, is_drug_safe_for_patient
)


class TestFuzzyMatch:
    """Test normalized containment matching"""

    def test_containment_either_direction(self):
        assert fuzzy_match("aspirin", "Aspirin 81mg")
        assert fuzzy_match("Aspirin-81", "aspirin")

    def test_empty_never_matches(self):
        assert not fuzzy_match("", "aspirin")
        assert not fuzzy_match("penicillin", "  ")


class TestCrossReactivity:
    """Test group and excipient alerts"""

    @pytest.fixture
    def checker(self):
        return AllergyChecker()

    def test_penicillin_cephalexin(self, checker):
        result = checker.check(["penicillin"], ["cephalexin"])
        assert not result.safe
        assert len(result.alerts) == 1
        alert = result.alerts[0]
        assert alert.alert_type == AlertType.CROSS_REACTIVE
        assert alert.severity == "high"
        assert alert.cross_reactivity_rate == "1-10%"

    def test_penicillin_amoxicillin_same_class(self, checker):
        result = checker.check(["penicillin"], ["amoxicillin"])
        types = [a.alert_type for a in result.alerts]
        assert types == [AlertType.CLASS_BASED]
        assert result.alerts[0].severity == "high"

    def test_direct_match_not_reported_as_class(self, checker):
        result = checker.check(["aspirin"], ["Aspirin 81mg"])
        assert [a.alert_type for a in result.alerts] == [AlertType.DIRECT]
        assert result.alerts[0].cross_reactivity_rate == "100%"

    def test_ace_inhibitor_to_arb(self, checker):
        result = checker.check(["lisinopril"], ["losartan"])
        assert len(result.alerts) == 1
        assert result.alerts[0].alert_type == AlertType.CROSS_REACTIVE
        assert result.alerts[0].cross_reactivity_rate == "~10% (ARBs)"

    def test_sulfa_to_furosemide_is_low(self, checker):
        result = checker.check(["sulfa"], ["furosemide"])
        assert len(result.alerts) == 1
        assert result.alerts[0].severity == "low"

    def test_egg_propofol_excipient(self, checker):
        result = checker.check(["egg"], ["propofol"])
        assert len(result.alerts) == 1
        assert result.alerts[0].alert_type == AlertType.EXCIPIENT
        assert result.alerts[0].severity == "moderate"

    def test_unrelated_drug_is_safe(self, checker):
        result = checker.is_drug_safe_for_patient("metformin", ["penicillin"])
        assert result.safe
        assert result.alerts == []

    def test_duplicate_allergens_do_not_duplicate_alerts(self, checker):
        result = checker.check(["penicillin", "Penicillin ", "PENICILLIN"], ["cephalexin"])
        assert len(result.alerts) == 1

    def test_overlapping_groups_deduplicated(self, checker):
        """Bactrim is a primary allergen of two sulfonamide groups"""
        result = checker.check(["sulfa"], ["bactrim"])
        keys = [a.key for a in result.alerts]
        assert len(keys) == len(set(keys))

    def test_empty_inputs_are_safe(self, checker):
        assert checker.check([], ["cephalexin"]).safe
        assert checker.check(["penicillin"], []).safe
        assert checker.check(["", "  "], ["cephalexin"]).safe

    def test_dict_allergies(self, checker):
        result = checker.check([{"allergen": "Penicillin", "reaction": "rash"}], ["cefazolin"])
        assert not result.safe
        assert result.checked_allergens == ["Penicillin"]

    def test_idempotent(self, checker):
        first = checker.check(["penicillin", "ibuprofen"], ["cephalexin", "naproxen"]).to_dict()
        second = checker.check(["penicillin", "ibuprofen"], ["cephalexin", "naproxen"]).to_dict()
        assert first == second


class TestGroupLookup:
    """Test group listing by allergen"""

    def test_sulfa_groups(self):
        groups = cross_reactivity_groups("sulfa")
        assert len(groups) == 2
        assert {g.severity for g in groups} == {"moderate", "low"}

    def test_unknown_allergen(self):
        assert cross_reactivity_groups("kiwi") == []

    def test_groups_well_formed(self):
        for group in CROSS_REACTIVITY_GROUPS:
            assert group.primary_allergens
            assert group.severity in ("high", "moderate", "low")
            assert group.to_dict()["group_name"] == group.group_name

    def test_module_level_helpers(self):
        assert not check_allergies(["penicillin"], ["ceftriaxone"]).safe
        assert is_drug_safe_for_patient("acetaminophen", ["penicillin"]).safe


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
