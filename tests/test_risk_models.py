"""
Clinical Risk Ensemble Engine
Tests for the heuristic, laboratory and neural risk scorers
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx
import numpy as np
import pytest

from config import settings
from risk_ensemble.core.exceptions import InputMalformed
from risk_ensemble.core.heuristic import HeuristicRiskModel, LabPanelScorer
from risk_ensemble.core.models import (
    FlagCategory, FlagSeverity, Labs, PatientSnapshot, RiskLevel, classify_risk
)
from risk_ensemble.ml.risk_model import (
    FEATURE_COLUMNS, NeuralRiskModel, dataset_arrays, extract_features,
    feature_importance, fetch_adaptive_training_data, load_training_dataset,
    training_summary
)


def _snapshot(**overrides):
    data = {"demographics": {"age": 30}}
    data.update(overrides)
    return PatientSnapshot.model_validate(data)


class TestRiskClassification:
    """Test score to level mapping"""

    @pytest.mark.parametrize("score,level", [
        (0, RiskLevel.LOW),
        (29, RiskLevel.LOW),
        (30, RiskLevel.MEDIUM),
        (60, RiskLevel.HIGH),
        (79, RiskLevel.HIGH),
        (80, RiskLevel.CRITICAL),
        (100, RiskLevel.CRITICAL),
    ])
    def test_thresholds(self, score, level):
        assert classify_risk(score) == level


class TestHeuristicRules:
    """Test the deterministic clinical heuristic"""

    @pytest.fixture
    def heuristic(self):
        return HeuristicRiskModel()

    def test_healthy_young_adult(self, heuristic):
        result = heuristic.score(_snapshot())
        assert result.score == 0
        assert result.flags == []

    def test_elderly_polypharmacy(self, heuristic):
        meds = ["warfarin", "aspirin", "metformin", "lisinopril", "atorvastatin",
                "omeprazole", "furosemide", "digoxin", "amlodipine", "sertraline"]
        result = heuristic.score(_snapshot(demographics={"age": 82}, current_medications=meds))
        assert result.score == 50
        categories = {(f.category, f.severity) for f in result.flags}
        assert (FlagCategory.AGE, FlagSeverity.WARNING) in categories
        assert (FlagCategory.POLYPHARMACY, FlagSeverity.CRITICAL) in categories

    def test_duplicate_medications_counted_once(self, heuristic):
        result = heuristic.score(_snapshot(current_medications=["aspirin", "Aspirin", "metformin"]))
        assert result.score == 0

    def test_hypertensive_crisis(self, heuristic):
        result = heuristic.score(_snapshot(
            demographics={"age": 30, "blood_pressure": {"systolic": 185, "diastolic": 100}}
        ))
        assert result.score == 15
        assert result.flags[0].category == FlagCategory.VITALS
        assert result.flags[0].is_critical

    def test_score_is_capped(self, heuristic):
        snapshot = PatientSnapshot.model_validate({
            "demographics": {"age": 85, "bmi": 45, "blood_pressure": {"systolic": 190, "diastolic": 125}},
            "medical_history": {
                "conditions": ["a", "b", "c", "d", "e", "f"],
                "allergies": ["penicillin", "sulfa", "latex"],
            },
            "current_medications": [f"drug{i}" for i in range(12)],
            "lifestyle": {"smoking_status": "Current", "alcohol_use": "heavy", "exercise_level": "sedentary"},
        })
        assert heuristic.score(snapshot).score == 100


class TestLabPanel:
    """Test laboratory threshold scoring"""

    @pytest.fixture
    def scorer(self):
        return LabPanelScorer()

    def test_no_labs(self, scorer):
        assert scorer.score(None) is None
        assert scorer.score(Labs()) is None

    def test_supratherapeutic_inr_is_critical(self, scorer):
        result = scorer.score(Labs(inr=4.8))
        assert result.score == 12
        assert result.flags[0].category == FlagCategory.COAGULATION
        assert result.flags[0].is_critical

    def test_elevated_inr_is_warning(self, scorer):
        result = scorer.score(Labs(inr=3.8))
        assert result.flags[0].severity == FlagSeverity.WARNING

    def test_renal_impairment(self, scorer):
        result = scorer.score(Labs(creatinine=2.5, gfr=25))
        assert result.score == 30
        assert all(f.category == FlagCategory.RENAL and f.is_critical for f in result.flags)

    def test_hepatic_uses_peak_enzyme(self, scorer):
        assert scorer.score(Labs(ast=40, alt=150)).score == 15
        assert scorer.score(Labs(ast=70)).score == 5

    def test_normal_panel(self, scorer):
        result = scorer.score(Labs(creatinine=0.9, gfr=95, hba1c=5.6, inr=1.0))
        assert result.score == 0
        assert result.flags == []

    def test_nan_lab_is_malformed(self, scorer):
        with pytest.raises(InputMalformed) as exc_info:
            scorer.score(Labs(inr=float("nan")))
        assert exc_info.value.field_name == "labs.inr"
        assert exc_info.value.code == "INPUT_MALFORMED"

    def test_numeric_strings_accepted(self, scorer):
        result = scorer.score(Labs.model_validate({"inr": " 4.8 "}))
        assert result.score == 12

    @pytest.mark.parametrize("value", ["elevated", [1.2], True])
    def test_unreadable_lab_is_malformed(self, scorer, value):
        labs = Labs.model_validate({"creatinine": value})
        with pytest.raises(InputMalformed) as exc_info:
            scorer.score(labs)
        assert exc_info.value.field_name == "labs.creatinine"


class TestRiskFeatures:
    """Test feature extraction and the untrained fallback"""

    def test_features_normalized(self):
        features = extract_features(_snapshot())
        assert features.shape == (len(FEATURE_COLUMNS),)
        assert np.all(features >= 0) and np.all(features <= 1)

    def test_exercise_is_inverted(self):
        active = extract_features(_snapshot(lifestyle={"exercise_level": "active"}))
        sedentary = extract_features(_snapshot(lifestyle={"exercise_level": "sedentary"}))
        assert active[-1] == pytest.approx(0.1)
        assert sedentary[-1] == pytest.approx(0.8)

    def test_out_of_range_values_clipped(self):
        features = extract_features(_snapshot(demographics={"age": 140, "bmi": 80}))
        assert features[0] == 1.0
        assert features[1] == 1.0

    def test_fallback_prediction(self):
        model = NeuralRiskModel()
        prediction = model.predict(_snapshot())
        assert prediction.source == "rules"
        assert prediction.confidence == 75.0
        assert prediction.risk_level == RiskLevel.LOW
        assert 0 <= prediction.risk_score <= 100

    def test_fallback_age_and_medication_bonuses(self):
        model = NeuralRiskModel()
        young = model.predict(_snapshot())
        elderly = model.predict(_snapshot(
            demographics={"age": 80},
            current_medications=[f"drug{i}" for i in range(10)],
        ))
        assert elderly.risk_score >= young.risk_score + 50
        assert elderly.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)

    def test_feature_importance_keys(self):
        importance = feature_importance(extract_features(_snapshot()))
        assert set(importance) == {
            "age", "bmi", "blood_pressure", "heart_rate", "conditions",
            "allergies", "medications", "smoking", "alcohol", "exercise",
        }
        assert all(isinstance(v, int) for v in importance.values())

    def test_feature_importance_all_zero(self):
        importance = feature_importance(np.zeros(len(FEATURE_COLUMNS)))
        assert set(importance.values()) == {0}


class TestTrainingDataset:
    """Test the bundled clinical dataset"""

    def test_dataset_loads(self):
        df = load_training_dataset()
        assert len(df) == 145
        assert set(FEATURE_COLUMNS) <= set(df.columns)

    def test_summary(self):
        summary = training_summary()
        assert summary["total_samples"] == 145
        assert summary["by_category"] == {"LOW": 35, "MEDIUM": 40, "HIGH": 35, "CRITICAL": 35}
        assert 0 <= summary["risk_score_min"] < summary["risk_score_max"] <= 100

    def test_exercise_column_inverted(self):
        raw, targets = dataset_arrays(load_training_dataset())
        assert raw[0, FEATURE_COLUMNS.index("exercise_score")] == 10
        assert targets[0] == 5

    def test_missing_columns_rejected(self, tmp_path):
        path = tmp_path / "broken.csv"
        path.write_text("age,bmi,risk_score\n40,25,10\n")
        with pytest.raises(ValueError):
            load_training_dataset(path)


VALID_ROW = [60, 28, 140, 90, 80, 3, 1, 5, 0, 20, 60]


def _transport(handler):
    return httpx.MockTransport(handler)


class TestAdaptiveDataset:
    """Test the supplementary dataset fetch"""

    @pytest.fixture(autouse=True)
    def enable_adaptive(self, monkeypatch):
        monkeypatch.setattr(settings, "ENABLE_ADAPTIVE_DATASET", True)

    @pytest.mark.asyncio
    async def test_valid_payload_sanitized(self):
        def handler(request):
            return httpx.Response(200, json={
                "success": True,
                "data": {
                    "inputs": [VALID_ROW, VALID_ROW[:5], ["x"] * 11, VALID_ROW],
                    "outputs": [[45], [50], [50], [150]],
                },
            })

        inputs, outputs = await fetch_adaptive_training_data(
            url="http://backend.test/ml/training-data", transport=_transport(handler)
        )
        assert inputs == [[float(v) for v in VALID_ROW]] * 2
        assert outputs == [45.0, 100.0]

    @pytest.mark.asyncio
    async def test_server_error_yields_nothing(self):
        def handler(request):
            return httpx.Response(500, json={"error": "boom"})

        assert await fetch_adaptive_training_data(
            url="http://backend.test/ml", transport=_transport(handler)
        ) == ([], [])

    @pytest.mark.asyncio
    async def test_invalid_json_yields_nothing(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>not json</html>")

        assert await fetch_adaptive_training_data(
            url="http://backend.test/ml", transport=_transport(handler)
        ) == ([], [])

    @pytest.mark.asyncio
    async def test_unsuccessful_payload_yields_nothing(self):
        def handler(request):
            return httpx.Response(200, json={"success": False, "data": {"inputs": [VALID_ROW], "outputs": [[40]]}})

        assert await fetch_adaptive_training_data(
            url="http://backend.test/ml", transport=_transport(handler)
        ) == ([], [])

    @pytest.mark.asyncio
    async def test_timeout_yields_nothing(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        assert await fetch_adaptive_training_data(
            url="http://backend.test/ml", transport=_transport(handler)
        ) == ([], [])

    @pytest.mark.asyncio
    async def test_empty_url_skips_fetch(self):
        def handler(request):
            raise AssertionError("no request expected")

        assert await fetch_adaptive_training_data(url="", transport=_transport(handler)) == ([], [])

    @pytest.mark.asyncio
    async def test_disabled_flag_skips_fetch(self, monkeypatch):
        monkeypatch.setattr(settings, "ENABLE_ADAPTIVE_DATASET", False)

        def handler(request):
            raise AssertionError("no request expected")

        assert await fetch_adaptive_training_data(
            url="http://backend.test/ml", transport=_transport(handler)
        ) == ([], [])


class TestNeuralTraining:
    """Train the regressor with scikit-learn for a few epochs"""

    @pytest.mark.asyncio
    async def test_offline_training(self):
        model = NeuralRiskModel(epochs=3, adaptive_url="")
        history = await model.train()

        assert model.is_trained()
        assert len(history) == 3
        assert model.adaptive_samples == 0

        prediction = model.predict(_snapshot())
        assert prediction.source == "model"
        assert 0 <= prediction.risk_score <= 100
        assert 75 <= prediction.confidence <= 98

    @pytest.mark.asyncio
    async def test_training_merges_adaptive_rows(self, monkeypatch):
        monkeypatch.setattr(settings, "ENABLE_ADAPTIVE_DATASET", True)

        def handler(request):
            return httpx.Response(200, json={
                "success": True,
                "data": {"inputs": [VALID_ROW, VALID_ROW], "outputs": [[55], [58]]},
            })

        model = NeuralRiskModel(
            epochs=2, adaptive_url="http://backend.test/ml", transport=_transport(handler)
        )
        await model.train()
        assert model.is_trained()
        assert model.adaptive_samples == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
