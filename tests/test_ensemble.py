"""
Clinical Risk Ensemble Engine
Clinical scenario tests for the ensemble aggregator
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import json

import pytest
from pydantic import ValidationError

from risk_ensemble.core.ensemble import (
    ALLERGY_MODEL, HEURISTIC_MODEL, INTERACTION_MODEL, LAB_MODEL, NEURAL_MODEL, NLP_MODEL,
    RiskEnsemble, compute_ensemble_risk
)
from risk_ensemble.core.models import FlagCategory, PatientSnapshot, RiskLevel
from risk_ensemble.ml.risk_model import NeuralRiskModel


def _sub_model(result, name):
    return next(m for m in result.sub_models if m.name == name)


def _patient(age=30, **overrides):
    data = {"demographics": {"age": age}}
    data.update(overrides)
    return PatientSnapshot.model_validate(data)


class BrokenAnalyzer:
    def analyze(self, text):
        raise RuntimeError("analyzer offline")


class TestClinicalScenarios:
    """End-to-end patient scenarios"""

    @pytest.fixture
    def ensemble(self):
        return RiskEnsemble()

    @pytest.mark.asyncio
    async def test_healthy_young_adult_is_low(self, ensemble):
        result = await ensemble.compute(_patient())

        assert result.risk_level == RiskLevel.LOW
        assert result.overall_score < 50
        assert result.flags == []
        assert result.ensemble_confidence == 80

    @pytest.mark.asyncio
    async def test_complex_elderly_patient_is_high(self, ensemble):
        snapshot = PatientSnapshot.model_validate({
            "demographics": {"age": 78, "blood_pressure": {"systolic": 185, "diastolic": 100}},
            "medical_history": {
                "conditions": ["atrial fibrillation", "hypertension", "type 2 diabetes",
                               "chronic kidney disease", "osteoarthritis"],
            },
            "current_medications": ["warfarin", "ibuprofen", "aspirin", "simvastatin",
                                    "clarithromycin", "metoprolol"],
        })
        result = await ensemble.compute(snapshot)

        assert result.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)
        assert _sub_model(result, HEURISTIC_MODEL).score == 60
        assert result.critical_flags
        assert any(f.category == FlagCategory.INTERACTION for f in result.flags)
        assert result.predicted_interactions

    @pytest.mark.asyncio
    async def test_age_increases_risk(self, ensemble):
        young = await ensemble.compute(_patient(age=30))
        old = await ensemble.compute(_patient(age=75))
        assert old.overall_score > young.overall_score

    @pytest.mark.asyncio
    async def test_interval_brackets_score(self, ensemble):
        result = await ensemble.compute(_patient(
            age=70,
            labs={"creatinine": 1.7},
            lifestyle={"chief_complaint": "mild cough for 3 days"},
        ))
        ci = result.confidence_interval
        assert 0 <= ci.low <= result.overall_score <= ci.high <= 100
        assert all(0 <= m.score <= 100 for m in result.sub_models)
        assert all(0 <= m.weight <= 1 for m in result.sub_models)
        assert 0 <= result.ensemble_confidence <= 100

    @pytest.mark.asyncio
    async def test_repeated_assessment_is_identical(self, ensemble):
        snapshot = _patient(age=66, current_medications=["warfarin", "aspirin"],
                            lifestyle={"chief_complaint": "dizziness since yesterday"})
        first = (await ensemble.compute(snapshot)).to_dict()
        second = (await ensemble.compute(snapshot)).to_dict()
        first.pop("timestamp")
        second.pop("timestamp")
        assert first == second


class TestFlagsAndOverrides:
    """Test critical flag escalation and per-source flags"""

    @pytest.fixture
    def ensemble(self):
        return RiskEnsemble()

    @pytest.mark.asyncio
    async def test_critical_inr_lifts_to_high(self, ensemble):
        result = await ensemble.compute(_patient(labs={"inr": 4.8}))

        assert result.overall_score < 30
        assert result.risk_level == RiskLevel.HIGH
        assert any(f.category == FlagCategory.COAGULATION and f.is_critical for f in result.flags)

    @pytest.mark.asyncio
    async def test_red_flag_complaint(self, ensemble):
        result = await ensemble.compute(_patient(
            lifestyle={"chief_complaint": "chest pain and shortness of breath"}
        ))
        nlp = _sub_model(result, NLP_MODEL)

        assert nlp.available
        assert nlp.score == 100
        assert result.risk_level == RiskLevel.HIGH
        assert any(f.category == FlagCategory.RED_FLAG for f in result.flags)
        assert result.complaint_analysis is not None
        assert any("Acute Coronary" in d["condition"] for d in result.differentials)

    @pytest.mark.asyncio
    async def test_allergy_alert_scored(self, ensemble):
        result = await ensemble.compute(_patient(
            medical_history={"allergies": ["penicillin"]},
            current_medications=["amoxicillin"],
        ))
        allergy = _sub_model(result, ALLERGY_MODEL)

        assert allergy.available
        assert allergy.score == 40
        assert len(result.allergy_alerts) == 1
        assert result.risk_level == RiskLevel.HIGH

    @pytest.mark.asyncio
    async def test_flag_order_follows_sources(self, ensemble):
        result = await ensemble.compute(_patient(
            age=82,
            labs={"inr": 3.8},
            medical_history={"allergies": ["penicillin"]},
            current_medications=["amoxicillin"],
        ))
        sources = [f.source for f in result.flags]
        assert sources.index(HEURISTIC_MODEL) < sources.index(LAB_MODEL) < sources.index(ALLERGY_MODEL)


class TestAvailabilityAndFailures:
    """Test which contributors are averaged and how failures are contained"""

    @pytest.mark.asyncio
    async def test_untrained_models_use_fallback_weights(self):
        result = await RiskEnsemble().compute(_patient(current_medications=["warfarin", "aspirin"]))
        neural = _sub_model(result, NEURAL_MODEL)
        interactions = _sub_model(result, INTERACTION_MODEL)

        assert not neural.available
        assert neural.weight == pytest.approx(0.15)
        assert neural.details == "Using rule-based fallback"
        assert not interactions.available
        assert interactions.weight == pytest.approx(0.15)
        assert _sub_model(result, HEURISTIC_MODEL).available

    @pytest.mark.asyncio
    async def test_single_medication(self):
        result = await RiskEnsemble().compute(_patient(current_medications=["metformin"]))
        interactions = _sub_model(result, INTERACTION_MODEL)
        assert interactions.weight == pytest.approx(0.05)
        assert result.predicted_interactions == []

    @pytest.mark.asyncio
    async def test_nan_lab_excludes_only_labs(self):
        result = await RiskEnsemble().compute(_patient(labs={"inr": float("nan"), "creatinine": 2.5}))
        labs = _sub_model(result, LAB_MODEL)

        assert not labs.available
        assert labs.weight == 0
        assert labs.details.startswith("Failed:")
        assert _sub_model(result, HEURISTIC_MODEL).available
        assert result.risk_level == RiskLevel.LOW

    @pytest.mark.asyncio
    async def test_unreadable_lab_excludes_only_labs(self):
        result = await compute_ensemble_risk({"labs": {"inr": "elevated"}})
        labs = _sub_model(result, LAB_MODEL)

        assert not labs.available
        assert labs.weight == 0
        assert labs.details.startswith("Failed:")
        assert "inr" in labs.details
        assert _sub_model(result, HEURISTIC_MODEL).available
        assert result.risk_level == RiskLevel.LOW

    @pytest.mark.asyncio
    async def test_failing_analyzer_is_contained(self):
        ensemble = RiskEnsemble(analyzer=BrokenAnalyzer())
        result = await ensemble.compute(_patient(lifestyle={"chief_complaint": "chest pain"}))
        nlp = _sub_model(result, NLP_MODEL)

        assert not nlp.available
        assert nlp.weight == 0
        assert "analyzer offline" in nlp.details
        assert result.complaint_analysis is None
        assert result.differentials == []

    @pytest.mark.asyncio
    async def test_trained_neural_model_is_averaged(self):
        risk_model = NeuralRiskModel(epochs=2, adaptive_url="")
        await risk_model.train()
        result = await RiskEnsemble(risk_model=risk_model).compute(_patient())
        neural = _sub_model(result, NEURAL_MODEL)

        assert neural.available
        assert neural.weight == pytest.approx(0.30)


class TestInputHandling:
    """Test snapshot coercion and output serialization"""

    @pytest.mark.asyncio
    async def test_plain_dict_input(self):
        result = await compute_ensemble_risk({
            "demographics": {"age": 45, "gender": "female"},
            "current_medications": [{"drug_name": "Coumadin"}, {"generic_name": "ibuprofen"}],
        })
        assert len(result.sub_models) == 6
        assert result.predicted_interactions

    @pytest.mark.asyncio
    async def test_null_demographics_use_defaults(self):
        result = await compute_ensemble_risk({"demographics": {"age": None, "bmi": None}})
        assert result.risk_level == RiskLevel.LOW

    @pytest.mark.asyncio
    async def test_invalid_snapshot_rejected(self):
        with pytest.raises(ValidationError):
            await compute_ensemble_risk({"demographics": {"age": -5}})

    @pytest.mark.asyncio
    async def test_result_is_json_serializable(self):
        result = await compute_ensemble_risk(_patient(
            age=70,
            current_medications=["warfarin", "ibuprofen"],
            medical_history={"allergies": ["sulfa"]},
            lifestyle={"chief_complaint": "severe headache since this morning"},
        ))
        data = json.loads(json.dumps(result.to_dict()))
        assert data["risk_level"] in ("LOW", "MEDIUM", "HIGH", "CRITICAL")
        assert set(data["confidence_interval"]) == {"low", "high"}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
