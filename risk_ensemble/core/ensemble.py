"""
Clinical Risk Ensemble Engine - Ensemble Aggregator

Combines independently produced clinical signals into one risk assessment:
  1. Neural risk regressor         (demographics, vitals, lifestyle)
  2. Drug interaction classifier   (pairwise pharmacology)
  3. Chief complaint analyzer      (acuity, red flags, differentials)
  4. Clinical heuristic rules      (age, polypharmacy, vitals, history)
  5. Laboratory thresholds         (renal, hepatic, HbA1c, INR)
  6. Allergy cross-reactivity      (allergies x current medications)

Only available contributors are averaged; weights are re-normalized over
that subset. Any critical flag lifts the result to at least HIGH. A
contributor that fails is reported unavailable and the rest still answer.
"""
import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Union, Callable, Awaitable

from config import settings
from risk_ensemble.core.heuristic import HeuristicRiskModel, LabPanelScorer
from risk_ensemble.core.models import (
    AllergyAlert, AlertType, ClinicalFlag, ComplaintAnalysis, ConfidenceInterval,
    EnsembleRiskResult, FlagCategory, FlagSeverity, InteractionPrediction,
    InteractionSeverity, PatientSnapshot, RiskLevel, SubModelScore, classify_risk
)
from risk_ensemble.allergy.cross_reactivity import AllergyChecker
from risk_ensemble.ml.interaction_classifier import DrugInteractionClassifier
from risk_ensemble.ml.risk_model import NeuralRiskModel
from risk_ensemble.nlp.complaint_analyzer import ComplaintAnalyzer

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

NEURAL_MODEL = "Neural Network Risk Predictor"
INTERACTION_MODEL = "Drug Interaction Predictor"
NLP_MODEL = "NLP Chief Complaint Analyzer"
HEURISTIC_MODEL = "Clinical Heuristic Rules"
LAB_MODEL = "Laboratory Thresholds"
ALLERGY_MODEL = "Allergy Cross-Reactivity"

ALLERGY_SEVERITY_POINTS = {"high": 40, "moderate": 20, "low": 5}
ALLERGY_CONFIDENCE = 85.0
INTERACTION_CONFIDENCE = {"trained": 80.0, "fallback": 60.0}

_CROSS_REACTIVE_FLAG = {
    "high": FlagSeverity.CRITICAL,
    "moderate": FlagSeverity.WARNING,
    "low": FlagSeverity.INFO,
}


@dataclass
class Contribution:
    """One contributor's output before aggregation"""
    sub_model: SubModelScore
    flags: List[ClinicalFlag] = field(default_factory=list)
    interactions: List[InteractionPrediction] = field(default_factory=list)
    analysis: Optional[ComplaintAnalysis] = None
    allergy_alerts: List[AllergyAlert] = field(default_factory=list)


def _weights() -> Dict[str, float]:
    return settings.SUB_MODEL_WEIGHTS


class RiskEnsemble:
    """
    Caller-owned ensemble over a set of sub-models.

    Trainable models are passed in so their lifecycle stays with the caller;
    untrained models contribute through their fallbacks.
    """

    def __init__(
        self,
        risk_model: Optional[NeuralRiskModel] = None,
        interaction_classifier: Optional[DrugInteractionClassifier] = None,
        analyzer: Optional[ComplaintAnalyzer] = None,
        allergy_checker: Optional[AllergyChecker] = None,
        heuristic: Optional[HeuristicRiskModel] = None,
        lab_scorer: Optional[LabPanelScorer] = None
    ):
        self.risk_model = risk_model or NeuralRiskModel()
        self.interaction_classifier = interaction_classifier or DrugInteractionClassifier()
        self.analyzer = analyzer or ComplaintAnalyzer()
        self.allergy_checker = allergy_checker or AllergyChecker()
        self.heuristic = heuristic or HeuristicRiskModel()
        self.lab_scorer = lab_scorer or LabPanelScorer()

    # ==================== Contributors ====================

    async def _run_heuristic(self, snapshot: PatientSnapshot) -> Contribution:
        result = self.heuristic.score(snapshot)
        return Contribution(
            sub_model=SubModelScore(
                name=HEURISTIC_MODEL,
                score=result.score,
                weight=_weights()["heuristic"],
                confidence=result.confidence,
                available=True,
                details=result.details,
            ),
            flags=result.flags,
        )

    async def _run_labs(self, snapshot: PatientSnapshot) -> Contribution:
        result = self.lab_scorer.score(snapshot.labs)
        if result is None:
            return Contribution(sub_model=SubModelScore(
                name=LAB_MODEL, score=0.0, weight=_weights()["labs"],
                confidence=0.0, available=False, details="No labs supplied",
            ))
        return Contribution(
            sub_model=SubModelScore(
                name=LAB_MODEL,
                score=result.score,
                weight=_weights()["labs"],
                confidence=result.confidence,
                available=True,
                details=result.details,
            ),
            flags=result.flags,
        )

    async def _run_neural(self, snapshot: PatientSnapshot) -> Contribution:
        prediction = self.risk_model.predict(snapshot)
        trained = prediction.source == "model"
        return Contribution(sub_model=SubModelScore(
            name=NEURAL_MODEL,
            score=float(prediction.risk_score),
            weight=_weights()["neural_trained" if trained else "neural_fallback"],
            confidence=prediction.confidence,
            available=trained,
            details="Neural network trained on clinical samples" if trained else "Using rule-based fallback",
        ))

    async def _run_interactions(self, snapshot: PatientSnapshot) -> Contribution:
        drugs = snapshot.medication_names()
        trained = self.interaction_classifier.is_trained()

        if len(drugs) < 2:
            return Contribution(sub_model=SubModelScore(
                name=INTERACTION_MODEL,
                score=0.0,
                weight=_weights()["interaction_single_drug"],
                confidence=INTERACTION_CONFIDENCE["fallback"],
                available=False,
                details=f"0 interactions found among {len(drugs)} medications",
            ))

        predictions = self.interaction_classifier.predict_multiple(drugs)
        points = settings.INTERACTION_SCORE_POINTS
        score = min(100, sum(points[p.severity.value] for p in predictions))

        flags = []
        for p in predictions:
            if p.severity == InteractionSeverity.MAJOR:
                flags.append(ClinicalFlag(
                    category=FlagCategory.INTERACTION,
                    severity=FlagSeverity.CRITICAL,
                    message=f"Major predicted interaction: {p.drug_a} + {p.drug_b} ({p.confidence:g}% confidence)",
                    source=INTERACTION_MODEL,
                ))
            elif p.severity == InteractionSeverity.MODERATE:
                flags.append(ClinicalFlag(
                    category=FlagCategory.INTERACTION,
                    severity=FlagSeverity.WARNING,
                    message=f"Moderate predicted interaction: {p.drug_a} + {p.drug_b}",
                    source=INTERACTION_MODEL,
                ))

        return Contribution(
            sub_model=SubModelScore(
                name=INTERACTION_MODEL,
                score=float(score),
                weight=_weights()["interaction_trained" if trained else "interaction_fallback"],
                confidence=INTERACTION_CONFIDENCE["trained" if trained else "fallback"],
                available=trained,
                details=f"{len(predictions)} interactions found among {len(drugs)} medications",
            ),
            flags=flags,
            interactions=predictions,
        )

    async def _run_nlp(self, snapshot: PatientSnapshot) -> Contribution:
        complaint = snapshot.lifestyle.chief_complaint
        if not complaint or not complaint.strip():
            return Contribution(sub_model=SubModelScore(
                name=NLP_MODEL, score=0.0, weight=_weights()["nlp_absent"],
                confidence=0.0, available=False, details="No chief complaint provided",
            ))

        analysis = self.analyzer.analyze(complaint)
        score = settings.ACUITY_SCORES.get(analysis.acuity.value, 20)
        score += min(settings.RED_FLAG_POINTS_CAP, settings.RED_FLAG_POINTS * len(analysis.red_flags))

        flags = [
            ClinicalFlag(
                category=FlagCategory.RED_FLAG,
                severity=FlagSeverity.CRITICAL,
                message=f"Red-flag symptom detected: {term}",
                source=NLP_MODEL,
            )
            for term in analysis.red_flags
        ]
        if analysis.acuity.value == "emergent":
            flags.append(ClinicalFlag(FlagCategory.ACUITY, FlagSeverity.CRITICAL,
                                      "NLP analysis indicates emergent acuity", NLP_MODEL))
        elif analysis.acuity.value == "urgent":
            flags.append(ClinicalFlag(FlagCategory.ACUITY, FlagSeverity.WARNING,
                                      "NLP analysis indicates urgent acuity", NLP_MODEL))

        return Contribution(
            sub_model=SubModelScore(
                name=NLP_MODEL,
                score=float(min(100, score)),
                weight=_weights()["nlp"],
                confidence=analysis.confidence,
                available=True,
                details=f"Acuity: {analysis.acuity.value}, "
                        f"{len(analysis.positive_symptoms)} symptoms identified",
            ),
            flags=flags,
            analysis=analysis,
        )

    @staticmethod
    def _allergy_flag(alert: AllergyAlert) -> ClinicalFlag:
        if alert.alert_type in (AlertType.DIRECT, AlertType.CLASS_BASED):
            severity = FlagSeverity.CRITICAL
        elif alert.alert_type == AlertType.CROSS_REACTIVE:
            severity = _CROSS_REACTIVE_FLAG.get(alert.severity, FlagSeverity.WARNING)
        else:
            severity = FlagSeverity.WARNING
        return ClinicalFlag(
            category=FlagCategory.ALLERGY,
            severity=severity,
            message=alert.message,
            source=ALLERGY_MODEL,
        )

    async def _run_allergy(self, snapshot: PatientSnapshot) -> Contribution:
        allergens = snapshot.allergen_names()
        drugs = snapshot.medication_names()
        if not allergens or not drugs:
            return Contribution(sub_model=SubModelScore(
                name=ALLERGY_MODEL, score=0.0, weight=_weights()["allergy"],
                confidence=0.0, available=False, details="No allergies or medications to cross-check",
            ))

        result = self.allergy_checker.check(allergens, drugs)
        score = min(100, sum(ALLERGY_SEVERITY_POINTS.get(a.severity, 20) for a in result.alerts))
        return Contribution(
            sub_model=SubModelScore(
                name=ALLERGY_MODEL,
                score=float(score),
                weight=_weights()["allergy"],
                confidence=ALLERGY_CONFIDENCE,
                available=True,
                details=f"{len(result.alerts)} allergy alerts across {len(drugs)} medications",
            ),
            flags=[self._allergy_flag(a) for a in result.alerts],
            allergy_alerts=result.alerts,
        )

    async def _guarded(
        self,
        name: str,
        runner: Callable[[PatientSnapshot], Awaitable[Contribution]],
        snapshot: PatientSnapshot
    ) -> Contribution:
        try:
            return await runner(snapshot)
        except Exception as e:
            logger.warning(f"{name} failed, excluding it from the ensemble: {e}")
            return Contribution(sub_model=SubModelScore(
                name=name, score=0.0, weight=0.0, confidence=0.0,
                available=False, details=f"Failed: {e}",
            ))

    # ==================== Aggregation ====================

    @staticmethod
    def _combine(sub_models: List[SubModelScore]) -> Dict[str, float]:
        active = [m for m in sub_models if m.available and m.weight > 0]
        total_weight = sum(m.weight for m in active)
        if not active or total_weight <= 0:
            return {"score": 0.0, "confidence": 0.0, "margin": 50.0}

        score = sum(m.score * m.weight for m in active) / total_weight
        confidence = sum(m.confidence * m.weight for m in active) / total_weight
        variance = sum(m.weight * (m.score - score) ** 2 for m in active) / total_weight

        margin = (
            (100 - confidence) * settings.CONFIDENCE_MARGIN_FACTOR / math.sqrt(len(active))
            + settings.DISAGREEMENT_FACTOR * math.sqrt(variance)
        )
        return {"score": score, "confidence": confidence, "margin": margin}

    @staticmethod
    def _risk_level(score: float, flags: List[ClinicalFlag]) -> RiskLevel:
        level = classify_risk(score)
        if any(f.is_critical for f in flags) and level in (RiskLevel.LOW, RiskLevel.MEDIUM):
            return RiskLevel.HIGH
        return level

    async def compute(self, snapshot: Union[PatientSnapshot, Dict[str, Any]]) -> EnsembleRiskResult:
        """Run every contributor on one patient snapshot and combine them"""
        if not isinstance(snapshot, PatientSnapshot):
            snapshot = PatientSnapshot.model_validate(snapshot)

        neural, interactions, nlp, heuristic, labs, allergy = await asyncio.gather(
            self._guarded(NEURAL_MODEL, self._run_neural, snapshot),
            self._guarded(INTERACTION_MODEL, self._run_interactions, snapshot),
            self._guarded(NLP_MODEL, self._run_nlp, snapshot),
            self._guarded(HEURISTIC_MODEL, self._run_heuristic, snapshot),
            self._guarded(LAB_MODEL, self._run_labs, snapshot),
            self._guarded(ALLERGY_MODEL, self._run_allergy, snapshot),
        )
        contributions = [neural, interactions, nlp, heuristic, labs, allergy]
        sub_models = [c.sub_model for c in contributions]

        flags: List[ClinicalFlag] = []
        for contribution in (heuristic, labs, interactions, nlp, allergy, neural):
            flags.extend(contribution.flags)

        combined = self._combine(sub_models)
        overall = int(round(min(100.0, max(0.0, combined["score"]))))
        margin = combined["margin"]
        interval = ConfidenceInterval(
            low=max(0, int(math.floor(overall - margin))),
            high=min(100, int(math.ceil(overall + margin))),
        )

        analysis = nlp.analysis
        differentials = [
            {"condition": d.condition, "probability": d.probability}
            for d in (analysis.differentials if analysis else [])
        ]

        result = EnsembleRiskResult(
            overall_score=overall,
            risk_level=self._risk_level(overall, flags),
            confidence_interval=interval,
            ensemble_confidence=int(round(combined["confidence"])),
            sub_models=sub_models,
            flags=flags,
            predicted_interactions=interactions.interactions,
            differentials=differentials,
            complaint_analysis=analysis,
            allergy_alerts=allergy.allergy_alerts,
        )
        logger.debug(
            f"Ensemble: score={overall} level={result.risk_level.value} "
            f"ci=[{interval.low}, {interval.high}] flags={len(flags)} "
            f"available={sum(1 for m in sub_models if m.available)}/{len(sub_models)}"
        )
        return result


async def compute_ensemble_risk(
    snapshot: Union[PatientSnapshot, Dict[str, Any]],
    ensemble: Optional[RiskEnsemble] = None
) -> EnsembleRiskResult:
    """Assess one patient with the given (or a fresh, untrained) ensemble"""
    return await (ensemble or RiskEnsemble()).compute(snapshot)
