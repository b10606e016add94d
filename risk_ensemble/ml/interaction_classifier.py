"""
Clinical Risk Ensemble Engine - Drug Interaction Classifier

Predicts interaction severity for unordered drug pairs from a 14-feature
pharmacological encoding. A small dense network is trained on a labelled
pair table; until it is trained (or after a failed run) a deterministic
rule score is used instead.
"""
import itertools
import logging
from typing import List, Dict, Tuple, Optional, Sequence

import numpy as np

from config import settings
from risk_ensemble.core.models import (
    DrugProfile, InteractionPrediction, InteractionSeverity, SEVERITY_LABELS
)
from risk_ensemble.core.drug_profiles import (
    lookup_profile, normalize_drug_name, class_id, cyp_id, BRAND_ALIASES
)
from risk_ensemble.ml.backend import ModelBackend
from risk_ensemble.ml.lifecycle import TrainableModel, TrainingProgress

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# ==================== Feature Encoding ====================

CLASS_ID_SCALE = 32.0
CYP_ID_SCALE = 6.0
HALF_LIFE_SCALE_HOURS = 168.0

FEATURE_NAMES = [
    "class_a", "class_b",
    "cyp_a", "cyp_b",
    "protein_binding_a", "protein_binding_b",
    "half_life_a", "half_life_b",
    "hepatotoxicity_a", "hepatotoxicity_b",
    "nephrotoxicity_a", "nephrotoxicity_b",
    "qt_risk_a", "qt_risk_b",
]


def encode_drug_pair(drug_a: str, drug_b: str) -> np.ndarray:
    """Encode an ordered drug pair as a 14-element feature vector"""
    a = lookup_profile(drug_a)
    b = lookup_profile(drug_b)
    return np.array([
        class_id(a.drug_class) / CLASS_ID_SCALE, class_id(b.drug_class) / CLASS_ID_SCALE,
        cyp_id(a.cyp_pathway) / CYP_ID_SCALE, cyp_id(b.cyp_pathway) / CYP_ID_SCALE,
        a.protein_binding, b.protein_binding,
        min(a.half_life_hours / HALF_LIFE_SCALE_HOURS, 1.0),
        min(b.half_life_hours / HALF_LIFE_SCALE_HOURS, 1.0),
        a.hepatotoxicity, b.hepatotoxicity,
        a.nephrotoxicity, b.nephrotoxicity,
        a.qt_risk, b.qt_risk,
    ], dtype=np.float64)


# ==================== Rule-Based Fallback ====================

# (classes on one side, classes on the other side, bonus)
CLASS_COMBINATION_BONUSES = [
    ({"maoi"}, {"ssri", "snri", "opioid"}, 4),
    ({"opioid"}, {"benzodiazepine"}, 3),
    ({"anticoagulant"}, {"nsaid"}, 3),
    ({"anticoagulant"}, {"antiplatelet"}, 2),
]


def class_combination_score(class_a: str, class_b: str) -> int:
    classes = {class_a, class_b}
    score = 0
    for left, right, bonus in CLASS_COMBINATION_BONUSES:
        if classes & left and classes & right:
            score += bonus
    return score


def rule_based_score(a: DrugProfile, b: DrugProfile) -> int:
    """Additive pharmacological risk score for two profiles"""
    bonus = settings.INTERACTION_RULE_BONUSES
    limit = settings.INTERACTION_RULE_LIMITS
    score = 0

    if a.cyp_pathway != "none" and a.cyp_pathway == b.cyp_pathway:
        score += bonus["shared_cyp"]
    if a.protein_binding > limit["protein_binding"] and b.protein_binding > limit["protein_binding"]:
        score += bonus["high_protein_binding"]
    if a.hepatotoxicity + b.hepatotoxicity > limit["hepatotoxicity"]:
        score += bonus["hepatotoxicity"]
    if a.nephrotoxicity + b.nephrotoxicity > limit["nephrotoxicity"]:
        score += bonus["nephrotoxicity"]
    if a.qt_risk + b.qt_risk > limit["qt_prolongation"]:
        score += bonus["qt_prolongation"]

    return score + class_combination_score(a.drug_class, b.drug_class)


def score_to_severity(score: float) -> InteractionSeverity:
    thresholds = settings.INTERACTION_SEVERITY_THRESHOLDS
    if score >= thresholds["major"]:
        return InteractionSeverity.MAJOR
    if score >= thresholds["moderate"]:
        return InteractionSeverity.MODERATE
    if score >= thresholds["minor"]:
        return InteractionSeverity.MINOR
    return InteractionSeverity.NONE


# Probability reported for each class: (when predicted, when not predicted)
_FALLBACK_PROBABILITIES = {
    InteractionSeverity.NONE: (90.0, 5.0),
    InteractionSeverity.MINOR: (75.0, 10.0),
    InteractionSeverity.MODERATE: (75.0, 5.0),
    InteractionSeverity.MAJOR: (80.0, 5.0),
}


def fallback_probabilities(severity: InteractionSeverity) -> Dict[str, float]:
    return {
        label.value: hit if label == severity else miss
        for label, (hit, miss) in _FALLBACK_PROBABILITIES.items()
    }


# ==================== Training Table ====================

INTERACTION_TRAINING_PAIRS: List[Tuple[str, str, InteractionSeverity]] = [
    # Major interactions
    ("warfarin", "aspirin", InteractionSeverity.MAJOR),
    ("warfarin", "ibuprofen", InteractionSeverity.MAJOR),
    ("warfarin", "naproxen", InteractionSeverity.MAJOR),
    ("warfarin", "fluconazole", InteractionSeverity.MAJOR),
    ("warfarin", "erythromycin", InteractionSeverity.MAJOR),
    ("warfarin", "ciprofloxacin", InteractionSeverity.MAJOR),
    ("clopidogrel", "omeprazole", InteractionSeverity.MAJOR),
    ("simvastatin", "erythromycin", InteractionSeverity.MAJOR),
    ("simvastatin", "clarithromycin", InteractionSeverity.MAJOR),
    ("simvastatin", "ketoconazole", InteractionSeverity.MAJOR),
    ("atorvastatin", "clarithromycin", InteractionSeverity.MAJOR),
    ("cyclosporine", "simvastatin", InteractionSeverity.MAJOR),
    ("metoprolol", "verapamil", InteractionSeverity.MAJOR),
    ("diltiazem", "metoprolol", InteractionSeverity.MAJOR),
    ("phenelzine", "sertraline", InteractionSeverity.MAJOR),
    ("phenelzine", "fluoxetine", InteractionSeverity.MAJOR),
    ("phenelzine", "venlafaxine", InteractionSeverity.MAJOR),
    ("phenelzine", "tramadol", InteractionSeverity.MAJOR),
    ("tramadol", "sertraline", InteractionSeverity.MAJOR),
    ("tramadol", "fluoxetine", InteractionSeverity.MAJOR),
    ("oxycodone", "diazepam", InteractionSeverity.MAJOR),
    ("morphine", "alprazolam", InteractionSeverity.MAJOR),
    ("morphine", "diazepam", InteractionSeverity.MAJOR),
    ("lisinopril", "spironolactone", InteractionSeverity.MAJOR),
    ("enalapril", "spironolactone", InteractionSeverity.MAJOR),
    ("carbamazepine", "erythromycin", InteractionSeverity.MAJOR),
    ("phenytoin", "fluconazole", InteractionSeverity.MAJOR),
    ("cyclosporine", "ketoconazole", InteractionSeverity.MAJOR),
    ("tacrolimus", "ketoconazole", InteractionSeverity.MAJOR),
    ("tacrolimus", "clarithromycin", InteractionSeverity.MAJOR),
    ("fluoxetine", "amitriptyline", InteractionSeverity.MAJOR),
    ("paroxetine", "tramadol", InteractionSeverity.MAJOR),
    ("citalopram", "erythromycin", InteractionSeverity.MAJOR),

    # Moderate interactions
    ("lisinopril", "ibuprofen", InteractionSeverity.MODERATE),
    ("lisinopril", "naproxen", InteractionSeverity.MODERATE),
    ("losartan", "ibuprofen", InteractionSeverity.MODERATE),
    ("enalapril", "naproxen", InteractionSeverity.MODERATE),
    ("metformin", "furosemide", InteractionSeverity.MODERATE),
    ("metformin", "ciprofloxacin", InteractionSeverity.MODERATE),
    ("warfarin", "omeprazole", InteractionSeverity.MODERATE),
    ("warfarin", "atorvastatin", InteractionSeverity.MODERATE),
    ("sertraline", "ibuprofen", InteractionSeverity.MODERATE),
    ("fluoxetine", "ibuprofen", InteractionSeverity.MODERATE),
    ("citalopram", "omeprazole", InteractionSeverity.MODERATE),
    ("prednisone", "ibuprofen", InteractionSeverity.MODERATE),
    ("prednisone", "naproxen", InteractionSeverity.MODERATE),
    ("prednisone", "aspirin", InteractionSeverity.MODERATE),
    ("furosemide", "lisinopril", InteractionSeverity.MODERATE),
    ("hydrochlorothiazide", "lisinopril", InteractionSeverity.MODERATE),
    ("amlodipine", "simvastatin", InteractionSeverity.MODERATE),
    ("levothyroxine", "omeprazole", InteractionSeverity.MODERATE),
    ("levothyroxine", "pantoprazole", InteractionSeverity.MODERATE),
    ("gabapentin", "morphine", InteractionSeverity.MODERATE),
    ("gabapentin", "oxycodone", InteractionSeverity.MODERATE),
    ("glipizide", "fluconazole", InteractionSeverity.MODERATE),
    ("quetiapine", "carbamazepine", InteractionSeverity.MODERATE),
    ("risperidone", "fluoxetine", InteractionSeverity.MODERATE),
    ("risperidone", "paroxetine", InteractionSeverity.MODERATE),
    ("diphenhydramine", "oxycodone", InteractionSeverity.MODERATE),
    ("cyclobenzaprine", "tramadol", InteractionSeverity.MODERATE),

    # Minor interactions
    ("metformin", "atorvastatin", InteractionSeverity.MINOR),
    ("lisinopril", "metformin", InteractionSeverity.MINOR),
    ("amlodipine", "atorvastatin", InteractionSeverity.MINOR),
    ("omeprazole", "metformin", InteractionSeverity.MINOR),
    ("losartan", "hydrochlorothiazide", InteractionSeverity.MINOR),
    ("atenolol", "amlodipine", InteractionSeverity.MINOR),
    ("sertraline", "omeprazole", InteractionSeverity.MINOR),
    ("gabapentin", "cetirizine", InteractionSeverity.MINOR),
    ("lorazepam", "cetirizine", InteractionSeverity.MINOR),
    ("pravastatin", "amlodipine", InteractionSeverity.MINOR),
    ("amoxicillin", "metformin", InteractionSeverity.MINOR),
    ("pantoprazole", "atorvastatin", InteractionSeverity.MINOR),
    ("cetirizine", "lorazepam", InteractionSeverity.MINOR),

    # No interaction
    ("lisinopril", "atorvastatin", InteractionSeverity.NONE),
    ("metformin", "levothyroxine", InteractionSeverity.NONE),
    ("amlodipine", "metformin", InteractionSeverity.NONE),
    ("sertraline", "metformin", InteractionSeverity.NONE),
    ("gabapentin", "metformin", InteractionSeverity.NONE),
    ("amoxicillin", "sertraline", InteractionSeverity.NONE),
    ("cetirizine", "metformin", InteractionSeverity.NONE),
    ("pantoprazole", "gabapentin", InteractionSeverity.NONE),
    ("aspirin", "metformin", InteractionSeverity.NONE),
    ("atenolol", "gabapentin", InteractionSeverity.NONE),
    ("losartan", "atorvastatin", InteractionSeverity.NONE),
    ("pravastatin", "lisinopril", InteractionSeverity.NONE),
    ("amoxicillin", "cetirizine", InteractionSeverity.NONE),
    ("levothyroxine", "amlodipine", InteractionSeverity.NONE),
    ("ramipril", "rosuvastatin", InteractionSeverity.NONE),
]


def _pair_key(drug_a: str, drug_b: str) -> frozenset:
    keys = []
    for name in (drug_a, drug_b):
        key = normalize_drug_name(name)
        keys.append(BRAND_ALIASES.get(key, key))
    return frozenset(keys)


_KNOWN_PAIRS = {_pair_key(a, b) for a, b, _ in INTERACTION_TRAINING_PAIRS}


def is_known_pair(drug_a: str, drug_b: str) -> bool:
    return _pair_key(drug_a, drug_b) in _KNOWN_PAIRS


def build_training_arrays() -> Tuple[np.ndarray, np.ndarray]:
    """Feature matrix and class labels, each pair fed in both orders"""
    features = []
    labels = []
    for drug_a, drug_b, severity in INTERACTION_TRAINING_PAIRS:
        features.append(encode_drug_pair(drug_a, drug_b))
        features.append(encode_drug_pair(drug_b, drug_a))
        labels.extend([severity.rank, severity.rank])
    return np.vstack(features), np.array(labels, dtype=np.int64)


# ==================== Classifier ====================

class DrugInteractionClassifier(TrainableModel):
    """
    Trainable pairwise interaction severity model.

    predict() never raises for unknown drugs: they are encoded with the
    default profile. Predictions are symmetric in the pair order.
    """

    model_name = "Drug Interaction Classifier"
    CLASSES = np.arange(len(SEVERITY_LABELS))

    def __init__(self, backend: Optional[ModelBackend] = None, epochs: int = settings.INTERACTION_EPOCHS):
        super().__init__(backend=backend, epochs=epochs)

    async def _prepare_data(self) -> Tuple[np.ndarray, np.ndarray]:
        return build_training_arrays()

    def _build_estimator(self):
        return self.backend.build_classifier(
            hidden_layers=settings.INTERACTION_HIDDEN_LAYERS,
            l2=settings.INTERACTION_L2,
            learning_rate=settings.INTERACTION_LEARNING_RATE,
            batch_size=settings.INTERACTION_BATCH_SIZE,
        )

    def _fit_epoch(self, estimator, X, y, epoch) -> TrainingProgress:
        loss = self.backend.fit_epoch(estimator, X, y, classes=self.CLASSES)
        accuracy = self.backend.accuracy(estimator, X, y)
        if epoch % 20 == 0 or epoch == self.epochs:
            logger.info(f"Interaction epoch {epoch}/{self.epochs}: loss={loss:.4f}, acc={accuracy:.3f}")
        return TrainingProgress(epoch=epoch, total_epochs=self.epochs, loss=loss, accuracy=accuracy)

    def _predict_fallback(self, drug_a: str, drug_b: str) -> InteractionPrediction:
        score = rule_based_score(lookup_profile(drug_a), lookup_profile(drug_b))
        severity = score_to_severity(score)
        return InteractionPrediction(
            drug_a=drug_a,
            drug_b=drug_b,
            severity=severity,
            probabilities=fallback_probabilities(severity),
            confidence=settings.INTERACTION_FALLBACK_CONFIDENCE,
            known_pair=is_known_pair(drug_a, drug_b),
            source="rules",
        )

    def predict(self, drug_a: str, drug_b: str) -> InteractionPrediction:
        """Predict the interaction severity of one drug pair"""
        estimator = self._fitted_estimator()
        if estimator is None:
            return self._predict_fallback(drug_a, drug_b)

        X = np.vstack([encode_drug_pair(drug_a, drug_b), encode_drug_pair(drug_b, drug_a)])
        probs = self.backend.predict_proba(estimator, X).mean(axis=0)
        best = int(np.argmax(probs))

        return InteractionPrediction(
            drug_a=drug_a,
            drug_b=drug_b,
            severity=SEVERITY_LABELS[best],
            probabilities={
                label.value: round(float(p) * 100, 1) for label, p in zip(SEVERITY_LABELS, probs)
            },
            confidence=round(float(probs[best]) * 100, 1),
            known_pair=is_known_pair(drug_a, drug_b),
            source="model",
        )

    def predict_multiple(self, drugs: Sequence[str]) -> List[InteractionPrediction]:
        """All non-trivial interactions among a medication list, most severe first"""
        names = [d for d in drugs if d and d.strip()]
        results = []
        for drug_a, drug_b in itertools.combinations(names, 2):
            prediction = self.predict(drug_a, drug_b)
            if prediction.severity != InteractionSeverity.NONE:
                results.append(prediction)

        results.sort(key=lambda p: (-p.severity.rank, -p.confidence))
        return results
