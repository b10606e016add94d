"""
Clinical Risk Ensemble Engine - Neural Risk Model

Regression network over 11 normalized patient features. Trained on the
bundled clinical dataset, optionally merged with an adaptive dataset served
by the backend API. Until trained it answers with a weighted-feature
fallback so callers always get a score.
"""
import logging
import math
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple

import httpx
import numpy as np
import pandas as pd

from config import settings
from risk_ensemble.core.models import PatientSnapshot, RiskPrediction, classify_risk
from risk_ensemble.ml.backend import ModelBackend
from risk_ensemble.ml.lifecycle import TrainableModel, TrainingProgress

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# ==================== Features ====================

FEATURE_COLUMNS = [
    "age", "bmi", "systolic_bp", "diastolic_bp", "heart_rate",
    "num_conditions", "num_allergies", "num_medications",
    "smoking_score", "alcohol_score", "exercise_score",
]

NORMALIZATION_RANGES = {
    "age": (0, 120),
    "bmi": (10, 50),
    "systolic_bp": (70, 220),
    "diastolic_bp": (40, 140),
    "heart_rate": (30, 200),
    "num_conditions": (0, 20),
    "num_allergies": (0, 15),
    "num_medications": (0, 30),
    "smoking_score": (0, 100),
    "alcohol_score": (0, 100),
    "exercise_score": (0, 100),
}

FALLBACK_WEIGHTS = [0.15, 0.08, 0.12, 0.08, 0.05, 0.15, 0.08, 0.12, 0.07, 0.05, 0.05]
FALLBACK_CONFIDENCE = 75.0

EXERCISE_SCORES = {
    "active": 90,
    "moderate": 70,
    "sedentary": 20,
}
DEFAULT_EXERCISE_SCORE = 50


def smoking_score(status: str, pack_years: Optional[float] = None) -> float:
    years = pack_years or 10
    if status == "current":
        return min(100.0, 50 + years)
    if status == "former":
        return min(50.0, years * 0.5)
    return 0.0


def alcohol_score(use: str, drinks_per_week: float = 0) -> float:
    drinks = drinks_per_week or 0
    if use == "heavy":
        return min(100.0, 60 + drinks)
    if use == "moderate":
        return min(60.0, 20 + drinks)
    if use == "occasional":
        return min(30.0, drinks * 2)
    return 0.0


def exercise_score(level: str) -> float:
    """Fitness score, higher is better"""
    return float(EXERCISE_SCORES.get(level, DEFAULT_EXERCISE_SCORE))


def normalize_features(raw: np.ndarray) -> np.ndarray:
    """Scale raw feature rows into [0, 1] per column"""
    raw = np.atleast_2d(np.asarray(raw, dtype=np.float64))
    lows = np.array([NORMALIZATION_RANGES[c][0] for c in FEATURE_COLUMNS], dtype=np.float64)
    highs = np.array([NORMALIZATION_RANGES[c][1] for c in FEATURE_COLUMNS], dtype=np.float64)
    return np.clip((raw - lows) / (highs - lows), 0.0, 1.0)


def raw_features(snapshot: PatientSnapshot) -> np.ndarray:
    """Raw (unscaled) feature vector; exercise is inverted so higher means worse"""
    demo = snapshot.demographics
    life = snapshot.lifestyle
    return np.array([
        demo.age,
        demo.bmi,
        demo.blood_pressure.systolic,
        demo.blood_pressure.diastolic,
        demo.heart_rate,
        len(snapshot.medical_history.conditions),
        len(snapshot.medical_history.allergies),
        len(snapshot.medication_names()),
        smoking_score(life.smoking_status, life.pack_years),
        alcohol_score(life.alcohol_use, life.drinks_per_week),
        100 - exercise_score(life.exercise_level),
    ], dtype=np.float64)


def extract_features(snapshot: PatientSnapshot) -> np.ndarray:
    return normalize_features(raw_features(snapshot))[0]


def feature_importance(features: np.ndarray) -> Dict[str, int]:
    """Share of each normalized feature in the total, as integer percent"""
    total = float(np.sum(features)) or 1.0

    def pct(value: float) -> int:
        return int(round(value / total * 100))

    return {
        "age": pct(features[0]),
        "bmi": pct(features[1]),
        "blood_pressure": pct((features[2] + features[3]) / 2),
        "heart_rate": pct(features[4]),
        "conditions": pct(features[5]),
        "allergies": pct(features[6]),
        "medications": pct(features[7]),
        "smoking": pct(features[8]),
        "alcohol": pct(features[9]),
        "exercise": pct(features[10]),
    }


# ==================== Datasets ====================

def load_training_dataset(path: Optional[Path] = None) -> pd.DataFrame:
    """Load the bundled clinical risk dataset"""
    path = Path(path or settings.RISK_TRAINING_DATA_PATH)
    df = pd.read_csv(path)
    missing = [c for c in FEATURE_COLUMNS + ["risk_score"] if c not in df.columns]
    if missing:
        raise ValueError(f"Training dataset {path} is missing columns: {missing}")
    return df


def training_summary(df: Optional[pd.DataFrame] = None) -> Dict[str, Any]:
    """Row counts per risk category and score range of a dataset"""
    if df is None:
        df = load_training_dataset()
    counts = df["category"].value_counts() if "category" in df.columns else pd.Series(dtype=int)
    return {
        "total_samples": int(len(df)),
        "by_category": {str(k): int(v) for k, v in counts.items()},
        "risk_score_min": float(df["risk_score"].min()) if len(df) else 0.0,
        "risk_score_max": float(df["risk_score"].max()) if len(df) else 0.0,
    }


def dataset_arrays(df: pd.DataFrame) -> Tuple[np.ndarray, np.ndarray]:
    """Raw feature matrix and 0-100 targets from the bundled dataset"""
    raw = df[FEATURE_COLUMNS].to_numpy(dtype=np.float64)
    # The dataset records fitness (higher is better); the model sees inactivity
    raw[:, FEATURE_COLUMNS.index("exercise_score")] = 100 - raw[:, FEATURE_COLUMNS.index("exercise_score")]
    targets = df["risk_score"].to_numpy(dtype=np.float64)
    return raw, targets


def _finite(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def sanitize_input_row(row: Any) -> Optional[List[float]]:
    if not isinstance(row, (list, tuple)) or len(row) < len(FEATURE_COLUMNS):
        return None
    values = row[:len(FEATURE_COLUMNS)]
    if not all(_finite(v) for v in values):
        return None
    return [float(v) for v in values]


def sanitize_output_row(row: Any) -> Optional[float]:
    if isinstance(row, (list, tuple)) and row and _finite(row[0]):
        return max(0.0, min(100.0, float(row[0])))
    if _finite(row):
        return max(0.0, min(100.0, float(row)))
    return None


async def fetch_adaptive_training_data(
    url: Optional[str] = None,
    timeout: float = settings.ADAPTIVE_FETCH_TIMEOUT_S,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> Tuple[List[List[float]], List[float]]:
    """
    Fetch supplementary training rows from the backend API.

    Never raises: any network, HTTP or payload problem yields no rows.
    """
    url = settings.ADAPTIVE_DATASET_URL if url is None else url
    if not url or not settings.ENABLE_ADAPTIVE_DATASET:
        return [], []

    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(url)
            response.raise_for_status()
            payload = response.json()
    except Exception as e:
        logger.warning(f"Adaptive training data fetch skipped: {e}")
        return [], []

    if not isinstance(payload, dict) or not payload.get("success") or not isinstance(payload.get("data"), dict):
        return [], []

    input_rows = payload["data"].get("inputs")
    output_rows = payload["data"].get("outputs")
    input_rows = input_rows if isinstance(input_rows, list) else []
    output_rows = output_rows if isinstance(output_rows, list) else []

    inputs, outputs = [], []
    for raw_in, raw_out in zip(input_rows, output_rows):
        safe_in = sanitize_input_row(raw_in)
        safe_out = sanitize_output_row(raw_out)
        if safe_in is None or safe_out is None:
            continue
        inputs.append(safe_in)
        outputs.append(safe_out)

    if inputs:
        logger.info(f"Loaded {len(inputs)} adaptive samples for risk model training")
    return inputs, outputs


# ==================== Model ====================

class NeuralRiskModel(TrainableModel):
    """Trainable 0-100 patient risk regressor with a rule-based fallback"""

    model_name = "Neural Risk Model"

    def __init__(
        self,
        backend: Optional[ModelBackend] = None,
        epochs: int = settings.RISK_EPOCHS,
        dataset_path: Optional[Path] = None,
        adaptive_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        super().__init__(backend=backend, epochs=epochs)
        self.dataset_path = dataset_path
        self.adaptive_url = adaptive_url
        self.transport = transport
        self.adaptive_samples = 0

    async def _prepare_data(self) -> Tuple[np.ndarray, np.ndarray]:
        raw, targets = dataset_arrays(load_training_dataset(self.dataset_path))

        extra_inputs, extra_outputs = await fetch_adaptive_training_data(
            url=self.adaptive_url, transport=self.transport
        )
        self.adaptive_samples = len(extra_inputs)
        if extra_inputs:
            raw = np.vstack([raw, np.array(extra_inputs, dtype=np.float64)])
            targets = np.concatenate([targets, np.array(extra_outputs, dtype=np.float64)])

        return normalize_features(raw), targets / 100.0

    def _build_estimator(self):
        return self.backend.build_regressor(
            hidden_layers=settings.RISK_HIDDEN_LAYERS,
            l2=settings.RISK_L2,
            learning_rate=settings.RISK_LEARNING_RATE,
            batch_size=settings.RISK_BATCH_SIZE,
        )

    def _fit_epoch(self, estimator, X, y, epoch) -> TrainingProgress:
        loss = self.backend.fit_epoch(estimator, X, y)
        if epoch % 25 == 0 or epoch == self.epochs:
            logger.info(f"Risk epoch {epoch}/{self.epochs}: loss={loss:.5f}")
        return TrainingProgress(epoch=epoch, total_epochs=self.epochs, loss=loss)

    def _fallback(self, snapshot: PatientSnapshot, features: np.ndarray) -> RiskPrediction:
        score = float(np.dot(features, FALLBACK_WEIGHTS) * 100)

        age = snapshot.demographics.age
        if age > 65:
            score += 10
        if age > 75:
            score += 15

        num_meds = len(snapshot.medication_names())
        if num_meds >= 5:
            score += 10
        if num_meds >= 10:
            score += 15

        score = max(0, min(100, round(score)))
        return RiskPrediction(
            risk_score=score,
            risk_level=classify_risk(score),
            confidence=FALLBACK_CONFIDENCE,
            feature_importance=feature_importance(features),
            source="rules",
        )

    def predict(self, snapshot: PatientSnapshot) -> RiskPrediction:
        """Risk score for one patient"""
        features = extract_features(snapshot)
        estimator = self._fitted_estimator()
        if estimator is None:
            return self._fallback(snapshot, features)

        output = float(np.ravel(self.backend.predict(estimator, features.reshape(1, -1)))[0])
        score = max(0, min(100, round(output * 100)))

        distance = min(abs(score - anchor) for anchor in settings.RISK_CONFIDENCE_ANCHORS)
        confidence = min(98.0, 75 + distance / 100 * 23)

        return RiskPrediction(
            risk_score=score,
            risk_level=classify_risk(score),
            confidence=round(confidence, 1),
            feature_importance=feature_importance(features),
            source="model",
        )
