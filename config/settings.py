"""
Clinical Risk Ensemble Engine - Configuration Settings
"""
import os
from pathlib import Path

# Base paths
BASE_DIR = Path(__file__).parent.parent
PACKAGE_DIR = BASE_DIR / "risk_ensemble"
DATA_DIR = PACKAGE_DIR / "data"
RISK_TRAINING_DATA_PATH = Path(
    os.getenv("RISK_TRAINING_DATA_PATH", str(DATA_DIR / "risk_training_data.csv"))
)

# Compute backend
MODEL_BACKEND = os.getenv("MODEL_BACKEND", "sklearn")
RANDOM_SEED = int(os.getenv("RANDOM_SEED", "42"))

# Drug interaction network
INTERACTION_HIDDEN_LAYERS = (48, 24)
INTERACTION_L2 = 0.005
INTERACTION_LEARNING_RATE = 0.001
INTERACTION_BATCH_SIZE = 16
INTERACTION_EPOCHS = int(os.getenv("INTERACTION_EPOCHS", "120"))

# Risk regression network
RISK_HIDDEN_LAYERS = (64, 32, 16)
RISK_L2 = 0.01
RISK_LEARNING_RATE = 0.001
RISK_BATCH_SIZE = 16
RISK_EPOCHS = int(os.getenv("RISK_EPOCHS", "150"))

# Adaptive (supplementary) training dataset
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:3000/api")
ADAPTIVE_DATASET_URL = os.getenv(
    "ADAPTIVE_DATASET_URL", f"{API_BASE_URL}/ml/training-data?limit=1500"
)
ADAPTIVE_FETCH_TIMEOUT_S = float(os.getenv("ADAPTIVE_FETCH_TIMEOUT_S", "1.5"))

# Training lifecycle
TRAINING_WAIT_TIMEOUT_S = float(os.getenv("TRAINING_WAIT_TIMEOUT_S", "180"))
TRAINING_POLL_INTERVAL_S = 0.1

# Risk level cut-offs (score >= value)
RISK_THRESHOLDS = {
    "MEDIUM": 30,
    "HIGH": 60,
    "CRITICAL": 80,
}

# Interaction rule scoring
INTERACTION_RULE_BONUSES = {
    "shared_cyp": 2,
    "high_protein_binding": 1,
    "hepatotoxicity": 1,
    "nephrotoxicity": 1,
    "qt_prolongation": 2,
}
INTERACTION_RULE_LIMITS = {
    "protein_binding": 0.9,   # both drugs above
    "hepatotoxicity": 0.5,    # combined
    "nephrotoxicity": 0.5,    # combined
    "qt_prolongation": 0.4,   # combined
}
INTERACTION_SEVERITY_THRESHOLDS = {
    "major": 5,
    "moderate": 3,
    "minor": 1,
}
INTERACTION_FALLBACK_CONFIDENCE = 65.0
INTERACTION_SCORE_POINTS = {
    "major": 25,
    "moderate": 12,
    "minor": 4,
    "none": 0,
}

# Ensemble weights
SUB_MODEL_WEIGHTS = {
    "neural_trained": 0.30,
    "neural_fallback": 0.15,
    "interaction_trained": 0.25,
    "interaction_fallback": 0.15,
    "interaction_single_drug": 0.05,
    "nlp": 0.20,
    "nlp_absent": 0.05,
    "heuristic": 0.25,
    "labs": 0.15,
    "allergy": 0.15,
}
CONFIDENCE_MARGIN_FACTOR = 0.4
DISAGREEMENT_FACTOR = 1.0

# NLP
ACUITY_SCORES = {
    "emergent": 90,
    "urgent": 65,
    "semi-urgent": 40,
    "routine": 15,
}
RED_FLAG_POINTS = 10
RED_FLAG_POINTS_CAP = 20
NEGATION_WINDOW_TOKENS = 5
ACUTE_ONSET_DAYS = 1.0
MAX_DIFFERENTIALS = 5
MAX_SUGGESTED_QUESTIONS = 5

# Heuristic thresholds
POLYPHARMACY_WARNING = 5
POLYPHARMACY_CRITICAL = 10
HYPERTENSIVE_CRISIS = {"systolic": 180, "diastolic": 120}
HYPERTENSION_STAGE_2 = {"systolic": 140, "diastolic": 90}

# Lab thresholds
LAB_THRESHOLDS = {
    "creatinine_critical": 2.0,
    "creatinine_warning": 1.5,
    "gfr_critical": 30,
    "gfr_warning": 60,
    "liver_enzyme_critical": 120,   # ~3x ULN
    "liver_enzyme_warning": 60,
    "hba1c_warning": 9.0,
    "inr_critical": 4.5,
    "inr_warning": 3.5,
}

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Feature Flags
ENABLE_ADAPTIVE_DATASET = os.getenv("ENABLE_ADAPTIVE_DATASET", "true").lower() == "true"

# Neural model confidence: distance from the nearest anchor widens certainty
RISK_CONFIDENCE_ANCHORS = (30, 60, 80, 90)
