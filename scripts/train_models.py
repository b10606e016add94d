#!/usr/bin/env python3
"""
Clinical Risk Ensemble Engine
Model Warm-up - Train the trainable sub-models and report progress

Usage:
    python train_models.py [--model risk|interaction|all] [--epochs N]
                           [--offline] [--output status.json] [--demo]
"""
import sys
import json
import asyncio
import logging
import argparse
from pathlib import Path
from datetime import datetime

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import settings
from risk_ensemble.core.ensemble import RiskEnsemble
from risk_ensemble.core.exceptions import TrainingError
from risk_ensemble.ml.interaction_classifier import DrugInteractionClassifier
from risk_ensemble.ml.risk_model import NeuralRiskModel, training_summary

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)

DEMO_PATIENT = {
    "demographics": {"age": 72, "bmi": 31, "blood_pressure": {"systolic": 150, "diastolic": 92}},
    "medical_history": {
        "conditions": ["hypertension", "atrial fibrillation", "type 2 diabetes"],
        "allergies": ["penicillin"],
    },
    "current_medications": ["warfarin", "aspirin", "metformin", "lisinopril"],
    "lifestyle": {"chief_complaint": "chest pain and shortness of breath since this morning"},
    "labs": {"inr": 3.8, "creatinine": 1.6},
}


async def train_model(model, label: str) -> dict:
    """
    Train one model, logging progress every tenth of the run.

    Returns a status dict for the summary.
    """
    started = datetime.now()
    step = max(1, model.epochs // 10)

    try:
        async for progress in model.training_events():
            if progress.epoch % step == 0 or progress.epoch == progress.total_epochs:
                accuracy = f", acc={progress.accuracy:.3f}" if progress.accuracy is not None else ""
                logger.info(f"[{label}] epoch {progress.epoch}/{progress.total_epochs} "
                            f"loss={progress.loss:.5f}{accuracy}")
    except TrainingError as e:
        logger.error(f"[{label}] {e.message}")

    status = model.status()
    status["seconds"] = round((datetime.now() - started).total_seconds(), 2)
    if model.history:
        status["final_loss"] = model.history[-1].loss
    return status


async def run(args) -> dict:
    models = []
    if args.model in ("risk", "all"):
        risk_model = NeuralRiskModel(
            epochs=args.epochs or settings.RISK_EPOCHS,
            adaptive_url="" if args.offline else None
        )
        models.append(("risk", risk_model))
    if args.model in ("interaction", "all"):
        classifier = DrugInteractionClassifier(epochs=args.epochs or settings.INTERACTION_EPOCHS)
        models.append(("interaction", classifier))

    results = {}
    for label, model in models:
        results[label] = await train_model(model, label)

    if args.demo:
        trained = dict(models)
        ensemble = RiskEnsemble(
            risk_model=trained.get("risk"),
            interaction_classifier=trained.get("interaction"),
        )
        assessment = await ensemble.compute(DEMO_PATIENT)
        results["demo_assessment"] = assessment.to_dict()
        logger.info(f"Demo patient: score={assessment.overall_score} "
                    f"level={assessment.risk_level.value} flags={len(assessment.flags)}")

    return results


def main():
    parser = argparse.ArgumentParser(
        description="Train the clinical risk ensemble models"
    )
    parser.add_argument(
        "--model", "-m",
        choices=["risk", "interaction", "all"],
        default="all",
        help="Which model to train"
    )
    parser.add_argument(
        "--epochs", "-e",
        type=int,
        help="Override the configured epoch count"
    )
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Skip the adaptive dataset fetch"
    )
    parser.add_argument(
        "--output", "-o",
        help="Write the training status to a JSON file"
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Assess a sample patient after training"
    )

    args = parser.parse_args()

    summary = training_summary()
    logger.info(f"Bundled dataset: {summary['total_samples']} samples {summary['by_category']}")

    results = asyncio.run(run(args))

    print("\n=== Training Summary ===")
    for label, status in results.items():
        if label == "demo_assessment":
            continue
        print(f"  {label:12s} state={status['state']:10s} epochs={status['epochs_completed']:4d} "
              f"time={status['seconds']}s")

    if args.output:
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w", encoding="utf-8") as f:
            json.dump(results, f, indent=2)
        logger.info(f"Saved to: {output}")

    failed = [label for label, s in results.items() if label != "demo_assessment" and s["state"] != "trained"]
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
