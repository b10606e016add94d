"""
Clinical Risk Ensemble Engine - Exception Hierarchy

Errors that are surfaced to callers carry a stable code and structured
details. InputMalformed is the only one the ensemble recovers from.
"""
from typing import Optional, Dict, Any


class RiskEngineError(Exception):
    """Base exception for all risk engine errors."""

    def __init__(
        self,
        message: str,
        code: str = "RISK_ENGINE_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details
        }


class InputMalformed(RiskEngineError, ValueError):
    """A sub-model could not parse its slice of the patient snapshot."""

    def __init__(
        self,
        message: str,
        field_name: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="INPUT_MALFORMED",
            details={"field": field_name, **(details or {})}
        )
        self.field_name = field_name


class TrainingError(RiskEngineError):
    """Errors raised by trainable model lifecycles."""

    def __init__(
        self,
        message: str,
        model: str = "unknown",
        code: str = "TRAINING_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=code,
            details={"model": model, **(details or {})}
        )
        self.model = model


class TrainingInProgress(TrainingError):
    """train() was called while a run is already in flight."""

    def __init__(self, model: str):
        super().__init__(
            message=f"{model} is already training",
            model=model,
            code="TRAINING_IN_PROGRESS"
        )


class TrainingTimeout(TrainingError):
    """Waiting on an in-flight training run exceeded its deadline."""

    def __init__(self, model: str, timeout: float):
        super().__init__(
            message=f"Timed out after {timeout:.1f}s waiting for {model} training to finish",
            model=model,
            code="TRAINING_TIMEOUT",
            details={"timeout_seconds": timeout}
        )
        self.timeout = timeout


class TrainingFailedToConverge(TrainingError):
    """A training run ended without producing a trained model."""

    def __init__(self, model: str, reason: str = "training ended without a trained model"):
        super().__init__(
            message=f"{model}: {reason}",
            model=model,
            code="TRAINING_FAILED",
            details={"reason": reason}
        )
