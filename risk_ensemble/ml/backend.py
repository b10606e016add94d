"""
Clinical Risk Ensemble Engine - Compute Backends

Trainable models talk to a ModelBackend instead of a concrete ML library.
The backend is picked once at startup from settings.MODEL_BACKEND and only
has to provide incremental (one epoch per call) training so the lifecycle
can report progress between epochs.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Sequence, Type

import numpy as np
from sklearn.neural_network import MLPClassifier, MLPRegressor

from config import settings

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class ModelBackend(ABC):
    """Capability interface for building and fitting small dense networks"""

    name = "abstract"
    device = "cpu"

    @abstractmethod
    def build_classifier(
        self,
        hidden_layers: Sequence[int],
        l2: float,
        learning_rate: float,
        batch_size: int,
    ):
        """Return an untrained multi-class estimator"""

    @abstractmethod
    def build_regressor(
        self,
        hidden_layers: Sequence[int],
        l2: float,
        learning_rate: float,
        batch_size: int,
    ):
        """Return an untrained single-output regressor"""

    @abstractmethod
    def fit_epoch(
        self,
        estimator,
        X: np.ndarray,
        y: np.ndarray,
        classes: Optional[np.ndarray] = None
    ) -> float:
        """Run one pass over (X, y) and return the training loss"""

    @abstractmethod
    def predict_proba(self, estimator, X: np.ndarray) -> np.ndarray:
        ...

    @abstractmethod
    def predict(self, estimator, X: np.ndarray) -> np.ndarray:
        ...

    def accuracy(self, estimator, X: np.ndarray, y: np.ndarray) -> float:
        predicted = np.argmax(self.predict_proba(estimator, X), axis=1)
        return float(np.mean(predicted == y))

    def describe(self) -> Dict[str, str]:
        return {"backend": self.name, "device": self.device}


class SklearnBackend(ModelBackend):
    """CPU backend built on scikit-learn's multi-layer perceptrons"""

    name = "sklearn"
    device = "cpu"

    def __init__(self, random_state: Optional[int] = None):
        self.random_state = settings.RANDOM_SEED if random_state is None else random_state

    def build_classifier(self, hidden_layers, l2, learning_rate, batch_size):
        return MLPClassifier(
            hidden_layer_sizes=tuple(hidden_layers),
            activation="relu",
            solver="adam",
            alpha=l2,
            learning_rate_init=learning_rate,
            batch_size=batch_size,
            shuffle=True,
            random_state=self.random_state,
        )

    def build_regressor(self, hidden_layers, l2, learning_rate, batch_size):
        return MLPRegressor(
            hidden_layer_sizes=tuple(hidden_layers),
            activation="relu",
            solver="adam",
            alpha=l2,
            learning_rate_init=learning_rate,
            batch_size=batch_size,
            shuffle=True,
            random_state=self.random_state,
        )

    def fit_epoch(self, estimator, X, y, classes=None) -> float:
        if classes is not None:
            estimator.partial_fit(X, y, classes=classes)
        else:
            estimator.partial_fit(X, y)
        return float(estimator.loss_)

    def predict_proba(self, estimator, X):
        return estimator.predict_proba(X)

    def predict(self, estimator, X):
        return estimator.predict(X)


_BACKENDS: Dict[str, Type[ModelBackend]] = {
    "sklearn": SklearnBackend,
    "cpu": SklearnBackend,
}


def register_backend(name: str, backend_cls: Type[ModelBackend]) -> None:
    _BACKENDS[name.lower()] = backend_cls


def select_backend(name: Optional[str] = None) -> ModelBackend:
    """Instantiate the configured backend, falling back to scikit-learn"""
    requested = (name or settings.MODEL_BACKEND or "sklearn").lower()
    backend_cls = _BACKENDS.get(requested)
    if backend_cls is None:
        logger.warning(f"Unknown model backend '{requested}', using sklearn")
        backend_cls = SklearnBackend
    backend = backend_cls()
    logger.info(f"Model backend selected: {backend.name} ({backend.device})")
    return backend
