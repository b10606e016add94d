"""
Clinical Risk Ensemble Engine - Trainable Model Lifecycle

Base class for caller-owned trainable models. State moves
UNTRAINED -> TRAINING -> TRAINED, or to ERROR when a run fails; both
UNTRAINED and ERROR mean "use the deterministic fallback".

Training is an async sequence of per-epoch progress events. Data
preparation runs on the event loop (it may fetch over the network), the
epochs run in a worker thread. Closing the event stream early cancels the
run after the current epoch.
"""
import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

import numpy as np

from config import settings
from risk_ensemble.core.exceptions import (
    TrainingError, TrainingInProgress, TrainingTimeout, TrainingFailedToConverge
)
from risk_ensemble.ml.backend import ModelBackend, select_backend

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class ModelState(str, Enum):
    UNTRAINED = "untrained"
    TRAINING = "training"
    TRAINED = "trained"
    ERROR = "error"


@dataclass
class TrainingProgress:
    """One completed training epoch"""
    epoch: int
    total_epochs: int
    loss: float
    accuracy: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_DONE = object()


class TrainableModel(ABC):
    """
    Caller-owned model handle with an explicit training state.

    Subclasses provide the dataset, the estimator and the per-epoch fit;
    this class owns the state machine, progress stream and waiting.
    """

    model_name = "model"

    def __init__(self, backend: Optional[ModelBackend] = None, epochs: int = 100):
        if epochs < 1:
            raise ValueError("epochs must be >= 1")
        self.backend = backend or select_backend()
        self.epochs = epochs
        self.history: List[TrainingProgress] = []
        self.last_error: Optional[str] = None
        self._state = ModelState.UNTRAINED
        self._estimator = None
        self._lock = threading.Lock()

    # ---------- state ----------

    @property
    def state(self) -> ModelState:
        with self._lock:
            return self._state

    def is_training(self) -> bool:
        return self.state == ModelState.TRAINING

    def is_trained(self) -> bool:
        return self.state == ModelState.TRAINED

    def _fitted_estimator(self):
        """The trained estimator, or None when predictions must fall back"""
        with self._lock:
            if self._state == ModelState.TRAINED:
                return self._estimator
            return None

    def _begin(self, force: bool) -> bool:
        with self._lock:
            if self._state == ModelState.TRAINING:
                raise TrainingInProgress(self.model_name)
            if self._state == ModelState.TRAINED and not force:
                return False
            self._state = ModelState.TRAINING
            self.history = []
            self.last_error = None
            return True

    def _finish(self, estimator) -> None:
        with self._lock:
            self._estimator = estimator
            self._state = ModelState.TRAINED

    def _fail(self, reason: str) -> None:
        with self._lock:
            self._estimator = None
            self._state = ModelState.ERROR
            self.last_error = reason

    def _abandon(self) -> None:
        with self._lock:
            self._state = ModelState.TRAINED if self._estimator is not None else ModelState.UNTRAINED

    def reset(self) -> None:
        """Drop the fitted estimator and return to UNTRAINED"""
        with self._lock:
            if self._state == ModelState.TRAINING:
                raise TrainingInProgress(self.model_name)
            self._estimator = None
            self._state = ModelState.UNTRAINED
            self.history = []
            self.last_error = None

    # ---------- subclass hooks ----------

    @abstractmethod
    async def _prepare_data(self) -> Tuple[np.ndarray, np.ndarray]:
        """Build the (X, y) training arrays"""

    @abstractmethod
    def _build_estimator(self):
        """Create an untrained estimator through the backend"""

    @abstractmethod
    def _fit_epoch(self, estimator, X: np.ndarray, y: np.ndarray, epoch: int) -> TrainingProgress:
        """Fit one epoch and report its progress"""

    # ---------- training ----------

    def _run_epochs(
        self,
        X: np.ndarray,
        y: np.ndarray,
        emit: Callable[[Any], None],
        stop: threading.Event
    ):
        try:
            estimator = self._build_estimator()
            for epoch in range(1, self.epochs + 1):
                if stop.is_set():
                    return None
                emit(self._fit_epoch(estimator, X, y, epoch))
            return estimator
        finally:
            emit(_DONE)

    async def training_events(self, force: bool = False) -> AsyncIterator[TrainingProgress]:
        """
        Train the model, yielding one TrainingProgress per epoch.

        Raises TrainingInProgress if a run is already in flight. Yields
        nothing when the model is already trained and force is False.
        """
        if not self._begin(force):
            return

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        stop = threading.Event()

        def emit(item):
            if not loop.is_closed():
                loop.call_soon_threadsafe(queue.put_nowait, item)

        try:
            X, y = await self._prepare_data()
            logger.info(f"Training {self.model_name} on {len(X)} samples for {self.epochs} epochs")
            worker = asyncio.ensure_future(asyncio.to_thread(self._run_epochs, X, y, emit, stop))
            while True:
                item = await queue.get()
                if item is _DONE:
                    break
                self.history.append(item)
                yield item
            estimator = await worker
        except (asyncio.CancelledError, GeneratorExit):
            stop.set()
            self._abandon()
            logger.warning(f"{self.model_name} training cancelled")
            raise
        except TrainingError:
            self._fail("training error")
            raise
        except Exception as e:
            self._fail(str(e))
            logger.error(f"{self.model_name} training failed: {e}")
            raise TrainingFailedToConverge(self.model_name, str(e)) from e

        final_loss = self.history[-1].loss if self.history else float("nan")
        if estimator is None or not np.isfinite(final_loss):
            self._fail("loss diverged")
            raise TrainingFailedToConverge(self.model_name, "loss diverged")

        self._finish(estimator)
        logger.info(f"{self.model_name} trained successfully (final loss {final_loss:.4f})")

    async def train(self, force: bool = False) -> List[TrainingProgress]:
        """Run training to completion and return the progress history"""
        events = []
        async for event in self.training_events(force=force):
            events.append(event)
        return events

    async def wait_until_trained(
        self,
        timeout: float = settings.TRAINING_WAIT_TIMEOUT_S,
        poll_interval: float = settings.TRAINING_POLL_INTERVAL_S
    ) -> None:
        """Poll an in-flight run until it ends or the deadline passes"""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while self.is_training():
            if loop.time() >= deadline:
                raise TrainingTimeout(self.model_name, timeout)
            await asyncio.sleep(poll_interval)

        if not self.is_trained():
            raise TrainingFailedToConverge(self.model_name)

    async def ensure_trained(self, timeout: float = settings.TRAINING_WAIT_TIMEOUT_S) -> "TrainableModel":
        """Return once the model is trained, joining an in-flight run if any"""
        if self.is_trained():
            return self

        if self.is_training():
            await self.wait_until_trained(timeout=timeout)
        else:
            try:
                await asyncio.wait_for(self.train(), timeout=timeout)
            except asyncio.TimeoutError as e:
                raise TrainingTimeout(self.model_name, timeout) from e

        if not self.is_trained():
            raise TrainingFailedToConverge(self.model_name, "failed to initialize")
        return self

    def status(self) -> Dict[str, Any]:
        return {
            "model": self.model_name,
            "state": self.state.value,
            "epochs_completed": len(self.history),
            "last_error": self.last_error,
            **self.backend.describe(),
        }
