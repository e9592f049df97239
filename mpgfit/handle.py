# mpgfit/handle.py

"""
The process-wide trained model.

A ModelHandle holds at most one TrainedModel. The bundle is immutable and
is swapped in whole after a training run finishes, so readers (evaluation,
save) always see a model together with the bounds it was trained with.
Only one training run may be in flight per handle.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterator, Optional

from torch import nn

from .errors import NoModelError, TrainingInProgressError
from .normalize import NormalizationBounds

if TYPE_CHECKING:
    from .train import TrainHistory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrainedModel:
    model: nn.Sequential
    bounds: NormalizationBounds
    history: "TrainHistory"
    trained_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ModelHandle:
    def __init__(self):
        self._lock = threading.Lock()
        self._training = threading.Lock()
        self._cancel = threading.Event()
        self._current: Optional[TrainedModel] = None

    def get(self) -> Optional[TrainedModel]:
        with self._lock:
            return self._current

    def require(self) -> TrainedModel:
        current = self.get()
        if current is None:
            raise NoModelError("No trained model yet; run training first")
        return current

    def replace(self, trained: TrainedModel) -> None:
        with self._lock:
            self._current = trained
        logger.info("Published model trained at %s", trained.trained_at.isoformat())

    @property
    def training(self) -> bool:
        return self._training.locked()

    @contextmanager
    def training_slot(self) -> Iterator[threading.Event]:
        """
        Reserve the handle for one training run and yield its cancel event.

        Raises TrainingInProgressError if another run holds the slot.
        """
        if not self._training.acquire(blocking=False):
            raise TrainingInProgressError("A training run is already in progress")
        self._cancel.clear()
        try:
            yield self._cancel
        finally:
            self._cancel.clear()
            self._training.release()

    def cancel(self) -> bool:
        """Ask the running training loop to stop. Returns False if none runs."""
        if not self.training:
            return False
        self._cancel.set()
        logger.warning("Cancellation requested for the running training")
        return True
