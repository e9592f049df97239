# mpgfit/train.py

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, asdict, field
from typing import Any, Callable, Dict, List, Optional

import httpx
import numpy as np
import torch
from sklearn.metrics import mean_squared_error, r2_score
from torch import nn
from torch.utils.data import DataLoader, TensorDataset

from .config import DATASET_URL, RANDOM_SEED
from .data import Sample, load_samples
from .errors import TrainingCancelledError, TrainingDivergedError
from .evaluate import Evaluation, evaluate_model, predict, sample_points
from .handle import ModelHandle, TrainedModel
from .models import create_model, model_summary
from .normalize import NormalizationBounds, normalize
from .viz import (
    DATA_TARGET,
    EVALUATION_TARGET,
    PROGRESS_TARGET,
    SUMMARY_TARGET,
    NullSink,
    VisualizationSink,
)

logger = logging.getLogger(__name__)


@dataclass
class TrainConfig:
    # Fixed by the demo, exposed for tests and the CLI
    batch_size: int = 32
    epochs: int = 50
    shuffle: bool = True          # reshuffle the batches every epoch
    learning_rate: float = 0.001  # Adam default

    # None means non-deterministic shuffles and weight init
    seed: Optional[int] = RANDOM_SEED

    dataset_url: str = DATASET_URL


@dataclass(frozen=True)
class EpochLogs:
    epoch: int
    loss: float
    mse: float


@dataclass
class TrainHistory:
    epochs: List[EpochLogs] = field(default_factory=list)

    def append(self, logs: EpochLogs) -> None:
        self.epochs.append(logs)

    def __len__(self) -> int:
        return len(self.epochs)

    @property
    def last(self) -> Optional[EpochLogs]:
        return self.epochs[-1] if self.epochs else None

    def as_dict(self) -> Dict[str, List[float]]:
        return {
            "epoch": [e.epoch for e in self.epochs],
            "loss": [e.loss for e in self.epochs],
            "mse": [e.mse for e in self.epochs],
        }


@dataclass
class RunResult:
    n_samples: int
    bounds: NormalizationBounds
    history: TrainHistory
    evaluation: Evaluation
    metrics: Dict[str, float]
    config: TrainConfig

    def as_dict(self) -> Dict[str, Any]:
        last = self.history.last
        return {
            "n_samples": self.n_samples,
            "epochs": len(self.history),
            "final_loss": last.loss if last else None,
            "final_mse": last.mse if last else None,
            "bounds": self.bounds.as_dict(),
            "metrics": self.metrics,
            "config": asdict(self.config),
        }


def set_reproducible(seed: Optional[int]) -> None:
    """Seed numpy and torch; a None seed leaves both unseeded."""
    if seed is None:
        return
    np.random.seed(seed)
    torch.manual_seed(seed)


def fit_model(
    model: nn.Module,
    inputs: np.ndarray,
    labels: np.ndarray,
    config: TrainConfig,
    on_epoch_end: Optional[Callable[[EpochLogs], None]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> TrainHistory:
    """
    Train with Adam on mean squared error for config.epochs epochs.

    - The loss and the tracked mse metric are sample-weighted means over
      the epoch's batches.
    - on_epoch_end is called once per finished epoch.
    - cancel_event is checked before every epoch.
    - A non-finite epoch loss raises TrainingDivergedError.
    """
    dataset = TensorDataset(
        torch.as_tensor(inputs, dtype=torch.float32),
        torch.as_tensor(labels, dtype=torch.float32),
    )
    generator = torch.Generator()
    if config.seed is not None:
        generator.manual_seed(config.seed)
    else:
        generator.seed()
    loader = DataLoader(
        dataset,
        batch_size=config.batch_size,
        shuffle=config.shuffle,
        generator=generator,
    )

    optimizer = torch.optim.Adam(model.parameters(), lr=config.learning_rate)
    loss_fn = nn.MSELoss()
    history = TrainHistory()

    for epoch in range(1, config.epochs + 1):
        if cancel_event is not None and cancel_event.is_set():
            logger.warning("Training cancelled before epoch %d", epoch)
            raise TrainingCancelledError(epoch)

        model.train()
        total_loss = 0.0
        total_sq_err = 0.0
        seen = 0
        for xb, yb in loader:
            optimizer.zero_grad()
            preds = model(xb)
            loss = loss_fn(preds, yb)
            loss.backward()
            optimizer.step()

            n = xb.shape[0]
            total_loss += loss.item() * n
            total_sq_err += torch.mean((preds.detach() - yb) ** 2).item() * n
            seen += n

        logs = EpochLogs(epoch=epoch, loss=total_loss / seen, mse=total_sq_err / seen)
        if not math.isfinite(logs.loss):
            logger.warning("Loss diverged at epoch %d: %s", epoch, logs.loss)
            raise TrainingDivergedError(epoch, logs.loss)

        history.append(logs)
        logger.debug("epoch %d: loss=%.6f mse=%.6f", epoch, logs.loss, logs.mse)
        if on_epoch_end is not None:
            on_epoch_end(logs)

    return history


def _fit_metrics(
    model: nn.Module, samples: List[Sample], bounds: NormalizationBounds
) -> Dict[str, float]:
    """mse and r2 in mpg units over the training samples."""
    xs = bounds.normalize_inputs([s.horsepower for s in samples]).reshape(-1, 1)
    preds = bounds.denormalize_labels(predict(model, xs.astype(np.float32)).ravel())
    y_true = [s.mpg for s in samples]
    return {
        "mse": float(mean_squared_error(y_true, preds)),
        "r2": float(r2_score(y_true, preds)),
    }


def run(
    config: Optional[TrainConfig] = None,
    sink: Optional[VisualizationSink] = None,
    handle: Optional[ModelHandle] = None,
    client: Optional[httpx.Client] = None,
) -> RunResult:
    """
    High-level training entrypoint.

    - Loads and plots the cars data
    - Builds the model and draws its summary
    - Normalizes, trains (streaming progress), publishes the model
    - Evaluates the model against the original data and plots both
    """
    config = config or TrainConfig()
    sink = sink or NullSink()
    handle = handle or ModelHandle()

    with handle.training_slot() as cancel_event:
        set_reproducible(config.seed)
        rng = np.random.default_rng(config.seed)

        samples = load_samples(config.dataset_url, client=client)
        sink.scatterplot(DATA_TARGET, {"original": sample_points(samples)})

        model = create_model()
        sink.model_summary(SUMMARY_TARGET, model_summary(model))

        normalized = normalize(samples, rng=rng)

        history = TrainHistory()

        def on_epoch_end(logs: EpochLogs) -> None:
            history.append(logs)
            sink.training_progress(PROGRESS_TARGET, history)

        fit_model(
            model,
            normalized.inputs,
            normalized.labels,
            config,
            on_epoch_end=on_epoch_end,
            cancel_event=cancel_event,
        )
        logger.info("Done Training")

        trained = TrainedModel(model=model, bounds=normalized.bounds, history=history)
        handle.replace(trained)

    evaluation = evaluate_model(trained.model, samples, trained.bounds)
    sink.scatterplot(EVALUATION_TARGET, evaluation.series())

    return RunResult(
        n_samples=len(samples),
        bounds=trained.bounds,
        history=history,
        evaluation=evaluation,
        metrics=_fit_metrics(trained.model, samples, trained.bounds),
        config=config,
    )
