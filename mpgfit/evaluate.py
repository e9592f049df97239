# mpgfit/evaluate.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

import numpy as np
import torch
from torch import nn

from .data import Sample
from .normalize import NormalizationBounds

# Points in the uniform grid used to draw the predicted curve
GRID_POINTS = 100


@dataclass(frozen=True)
class PredictionPoint:
    x: float
    y: float


@dataclass
class Evaluation:
    original: List[PredictionPoint]
    predicted: List[PredictionPoint]

    series_names = ("original", "predicted")

    def series(self) -> Dict[str, List[PredictionPoint]]:
        return dict(zip(self.series_names, (self.original, self.predicted)))

    def as_dict(self) -> Dict[str, Any]:
        return {
            name: [{"x": p.x, "y": p.y} for p in points]
            for name, points in self.series().items()
        }


def linspace_grid(n_points: int) -> np.ndarray:
    """n_points evenly spaced over [0, 1], shaped (n_points, 1)."""
    return np.linspace(0.0, 1.0, n_points, dtype=np.float32).reshape(n_points, 1)


def predict(model: nn.Module, xs: np.ndarray) -> np.ndarray:
    """Forward pass without gradients. xs is (n, 1); returns (n, 1)."""
    model.eval()
    with torch.no_grad():
        out = model(torch.as_tensor(xs, dtype=torch.float32))
    return out.numpy()


def sample_points(samples: Sequence[Sample]) -> List[PredictionPoint]:
    return [PredictionPoint(x=s.horsepower, y=s.mpg) for s in samples]


def evaluate_model(
    model: nn.Module,
    samples: Sequence[Sample],
    bounds: NormalizationBounds,
    n_points: int = GRID_POINTS,
) -> Evaluation:
    """
    Predict over a uniform grid on the normalized domain and map both the
    grid and the predictions back to horsepower/mpg using the bounds of
    the training run.
    """
    xs = linspace_grid(n_points)
    preds = predict(model, xs)

    un_norm_xs = bounds.denormalize_inputs(xs.ravel())
    un_norm_preds = bounds.denormalize_labels(preds.ravel())

    predicted = [
        PredictionPoint(x=float(x), y=float(y))
        for x, y in zip(un_norm_xs, un_norm_preds)
    ]
    return Evaluation(original=sample_points(samples), predicted=predicted)
