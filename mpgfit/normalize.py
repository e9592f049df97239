# mpgfit/normalize.py

"""
Min/max scaling of the (horsepower, mpg) samples to the [0, 1] range.

The bounds computed here travel with the trained model (see
mpgfit.handle.TrainedModel) and are the only thing used to map predictions
back to horsepower and mpg units.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, MutableSequence, Optional

import numpy as np
from sklearn.preprocessing import MinMaxScaler

from .data import Sample
from .errors import DegenerateDataError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizationBounds:
    input_min: float
    input_max: float
    label_min: float
    label_max: float

    @property
    def input_range(self) -> float:
        return self.input_max - self.input_min

    @property
    def label_range(self) -> float:
        return self.label_max - self.label_min

    def normalize_inputs(self, values) -> np.ndarray:
        return (np.asarray(values, dtype=np.float64) - self.input_min) / self.input_range

    def normalize_labels(self, values) -> np.ndarray:
        return (np.asarray(values, dtype=np.float64) - self.label_min) / self.label_range

    def denormalize_inputs(self, values) -> np.ndarray:
        return np.asarray(values, dtype=np.float64) * self.input_range + self.input_min

    def denormalize_labels(self, values) -> np.ndarray:
        return np.asarray(values, dtype=np.float64) * self.label_range + self.label_min

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NormalizationBounds":
        return cls(
            input_min=float(data["input_min"]),
            input_max=float(data["input_max"]),
            label_min=float(data["label_min"]),
            label_max=float(data["label_max"]),
        )


@dataclass
class NormalizedData:
    inputs: np.ndarray   # (n, 1) float32, horsepower scaled to [0, 1]
    labels: np.ndarray   # (n, 1) float32, mpg scaled to [0, 1]
    bounds: NormalizationBounds


def shuffle_samples(
    samples: MutableSequence[Sample],
    rng: Optional[np.random.Generator] = None,
) -> None:
    """Shuffle samples in place. Without an rng the order is not reproducible."""
    if rng is None:
        rng = np.random.default_rng()
    rng.shuffle(samples)


def normalize(
    samples: List[Sample],
    rng: Optional[np.random.Generator] = None,
) -> NormalizedData:
    """
    Shuffle the samples (in place), split them into horsepower inputs and
    mpg labels, and min/max scale both to [0, 1].

    Raises DegenerateDataError for an empty sequence or when either
    dimension has max == min (the scaling would divide by zero).
    """
    if not samples:
        raise DegenerateDataError("Cannot normalize an empty sample sequence")

    shuffle_samples(samples, rng)

    table = np.array([[s.horsepower, s.mpg] for s in samples], dtype=np.float64)
    scaler = MinMaxScaler(feature_range=(0, 1))
    scaler.fit(table)
    for name, lo, span in zip(("horsepower", "mpg"), scaler.data_min_, scaler.data_range_):
        if span == 0:
            raise DegenerateDataError(
                f"All {name} values equal {lo}; min/max scaling needs a non-zero range"
            )
    scaled = scaler.transform(table).astype(np.float32)

    bounds = NormalizationBounds(
        input_min=float(scaler.data_min_[0]),
        input_max=float(scaler.data_max_[0]),
        label_min=float(scaler.data_min_[1]),
        label_max=float(scaler.data_max_[1]),
    )
    logger.info("Normalization bounds: %s", bounds)

    return NormalizedData(
        inputs=np.ascontiguousarray(scaled[:, :1]),
        labels=np.ascontiguousarray(scaled[:, 1:]),
        bounds=bounds,
    )
