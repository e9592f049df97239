# mpgfit/viz.py

"""
Visualization sinks.

The run pipeline draws to four fixed targets:
  - "data":       scatter of the input samples
  - "summary":    model summary table
  - "progress":   loss/mse per epoch, redrawn after every epoch
  - "evaluation": original samples vs. predicted curve

FigureSink renders each target to <directory>/<target>.png with matplotlib.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Sequence

import matplotlib

matplotlib.use("Agg")  # headless: figures go to files, never to a window
import matplotlib.pyplot as plt

if TYPE_CHECKING:
    from .evaluate import PredictionPoint
    from .train import TrainHistory

logger = logging.getLogger(__name__)

DATA_TARGET = "data"
SUMMARY_TARGET = "summary"
PROGRESS_TARGET = "progress"
EVALUATION_TARGET = "evaluation"

TARGETS = (DATA_TARGET, SUMMARY_TARGET, PROGRESS_TARGET, EVALUATION_TARGET)


class VisualizationSink(ABC):
    @abstractmethod
    def scatterplot(
        self,
        target: str,
        series: Mapping[str, Sequence["PredictionPoint"]],
        x_label: str = "Horsepower",
        y_label: str = "MPG",
    ) -> None:
        ...

    @abstractmethod
    def model_summary(self, target: str, rows: Sequence[Dict[str, Any]]) -> None:
        ...

    @abstractmethod
    def training_progress(
        self,
        target: str,
        history: "TrainHistory",
        metrics: Sequence[str] = ("loss", "mse"),
    ) -> None:
        ...


class NullSink(VisualizationSink):
    """Drops everything. Used when nobody is watching (e.g. batch CLI runs)."""

    def scatterplot(self, target, series, x_label="Horsepower", y_label="MPG"):
        pass

    def model_summary(self, target, rows):
        pass

    def training_progress(self, target, history, metrics=("loss", "mse")):
        pass


class FigureSink(VisualizationSink):
    def __init__(self, directory: Path, height: float = 3.0, width: float = 5.0):
        self.directory = Path(directory)
        self.height = height
        self.width = width

    def path_for(self, target: str) -> Path:
        return self.directory / f"{target}.png"

    def _save(self, fig, target: str) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(target)
        fig.savefig(path, dpi=100, bbox_inches="tight")
        plt.close(fig)
        logger.debug("Rendered %s", path)
        return path

    def scatterplot(self, target, series, x_label="Horsepower", y_label="MPG"):
        fig, ax = plt.subplots(figsize=(self.width, self.height))
        for name, points in series.items():
            ax.scatter([p.x for p in points], [p.y for p in points], s=8, label=name)
        ax.set_xlabel(x_label)
        ax.set_ylabel(y_label)
        if len(series) > 1:
            ax.legend()
        self._save(fig, target)

    def model_summary(self, target, rows):
        fig, ax = plt.subplots(figsize=(self.width, 0.4 * (len(rows) + 1)))
        ax.axis("off")
        columns = ["Layer Name", "Output Shape", "# Of Params"]
        cells: List[List[str]] = [
            [str(r["name"]), str(r["output_shape"]), str(r["params"])] for r in rows
        ]
        table = ax.table(cellText=cells, colLabels=columns, loc="center")
        table.auto_set_font_size(False)
        table.set_fontsize(9)
        self._save(fig, target)

    def training_progress(self, target, history, metrics=("loss", "mse")):
        fig, axes = plt.subplots(
            1, len(metrics), figsize=(self.width * len(metrics) / 1.5, self.height)
        )
        if len(metrics) == 1:
            axes = [axes]
        curves = history.as_dict()
        for ax, metric in zip(axes, metrics):
            ax.plot(curves["epoch"], curves[metric])
            ax.set_xlabel("Epoch")
            ax.set_ylabel(metric)
        fig.tight_layout()
        self._save(fig, target)
