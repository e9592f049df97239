import json

import httpx
import numpy as np
import pytest

from mpgfit.handle import ModelHandle
from mpgfit.train import TrainConfig
from mpgfit.viz import VisualizationSink

DATASET_URL = "https://example.test/carsData.json"


class RecordingSink(VisualizationSink):
    """Keeps every drawing call so tests can inspect what was rendered."""

    def __init__(self):
        self.calls = []

    def scatterplot(self, target, series, x_label="Horsepower", y_label="MPG"):
        self.calls.append((target, {k: list(v) for k, v in series.items()}))

    def model_summary(self, target, rows):
        self.calls.append((target, list(rows)))

    def training_progress(self, target, history, metrics=("loss", "mse")):
        self.calls.append((target, history.last))

    def targets(self):
        return [target for target, _ in self.calls]


def make_cars_records(n=60, seed=0):
    rng = np.random.default_rng(seed)
    records = []
    for i in range(n):
        hp = float(rng.uniform(50, 230))
        mpg = float(45.0 - 0.15 * hp + rng.normal(0, 1.0))
        records.append({
            "Name": f"car {i}",
            "Miles_per_Gallon": round(mpg, 1),
            "Horsepower": round(hp),
            "Cylinders": 4,
        })
    # records the loader must drop
    records.append({"Name": "no mpg", "Miles_per_Gallon": None, "Horsepower": 100})
    records.append({"Name": "no hp", "Miles_per_Gallon": 25.0, "Horsepower": None})
    records.append({"Name": "missing hp key", "Miles_per_Gallon": 30.0})
    return records


def mock_client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def cars_records():
    return make_cars_records()


@pytest.fixture
def cars_client(cars_records):
    def handler(request):
        assert str(request.url) == DATASET_URL
        return httpx.Response(200, content=json.dumps(cars_records).encode())

    client = mock_client(handler)
    yield client
    client.close()


@pytest.fixture
def fast_config():
    return TrainConfig(epochs=5, seed=7, dataset_url=DATASET_URL)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def handle():
    return ModelHandle()
