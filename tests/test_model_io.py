import json

import numpy as np
import pytest

from mpgfit.errors import InvalidModelFileError, NoModelError
from mpgfit.evaluate import linspace_grid, predict
from mpgfit.handle import ModelHandle, TrainedModel
from mpgfit.model_io import (
    load_and_predict,
    load_model,
    load_model_files,
    save_model,
    serialize_model,
    smoke_predict,
)
from mpgfit.models import create_model
from mpgfit.normalize import NormalizationBounds
from mpgfit.train import TrainHistory

BOUNDS = NormalizationBounds(input_min=46, input_max=230, label_min=9, label_max=46.6)


@pytest.fixture
def trained_handle():
    handle = ModelHandle()
    handle.replace(TrainedModel(model=create_model(), bounds=BOUNDS, history=TrainHistory()))
    return handle


def test_save_before_training_raises(tmp_path):
    with pytest.raises(NoModelError):
        save_model(ModelHandle(), directory=tmp_path)
    assert list(tmp_path.iterdir()) == []


def test_save_writes_the_pair(tmp_path, trained_handle):
    saved = save_model(trained_handle, directory=tmp_path, base_name="my-model-1")

    assert saved.manifest_path == tmp_path / "my-model-1.json"
    assert saved.weights_path == tmp_path / "my-model-1.weights.bin"
    # 177 float32 parameters
    assert saved.weights_path.stat().st_size == 177 * 4

    manifest = json.loads(saved.manifest_path.read_text())
    assert manifest["weights_manifest"][0]["paths"] == ["my-model-1.weights.bin"]
    assert [layer["units"] for layer in manifest["model_topology"]["layers"]] == [16, 8, 1]
    assert manifest["user_defined_metadata"]["normalization"] == BOUNDS.as_dict()


def test_save_load_round_trip(tmp_path, trained_handle):
    original = trained_handle.require().model
    saved = save_model(trained_handle, directory=tmp_path)

    loaded = load_model_files(saved.manifest_path, saved.weights_path)

    grid = linspace_grid(10)
    assert np.allclose(predict(loaded.model, grid), predict(original, grid), atol=1e-6)
    assert loaded.bounds == BOUNDS
    assert loaded.model is not original
    assert trained_handle.require().model is original


def test_smoke_predict_returns_ten_raw_values(trained_handle):
    manifest, weights = serialize_model(trained_handle.require().model, "m")

    preds = load_and_predict(manifest, weights, weights_name="m.weights.bin")

    assert len(preds) == 10
    assert all(isinstance(p, float) for p in preds)
    expected = predict(trained_handle.require().model, linspace_grid(10)).ravel()
    assert preds == pytest.approx(expected.tolist(), abs=1e-6)


def test_manifest_without_bounds():
    manifest, weights = serialize_model(create_model(), "m")
    loaded = load_model(manifest, weights)

    assert loaded.bounds is None
    assert len(smoke_predict(loaded, n_points=3)) == 3


def test_bad_json_manifest():
    _, weights = serialize_model(create_model(), "m")
    with pytest.raises(InvalidModelFileError):
        load_model(b"{not json", weights)


def test_unknown_format():
    _, weights = serialize_model(create_model(), "m")
    with pytest.raises(InvalidModelFileError):
        load_model(json.dumps({"format": "something-else"}), weights)


def test_truncated_weights():
    manifest, weights = serialize_model(create_model(), "m")
    with pytest.raises(InvalidModelFileError):
        load_model(manifest, weights[:-4])
    with pytest.raises(InvalidModelFileError):
        load_model(manifest, weights[:-1])


def test_weights_from_another_topology():
    manifest, _ = serialize_model(create_model(), "m")
    data = json.loads(manifest)
    data["model_topology"]["layers"][0]["units"] = 4

    _, weights = serialize_model(create_model(), "m")
    with pytest.raises(InvalidModelFileError):
        load_model(json.dumps(data), weights)


def test_unsupported_activation():
    manifest, weights = serialize_model(create_model(), "m")
    data = json.loads(manifest)
    data["model_topology"]["layers"][0]["activation"] = "tanh"

    with pytest.raises(InvalidModelFileError):
        load_model(json.dumps(data), weights)


def test_weights_file_name_must_match_manifest():
    manifest, weights = serialize_model(create_model(), "my-model-1")

    with pytest.raises(InvalidModelFileError):
        load_model(manifest, weights, weights_name="other.weights.bin")
    load_model(manifest, weights, weights_name="my-model-1.weights.bin")


def _edit_first_weight(**changes):
    manifest, weights = serialize_model(create_model(), "m")
    data = json.loads(manifest)
    data["weights_manifest"][0]["weights"][0].update(changes)
    return json.dumps(data), weights


@pytest.mark.parametrize("changes", [
    {"name": ["0.weight"]},
    {"name": 0},
    {"shape": [[16, 1]]},
    {"shape": [16, "1"]},
    {"shape": [16, True]},
    {"shape": 16},
    {"dtype": "float64"},
])
def test_malformed_weight_spec(changes):
    manifest, weights = _edit_first_weight(**changes)
    with pytest.raises(InvalidModelFileError):
        load_model(manifest, weights)


def test_weight_spec_must_be_an_object():
    manifest, weights = serialize_model(create_model(), "m")
    data = json.loads(manifest)
    data["weights_manifest"][0]["weights"][0] = "0.weight"

    with pytest.raises(InvalidModelFileError):
        load_model(json.dumps(data), weights)


def test_oversized_topology_is_rejected_before_building(monkeypatch):
    manifest, weights = serialize_model(create_model(), "m")
    data = json.loads(manifest)
    data["model_topology"]["layers"][0]["units"] = 200000
    data["model_topology"]["layers"][1]["units"] = 200000

    def fail(*args, **kwargs):
        raise AssertionError("model must not be allocated")

    monkeypatch.setattr("mpgfit.model_io.build_model", fail)
    with pytest.raises(InvalidModelFileError, match="Topology needs"):
        load_model(json.dumps(data), weights)
