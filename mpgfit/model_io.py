# mpgfit/model_io.py

"""
Saving and loading models as a manifest+weights pair.

  <base>.json          topology, weight specs and normalization bounds
  <base>.weights.bin   every weight as little-endian float32, concatenated
                       in manifest order

The layout follows the layers-model format used by browser ML libraries,
so a pair is always two files that must be handed over together.
"""

from __future__ import annotations

import json
import math
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
import torch
from torch import nn

from . import __version__
from .config import DOWNLOADS_DIR, SAVE_MODEL_NAME
from .errors import InvalidModelFileError
from .evaluate import linspace_grid, predict
from .handle import ModelHandle
from .models import Activation, LayerSpec, build_model, describe_topology
from .normalize import NormalizationBounds

logger = logging.getLogger(__name__)

FORMAT_NAME = "mpgfit-layers-model"
FORMAT_VERSION = 1
WEIGHTS_DTYPE = "float32"
WEIGHTS_SUFFIX = ".weights.bin"
SMOKE_TEST_POINTS = 10


@dataclass
class SavedModel:
    manifest_path: Path
    weights_path: Path

    @property
    def paths(self) -> List[Path]:
        return [self.manifest_path, self.weights_path]


@dataclass
class LoadedModel:
    model: nn.Sequential
    manifest: Dict[str, Any]

    @property
    def bounds(self) -> Optional[NormalizationBounds]:
        """Normalization bounds stored with the model, if the manifest has them."""
        meta = self.manifest.get("user_defined_metadata") or {}
        norm = meta.get("normalization")
        if not isinstance(norm, dict):
            return None
        try:
            return NormalizationBounds.from_dict(norm)
        except (KeyError, TypeError, ValueError):
            return None


# ---------- Serialization ----------

def serialize_model(
    model: nn.Sequential,
    base_name: str = SAVE_MODEL_NAME,
    bounds: Optional[NormalizationBounds] = None,
) -> Tuple[bytes, bytes]:
    """Return (manifest bytes, weights bytes) for model."""
    layers = describe_topology(model)
    state = model.state_dict()

    weight_specs = []
    chunks = []
    for name, tensor in state.items():
        array = tensor.detach().cpu().numpy().astype("<f4")
        weight_specs.append({
            "name": name,
            "shape": list(array.shape),
            "dtype": WEIGHTS_DTYPE,
        })
        chunks.append(array.ravel())

    manifest: Dict[str, Any] = {
        "format": FORMAT_NAME,
        "format_version": FORMAT_VERSION,
        "generated_by": f"mpgfit {__version__}",
        "model_topology": {
            "input_units": model[0].in_features,
            "layers": [spec.as_dict() for spec in layers],
        },
        "weights_manifest": [{
            "paths": [f"{base_name}{WEIGHTS_SUFFIX}"],
            "weights": weight_specs,
        }],
    }
    if bounds is not None:
        manifest["user_defined_metadata"] = {"normalization": bounds.as_dict()}

    weights = np.concatenate(chunks).astype("<f4").tobytes() if chunks else b""
    return json.dumps(manifest, indent=2).encode("utf-8"), weights


def save_model(
    handle: ModelHandle,
    directory: Path = DOWNLOADS_DIR,
    base_name: str = SAVE_MODEL_NAME,
) -> SavedModel:
    """
    Write the handle's current model to <directory>/<base_name>.json and
    <base_name>.weights.bin. Raises NoModelError before the first
    completed training run.
    """
    trained = handle.require()
    manifest, weights = serialize_model(trained.model, base_name, trained.bounds)

    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    saved = SavedModel(
        manifest_path=directory / f"{base_name}.json",
        weights_path=directory / f"{base_name}{WEIGHTS_SUFFIX}",
    )
    saved.manifest_path.write_bytes(manifest)
    saved.weights_path.write_bytes(weights)

    logger.info("Saved model to %s and %s", saved.manifest_path, saved.weights_path)
    return saved


# ---------- Deserialization ----------

def _parse_manifest(manifest: Union[bytes, str]) -> Dict[str, Any]:
    try:
        data = json.loads(manifest)
    except (UnicodeDecodeError, ValueError) as e:
        raise InvalidModelFileError(f"Manifest is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InvalidModelFileError("Manifest must be a JSON object")
    if data.get("format") != FORMAT_NAME:
        raise InvalidModelFileError(f"Unknown manifest format: {data.get('format')!r}")
    return data


def _parse_layers(manifest: Dict[str, Any]) -> Tuple[int, List[LayerSpec]]:
    try:
        topology = manifest["model_topology"]
        input_units = int(topology["input_units"])
        layers = [
            LayerSpec(
                units=int(layer["units"]),
                activation=Activation(layer.get("activation", "linear")),
                use_bias=bool(layer.get("use_bias", True)),
            )
            for layer in topology["layers"]
        ]
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidModelFileError(f"Bad model topology in manifest: {e}") from e
    if not layers or input_units < 1 or any(spec.units < 1 for spec in layers):
        raise InvalidModelFileError("Manifest topology has no usable layers")
    return input_units, layers


def _parse_weight_spec(spec: Any) -> Tuple[str, Tuple[int, ...]]:
    if not isinstance(spec, dict):
        raise InvalidModelFileError(f"Weight spec must be an object, got {spec!r}")
    name = spec.get("name")
    shape = spec.get("shape")
    if not isinstance(name, str):
        raise InvalidModelFileError(f"Weight name must be a string, got {name!r}")
    if not isinstance(shape, list) or not all(
        isinstance(d, int) and not isinstance(d, bool) and d >= 0 for d in shape
    ):
        raise InvalidModelFileError(f"Weight {name!r} has a bad shape: {shape!r}")
    if spec.get("dtype", WEIGHTS_DTYPE) != WEIGHTS_DTYPE:
        raise InvalidModelFileError(f"Unsupported dtype for {name}: {spec['dtype']}")
    return name, tuple(shape)


def _weight_specs(manifest: Dict[str, Any]) -> Tuple[List[str], List[Tuple[str, Tuple[int, ...]]]]:
    try:
        groups = manifest["weights_manifest"]
        paths = [str(p) for group in groups for p in group["paths"]]
        raw_specs = [spec for group in groups for spec in group["weights"]]
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidModelFileError(f"Bad weights manifest: {e}") from e
    return paths, [_parse_weight_spec(spec) for spec in raw_specs]


def _parameter_count(layers: List[LayerSpec], input_units: int) -> int:
    """Number of float32 values a model with this topology holds."""
    total = 0
    in_features = input_units
    for spec in layers:
        total += in_features * spec.units + (spec.units if spec.use_bias else 0)
        in_features = spec.units
    return total


def load_model(
    manifest: Union[bytes, str],
    weights: bytes,
    weights_name: Optional[str] = None,
) -> LoadedModel:
    """
    Rebuild a model from a manifest and its weights blob.

    weights_name, when given, must be one of the weight file names the
    manifest lists. Raises InvalidModelFileError on any mismatch. Sizes
    are checked against the blob before any layer is allocated.
    """
    data = _parse_manifest(manifest)
    input_units, layers = _parse_layers(data)
    paths, specs = _weight_specs(data)

    if weights_name is not None and Path(weights_name).name not in paths:
        raise InvalidModelFileError(
            f"Weight file {weights_name!r} is not listed in the manifest (expected {paths})"
        )

    flat = np.frombuffer(weights, dtype="<f4") if len(weights) % 4 == 0 else None
    declared = sum(math.prod(shape) for _, shape in specs)
    if flat is None or flat.size != declared:
        raise InvalidModelFileError(
            f"Weights blob has {len(weights)} bytes, manifest declares {declared * 4}"
        )
    topology_size = _parameter_count(layers, input_units)
    if topology_size != declared:
        raise InvalidModelFileError(
            f"Topology needs {topology_size} weights, manifest declares {declared}"
        )

    model = build_model(layers, input_units=input_units)
    expected = model.state_dict()

    state: Dict[str, torch.Tensor] = {}
    offset = 0
    for name, shape in specs:
        if name not in expected or tuple(expected[name].shape) != shape:
            raise InvalidModelFileError(
                f"Weight {name!r} with shape {shape} does not match the model topology"
            )
        size = math.prod(shape)
        state[name] = torch.from_numpy(flat[offset:offset + size].reshape(shape).copy())
        offset += size

    missing = set(expected) - set(state)
    if missing:
        raise InvalidModelFileError(f"Weights missing for {sorted(missing)}")

    model.load_state_dict(state)
    model.eval()
    logger.info("Loaded model with %d layers", len(layers))
    return LoadedModel(model=model, manifest=data)


def load_model_files(manifest_path: Path, weights_path: Path) -> LoadedModel:
    manifest_path = Path(manifest_path)
    weights_path = Path(weights_path)
    return load_model(
        manifest_path.read_bytes(),
        weights_path.read_bytes(),
        weights_name=weights_path.name,
    )


def smoke_predict(loaded: LoadedModel, n_points: int = SMOKE_TEST_POINTS) -> List[float]:
    """Raw (still normalized) predictions over n_points evenly spread on [0, 1]."""
    preds = predict(loaded.model, linspace_grid(n_points))
    return [float(v) for v in preds.ravel()]


def load_and_predict(
    manifest: Union[bytes, str],
    weights: bytes,
    weights_name: Optional[str] = None,
) -> List[float]:
    """Load an uploaded model pair and run the 10-point smoke inference."""
    return smoke_predict(load_model(manifest, weights, weights_name=weights_name))
