# mpgfit/models.py

import logging
from enum import Enum
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

from torch import nn

logger = logging.getLogger(__name__)


class Activation(str, Enum):
    RELU = "relu"
    LINEAR = "linear"


@dataclass(frozen=True)
class LayerSpec:
    """
    One dense layer of the network.
    - units: output width of the layer
    - activation: applied after the affine map ('linear' means none)
    - use_bias: whether the layer has a bias vector
    """
    units: int
    activation: Activation = Activation.LINEAR
    use_bias: bool = True

    def as_dict(self) -> Dict[str, Any]:
        return {
            "units": self.units,
            "activation": self.activation.value,
            "use_bias": self.use_bias,
        }


# horsepower in, mpg out
INPUT_UNITS = 1

# 1 -> 16 (relu) -> 8 (relu) -> 1 (linear)
DEFAULT_LAYERS = (
    LayerSpec(units=16, activation=Activation.RELU),
    LayerSpec(units=8, activation=Activation.RELU),
    LayerSpec(units=1, activation=Activation.LINEAR),
)


def build_model(layers: Sequence[LayerSpec], input_units: int = INPUT_UNITS) -> nn.Sequential:
    """
    Stack dense layers into a Sequential.

    Weights start Glorot-uniform and biases at zero, the usual defaults for
    dense layers in Keras-style libraries.
    """
    if not layers:
        raise ValueError("A model needs at least one layer")

    modules: List[nn.Module] = []
    in_features = input_units
    for spec in layers:
        linear = nn.Linear(in_features, spec.units, bias=spec.use_bias)
        nn.init.xavier_uniform_(linear.weight)
        if linear.bias is not None:
            nn.init.zeros_(linear.bias)
        modules.append(linear)

        if spec.activation == Activation.RELU:
            modules.append(nn.ReLU())
        elif spec.activation != Activation.LINEAR:
            raise ValueError(f"Unhandled activation: {spec.activation}")

        in_features = spec.units

    return nn.Sequential(*modules)


def create_model() -> nn.Sequential:
    """The fixed regression network used by every training run."""
    model = build_model(DEFAULT_LAYERS)
    logger.info("Created model with %d parameters", count_parameters(model))
    return model


def describe_topology(model: nn.Sequential) -> List[LayerSpec]:
    """Recover the layer specs of a Sequential built by build_model."""
    specs: List[LayerSpec] = []
    for module in model:
        if isinstance(module, nn.Linear):
            specs.append(LayerSpec(
                units=module.out_features,
                use_bias=module.bias is not None,
            ))
        elif isinstance(module, nn.ReLU):
            if not specs:
                raise ValueError("ReLU before the first dense layer")
            last = specs[-1]
            specs[-1] = LayerSpec(last.units, Activation.RELU, last.use_bias)
        else:
            raise ValueError(f"Unsupported module in model: {module!r}")
    return specs


def count_parameters(model: nn.Module) -> int:
    return sum(p.numel() for p in model.parameters())


def model_summary(model: nn.Sequential) -> List[Dict[str, Any]]:
    """
    One row per dense layer: name, output shape and trainable parameters,
    in the shape of a Keras model.summary() table.
    """
    rows: List[Dict[str, Any]] = []
    for i, (spec, linear) in enumerate(
        zip(describe_topology(model), (m for m in model if isinstance(m, nn.Linear)))
    ):
        rows.append({
            "name": f"dense_{i + 1} ({spec.activation.value})",
            "output_shape": f"[batch,{spec.units}]",
            "params": count_parameters(linear),
        })
    return rows
