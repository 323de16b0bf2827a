"""Affine model ``y = W x + b``."""

from __future__ import annotations

import numpy as np

from ..config.schema import ModelConfig
from .base import DEFAULT_MODEL_REGISTRY, TrainableModel


class LinearModel(TrainableModel):
    """Parameters are laid out as the row-major weight matrix followed by the bias."""

    def __init__(self, input_dim: int, output_dim: int = 1, bias: bool = True) -> None:
        if input_dim < 1 or output_dim < 1:
            raise ValueError("input_dim and output_dim must be >= 1")
        self.input_dim = input_dim
        self.output_dim = output_dim
        self.bias = bias
        super().__init__()

    @property
    def parameter_count(self) -> int:
        return self.output_dim * self.input_dim + (self.output_dim if self.bias else 0)

    def _split(self, parameters: np.ndarray) -> tuple[np.ndarray, np.ndarray | None]:
        n_weights = self.output_dim * self.input_dim
        weights = parameters[:n_weights].reshape(self.output_dim, self.input_dim)
        bias = parameters[n_weights:] if self.bias else None
        return weights, bias

    def compute(self, parameters: np.ndarray, inputs: np.ndarray) -> np.ndarray:
        weights, bias = self._split(parameters)
        outputs = weights @ inputs
        if bias is not None:
            outputs = outputs + bias
        return outputs

    def parameter_gradient(self, parameters: np.ndarray, inputs: np.ndarray, output_gradient: np.ndarray) -> np.ndarray:
        grad_weights = np.outer(output_gradient, inputs).ravel()
        if not self.bias:
            return grad_weights
        return np.concatenate([grad_weights, output_gradient])


def build_linear(config: ModelConfig) -> TrainableModel:
    params = config.parameters
    return LinearModel(
        input_dim=int(params.get("input_dim", 1)),
        output_dim=int(params.get("output_dim", 1)),
        bias=bool(params.get("bias", True)),
    )


DEFAULT_MODEL_REGISTRY.register("linear", build_linear)
