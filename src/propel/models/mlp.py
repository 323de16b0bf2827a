"""Fully connected feed-forward network."""

from __future__ import annotations

from typing import List, Sequence

import numpy as np

from ..config.schema import ModelConfig
from .activation import ActivationFunction, ActivationSigmoid, get_activation
from .base import DEFAULT_MODEL_REGISTRY, TrainableModel


class FeedForwardNetwork(TrainableModel):
    """Dense layers with per-layer activations.

    Each layer contributes its row-major ``(out, in)`` weight matrix followed by its bias
    vector to the flat parameter vector, input layer first.
    """

    def __init__(
        self,
        layer_sizes: Sequence[int],
        activations: Sequence[ActivationFunction] | ActivationFunction | None = None,
    ) -> None:
        if len(layer_sizes) < 2 or any(size < 1 for size in layer_sizes):
            raise ValueError("layer_sizes needs at least an input and an output layer, all >= 1")
        self.layer_sizes = [int(size) for size in layer_sizes]
        n_layers = len(self.layer_sizes) - 1
        if activations is None:
            activations = ActivationSigmoid()
        if isinstance(activations, ActivationFunction):
            activations = [activations] * n_layers
        if len(activations) != n_layers:
            raise ValueError(f"Expected {n_layers} activations, got {len(activations)}")
        self.activations: List[ActivationFunction] = list(activations)
        self._offsets = self._layer_offsets()
        super().__init__()

    def _layer_offsets(self) -> List[tuple[int, int, int]]:
        offsets = []
        cursor = 0
        for fan_in, fan_out in zip(self.layer_sizes[:-1], self.layer_sizes[1:]):
            offsets.append((cursor, fan_in, fan_out))
            cursor += fan_out * fan_in + fan_out
        return offsets

    @property
    def parameter_count(self) -> int:
        return sum(fan_out * fan_in + fan_out for _, fan_in, fan_out in self._layer_offsets())

    def _layer(self, parameters: np.ndarray, index: int) -> tuple[np.ndarray, np.ndarray]:
        start, fan_in, fan_out = self._offsets[index]
        split = start + fan_out * fan_in
        return parameters[start:split].reshape(fan_out, fan_in), parameters[split : split + fan_out]

    def _forward(self, parameters: np.ndarray, inputs: np.ndarray):
        befores, afters = [], [inputs]
        current = inputs
        for index, activation in enumerate(self.activations):
            weights, bias = self._layer(parameters, index)
            before = weights @ current + bias
            current = activation.activate(before)
            befores.append(before)
            afters.append(current)
        return befores, afters

    def compute(self, parameters: np.ndarray, inputs: np.ndarray) -> np.ndarray:
        _, afters = self._forward(parameters, inputs)
        return afters[-1]

    def parameter_gradient(self, parameters: np.ndarray, inputs: np.ndarray, output_gradient: np.ndarray) -> np.ndarray:
        befores, afters = self._forward(parameters, inputs)
        gradient = np.zeros(self.parameter_count, dtype=np.float64)
        delta = np.asarray(output_gradient, dtype=np.float64)
        for index in reversed(range(len(self.activations))):
            delta = delta * self.activations[index].derivative(befores[index], afters[index + 1])
            start, fan_in, fan_out = self._offsets[index]
            split = start + fan_out * fan_in
            gradient[start:split] = np.outer(delta, afters[index]).ravel()
            gradient[split : split + fan_out] = delta
            if index:
                weights, _ = self._layer(parameters, index)
                delta = weights.T @ delta
        return gradient


def build_feedforward(config: ModelConfig) -> TrainableModel:
    params = config.parameters
    layer_sizes = params.get("layer_sizes", [2, 3, 1])
    activation = params.get("activation", "sigmoid")
    if isinstance(activation, str):
        activations: Sequence[ActivationFunction] | ActivationFunction = get_activation(activation)
    else:
        activations = [get_activation(name) for name in activation]
    return FeedForwardNetwork(layer_sizes=layer_sizes, activations=activations)


DEFAULT_MODEL_REGISTRY.register("feedforward", build_feedforward)
