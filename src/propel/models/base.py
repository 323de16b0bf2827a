"""Trainable model contract and model registry primitives."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Dict

import numpy as np

from ..config.schema import ModelConfig


class TrainableModel(ABC):
    """A model exposing a flat parameter vector to the training engine.

    The engine never looks inside a model. It reads and writes the parameter vector and
    asks the model for outputs and parameter gradients against an explicit parameter
    vector, so partition workers can share one frozen snapshot.
    """

    def __init__(self) -> None:
        self._parameters = np.zeros(self.parameter_count, dtype=np.float64)

    @property
    @abstractmethod
    def parameter_count(self) -> int:
        """Length of the parameter vector, fixed for the model's lifetime."""

    def get_parameters(self) -> np.ndarray:
        return self._parameters.copy()

    def set_parameters(self, parameters) -> None:
        vector = np.array(parameters, dtype=np.float64, copy=True).reshape(-1)
        if vector.shape[0] != self.parameter_count:
            raise ValueError(f"Expected {self.parameter_count} parameters, got {vector.shape[0]}")
        self._parameters = vector

    @abstractmethod
    def compute(self, parameters: np.ndarray, inputs: np.ndarray) -> np.ndarray:
        """Forward pass for a single example against ``parameters``."""

    @abstractmethod
    def parameter_gradient(self, parameters: np.ndarray, inputs: np.ndarray, output_gradient: np.ndarray) -> np.ndarray:
        """Back-propagate ``output_gradient`` (dE/doutput) to dE/dparameters for one example."""

    def evaluate(self, inputs) -> np.ndarray:
        return self.compute(self._parameters, np.asarray(inputs, dtype=np.float64))

    def reset(self, rng: np.random.Generator) -> None:
        """Re-randomize every parameter uniformly in [-1, 1)."""
        self.set_parameters(rng.uniform(-1.0, 1.0, self.parameter_count))


ModelBuilder = Callable[[ModelConfig], TrainableModel]


class ModelRegistry:
    def __init__(self) -> None:
        self._builders: Dict[str, ModelBuilder] = {}

    def register(self, name: str, builder: ModelBuilder) -> None:
        self._builders[name] = builder

    def build(self, config: ModelConfig) -> TrainableModel:
        if config.name not in self._builders:
            raise KeyError(f"Unknown model '{config.name}'. Registered: {list(self._builders)}")
        return self._builders[config.name](config)

    def available(self) -> Dict[str, ModelBuilder]:
        return dict(self._builders)


DEFAULT_MODEL_REGISTRY = ModelRegistry()
