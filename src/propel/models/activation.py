"""Elementwise activation functions for feed-forward networks."""

from __future__ import annotations

from typing import Callable, Dict

import numpy as np

# Keeps exp() inside the float64 range.
_EXP_LIMIT = 700.0


class ActivationFunction:
    name: str = "base"

    def activate(self, values: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def derivative(self, before: np.ndarray, after: np.ndarray) -> np.ndarray:
        """Derivative given the pre-activation ``before`` and activated ``after`` values."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class ActivationSigmoid(ActivationFunction):
    """Logistic sigmoid, output in (0, 1)."""

    name = "sigmoid"

    def activate(self, values: np.ndarray) -> np.ndarray:
        return 1.0 / (1.0 + np.exp(-np.clip(values, -_EXP_LIMIT, _EXP_LIMIT)))

    def derivative(self, before: np.ndarray, after: np.ndarray) -> np.ndarray:
        return after * (1.0 - after)


class ActivationTanh(ActivationFunction):
    name = "tanh"

    def activate(self, values: np.ndarray) -> np.ndarray:
        return np.tanh(values)

    def derivative(self, before: np.ndarray, after: np.ndarray) -> np.ndarray:
        return 1.0 - after * after


class ActivationLinear(ActivationFunction):
    name = "linear"

    def activate(self, values: np.ndarray) -> np.ndarray:
        return np.array(values, dtype=np.float64, copy=True)

    def derivative(self, before: np.ndarray, after: np.ndarray) -> np.ndarray:
        return np.ones_like(before)


_ACTIVATIONS: Dict[str, Callable[[], ActivationFunction]] = {
    "sigmoid": ActivationSigmoid,
    "tanh": ActivationTanh,
    "linear": ActivationLinear,
}


def get_activation(name: str) -> ActivationFunction:
    key = name.lower()
    if key not in _ACTIVATIONS:
        raise KeyError(f"Unknown activation '{name}'. Registered: {list(_ACTIVATIONS)}")
    return _ACTIVATIONS[key]()
