"""Per-example error functions."""

from __future__ import annotations

from typing import Callable, Dict, Tuple

import numpy as np


class ErrorFunction:
    """Maps ``(ideal, actual)`` to a scalar error and dE/dactual."""

    name: str = "base"

    def compute(self, ideal: np.ndarray, actual: np.ndarray) -> Tuple[float, np.ndarray]:
        raise NotImplementedError


class MeanSquaredError(ErrorFunction):
    """Squared difference averaged over the output width."""

    name = "mse"

    def compute(self, ideal: np.ndarray, actual: np.ndarray) -> Tuple[float, np.ndarray]:
        diff = actual - ideal
        width = diff.shape[0]
        return float(np.dot(diff, diff)) / width, (2.0 / width) * diff


class SumSquaredError(ErrorFunction):
    name = "sse"

    def compute(self, ideal: np.ndarray, actual: np.ndarray) -> Tuple[float, np.ndarray]:
        diff = actual - ideal
        return float(np.dot(diff, diff)), 2.0 * diff


_ERROR_FUNCTIONS: Dict[str, Callable[[], ErrorFunction]] = {
    "mse": MeanSquaredError,
    "sse": SumSquaredError,
}


def get_error_function(name: str) -> ErrorFunction:
    key = name.lower()
    if key not in _ERROR_FUNCTIONS:
        raise KeyError(f"Unknown error function '{name}'. Registered: {list(_ERROR_FUNCTIONS)}")
    return _ERROR_FUNCTIONS[key]()
