import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from propel.data import TrainingSet  # noqa: E402
from propel.training import Strategy, StrategyAction  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "torch: marks tests that train torch modules")


class ErrorRecorder(Strategy):
    """Test strategy that records every error it observes."""

    name = "recorder"

    def __init__(self) -> None:
        super().__init__()
        self.errors = []
        self.best_errors = []

    def after_iteration(self, current_error, best_error):
        self.errors.append(current_error)
        self.best_errors.append(best_error)
        return StrategyAction.NONE


@pytest.fixture
def recorder():
    return ErrorRecorder()


@pytest.fixture
def linear_set():
    """Four examples, linearly separable and exactly representable by y = x1."""
    return TrainingSet([[0, 0], [0, 1], [1, 0], [1, 1]], [[0], [0], [1], [1]])


@pytest.fixture
def xor_set():
    return TrainingSet([[0, 0], [0, 1], [1, 0], [1, 1]], [[0], [1], [1], [0]])


@pytest.fixture
def regression_set():
    rng = np.random.default_rng(1234)
    inputs = rng.normal(size=(11, 3))
    ideals = np.stack([np.sin(inputs[:, 0]) + inputs[:, 1], inputs[:, 2] ** 2], axis=1)
    return TrainingSet(inputs, ideals)
