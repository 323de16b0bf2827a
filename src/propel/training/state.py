"""Controller lifecycle state and iteration records."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping

import numpy as np


class TrainingState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    ACTIVE = "active"
    PAUSED = "paused"
    FINISHED = "finished"


@dataclass(frozen=True)
class IterationRecord:
    iteration: int
    error: float
    # Cumulative number of examples evaluated up to and including this iteration.
    work: int


@dataclass(frozen=True, eq=False)
class BestSnapshot:
    """Best iteration so far with the parameters and optimizer state that produced it."""

    record: IterationRecord
    parameters: np.ndarray
    optimizer_state: Mapping[str, np.ndarray] = field(default_factory=dict)

    def __post_init__(self) -> None:
        parameters = np.array(self.parameters, dtype=np.float64, copy=True)
        parameters.setflags(write=False)
        state = {}
        for key, value in self.optimizer_state.items():
            array = np.array(value, dtype=np.float64, copy=True)
            array.setflags(write=False)
            state[key] = array
        object.__setattr__(self, "parameters", parameters)
        object.__setattr__(self, "optimizer_state", MappingProxyType(state))

    @property
    def error(self) -> float:
        return self.record.error
