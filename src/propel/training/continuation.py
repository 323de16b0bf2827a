"""Pause/resume snapshots of a training session.

A ``TrainingContinuation`` is a plain immutable value: read-only copies of the parameter
vector and optimizer state plus the counters needed to carry on exactly where training
stopped. It never holds a reference into a live controller and never includes the
training set; the caller supplies an equivalent one on resume. Byte-level persistence is
left to the host application, ``to_dict``/``from_dict`` bridge to plain Python data.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

import numpy as np

from ..core.exceptions import IncompatibleContinuationError
from ..core.logging import get_logger
from .propagation import copy_state
from .state import BestSnapshot, IterationRecord

if TYPE_CHECKING:
    from .controller import TrainingController

LOGGER = get_logger(__name__)


def _frozen_vector(values) -> np.ndarray:
    array = np.array(values, dtype=np.float64, copy=True).reshape(-1)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class TrainingContinuation:
    parameters: np.ndarray
    optimizer_state: Mapping[str, np.ndarray]
    rule: str
    learning_rate: float
    momentum: float
    iteration: int
    error: Optional[float]
    work: int
    best: Optional[BestSnapshot] = None
    token: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", _frozen_vector(self.parameters))
        object.__setattr__(self, "optimizer_state", MappingProxyType(copy_state(self.optimizer_state, read_only=True)))

    @property
    def parameter_count(self) -> int:
        return int(self.parameters.shape[0])

    def to_dict(self) -> Dict[str, Any]:
        best = None
        if self.best is not None:
            best = {
                "iteration": self.best.record.iteration,
                "error": self.best.record.error,
                "work": self.best.record.work,
                "parameters": self.best.parameters.tolist(),
                "optimizer_state": {key: value.tolist() for key, value in self.best.optimizer_state.items()},
            }
        return {
            "token": self.token,
            "rule": self.rule,
            "learning_rate": self.learning_rate,
            "momentum": self.momentum,
            "iteration": self.iteration,
            "error": self.error,
            "work": self.work,
            "parameters": self.parameters.tolist(),
            "optimizer_state": {key: value.tolist() for key, value in self.optimizer_state.items()},
            "best": best,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TrainingContinuation":
        best_payload = payload.get("best")
        best = None
        if best_payload is not None:
            best = BestSnapshot(
                record=IterationRecord(
                    iteration=int(best_payload["iteration"]),
                    error=float(best_payload["error"]),
                    work=int(best_payload["work"]),
                ),
                parameters=np.asarray(best_payload["parameters"], dtype=np.float64),
                optimizer_state={key: np.asarray(value) for key, value in best_payload.get("optimizer_state", {}).items()},
            )
        error = payload.get("error")
        return cls(
            parameters=np.asarray(payload["parameters"], dtype=np.float64),
            optimizer_state={key: np.asarray(value) for key, value in payload.get("optimizer_state", {}).items()},
            rule=str(payload["rule"]),
            learning_rate=float(payload["learning_rate"]),
            momentum=float(payload.get("momentum", 0.0)),
            iteration=int(payload.get("iteration", 0)),
            error=None if error is None else float(error),
            work=int(payload.get("work", 0)),
            best=best,
            token=str(payload.get("token") or uuid.uuid4().hex),
        )


def capture(controller: "TrainingController") -> TrainingContinuation:
    """Snapshot the controller's resumable state."""
    return TrainingContinuation(
        parameters=controller.model.get_parameters(),
        optimizer_state=controller.engine.export_state(),
        rule=controller.engine.rule.name,
        learning_rate=controller.controls.learning_rate,
        momentum=controller.controls.momentum,
        iteration=controller.iteration_number,
        error=controller.error,
        work=controller.work,
        best=controller.best_snapshot,
    )


def _check_state_shapes(state: Mapping[str, np.ndarray], expected: Mapping[str, np.ndarray], what: str) -> None:
    if set(state) != set(expected):
        raise IncompatibleContinuationError(
            f"{what} keys {sorted(state)} do not match {sorted(expected)}",
            metadata={"expected": sorted(expected), "actual": sorted(state)},
        )
    for key, value in state.items():
        if np.shape(value) != np.shape(expected[key]):
            raise IncompatibleContinuationError(
                f"{what} entry '{key}' has shape {np.shape(value)}, expected {np.shape(expected[key])}",
                metadata={"key": key},
            )


def validate(continuation: TrainingContinuation, controller: "TrainingController") -> None:
    expected_count = controller.model.parameter_count
    if continuation.parameter_count != expected_count:
        raise IncompatibleContinuationError(
            f"Continuation holds {continuation.parameter_count} parameters, model expects {expected_count}",
            metadata={"expected": expected_count, "actual": continuation.parameter_count},
        )
    if continuation.rule != controller.engine.rule.name:
        raise IncompatibleContinuationError(
            f"Continuation was captured with update rule '{continuation.rule}', controller uses '{controller.engine.rule.name}'",
            metadata={"expected": controller.engine.rule.name, "actual": continuation.rule},
        )
    template = controller.engine.rule.initial_state(expected_count)
    _check_state_shapes(continuation.optimizer_state, template, "Optimizer state")
    if continuation.best is not None:
        if continuation.best.parameters.shape[0] != expected_count:
            raise IncompatibleContinuationError(
                "Best-record parameters do not match the model",
                metadata={"expected": expected_count, "actual": int(continuation.best.parameters.shape[0])},
            )
        _check_state_shapes(continuation.best.optimizer_state, template, "Best-record optimizer state")


def restore(continuation: TrainingContinuation, controller: "TrainingController") -> None:
    """Validate, then replace parameters, optimizer state, controls and counters together."""
    validate(continuation, controller)
    controller.model.set_parameters(continuation.parameters)
    controller.engine.load_state(continuation.optimizer_state)
    controller.controls.learning_rate = continuation.learning_rate
    controller.controls.momentum = continuation.momentum
    controller._restore_counters(
        iteration=continuation.iteration,
        error=continuation.error,
        work=continuation.work,
        best=continuation.best,
    )
    LOGGER.debug(
        "continuation_restored",
        extra={"extra_context": {"iteration": continuation.iteration, "token": continuation.token}},
    )
