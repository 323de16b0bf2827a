"""Update rules and the propagation engine that applies them."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Iterable, Mapping, Tuple

import numpy as np

from ..config.schema import UpdateRuleConfig
from ..core.exceptions import DivergedError
from ..core.logging import get_logger
from ..models.base import TrainableModel
from .evaluator import GradientAccumulator

LOGGER = get_logger(__name__)

OptimizerState = Dict[str, np.ndarray]


@dataclass
class LearningControls:
    """Engine-visible knobs that strategies may adjust between iterations."""

    learning_rate: float
    momentum: float = 0.0


class UpdateRule(ABC):
    """Pure parameter update: same gradient and prior state always give the same result."""

    name: ClassVar[str] = "base"

    def initial_state(self, parameter_count: int) -> OptimizerState:
        return {}

    @abstractmethod
    def apply(
        self,
        parameters: np.ndarray,
        gradient: np.ndarray,
        state: Mapping[str, np.ndarray],
        controls: LearningControls,
    ) -> Tuple[np.ndarray, OptimizerState]:
        raise NotImplementedError


class GradientDescent(UpdateRule):
    name = "gradient_descent"

    def apply(self, parameters, gradient, state, controls):
        return parameters - controls.learning_rate * gradient, {}


class MomentumDescent(UpdateRule):
    """Gradient descent with a velocity term scaled by ``controls.momentum``."""

    name = "momentum"

    def initial_state(self, parameter_count: int) -> OptimizerState:
        return {"velocity": np.zeros(parameter_count, dtype=np.float64)}

    def apply(self, parameters, gradient, state, controls):
        velocity = controls.momentum * state["velocity"] - controls.learning_rate * gradient
        return parameters + velocity, {"velocity": velocity}


class ResilientPropagation(UpdateRule):
    """iRPROP-: per-parameter step sizes driven by gradient sign only.

    The learning rate is ignored. A sign flip shrinks the step and skips the update for
    that parameter on the current iteration.
    """

    name = "resilient"

    def __init__(
        self,
        initial_update: float = 0.1,
        max_step: float = 50.0,
        min_step: float = 1e-6,
        increase: float = 1.2,
        decrease: float = 0.5,
    ) -> None:
        if not 0.0 < decrease < 1.0 < increase:
            raise ValueError("RPROP requires 0 < decrease < 1 < increase")
        self.initial_update = initial_update
        self.max_step = max_step
        self.min_step = min_step
        self.increase = increase
        self.decrease = decrease

    def initial_state(self, parameter_count: int) -> OptimizerState:
        return {
            "last_gradient": np.zeros(parameter_count, dtype=np.float64),
            "update_values": np.full(parameter_count, self.initial_update, dtype=np.float64),
        }

    def apply(self, parameters, gradient, state, controls):
        change = state["last_gradient"] * gradient
        update_values = np.where(
            change > 0,
            np.minimum(state["update_values"] * self.increase, self.max_step),
            np.where(change < 0, np.maximum(state["update_values"] * self.decrease, self.min_step), state["update_values"]),
        )
        effective = np.where(change < 0, 0.0, gradient)
        return parameters - np.sign(effective) * update_values, {
            "last_gradient": effective,
            "update_values": update_values,
        }


_UPDATE_RULES = {
    GradientDescent.name: GradientDescent,
    MomentumDescent.name: MomentumDescent,
    ResilientPropagation.name: ResilientPropagation,
}


def build_update_rule(config: UpdateRuleConfig) -> UpdateRule:
    name = config.name.lower()
    if name == GradientDescent.name and config.momentum > 0:
        LOGGER.debug("momentum_rule_selected", extra={"extra_context": {"momentum": config.momentum}})
        name = MomentumDescent.name
    if name not in _UPDATE_RULES:
        raise ValueError(f"Unknown update rule '{config.name}'. Registered: {list(_UPDATE_RULES)}")
    return _UPDATE_RULES[name](**config.args)


def copy_state(state: Mapping[str, np.ndarray], *, read_only: bool = False) -> OptimizerState:
    copied = {}
    for key, value in state.items():
        array = np.array(value, dtype=np.float64, copy=True)
        if read_only:
            array.setflags(write=False)
        copied[key] = array
    return copied


@dataclass(frozen=True, eq=False)
class PropagationResult:
    error: float
    gradient: np.ndarray
    parameters: np.ndarray
    state: OptimizerState
    count: int

    @property
    def converged(self) -> bool:
        """True when the aggregate gradient vanished and no rule can move further."""
        return not np.any(self.gradient)


class PropagationEngine:
    """Merges partition results and applies the configured update rule.

    ``propose`` is side-effect free; ``commit`` is the single write of the parameter
    vector per iteration and only happens after every partition has reported.
    """

    def __init__(self, rule: UpdateRule, controls: LearningControls, parameter_count: int) -> None:
        self.rule = rule
        self.controls = controls
        self.parameter_count = parameter_count
        self.state: OptimizerState = rule.initial_state(parameter_count)

    @staticmethod
    def merge(accumulators: Iterable[GradientAccumulator], parameter_count: int) -> Tuple[float, np.ndarray, int]:
        """Sum block totals in partition order, then block order within a partition."""
        error_total = 0.0
        gradient_total = np.zeros(parameter_count, dtype=np.float64)
        count = 0
        for accumulator in sorted(accumulators, key=lambda acc: acc.partition.index):
            for error_sum, gradient_sum in accumulator.blocks():
                error_total += error_sum
                gradient_total += gradient_sum
            count += accumulator.count
        if count == 0:
            raise ValueError("Cannot merge an empty evaluation")
        return error_total / count, gradient_total / count, count

    def propose(self, parameters: np.ndarray, accumulators: Iterable[GradientAccumulator]) -> PropagationResult:
        with np.errstate(over="ignore", invalid="ignore"):
            error, gradient, count = self.merge(accumulators, self.parameter_count)
            if not np.isfinite(error):
                raise DivergedError("Aggregate error is not finite", metadata={"error": error})
            if not np.all(np.isfinite(gradient)):
                raise DivergedError("Aggregate gradient is not finite", metadata={"error": error})
            new_parameters, new_state = self.rule.apply(parameters, gradient, self.state, self.controls)
        if not np.all(np.isfinite(new_parameters)):
            raise DivergedError(
                "Update produced non-finite parameters",
                metadata={"error": error, "rule": self.rule.name, "learning_rate": self.controls.learning_rate},
            )
        return PropagationResult(error=error, gradient=gradient, parameters=new_parameters, state=new_state, count=count)

    def commit(self, model: TrainableModel, result: PropagationResult) -> None:
        model.set_parameters(result.parameters)
        self.state = copy_state(result.state)

    def reset_state(self) -> None:
        self.state = self.rule.initial_state(self.parameter_count)

    def export_state(self) -> OptimizerState:
        return copy_state(self.state, read_only=True)

    def load_state(self, state: Mapping[str, Any]) -> None:
        expected = set(self.rule.initial_state(self.parameter_count))
        if set(state) != expected:
            raise ValueError(f"Optimizer state keys {sorted(state)} do not match rule '{self.rule.name}' {sorted(expected)}")
        self.state = copy_state(state)
