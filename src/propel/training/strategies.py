"""Training strategy system."""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING, Callable, Dict, Iterable, Iterator, List, Optional

from ..config.schema import StrategyConfig
from ..core.logging import get_logger, log_with_context

if TYPE_CHECKING:
    from .controller import TrainingController

LOGGER = get_logger(__name__)


class StrategyAction(IntEnum):
    """What a strategy asks for after an iteration. Higher values win conflicts."""

    NONE = 0
    HALT = 1
    REVERT = 2


class Strategy:
    """Hook pair invoked around every iteration.

    ``before_iteration`` may adjust ``controller.controls`` or call
    ``controller.reset_parameters()`` and ``controller.perturb_parameters()``; it must
    never write the parameter vector itself.
    """

    name = "base"

    def __init__(self) -> None:
        self.controller: Optional["TrainingController"] = None

    def attach(self, controller: "TrainingController") -> None:  # noqa: D401
        """Invoked when the strategy is added to a controller."""
        self.controller = controller

    def before_iteration(self) -> None:
        pass

    def after_iteration(self, current_error: float, best_error: float) -> StrategyAction:
        return StrategyAction.NONE

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class StrategyChain:
    """Ordered strategy registry; hooks run in registration order."""

    def __init__(self, strategies: Iterable[Strategy] | None = None) -> None:
        self._strategies: List[Strategy] = list(strategies or [])

    def add(self, strategy: Strategy) -> None:
        self._strategies.append(strategy)

    def __iter__(self) -> Iterator[Strategy]:
        return iter(list(self._strategies))

    def __len__(self) -> int:
        return len(self._strategies)

    def before_iteration(self) -> None:
        for strategy in self._strategies:
            strategy.before_iteration()

    def after_iteration(self, current_error: float, best_error: float) -> StrategyAction:
        # Every strategy observes every iteration, even once a stricter action is known.
        actions = [strategy.after_iteration(current_error, best_error) for strategy in self._strategies]
        return max(actions, default=StrategyAction.NONE)


class EarlyStopping(Strategy):
    """Halt once the error improved by less than ``threshold_delta`` for ``patience`` iterations."""

    name = "early_stopping"

    def __init__(self, threshold_delta: float = 1e-6, patience: int = 5) -> None:
        super().__init__()
        if patience < 1:
            raise ValueError("patience must be >= 1")
        self.threshold_delta = threshold_delta
        self.patience = patience
        self.last_error: Optional[float] = None
        self.wait: int = 0

    def after_iteration(self, current_error: float, best_error: float) -> StrategyAction:
        previous, self.last_error = self.last_error, current_error
        if previous is None or previous - current_error >= self.threshold_delta:
            self.wait = 0
            return StrategyAction.NONE
        self.wait += 1
        if self.wait >= self.patience:
            LOGGER.info(
                "early_stop_triggered",
                extra={"extra_context": {"wait": self.wait, "last_error": current_error}},
            )
            return StrategyAction.HALT
        return StrategyAction.NONE


class ResetOnStagnation(Strategy):
    """Re-randomize the parameters when the error fails to improve by a relative margin.

    The reset itself runs in the next ``before_iteration`` through the controller.
    """

    name = "reset_on_stagnation"

    def __init__(self, required_improvement: float = 0.01, cycles: int = 10) -> None:
        super().__init__()
        if cycles < 1:
            raise ValueError("cycles must be >= 1")
        self.required_improvement = required_improvement
        self.cycles = cycles
        self.reference: Optional[float] = None
        self.stalled: int = 0
        self.resets: int = 0
        self._reset_pending = False

    def before_iteration(self) -> None:
        if not self._reset_pending:
            return
        self._reset_pending = False
        self.resets += 1
        self.controller.reset_parameters()

    def after_iteration(self, current_error: float, best_error: float) -> StrategyAction:
        if self.reference is None or current_error < self.reference * (1.0 - self.required_improvement):
            self.reference = current_error
            self.stalled = 0
            return StrategyAction.NONE
        self.stalled += 1
        if self.stalled >= self.cycles:
            LOGGER.info(
                "stagnation_detected",
                extra={"extra_context": {"stalled": self.stalled, "reference": self.reference}},
            )
            self._reset_pending = True
            self.reference = None
            self.stalled = 0
        return StrategyAction.NONE


class AnnealedReset(ResetOnStagnation):
    """Stagnation recovery by perturbation instead of a full reset.

    Each time the error stalls the parameters are shaken by uniform noise of width
    ``temperature``, which is then multiplied by ``cooling``.
    """

    name = "annealed_reset"

    def __init__(
        self,
        temperature: float = 1.0,
        cooling: float = 0.5,
        required_improvement: float = 0.01,
        cycles: int = 10,
    ) -> None:
        super().__init__(required_improvement=required_improvement, cycles=cycles)
        if temperature <= 0 or not 0.0 < cooling < 1.0:
            raise ValueError("temperature must be > 0 and cooling in (0, 1)")
        self.temperature = temperature
        self.cooling = cooling

    def before_iteration(self) -> None:
        if not self._reset_pending:
            return
        self._reset_pending = False
        self.resets += 1
        self.controller.perturb_parameters(self.temperature)
        self.temperature *= self.cooling


class GreedyRevert(Strategy):
    """Revert to the best parameters whenever an iteration makes the error worse.

    ``backoff`` scales the learning rate before the iteration that follows a revert, so
    the same step is not retried verbatim. Use 1.0 to keep the learning rate.
    """

    name = "greedy_revert"

    def __init__(self, backoff: float = 0.5) -> None:
        super().__init__()
        if not 0.0 < backoff <= 1.0:
            raise ValueError("backoff must be in (0, 1]")
        self.backoff = backoff
        self.reverts: int = 0
        self._backoff_pending = False

    def before_iteration(self) -> None:
        if not self._backoff_pending:
            return
        self._backoff_pending = False
        self.controller.controls.learning_rate *= self.backoff

    def after_iteration(self, current_error: float, best_error: float) -> StrategyAction:
        if current_error > best_error:
            self.reverts += 1
            self._backoff_pending = self.backoff < 1.0
            return StrategyAction.REVERT
        return StrategyAction.NONE


class StopAtError(Strategy):
    name = "stop_at_error"

    def __init__(self, target: float) -> None:
        super().__init__()
        self.target = target

    def after_iteration(self, current_error: float, best_error: float) -> StrategyAction:
        if current_error < self.target:
            return StrategyAction.HALT
        return StrategyAction.NONE


class SmartLearningRate(Strategy):
    """Decay the learning rate each time the error goes up between iterations."""

    name = "smart_learning_rate"

    def __init__(self, decay: float = 0.99) -> None:
        super().__init__()
        if not 0.0 < decay < 1.0:
            raise ValueError("decay must be in (0, 1)")
        self.decay = decay
        self.last_error: Optional[float] = None
        self._decay_pending = False

    def before_iteration(self) -> None:
        if self._decay_pending:
            self._decay_pending = False
            self.controller.controls.learning_rate *= self.decay

    def after_iteration(self, current_error: float, best_error: float) -> StrategyAction:
        if self.last_error is not None and current_error > self.last_error:
            self._decay_pending = True
        self.last_error = current_error
        return StrategyAction.NONE


class LoggingStrategy(Strategy):
    name = "logging"

    def __init__(self, every_n: int = 10, level: str = "info") -> None:
        super().__init__()
        self.every_n = max(1, every_n)
        self.level = level

    def after_iteration(self, current_error: float, best_error: float) -> StrategyAction:
        iteration = self.controller.iteration_number if self.controller is not None else 0
        if iteration % self.every_n == 0:
            log_with_context(
                LOGGER,
                self.level,
                "training_progress",
                extra={"iteration": iteration, "error": current_error, "best_error": best_error},
            )
        return StrategyAction.NONE


StrategyBuilder = Callable[..., Strategy]

_STRATEGIES: Dict[str, StrategyBuilder] = {
    EarlyStopping.name: EarlyStopping,
    ResetOnStagnation.name: ResetOnStagnation,
    AnnealedReset.name: AnnealedReset,
    GreedyRevert.name: GreedyRevert,
    StopAtError.name: StopAtError,
    SmartLearningRate.name: SmartLearningRate,
    LoggingStrategy.name: LoggingStrategy,
}


def register_strategy(name: str, builder: StrategyBuilder) -> None:
    _STRATEGIES[name] = builder


def build_strategy(config: StrategyConfig) -> Strategy:
    if config.name not in _STRATEGIES:
        raise KeyError(f"Unknown strategy '{config.name}'. Registered: {list(_STRATEGIES)}")
    return _STRATEGIES[config.name](**config.args)
