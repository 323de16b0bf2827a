"""Training controller: drives iterations, strategies and pause/resume."""

from __future__ import annotations

from typing import Iterable, Optional, Tuple

import numpy as np

from ..config.schema import EngineConfig
from ..core.exceptions import DivergedError, InvalidStateError
from ..core.logging import configure_logging, get_logger
from ..data.dataset import DEFAULT_BLOCK_SIZE, TrainingSet
from ..models.base import DEFAULT_MODEL_REGISTRY, TrainableModel
from ..utils.seed import create_rng
from . import continuation as continuation_manager
from .continuation import TrainingContinuation
from .errors import ErrorFunction, MeanSquaredError, get_error_function
from .evaluator import PartitionedEvaluator
from .propagation import GradientDescent, LearningControls, PropagationEngine, UpdateRule, build_update_rule
from .state import BestSnapshot, IterationRecord, TrainingState
from .strategies import Strategy, StrategyAction, StrategyChain, build_strategy

LOGGER = get_logger(__name__)


class TrainingController:
    """Iterative trainer for a ``TrainableModel`` against a fixed ``TrainingSet``.

    One iteration runs the strategies' ``before_iteration`` hooks, evaluates every
    partition against a frozen parameter snapshot, merges and applies one update, records
    the pre-update error and finally resolves the strategies' ``after_iteration``
    requests (revert beats halt beats nothing). Published counters only move when an
    iteration succeeds, and a failed iteration also undoes whatever its before hooks
    changed.
    """

    def __init__(
        self,
        model: TrainableModel,
        training_set: TrainingSet,
        *,
        update_rule: Optional[UpdateRule] = None,
        learning_rate: float = 0.1,
        momentum: float = 0.0,
        worker_count: Optional[int] = None,
        block_size: int = DEFAULT_BLOCK_SIZE,
        error_function: Optional[ErrorFunction] = None,
        strategies: Iterable[Strategy] | None = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        if len(training_set) == 0:
            raise ValueError("Training set must contain at least one example")
        self._model = model
        self._training_set = training_set
        self.rng = rng if rng is not None else create_rng()
        self.controls = LearningControls(learning_rate=learning_rate, momentum=momentum)
        self.engine = PropagationEngine(update_rule or GradientDescent(), self.controls, model.parameter_count)
        self.evaluator = PartitionedEvaluator(
            model,
            training_set,
            error_function or MeanSquaredError(),
            worker_count=worker_count,
            block_size=block_size,
        )
        self._strategies = StrategyChain()
        self.iteration_number = 0
        self._error: Optional[float] = None
        self._work = 0
        self._current: Optional[IterationRecord] = None
        self._best: Optional[BestSnapshot] = None
        self._training_done = False
        self._state = TrainingState.IDLE
        self._consumed_tokens: set[str] = set()
        for strategy in strategies or []:
            self.add_strategy(strategy)
        LOGGER.info(
            "controller_init",
            extra={
                "extra_context": {
                    "rule": self.engine.rule.name,
                    "learning_rate": learning_rate,
                    "momentum": momentum,
                    "partitions": len(self.evaluator.partitions),
                    "parameters": model.parameter_count,
                    "examples": len(training_set),
                }
            },
        )

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        training_set: TrainingSet,
        *,
        model: Optional[TrainableModel] = None,
        rng: Optional[np.random.Generator] = None,
        configure_logs: bool = False,
    ) -> "TrainingController":
        if configure_logs:
            configure_logging(config.logging.level, config.logging.log_dir, json_logs=config.logging.json_logs)
        rng = rng if rng is not None else create_rng(config.seed)
        if model is None:
            model = DEFAULT_MODEL_REGISTRY.build(config.model)
            model.reset(rng)
        return cls(
            model,
            training_set,
            update_rule=build_update_rule(config.update_rule),
            learning_rate=config.update_rule.learning_rate,
            momentum=config.update_rule.momentum,
            worker_count=config.evaluator.worker_count,
            block_size=config.evaluator.block_size,
            error_function=get_error_function(config.error_function),
            strategies=[build_strategy(strategy) for strategy in config.strategies],
            rng=rng,
        )

    # ------------------------------------------------------------------ properties

    @property
    def model(self) -> TrainableModel:
        return self._model

    @property
    def training_set(self) -> TrainingSet:
        return self._training_set

    @training_set.setter
    def training_set(self, training_set: TrainingSet) -> None:
        self._require_not_running("replace the training set")
        if len(training_set) == 0:
            raise ValueError("Training set must contain at least one example")
        self._training_set = training_set
        self.evaluator.training_set = training_set

    @property
    def strategies(self) -> Tuple[Strategy, ...]:
        return tuple(self._strategies)

    @property
    def state(self) -> TrainingState:
        return self._state

    @property
    def training_done(self) -> bool:
        return self._training_done

    @property
    def error(self) -> Optional[float]:
        return self._error

    @error.setter
    def error(self, value: float) -> None:
        self._error = float(value)

    @property
    def work(self) -> int:
        return self._work

    @property
    def current_record(self) -> Optional[IterationRecord]:
        return self._current

    @property
    def best_record(self) -> Optional[IterationRecord]:
        return None if self._best is None else self._best.record

    @property
    def best_snapshot(self) -> Optional[BestSnapshot]:
        return self._best

    @property
    def best_parameters(self) -> Optional[np.ndarray]:
        return None if self._best is None else self._best.parameters.copy()

    @property
    def implementation_type(self) -> str:
        return "background" if self.evaluator.threaded else "iterative"

    @property
    def can_continue(self) -> bool:
        return True

    # ------------------------------------------------------------------ operations

    def add_strategy(self, strategy: Strategy) -> None:
        strategy.attach(self)
        self._strategies.add(strategy)

    def iterate(self, count: Optional[int] = None) -> None:
        """Run one iteration, or up to ``count`` iterations stopping once training is done."""
        if count is None:
            self._iteration()
            return
        if count < 0:
            raise ValueError("count must be >= 0")
        for _ in range(count):
            if self._training_done:
                LOGGER.info("training_done", extra={"extra_context": {"iteration": self.iteration_number}})
                break
            self._iteration()

    def reset_parameters(self) -> None:
        """Re-randomize the model from the controller's generator and clear optimizer state."""
        self._model.reset(self.rng)
        self.engine.reset_state()
        LOGGER.info("parameters_reset", extra={"extra_context": {"iteration": self.iteration_number}})

    def perturb_parameters(self, scale: float) -> None:
        """Add uniform noise in [-scale, scale) to every parameter and clear optimizer state."""
        noise = self.rng.uniform(-scale, scale, self._model.parameter_count)
        self._model.set_parameters(self._model.get_parameters() + noise)
        self.engine.reset_state()
        LOGGER.info(
            "parameters_perturbed",
            extra={"extra_context": {"iteration": self.iteration_number, "scale": scale}},
        )

    def pause(self) -> TrainingContinuation:
        self._require_not_running("pause")
        snapshot = continuation_manager.capture(self)
        self._state = TrainingState.PAUSED
        LOGGER.info(
            "training_paused",
            extra={"extra_context": {"iteration": self.iteration_number, "token": snapshot.token}},
        )
        return snapshot

    def resume(self, continuation: TrainingContinuation) -> None:
        if self._state in (TrainingState.RUNNING, TrainingState.ACTIVE):
            raise InvalidStateError(
                f"Cannot resume while the controller is {self._state.value}; pause() it first",
                metadata={"state": self._state.value},
            )
        if continuation.token in self._consumed_tokens:
            raise InvalidStateError(
                "Continuation was already resumed on this controller",
                metadata={"token": continuation.token},
            )
        continuation_manager.restore(continuation, self)
        self._consumed_tokens.add(continuation.token)
        self._training_done = False
        self._state = TrainingState.ACTIVE
        LOGGER.info(
            "training_resumed",
            extra={"extra_context": {"iteration": self.iteration_number, "token": continuation.token}},
        )

    def finish_training(self) -> None:
        """Flush worker threads; the model already holds the last committed update."""
        self._require_not_running("finish training")
        self.evaluator.shutdown()
        if self._state is TrainingState.FINISHED:
            return
        self._state = TrainingState.FINISHED
        LOGGER.info(
            "training_finished",
            extra={"extra_context": {"iteration": self.iteration_number, "error": self._error}},
        )

    # ------------------------------------------------------------------ internals

    def _iteration(self) -> None:
        self._require_not_running("iterate")
        previous_state = self._state
        self._state = TrainingState.RUNNING
        try:
            self._run_iteration()
        except BaseException:
            self._state = previous_state
            raise
        self._state = TrainingState.ACTIVE

    def _run_iteration(self) -> None:
        # before_iteration hooks may reset, perturb or retune; undo them if no update lands.
        saved_parameters = self._model.get_parameters()
        saved_state = self.engine.export_state()
        saved_controls = (self.controls.learning_rate, self.controls.momentum)
        try:
            self._strategies.before_iteration()

            parameters = self._model.get_parameters()
            prior_state = self.engine.export_state()
            accumulators = self.evaluator.evaluate(parameters)
            try:
                result = self.engine.propose(parameters, accumulators)
            except DivergedError as exc:
                self._training_done = True
                exc.metadata.setdefault("iteration", self.iteration_number + 1)
                LOGGER.error("training_diverged", extra={"extra_context": dict(exc.metadata)})
                raise

            self.engine.commit(self._model, result)
        except BaseException:
            self._model.set_parameters(saved_parameters)
            self.engine.load_state(saved_state)
            self.controls.learning_rate, self.controls.momentum = saved_controls
            LOGGER.warning("iteration_rolled_back", extra={"extra_context": {"iteration": self.iteration_number + 1}})
            raise

        self.iteration_number += 1
        self._work += result.count
        record = IterationRecord(iteration=self.iteration_number, error=result.error, work=self._work)
        self._current = record
        self._error = result.error
        if self._best is None or result.error < self._best.error:
            self._best = BestSnapshot(record=record, parameters=parameters, optimizer_state=prior_state)

        if result.converged:
            self._training_done = True
            LOGGER.info("gradient_vanished", extra={"extra_context": {"iteration": self.iteration_number}})

        action = self._strategies.after_iteration(result.error, self._best.error)
        self._apply_action(action)
        LOGGER.debug(
            "iteration_complete",
            extra={
                "extra_context": {
                    "iteration": self.iteration_number,
                    "error": result.error,
                    "best_error": self._best.error,
                    "action": action.name,
                }
            },
        )

    def _apply_action(self, action: StrategyAction) -> None:
        if action is StrategyAction.REVERT:
            self._model.set_parameters(self._best.parameters)
            self.engine.load_state(self._best.optimizer_state)
            LOGGER.info(
                "strategy_revert",
                extra={"extra_context": {"iteration": self.iteration_number, "best_iteration": self._best.record.iteration}},
            )
        elif action is StrategyAction.HALT:
            self._training_done = True
            LOGGER.info("strategy_halt", extra={"extra_context": {"iteration": self.iteration_number}})

    def _restore_counters(
        self,
        *,
        iteration: int,
        error: Optional[float],
        work: int,
        best: Optional[BestSnapshot],
    ) -> None:
        self.iteration_number = iteration
        self._error = error
        self._work = work
        self._current = None if error is None else IterationRecord(iteration=iteration, error=error, work=work)
        self._best = best

    def _require_not_running(self, operation: str) -> None:
        if self._state is TrainingState.RUNNING:
            raise InvalidStateError(
                f"Cannot {operation} while an iteration is in flight",
                metadata={"operation": operation},
            )
