"""Training lifecycle and propagation engine.

Responsibility: Drives iterative optimization of a trainable model: partitioned
multi-threaded evaluation, pluggable update rules, the strategy chain, and pause/resume
continuations.
"""

from .continuation import TrainingContinuation, capture, restore
from .controller import TrainingController
from .errors import ErrorFunction, MeanSquaredError, SumSquaredError, get_error_function
from .evaluator import GradientAccumulator, PartitionedEvaluator
from .propagation import (
    GradientDescent,
    LearningControls,
    MomentumDescent,
    PropagationEngine,
    PropagationResult,
    ResilientPropagation,
    UpdateRule,
    build_update_rule,
)
from .state import BestSnapshot, IterationRecord, TrainingState
from .strategies import (
    AnnealedReset,
    EarlyStopping,
    GreedyRevert,
    LoggingStrategy,
    ResetOnStagnation,
    SmartLearningRate,
    StopAtError,
    Strategy,
    StrategyAction,
    StrategyChain,
    build_strategy,
    register_strategy,
)

__all__ = [
    "TrainingController",
    "TrainingContinuation",
    "capture",
    "restore",
    "ErrorFunction",
    "MeanSquaredError",
    "SumSquaredError",
    "get_error_function",
    "GradientAccumulator",
    "PartitionedEvaluator",
    "UpdateRule",
    "GradientDescent",
    "MomentumDescent",
    "ResilientPropagation",
    "LearningControls",
    "PropagationEngine",
    "PropagationResult",
    "build_update_rule",
    "BestSnapshot",
    "IterationRecord",
    "TrainingState",
    "Strategy",
    "StrategyAction",
    "StrategyChain",
    "EarlyStopping",
    "ResetOnStagnation",
    "AnnealedReset",
    "GreedyRevert",
    "StopAtError",
    "SmartLearningRate",
    "LoggingStrategy",
    "build_strategy",
    "register_strategy",
]
