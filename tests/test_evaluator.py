"""Partitioned evaluator tests."""

import threading

import numpy as np
import pytest

from propel.core import PartitionFailure
from propel.data import Partition, TrainingSet
from propel.models import FeedForwardNetwork, LinearModel
from propel.training import GradientAccumulator, MeanSquaredError, PartitionedEvaluator


class ObservingModel(LinearModel):
    """Linear model that records which threads evaluated it and what it was handed."""

    def __init__(self, input_dim):
        super().__init__(input_dim=input_dim)
        self.threads = set()
        self.writeable_flags = set()
        self._lock = threading.Lock()

    def compute(self, parameters, inputs):
        with self._lock:
            self.threads.add(threading.current_thread().name)
            self.writeable_flags.add(parameters.flags.writeable)
        return super().compute(parameters, inputs)


def test_single_partition_runs_on_calling_thread(linear_set):
    model = ObservingModel(input_dim=2)
    evaluator = PartitionedEvaluator(model, linear_set, MeanSquaredError(), worker_count=1)
    results = evaluator.evaluate(model.get_parameters())
    assert len(results) == 1
    assert not evaluator.threaded
    assert model.threads == {threading.current_thread().name}


def test_workers_share_a_read_only_snapshot(regression_set):
    model = ObservingModel(input_dim=3)
    evaluator = PartitionedEvaluator(model, TrainingSet(regression_set.inputs, regression_set.ideals[:, :1]), MeanSquaredError(), worker_count=4, block_size=1)
    try:
        results = evaluator.evaluate(model.get_parameters())
    finally:
        evaluator.shutdown()
    assert evaluator.threaded
    assert [acc.partition.index for acc in results] == [0, 1, 2, 3]
    assert sum(acc.count for acc in results) == 11
    assert model.writeable_flags == {False}
    assert all(name.startswith("propel-partition") for name in model.threads)


def test_block_rows_hold_consecutive_example_sums(regression_set):
    model = FeedForwardNetwork([3, 3, 2])
    model.reset(np.random.default_rng(0))
    parameters = model.get_parameters()
    (per_example,) = PartitionedEvaluator(model, regression_set, MeanSquaredError(), worker_count=1, block_size=1).evaluate(parameters)
    blocked = PartitionedEvaluator(model, regression_set, MeanSquaredError(), worker_count=2, block_size=4)
    try:
        first, second = blocked.evaluate(parameters)
    finally:
        blocked.shutdown()

    assert (first.count, second.count) == (8, 3)
    assert first.errors.shape == (2,)
    assert second.gradients.shape == (1, model.parameter_count)
    rows = [error for error, _ in per_example.blocks()]
    assert [error for error, _ in first.blocks()] == pytest.approx([sum(rows[0:4]), sum(rows[4:8])])
    np.testing.assert_allclose(second.gradients[0], per_example.gradients[8:].sum(axis=0))


def test_accumulator_memory_is_bounded_by_block_count():
    accumulator = GradientAccumulator(Partition(0, 0, 1000), 10, block_size=64)
    assert accumulator.gradients.shape == (16, 10)
    assert accumulator.errors.shape == (16,)
    for _ in range(65):
        accumulator.add(1.0, np.ones(10))
    assert accumulator.count == 65
    assert [error for error, _ in accumulator.blocks()] == [64.0, 1.0]


@pytest.mark.parametrize("kwargs", [{"worker_count": 0}, {"worker_count": -3}, {"block_size": 0}])
def test_invalid_evaluator_arguments_rejected(linear_set, kwargs):
    with pytest.raises(ValueError, match="must be >= 1"):
        PartitionedEvaluator(LinearModel(input_dim=2), linear_set, MeanSquaredError(), **kwargs)


def test_partitions_recomputed_when_training_set_size_changes(linear_set):
    model = LinearModel(input_dim=2)
    evaluator = PartitionedEvaluator(model, linear_set, MeanSquaredError(), worker_count=3, block_size=1)
    assert [len(p) for p in evaluator.partitions] == [2, 1, 1]
    assert evaluator.partitions is evaluator.partitions
    evaluator.training_set = TrainingSet(np.zeros((9, 2)), np.zeros((9, 1)))
    assert [len(p) for p in evaluator.partitions] == [3, 3, 3]


class FailingModel(LinearModel):
    def compute(self, parameters, inputs):
        if inputs[0] == 99.0:
            raise ArithmeticError("bad example")
        return super().compute(parameters, inputs)


def test_worker_failure_is_reported_for_the_partition():
    inputs = [[0.0], [1.0], [2.0], [3.0], [99.0], [5.0]]
    training_set = TrainingSet(inputs, [[0.0]] * 6)
    evaluator = PartitionedEvaluator(FailingModel(input_dim=1), training_set, MeanSquaredError(), worker_count=3, block_size=1)
    try:
        with pytest.raises(PartitionFailure) as excinfo:
            evaluator.evaluate(np.zeros(2))
    finally:
        evaluator.shutdown()
    assert excinfo.value.partition_index == 2
    assert isinstance(excinfo.value.__cause__, ArithmeticError)
    assert excinfo.value.to_dict()["code"] == "partition_failure"


def test_shutdown_is_repeatable(linear_set):
    evaluator = PartitionedEvaluator(LinearModel(input_dim=2), linear_set, MeanSquaredError(), worker_count=2, block_size=1)
    evaluator.evaluate(np.zeros(3))
    evaluator.shutdown()
    evaluator.shutdown()
    assert len(evaluator.evaluate(np.zeros(3))) == 2
    evaluator.shutdown()
