"""Partitioned, multi-threaded error and gradient evaluation."""

from __future__ import annotations

import os
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Iterator, List, Optional, Tuple

import numpy as np

from ..core.exceptions import PartitionFailure
from ..core.logging import get_logger
from ..data.dataset import DEFAULT_BLOCK_SIZE, Partition, TrainingSet, partition_indices
from ..models.base import TrainableModel
from .errors import ErrorFunction

LOGGER = get_logger(__name__)


class GradientAccumulator:
    """Error and gradient contributions of one partition for one iteration.

    Examples are summed in order into one row per ``block_size`` consecutive examples.
    Partitions start on block boundaries, so the rows cover the same example ranges no
    matter how the training set was split, and merging them in order is bit-identical
    for every worker count.
    """

    def __init__(self, partition: Partition, parameter_count: int, block_size: int = DEFAULT_BLOCK_SIZE) -> None:
        if block_size < 1:
            raise ValueError("block_size must be >= 1")
        self.partition = partition
        self.block_size = block_size
        blocks = -(-len(partition) // block_size)
        self.errors = np.zeros(blocks, dtype=np.float64)
        self.gradients = np.zeros((blocks, parameter_count), dtype=np.float64)
        self._filled = 0

    def add(self, error: float, gradient: np.ndarray) -> None:
        block = self._filled // self.block_size
        self.errors[block] += error
        self.gradients[block] += gradient
        self._filled += 1

    @property
    def count(self) -> int:
        return self._filled

    def blocks(self) -> Iterator[Tuple[float, np.ndarray]]:
        """Yield ``(error_sum, gradient_sum)`` for every block touched so far, in order."""
        used = -(-self._filled // self.block_size)
        for block in range(used):
            yield float(self.errors[block]), self.gradients[block]


class PartitionedEvaluator:
    """Fans one evaluation pass out over a fixed pool of worker threads.

    The split is static: contiguous partitions of whole ``block_size`` blocks, decided
    once and recomputed only when the training set size changes. Every worker reads the
    same read-only parameter snapshot and results come back in partition order.
    """

    def __init__(
        self,
        model: TrainableModel,
        training_set: TrainingSet,
        error_function: ErrorFunction,
        *,
        worker_count: Optional[int] = None,
        block_size: int = DEFAULT_BLOCK_SIZE,
    ) -> None:
        if worker_count is not None and worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {worker_count}")
        if block_size < 1:
            raise ValueError(f"block_size must be >= 1, got {block_size}")
        self.model = model
        self.training_set = training_set
        self.error_function = error_function
        self.worker_count = worker_count if worker_count is not None else os.cpu_count() or 1
        self.block_size = block_size
        self._partitions: List[Partition] = []
        self._partitioned_size = -1
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def partitions(self) -> List[Partition]:
        size = len(self.training_set)
        if size != self._partitioned_size:
            self._partitions = partition_indices(size, self.worker_count, self.block_size)
            self._partitioned_size = size
            LOGGER.debug(
                "partitions_computed",
                extra={"extra_context": {"examples": size, "partitions": len(self._partitions)}},
            )
        return self._partitions

    @property
    def threaded(self) -> bool:
        return len(self.partitions) > 1

    def evaluate(self, parameters: np.ndarray) -> List[GradientAccumulator]:
        snapshot = np.array(parameters, dtype=np.float64, copy=True)
        snapshot.setflags(write=False)
        partitions = self.partitions

        if len(partitions) == 1:
            try:
                return [self._evaluate_partition(partitions[0], snapshot)]
            except Exception as exc:
                raise self._failure(partitions[0], exc) from exc

        executor = self._ensure_executor()
        futures: List[Future] = [executor.submit(self._evaluate_partition, partition, snapshot) for partition in partitions]
        wait(futures)

        results: List[GradientAccumulator] = []
        for partition, future in zip(partitions, futures):
            exc = future.exception()
            if exc is not None:
                raise self._failure(partition, exc) from exc
            results.append(future.result())
        return results

    def shutdown(self) -> None:
        if self._executor is None:
            return
        self._executor.shutdown(wait=True)
        self._executor = None
        LOGGER.debug("evaluator_shutdown", extra={"extra_context": {"workers": self.worker_count}})

    def _ensure_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=len(self.partitions), thread_name_prefix="propel-partition")
        return self._executor

    def _evaluate_partition(self, partition: Partition, parameters: np.ndarray) -> GradientAccumulator:
        accumulator = GradientAccumulator(partition, self.model.parameter_count, self.block_size)
        inputs = self.training_set.inputs
        ideals = self.training_set.ideals
        # Overflow surfaces as a non-finite error and is reported as divergence.
        with np.errstate(over="ignore", invalid="ignore"):
            for idx in partition.indices():
                actual = self.model.compute(parameters, inputs[idx])
                error, output_gradient = self.error_function.compute(ideals[idx], actual)
                accumulator.add(error, self.model.parameter_gradient(parameters, inputs[idx], output_gradient))
        return accumulator

    @staticmethod
    def _failure(partition: Partition, exc: BaseException) -> PartitionFailure:
        LOGGER.warning(
            "partition_failed",
            extra={"extra_context": {"partition": partition.index, "error": repr(exc)}},
        )
        return PartitionFailure(
            f"Partition {partition.index} [{partition.start}:{partition.stop}) failed: {exc!r}",
            metadata={"partition": partition.index, "start": partition.start, "stop": partition.stop},
        )
