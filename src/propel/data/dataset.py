"""Training set and partition definitions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Sequence, Tuple

import numpy as np

# Examples summed into one accumulator row before partitions are merged.
DEFAULT_BLOCK_SIZE = 64


def _as_matrix(values, name: str) -> np.ndarray:
    array = np.array(values, dtype=np.float64, copy=True)
    if array.ndim == 1:
        array = array.reshape(-1, 1)
    if array.ndim != 2:
        raise ValueError(f"{name} must be a 2-D array of shape (examples, width), got ndim={array.ndim}")
    array.setflags(write=False)
    return array


class TrainingSet:
    """Ordered, immutable collection of ``(input, ideal)`` pairs."""

    def __init__(self, inputs, ideals) -> None:
        self._inputs = _as_matrix(inputs, "inputs")
        self._ideals = _as_matrix(ideals, "ideals")
        if len(self._inputs) != len(self._ideals):
            raise ValueError(
                f"inputs and ideals must have the same number of examples ({len(self._inputs)} != {len(self._ideals)})"
            )

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[Sequence[float], Sequence[float]]]) -> "TrainingSet":
        pairs = list(pairs)
        if not pairs:
            raise ValueError("Cannot build a TrainingSet from zero pairs")
        inputs, ideals = zip(*pairs)
        return cls(inputs, ideals)

    @property
    def inputs(self) -> np.ndarray:
        return self._inputs

    @property
    def ideals(self) -> np.ndarray:
        return self._ideals

    @property
    def input_size(self) -> int:
        return self._inputs.shape[1]

    @property
    def ideal_size(self) -> int:
        return self._ideals.shape[1]

    def __len__(self) -> int:
        return self._inputs.shape[0]

    def __getitem__(self, idx: int) -> Tuple[np.ndarray, np.ndarray]:
        return self._inputs[idx], self._ideals[idx]

    def __iter__(self) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
        for idx in range(len(self)):
            yield self[idx]

    def __repr__(self) -> str:
        return f"TrainingSet(examples={len(self)}, input_size={self.input_size}, ideal_size={self.ideal_size})"


@dataclass(frozen=True)
class Partition:
    index: int
    start: int
    stop: int

    def __len__(self) -> int:
        return self.stop - self.start

    def indices(self) -> range:
        return range(self.start, self.stop)


def partition_indices(size: int, worker_count: int, block_size: int = DEFAULT_BLOCK_SIZE) -> List[Partition]:
    """Split ``range(size)`` into contiguous partitions of whole blocks, larger ones first.

    Every partition starts on a multiple of ``block_size``, so the block grid is the same
    for any worker count. Never produces more partitions than blocks, and always at
    least one.
    """
    if size < 0:
        raise ValueError("size must be >= 0")
    if block_size < 1:
        raise ValueError("block_size must be >= 1")
    blocks = -(-size // block_size)
    count = max(1, min(worker_count, blocks))
    base, extra = divmod(blocks, count)
    partitions: List[Partition] = []
    start = 0
    for index in range(count):
        stop = min(size, start + (base + (1 if index < extra else 0)) * block_size)
        partitions.append(Partition(index=index, start=start, stop=stop))
        start = stop
    return partitions
