"""Training data containers.

Responsibility: Holds immutable training sets and the static partitioning used to fan
evaluation out across workers.
"""

from .dataset import DEFAULT_BLOCK_SIZE, Partition, TrainingSet, partition_indices

__all__ = ["DEFAULT_BLOCK_SIZE", "Partition", "TrainingSet", "partition_indices"]
