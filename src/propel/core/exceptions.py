"""Common exception hierarchy used across propel."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Dict


@dataclass(eq=False)
class PropelError(RuntimeError):
    message: str
    metadata: Dict[str, Any] = None  # type: ignore[assignment]

    code: ClassVar[str] = "propel_error"

    def __post_init__(self) -> None:
        super().__init__(self.message)
        if self.metadata is None:
            self.metadata = {}

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "metadata": self.metadata}


class DivergedError(PropelError):
    """Aggregate error or proposed parameters became non-finite."""

    code = "diverged"


class IncompatibleContinuationError(PropelError):
    """A continuation does not fit the controller it is resumed on."""

    code = "incompatible_continuation"


class PartitionFailure(PropelError):
    """A partition worker raised while evaluating its slice of the training set."""

    code = "partition_failure"

    @property
    def partition_index(self) -> int:
        return int(self.metadata.get("partition", -1))


class InvalidStateError(PropelError):
    """Operation not permitted in the controller's current lifecycle state."""

    code = "invalid_state"
