"""Core infrastructure.

Responsibility: Provides the exception hierarchy and structured logging used by every
propel module.
"""

from .exceptions import (
    DivergedError,
    IncompatibleContinuationError,
    InvalidStateError,
    PartitionFailure,
    PropelError,
)
from .logging import JsonFormatter, configure_logging, get_logger, log_with_context

__all__ = [
    "PropelError",
    "DivergedError",
    "IncompatibleContinuationError",
    "PartitionFailure",
    "InvalidStateError",
    "JsonFormatter",
    "configure_logging",
    "get_logger",
    "log_with_context",
]
