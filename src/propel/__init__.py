"""propel: iterative optimization engine for parametric models."""

__all__ = [
    "config",
    "core",
    "data",
    "models",
    "training",
    "utils",
]
