"""Miscellaneous utilities used across modules."""

from .seed import create_rng, seed_everything

__all__ = [
    "create_rng",
    "seed_everything",
]
