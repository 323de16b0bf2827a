"""Deterministic seeding helpers."""

from __future__ import annotations

import os
import random
from typing import Optional

import numpy as np
import torch


def seed_everything(seed: int, *, deterministic_torch: bool = False) -> np.random.Generator:
    """Seed the global generators and return an explicit NumPy generator for the engine."""
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    os.environ["PYTHONHASHSEED"] = str(seed)
    if deterministic_torch:
        torch.use_deterministic_algorithms(True)
    return create_rng(seed)


def create_rng(seed: Optional[int] = None) -> np.random.Generator:
    return np.random.default_rng(seed)
