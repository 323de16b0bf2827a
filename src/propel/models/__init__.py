"""Trainable models and the model registry.

Responsibility: Defines the parameter-vector contract the engine trains against and
reference implementations (affine model, feed-forward network, torch module adapter).
"""

from .activation import ActivationFunction, ActivationLinear, ActivationSigmoid, ActivationTanh, get_activation
from .base import DEFAULT_MODEL_REGISTRY, ModelBuilder, ModelRegistry, TrainableModel
from .linear import LinearModel
from .mlp import FeedForwardNetwork
from .torch_module import TorchModuleModel

__all__ = [
    "DEFAULT_MODEL_REGISTRY",
    "ModelBuilder",
    "ModelRegistry",
    "TrainableModel",
    "LinearModel",
    "FeedForwardNetwork",
    "TorchModuleModel",
    "ActivationFunction",
    "ActivationSigmoid",
    "ActivationTanh",
    "ActivationLinear",
    "get_activation",
]
