"""Adapter exposing a ``torch.nn.Module`` as a trainable model."""

from __future__ import annotations

import copy
import threading
from typing import Dict, List, Tuple

import numpy as np
import torch
import torch.nn as nn
from torch.func import functional_call
from torch.nn.utils import parameters_to_vector, vector_to_parameters

from ..config.schema import ModelConfig
from .base import DEFAULT_MODEL_REGISTRY, TrainableModel


class TorchModuleModel(TrainableModel):
    """Trains a torch module through its flattened parameters.

    Gradients come from autograd. The module runs in float64 so results line up with the
    NumPy models. ``functional_call`` swaps attributes on the module it is given, so every
    worker thread evaluates against its own copy of the module.
    """

    def __init__(self, module: nn.Module) -> None:
        self.module = module.double()
        self._shapes: List[Tuple[str, torch.Size]] = [(name, p.shape) for name, p in self.module.named_parameters()]
        self._local = threading.local()
        super().__init__()
        with torch.no_grad():
            super().set_parameters(parameters_to_vector(self.module.parameters()).detach().cpu().numpy())

    @property
    def parameter_count(self) -> int:
        return int(sum(shape.numel() for _, shape in self._shapes))

    def set_parameters(self, parameters) -> None:
        super().set_parameters(parameters)
        with torch.no_grad():
            vector_to_parameters(torch.tensor(self._parameters), self.module.parameters())

    def _thread_module(self) -> nn.Module:
        module = getattr(self._local, "module", None)
        if module is None:
            module = copy.deepcopy(self.module)
            self._local.module = module
        return module

    def _named_tensors(self, parameters: np.ndarray, *, requires_grad: bool) -> Dict[str, torch.Tensor]:
        tensors = {}
        cursor = 0
        for name, shape in self._shapes:
            size = shape.numel()
            chunk = torch.tensor(parameters[cursor : cursor + size], dtype=torch.float64).view(shape)
            tensors[name] = chunk.requires_grad_(requires_grad)
            cursor += size
        return tensors

    def _call(self, tensors: Dict[str, torch.Tensor], inputs: np.ndarray) -> torch.Tensor:
        batch = torch.tensor(inputs, dtype=torch.float64).unsqueeze(0)
        return functional_call(self._thread_module(), tensors, (batch,)).squeeze(0)

    def compute(self, parameters: np.ndarray, inputs: np.ndarray) -> np.ndarray:
        with torch.no_grad():
            outputs = self._call(self._named_tensors(parameters, requires_grad=False), inputs)
        return outputs.numpy()

    def parameter_gradient(self, parameters: np.ndarray, inputs: np.ndarray, output_gradient: np.ndarray) -> np.ndarray:
        tensors = self._named_tensors(parameters, requires_grad=True)
        outputs = self._call(tensors, inputs)
        grads = torch.autograd.grad(
            outputs,
            list(tensors.values()),
            grad_outputs=torch.tensor(output_gradient, dtype=torch.float64).view_as(outputs),
            allow_unused=True,
        )
        flat = [
            torch.zeros(tensor.numel(), dtype=torch.float64) if grad is None else grad.reshape(-1)
            for tensor, grad in zip(tensors.values(), grads)
        ]
        return torch.cat(flat).numpy()


def build_torch_mlp(config: ModelConfig) -> TrainableModel:
    params = config.parameters
    input_dim = int(params.get("input_dim", 2))
    hidden_dims = params.get("hidden_dims", [4])
    output_dim = int(params.get("output_dim", 1))
    layers: List[nn.Module] = []
    prev_dim = input_dim
    for hidden_dim in hidden_dims:
        layers.append(nn.Linear(prev_dim, hidden_dim))
        layers.append(nn.Tanh())
        prev_dim = hidden_dim
    layers.append(nn.Linear(prev_dim, output_dim))
    return TorchModuleModel(nn.Sequential(*layers))


DEFAULT_MODEL_REGISTRY.register("torch_mlp", build_torch_mlp)
