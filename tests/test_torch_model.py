"""Torch module adapter tests."""

import numpy as np
import pytest
import torch
import torch.nn as nn

from propel.config import ModelConfig
from propel.models import DEFAULT_MODEL_REGISTRY, TorchModuleModel
from propel.training import MeanSquaredError, TrainingController
from propel.utils import seed_everything

pytestmark = pytest.mark.torch


def _module():
    torch.manual_seed(0)
    return nn.Sequential(nn.Linear(3, 4), nn.Tanh(), nn.Linear(4, 2))


def test_parameters_mirror_the_module():
    module = _module()
    model = TorchModuleModel(module)
    assert model.parameter_count == 3 * 4 + 4 + 4 * 2 + 2
    np.testing.assert_allclose(model.get_parameters()[:4], module[0].weight.detach().numpy().ravel()[:4])

    model.set_parameters(np.arange(model.parameter_count, dtype=float))
    assert module[2].bias.detach().numpy().tolist() == [24.0, 25.0]


def test_gradient_matches_finite_differences():
    model = TorchModuleModel(_module())
    error_fn = MeanSquaredError()
    rng = np.random.default_rng(2)
    params = rng.uniform(-1, 1, model.parameter_count)
    inputs = rng.normal(size=3)
    ideal = rng.normal(size=2)

    _, output_gradient = error_fn.compute(ideal, model.compute(params, inputs))
    analytic = model.parameter_gradient(params, inputs, output_gradient)

    numeric = np.zeros_like(params)
    eps = 1e-6
    for idx in range(params.shape[0]):
        plus, minus = params.copy(), params.copy()
        plus[idx] += eps
        minus[idx] -= eps
        numeric[idx] = (
            error_fn.compute(ideal, model.compute(plus, inputs))[0] - error_fn.compute(ideal, model.compute(minus, inputs))[0]
        ) / (2 * eps)
    np.testing.assert_allclose(analytic, numeric, rtol=1e-5, atol=1e-8)


def test_threaded_training_reduces_error(regression_set, recorder):
    rng = seed_everything(17)
    model = DEFAULT_MODEL_REGISTRY.build(
        ModelConfig(name="torch_mlp", parameters={"input_dim": 3, "hidden_dims": [5], "output_dim": 2})
    )
    model.reset(rng)
    controller = TrainingController(model, regression_set, learning_rate=0.05, worker_count=3, block_size=1, strategies=[recorder])
    try:
        controller.iterate(40)
    finally:
        controller.finish_training()
    assert controller.implementation_type == "background"
    assert recorder.errors[-1] < recorder.errors[0]
