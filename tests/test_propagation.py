"""Update rules and propagation engine tests."""

import numpy as np
import pytest

from propel.config import UpdateRuleConfig
from propel.core import DivergedError
from propel.data import Partition
from propel.models import LinearModel
from propel.training import (
    GradientAccumulator,
    GradientDescent,
    LearningControls,
    MomentumDescent,
    PropagationEngine,
    ResilientPropagation,
    build_update_rule,
)


def _accumulator(index, start, rows, errors):
    acc = GradientAccumulator(Partition(index, start, start + len(rows)), parameter_count=len(rows[0]), block_size=1)
    for error, row in zip(errors, rows):
        acc.add(error, np.asarray(row, dtype=float))
    return acc


def test_gradient_descent_step():
    params, _ = GradientDescent().apply(np.array([1.0, 2.0]), np.array([0.5, -1.0]), {}, LearningControls(0.1))
    np.testing.assert_allclose(params, [0.95, 2.1])


def test_momentum_is_pure_and_carries_velocity():
    rule = MomentumDescent()
    state = rule.initial_state(2)
    controls = LearningControls(learning_rate=0.5, momentum=0.9)
    params = np.array([1.0, -1.0])
    gradient = np.array([1.0, 2.0])
    first = rule.apply(params, gradient, state, controls)
    again = rule.apply(params, gradient, state, controls)
    np.testing.assert_array_equal(first[0], again[0])
    np.testing.assert_array_equal(state["velocity"], [0.0, 0.0])
    second_params, second_state = rule.apply(first[0], gradient, first[1], controls)
    np.testing.assert_allclose(first[1]["velocity"], [-0.5, -1.0])
    np.testing.assert_allclose(second_state["velocity"], [-0.95, -1.9])
    np.testing.assert_allclose(second_params, first[0] + second_state["velocity"])


def test_resilient_step_sizes_follow_gradient_sign():
    rule = ResilientPropagation(initial_update=0.1)
    state = {"last_gradient": np.array([1.0, -1.0, 0.0]), "update_values": np.array([0.1, 0.1, 0.1])}
    params, new_state = rule.apply(np.zeros(3), np.array([2.0, 3.0, -4.0]), state, LearningControls(1.0))
    np.testing.assert_allclose(new_state["update_values"], [0.12, 0.05, 0.1])
    np.testing.assert_allclose(new_state["last_gradient"], [2.0, 0.0, -4.0])
    np.testing.assert_allclose(params, [-0.12, 0.0, 0.1])


def test_resilient_rejects_bad_factors():
    with pytest.raises(ValueError):
        ResilientPropagation(increase=0.9)


def test_build_update_rule_selects_by_name():
    assert isinstance(build_update_rule(UpdateRuleConfig(name="resilient", args={"max_step": 10.0})), ResilientPropagation)
    assert isinstance(build_update_rule(UpdateRuleConfig(name="gradient_descent", momentum=0.5)), MomentumDescent)
    assert isinstance(build_update_rule(UpdateRuleConfig()), GradientDescent)
    with pytest.raises(ValueError, match="Unknown update rule"):
        build_update_rule(UpdateRuleConfig(name="adamw"))


def test_merge_uses_partition_order_not_arrival_order():
    first = _accumulator(0, 0, [[1.0, 0.0], [1.0, 1.0]], [0.5, 1.5])
    second = _accumulator(1, 2, [[3.0, 1.0]], [4.0])
    error, gradient, count = PropagationEngine.merge([second, first], parameter_count=2)
    assert count == 3
    assert error == pytest.approx(2.0)
    np.testing.assert_allclose(gradient, [5.0 / 3.0, 2.0 / 3.0])


def test_propose_does_not_touch_model_or_state():
    model = LinearModel(input_dim=1)
    engine = PropagationEngine(MomentumDescent(), LearningControls(0.1, 0.5), model.parameter_count)
    before = engine.export_state()
    result = engine.propose(model.get_parameters(), [_accumulator(0, 0, [[1.0, 1.0]], [2.0])])
    np.testing.assert_array_equal(model.get_parameters(), [0.0, 0.0])
    np.testing.assert_array_equal(engine.state["velocity"], before["velocity"])
    engine.commit(model, result)
    np.testing.assert_allclose(model.get_parameters(), [-0.1, -0.1])
    np.testing.assert_allclose(engine.state["velocity"], [-0.1, -0.1])
    assert result.error == 2.0
    assert not result.converged


def test_non_finite_error_raises_diverged():
    engine = PropagationEngine(GradientDescent(), LearningControls(0.1), 2)
    with pytest.raises(DivergedError) as excinfo:
        engine.propose(np.zeros(2), [_accumulator(0, 0, [[1.0, 1.0]], [np.inf])])
    assert excinfo.value.code == "diverged"


def test_non_finite_update_raises_diverged():
    engine = PropagationEngine(GradientDescent(), LearningControls(1e308), 2)
    with pytest.raises(DivergedError, match="non-finite parameters"):
        engine.propose(np.zeros(2), [_accumulator(0, 0, [[1e10, 0.0]], [1.0])])


def test_exported_state_is_read_only():
    engine = PropagationEngine(ResilientPropagation(), LearningControls(0.1), 3)
    exported = engine.export_state()
    with pytest.raises(ValueError):
        exported["update_values"][0] = 1.0
    with pytest.raises(ValueError, match="do not match"):
        engine.load_state({"velocity": np.zeros(3)})
