"""優化器策略測試"""

import jax.numpy as jnp
import optax
import pytest

from sac_training import ConfigurationError, GradientDescent, OptaxOptimizer
from sac_training.optimizers import make_optimizer


def test_gradient_descent_update():
    policy = GradientDescent().initialize((3,))
    params = jnp.array([1.0, 2.0, 3.0])
    grad = jnp.array([0.5, -1.0, 0.0])

    new_params = policy.update(params, 0.1, grad)

    assert jnp.allclose(new_params, jnp.array([0.95, 2.1, 3.0]))
    assert policy.steps == 1


def test_adam_first_step_moves_by_step_size():
    policy = OptaxOptimizer.adam().initialize((3,))
    params = jnp.zeros(3)
    grad = jnp.array([2.0, -3.0, 0.5])

    new_params = policy.update(params, 0.01, grad)

    # Adam 第一步：m_hat / sqrt(v_hat) = sign(g)
    assert jnp.allclose(new_params, -0.01 * jnp.sign(grad), atol=1e-6)


def test_step_size_is_passed_per_update():
    optimizer = OptaxOptimizer.adam()
    grad = jnp.ones(2)

    small = optimizer.initialize((2,)).update(jnp.zeros(2), 0.001, grad)
    large = optimizer.initialize((2,)).update(jnp.zeros(2), 0.1, grad)

    assert jnp.allclose(small, -0.001, atol=1e-6)
    assert jnp.allclose(large, -0.1, atol=1e-6)


def test_policies_from_one_optimizer_keep_independent_state():
    optimizer = OptaxOptimizer.adam()
    first = optimizer.initialize((2,))
    second = optimizer.initialize((2,))

    params = jnp.zeros(2)
    for _ in range(5):
        params = first.update(params, 0.01, jnp.array([1.0, -1.0]))

    assert first.steps == 5
    assert second.steps == 0

    fresh = optimizer.initialize((2,)).update(jnp.zeros(2), 0.01, jnp.array([0.3, 0.3]))
    from_second = second.update(jnp.zeros(2), 0.01, jnp.array([0.3, 0.3]))
    assert jnp.allclose(fresh, from_second)


def test_custom_optax_factory():
    policy = OptaxOptimizer(optax.sgd, momentum=0.9).initialize((1,))
    params = policy.update(jnp.zeros(1), 0.1, jnp.ones(1))
    params = policy.update(params, 0.1, jnp.ones(1))

    # momentum: -0.1, 然後 -0.1 * (1 + 0.9)
    assert jnp.allclose(params, jnp.array([-0.29]), atol=1e-6)


@pytest.mark.parametrize("optimizer", [GradientDescent(), OptaxOptimizer.adam()])
def test_shape_mismatch_raises(optimizer):
    policy = optimizer.initialize((3,))

    with pytest.raises(ConfigurationError):
        policy.update(jnp.zeros(4), 0.1, jnp.zeros(4))
    with pytest.raises(ConfigurationError):
        policy.update(jnp.zeros(3), 0.1, jnp.zeros(2))
    assert policy.steps == 0


def test_make_optimizer():
    assert isinstance(make_optimizer("sgd"), GradientDescent)
    assert isinstance(make_optimizer("adam"), OptaxOptimizer)
    assert isinstance(make_optimizer("rmsprop"), OptaxOptimizer)
    with pytest.raises(ConfigurationError):
        make_optimizer("unknown")
