"""環境測試：LineWorld、encode_state、gymnasium adapter"""

import jax.numpy as jnp
import numpy as np
import pytest

from sac_envs import (
    GymEnvironment,
    GymState,
    LineState,
    LineWorld,
    encode_state,
    is_absorbing,
)


# =============================================================================
# LineWorld
# =============================================================================

def test_line_world_dynamics():
    env = LineWorld(bound=2.0)
    state = env.initial_sample()
    assert state == LineState(position=0.0)

    reward, state = env.sample(state, jnp.array([1.5]))
    assert state.position == pytest.approx(1.5)
    assert reward == pytest.approx(-1.5)
    assert not env.is_terminal(state)

    reward, state = env.sample(state, jnp.array([1.0]))
    assert reward == pytest.approx(-2.5)
    assert env.is_terminal(state)


def test_line_world_is_stateless():
    env = LineWorld()
    state = LineState(position=3.0)

    first = env.sample(state, jnp.array([-0.5]))
    second = env.sample(state, jnp.array([-0.5]))

    assert first == second


def test_line_world_bound_is_exclusive():
    env = LineWorld(bound=1.0)
    assert not env.is_terminal(LineState(position=1.0))
    assert env.is_terminal(LineState(position=-1.01))


# =============================================================================
# encode_state
# =============================================================================

def test_encode_state_uses_encode_method():
    encoded = encode_state(LineState(position=0.25))
    assert encoded.shape == (1,)
    assert encoded.dtype == jnp.float32
    assert float(encoded[0]) == 0.25


def test_encode_state_flattens_arrays_and_scalars():
    assert encode_state(np.ones((2, 3))).shape == (6,)
    assert encode_state(4).tolist() == [4.0]


# =============================================================================
# GymEnvironment
# =============================================================================

def test_gym_environment_dimensions():
    env = GymEnvironment("Pendulum-v1", seed=0)
    try:
        assert env.state_dim == 3
        assert env.action_dim == 1
        assert env.action_scale == pytest.approx(2.0)

        state = env.initial_sample()
        assert isinstance(state, GymState)
        assert encode_state(state).shape == (3,)
        assert not env.is_terminal(state)

        reward, next_state = env.sample(state, np.array([5.0]))
        assert isinstance(reward, float)
        assert next_state.observation.shape == (3,)
    finally:
        env.close()


def test_gym_environment_truncation_is_terminal():
    env = GymEnvironment("Pendulum-v1", seed=0)
    try:
        state = env.initial_sample()
        steps = 0
        while not env.is_terminal(state):
            _, state = env.sample(state, np.zeros(1))
            steps += 1
        assert steps == 200
        # 時間限制截斷：結束 episode 但不是 absorbing
        assert state.truncated
        assert not env.is_absorbing(state)
        assert not is_absorbing(env, state)
    finally:
        env.close()


def test_gym_environment_seeded_reset_is_reproducible():
    first = GymEnvironment("Pendulum-v1", seed=3)
    second = GymEnvironment("Pendulum-v1", seed=3)
    try:
        assert np.array_equal(
            first.initial_sample().observation, second.initial_sample().observation
        )
    finally:
        first.close()
        second.close()


def test_gym_environment_rejects_discrete_actions():
    with pytest.raises(ValueError):
        GymEnvironment("CartPole-v1")


def test_gym_state_termination_flags():
    env = GymEnvironment("Pendulum-v1")
    try:
        observation = np.zeros(3, dtype=np.float32)
        terminated = GymState(observation, terminated=True)
        truncated = GymState(observation, truncated=True)

        assert env.is_terminal(terminated) and env.is_absorbing(terminated)
        assert env.is_terminal(truncated) and not env.is_absorbing(truncated)
        assert not env.is_terminal(GymState(observation))
    finally:
        env.close()


def test_is_absorbing_defaults_to_is_terminal():
    env = LineWorld(bound=1.0)

    assert is_absorbing(env, LineState(position=2.0))
    assert not is_absorbing(env, LineState(position=0.5))
