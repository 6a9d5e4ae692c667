"""共用 fixtures：小型 LineWorld trainer"""

import pytest

from sac_envs import LineWorld
from sac_training import (
    OptaxOptimizer,
    RandomReplay,
    SACTrainer,
    TrainingConfig,
    make_policy_network,
    make_q_network,
)


def build_trainer(
    config=None,
    environment=None,
    state_dim=1,
    action_dim=1,
    batch_size=4,
    q_optimizer=None,
    policy_optimizer=None,
    replay=None,
    seed=0,
):
    if config is None:
        config = TrainingConfig(step_limit=5, exploration_steps=1)
    if environment is None:
        environment = LineWorld()
    if replay is None:
        replay = RandomReplay(batch_size, 100, state_dim, action_dim, seed=seed)

    return SACTrainer(
        config,
        make_q_network(state_dim, action_dim, (8,), seed=seed),
        make_policy_network(state_dim, action_dim, (8,), seed=seed + 1),
        replay,
        q_optimizer if q_optimizer is not None else OptaxOptimizer.adam(),
        policy_optimizer if policy_optimizer is not None else OptaxOptimizer.adam(),
        environment,
        seed=seed,
    )


@pytest.fixture
def make_trainer():
    return build_trainer
