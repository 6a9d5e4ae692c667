"""TrainingConfig / RunConfig 驗證"""

import dataclasses

import pytest

from sac_training import ConfigurationError, RunConfig, TrainingConfig


def test_training_config_defaults():
    config = TrainingConfig()

    assert config.discount == 0.99
    assert config.step_size == 0.01
    assert config.step_limit == 200
    assert config.target_network_sync_interval == 100
    assert config.exploration_steps == 1


def test_training_config_is_read_only():
    config = TrainingConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.discount = 0.5


@pytest.mark.parametrize(
    "kwargs",
    [
        {"discount": -0.1},
        {"discount": 1.5},
        {"step_size": 0.0},
        {"step_limit": -1},
        {"target_network_sync_interval": 0},
        {"exploration_steps": -5},
    ],
)
def test_training_config_rejects_invalid_values(kwargs):
    with pytest.raises(ConfigurationError):
        TrainingConfig(**kwargs)


def test_configuration_error_is_value_error():
    assert issubclass(ConfigurationError, ValueError)


def test_step_limit_zero_means_unlimited_is_allowed():
    assert TrainingConfig(step_limit=0).step_limit == 0


def test_to_dict_contains_all_hyperparameters():
    d = TrainingConfig(discount=0.9).to_dict()
    assert d == {
        "discount": 0.9,
        "step_size": 0.01,
        "step_limit": 200,
        "target_network_sync_interval": 100,
        "exploration_steps": 1,
    }


def test_run_config_flattens_training_config():
    d = RunConfig(training=TrainingConfig(step_limit=7)).to_dict()
    assert d["step_limit"] == 7
    assert d["env_name"] == "line_world"


@pytest.mark.parametrize(
    "kwargs",
    [{"optimizer": "lbfgs"}, {"loss": "l1"}, {"batch_size": 0}, {"buffer_size": 0}, {"episodes": -1}],
)
def test_run_config_rejects_invalid_values(kwargs):
    with pytest.raises(ConfigurationError):
        RunConfig(**kwargs)
