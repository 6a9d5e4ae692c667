"""JAX Twin-critic SAC 訓練模組

Usage:
    from sac_training import RunConfig, train_sac

    config = RunConfig(env_name="Pendulum-v1", episodes=100)
    train_sac(config)
"""

from .config import ConfigurationError, RunConfig, TrainingConfig
from .losses import HuberLoss, MeanSquaredError
from .networks import (
    FunctionApproximator,
    PolicyNetwork,
    QNetwork,
    make_policy_network,
    make_q_network,
)
from .optimizers import GradientDescent, OptaxOptimizer, Optimizer, UpdatePolicy
from .replay_buffer import Batch, RandomReplay
from .sac_trainer import EpisodeResult, SACTrainer, Termination
from .train_sac import train_sac

__all__ = [
    "ConfigurationError",
    "RunConfig",
    "TrainingConfig",
    "HuberLoss",
    "MeanSquaredError",
    "FunctionApproximator",
    "PolicyNetwork",
    "QNetwork",
    "make_policy_network",
    "make_q_network",
    "GradientDescent",
    "OptaxOptimizer",
    "Optimizer",
    "UpdatePolicy",
    "Batch",
    "RandomReplay",
    "EpisodeResult",
    "SACTrainer",
    "Termination",
    "train_sac",
]
