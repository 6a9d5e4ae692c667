"""訓練腳本測試：完整訓練循環、checkpoint 恢復、評估、CLI"""

import os
import pickle
import sys

import jax.numpy as jnp
import pytest

from sac_envs import LineWorld
from sac_training import RunConfig, TrainingConfig, train_sac
from sac_training.train_sac import (
    build_trainer,
    evaluate_policy,
    load_checkpoint,
    main,
    parse_args,
)


def _small_config(tmp_path, **overrides):
    kwargs = dict(
        env_name="line_world",
        episodes=3,
        training=TrainingConfig(
            step_limit=5, exploration_steps=3, target_network_sync_interval=2
        ),
        hidden_dims=(8,),
        batch_size=4,
        buffer_size=100,
        eval_frequency=2,
        eval_episodes=1,
        log_frequency=1,
        save_frequency=2,
        checkpoint_dir=str(tmp_path),
        seed=0,
    )
    kwargs.update(overrides)
    return RunConfig(**kwargs)


def test_train_sac_smoke(tmp_path):
    config = _small_config(tmp_path)

    trainer, final_path = train_sac(config)

    # 3 個訓練 episode + 1 個評估 episode，每個 5 步
    assert trainer.total_steps == 20
    assert trainer.deterministic is False
    assert os.path.exists(final_path)
    assert os.path.exists(os.path.join(os.path.dirname(final_path), "checkpoint_ep2.pkl"))

    with open(final_path, "rb") as f:
        checkpoint = pickle.load(f)
    assert checkpoint["episode"] == 3
    assert checkpoint["total_steps"] == 20
    assert jnp.array_equal(checkpoint["policy"], trainer.policy.parameters)


def test_train_sac_resume(tmp_path):
    _, final_path = train_sac(_small_config(tmp_path))

    trainer, _ = train_sac(_small_config(tmp_path, episodes=4), resume_from=final_path)

    # 從 episode 3 / total_steps 20 繼續：1 個訓練 episode + 1 個評估 episode
    assert trainer.total_steps == 30


def test_load_checkpoint_returns_episode(tmp_path):
    config = _small_config(tmp_path)
    _, final_path = train_sac(config)

    trainer = build_trainer(config)
    episode = load_checkpoint(final_path, trainer)

    assert episode == 3
    assert trainer.total_steps == 20


def test_build_trainer_matches_environment(tmp_path):
    config = _small_config(tmp_path)

    trainer = build_trainer(config, environment=LineWorld())

    assert trainer.action_dim == 1
    assert trainer.learning_q1.input_dim == 2
    assert trainer.replay.batch_size == 4


def test_evaluate_policy_restores_mode(tmp_path):
    trainer = build_trainer(_small_config(tmp_path))
    q1_before = trainer.learning_q1.parameters

    metrics = evaluate_policy(trainer, num_episodes=2)

    assert trainer.deterministic is False
    assert metrics["eval/num_episodes"] == 2
    assert metrics["eval/min_reward"] <= metrics["eval/mean_reward"] <= metrics["eval/max_reward"]
    assert trainer.q1_update_policy.steps == 0
    assert jnp.array_equal(trainer.learning_q1.parameters, q1_before)


def test_evaluate_policy_restores_mode_on_error(tmp_path):
    class BrokenEnv(LineWorld):
        def sample(self, state, action):
            raise RuntimeError("simulator crashed")

    trainer = build_trainer(_small_config(tmp_path), environment=BrokenEnv())

    with pytest.raises(RuntimeError):
        evaluate_policy(trainer, num_episodes=1)
    assert trainer.deterministic is False


def test_cli_main(tmp_path, monkeypatch):
    monkeypatch.setattr(
        sys,
        "argv",
        [
            "twin-sac-train",
            "--episodes", "2",
            "--step_limit", "3",
            "--batch_size", "2",
            "--optimizer", "sgd",
            "--hidden_dims", "8",
            "--loss", "huber",
            "--eval_frequency", "0",
            "--checkpoint_dir", str(tmp_path),
        ],
    )

    main()

    saved = list(tmp_path.rglob("final_checkpoint.pkl"))
    assert len(saved) == 1


def test_parse_args_exposes_run_config():
    config, resume_from = parse_args([
        "--hidden_dims", "32", "16",
        "--loss", "huber",
        "--buffer_size", "500",
        "--eval_frequency", "0",
        "--eval_episodes", "3",
        "--log_frequency", "2",
        "--save_frequency", "7",
        "--sync_interval", "5",
        "--resume", "ckpt.pkl",
    ])

    assert config.hidden_dims == (32, 16)
    assert config.loss == "huber"
    assert config.buffer_size == 500
    assert config.eval_frequency == 0
    assert config.eval_episodes == 3
    assert config.log_frequency == 2
    assert config.save_frequency == 7
    assert config.training.target_network_sync_interval == 5
    assert resume_from == "ckpt.pkl"


def test_parse_args_defaults_match_run_config():
    config, resume_from = parse_args([])

    assert config == RunConfig()
    assert resume_from is None


def test_parse_args_rejects_unknown_loss():
    with pytest.raises(SystemExit):
        parse_args(["--loss", "l1"])
