"""SAC 訓練主腳本

提供完整的 episode 式 SAC 訓練流程。

Features:
- LineWorld 或任意 gymnasium 連續動作環境
- W&B + MLflow 雙重追蹤（皆為可選依賴）
- 定期 checkpoint 保存（pickle）與訓練進度恢復
- 定期確定性評估

Usage:
    from sac_training import RunConfig, train_sac

    config = RunConfig(env_name="Pendulum-v1", episodes=100)
    trainer, checkpoint_path = train_sac(config)

    # 命令行
    python -m sac_training.train_sac --env Pendulum-v1 --episodes 100
"""

import pickle
import time
from pathlib import Path
from typing import Dict, Optional, Tuple

import numpy as np

# 可選依賴
try:
    import wandb
    HAS_WANDB = True
except ImportError:
    HAS_WANDB = False
    print("Warning: wandb not installed, W&B logging disabled")

try:
    import mlflow
    HAS_MLFLOW = True
except ImportError:
    HAS_MLFLOW = False
    print("Warning: mlflow not installed, MLflow logging disabled")

from sac_envs import GymEnvironment, LineWorld

from .config import RunConfig, TrainingConfig
from .losses import make_loss
from .networks import make_policy_network, make_q_network
from .optimizers import make_optimizer
from .replay_buffer import RandomReplay
from .sac_trainer import SACTrainer, Termination


# =============================================================================
# Logging
# =============================================================================

def setup_logging(config: RunConfig) -> str:
    """設置 W&B 和 MLflow

    Returns:
        run_id（用於 checkpoint 目錄命名）
    """
    run_id = f"sac_{int(time.time())}"

    if config.use_wandb and HAS_WANDB:
        wandb.init(
            project=config.wandb_project,
            config=config.to_dict(),
            name=f"sac_{config.env_name}_{config.episodes}ep",
        )
        run_id = wandb.run.id

    if config.use_mlflow and HAS_MLFLOW:
        mlflow.set_experiment(config.mlflow_experiment)
        mlflow.start_run(run_name=f"sac_{config.env_name}")
        mlflow.log_params(config.to_dict())

    return run_id


def log_metrics(metrics: Dict[str, float], step: int, config: RunConfig):
    """記錄指標到 W&B 和 MLflow"""
    if config.use_wandb and HAS_WANDB:
        wandb.log(metrics, step=step)

    if config.use_mlflow and HAS_MLFLOW:
        for key, value in metrics.items():
            # MLflow 不支持 "/" 在 metric name 中
            mlflow.log_metric(key.replace("/", "_"), float(value), step=step)


def finish_logging(config: RunConfig):
    """結束 logging sessions"""
    if config.use_wandb and HAS_WANDB:
        wandb.finish()

    if config.use_mlflow and HAS_MLFLOW:
        mlflow.end_run()


# =============================================================================
# Checkpoint
# =============================================================================

def save_checkpoint(
    trainer: SACTrainer,
    episode: int,
    config: RunConfig,
    run_id: str,
    is_final: bool = False,
) -> str:
    """保存 checkpoint

    Returns:
        checkpoint 路徑
    """
    checkpoint_dir = Path(config.checkpoint_dir) / run_id
    checkpoint_dir.mkdir(parents=True, exist_ok=True)

    filename = "final_checkpoint.pkl" if is_final else f"checkpoint_ep{episode}.pkl"
    checkpoint_path = checkpoint_dir / filename

    checkpoint = trainer.get_checkpoint()
    checkpoint["episode"] = episode
    checkpoint["run_id"] = run_id

    with open(checkpoint_path, "wb") as f:
        pickle.dump(checkpoint, f)

    print(f"✓ Checkpoint saved: {checkpoint_path}")

    if config.use_mlflow and HAS_MLFLOW:
        mlflow.log_artifact(str(checkpoint_path))

    return str(checkpoint_path)


def load_checkpoint(checkpoint_path: str, trainer: SACTrainer) -> int:
    """載入 checkpoint

    Returns:
        checkpoint 保存時的 episode 數
    """
    with open(checkpoint_path, "rb") as f:
        checkpoint = pickle.load(f)

    trainer.load_checkpoint(checkpoint)
    episode = checkpoint.get("episode", 0)

    print(f"✓ Loaded checkpoint from episode {episode} (total_steps={trainer.total_steps})")

    return episode


# =============================================================================
# Builders
# =============================================================================

def make_environment(config: RunConfig):
    """依 env_name 創建環境"""
    if config.env_name == "line_world":
        return LineWorld()
    return GymEnvironment(config.env_name, seed=config.seed)


def build_trainer(config: RunConfig, environment=None) -> SACTrainer:
    """根據 RunConfig 組裝 SACTrainer"""
    if environment is None:
        environment = make_environment(config)

    state_dim = environment.state_dim
    action_dim = environment.action_dim
    action_scale = getattr(environment, "action_scale", 1.0)

    q_network = make_q_network(
        state_dim, action_dim, config.hidden_dims, seed=config.seed
    )
    policy_network = make_policy_network(
        state_dim, action_dim, config.hidden_dims,
        action_scale=action_scale, seed=config.seed + 1,
    )
    replay = RandomReplay(
        batch_size=config.batch_size,
        capacity=config.buffer_size,
        state_dim=state_dim,
        action_dim=action_dim,
        seed=config.seed + 2,
    )

    return SACTrainer(
        config.training,
        q_network,
        policy_network,
        replay,
        make_optimizer(config.optimizer),
        make_optimizer(config.optimizer),
        environment,
        loss=make_loss(config.loss),
        seed=config.seed + 3,
    )


# =============================================================================
# Training Loop
# =============================================================================

def evaluate_policy(trainer: SACTrainer, num_episodes: int) -> Dict[str, float]:
    """以確定性模式評估當前策略

    評估期間不加探索噪聲、不更新網路；結束後恢復原本的 deterministic 設定。
    注意 total_steps 仍會照常累加。
    """
    previous = trainer.deterministic
    trainer.deterministic = True
    try:
        returns = [trainer.episode().total_return for _ in range(num_episodes)]
    finally:
        trainer.deterministic = previous

    return {
        "eval/mean_reward": float(np.mean(returns)),
        "eval/std_reward": float(np.std(returns)),
        "eval/min_reward": float(np.min(returns)),
        "eval/max_reward": float(np.max(returns)),
        "eval/num_episodes": num_episodes,
    }


def train_sac(
    config: RunConfig,
    resume_from: Optional[str] = None,
    environment=None,
) -> Tuple[SACTrainer, str]:
    """SAC 訓練主循環

    Args:
        config: 訓練配置
        resume_from: 可選的 checkpoint 路徑，用於恢復訓練
        environment: 可選的環境實例（預設依 config.env_name 創建）

    Returns:
        (trainer, final_checkpoint_path)
    """
    print("=" * 60)
    print(f"Twin-critic SAC Training on {config.env_name}")
    print("=" * 60)
    print(f"Episodes: {config.episodes:,}")
    print(f"Step limit: {config.training.step_limit}")
    print(f"Exploration steps: {config.training.exploration_steps}")
    print("=" * 60)

    run_id = setup_logging(config)

    print("\n[1/2] Creating trainer...")
    trainer = build_trainer(config, environment)
    print(
        f"✓ Trainer created: action_dim={trainer.action_dim}, "
        f"critic params={trainer.learning_q1.parameters.size:,}, "
        f"policy params={trainer.policy.parameters.size:,}"
    )

    start_episode = 0
    if resume_from:
        start_episode = load_checkpoint(resume_from, trainer)

    print("\n[2/2] Starting training loop...")
    start_time = time.time()
    episode_returns = []

    for episode in range(start_episode + 1, config.episodes + 1):
        result = trainer.episode()
        episode_returns.append(result.total_return)

        metrics = {
            "train/episode_reward": result.total_return,
            "train/episode_length": result.steps,
            "train/step_limit_reached": float(result.termination is Termination.STEP_LIMIT_REACHED),
            "train/total_steps": trainer.total_steps,
        }
        metrics.update({k: float(v) for k, v in trainer.last_update_info.items()})
        log_metrics(metrics, trainer.total_steps, config)

        if config.log_frequency and episode % config.log_frequency == 0:
            elapsed_time = time.time() - start_time
            recent = float(np.mean(episode_returns[-config.log_frequency:]))
            q_mean = trainer.last_update_info.get("critic/q1_mean")
            q_text = f"{float(q_mean):.2f}" if q_mean is not None else "-"
            print(
                f"Episode {episode}/{config.episodes} | "
                f"Steps: {trainer.total_steps:,} | "
                f"Reward: {result.total_return:.2f} (avg {recent:.2f}) | "
                f"Q: {q_text} | "
                f"Time: {elapsed_time:.0f}s"
            )

        if config.eval_frequency and episode % config.eval_frequency == 0:
            eval_metrics = evaluate_policy(trainer, config.eval_episodes)
            log_metrics(eval_metrics, trainer.total_steps, config)
            print(f"  [Eval] Mean reward: {eval_metrics['eval/mean_reward']:.2f}")

        if config.save_frequency and episode % config.save_frequency == 0:
            save_checkpoint(trainer, episode, config, run_id)

    print("\n" + "=" * 60)
    print("Training completed!")
    print("=" * 60)

    final_path = save_checkpoint(trainer, config.episodes, config, run_id, is_final=True)
    finish_logging(config)

    total_time = time.time() - start_time
    print(f"\nTotal time: {total_time:.1f}s")
    print(f"Total steps: {trainer.total_steps:,}")
    print(f"Final checkpoint: {final_path}")

    return trainer, final_path


# =============================================================================
# CLI
# =============================================================================

def parse_args(argv=None) -> Tuple[RunConfig, Optional[str]]:
    """解析命令行參數

    Returns:
        (config, resume_from)
    """
    import argparse

    parser = argparse.ArgumentParser(description="Train twin-critic SAC")
    # 環境 / 訓練長度
    parser.add_argument("--env", type=str, default="line_world")
    parser.add_argument("--episodes", type=int, default=200)
    parser.add_argument("--step_limit", type=int, default=200)
    parser.add_argument("--exploration_steps", type=int, default=1)
    parser.add_argument("--sync_interval", type=int, default=100)
    parser.add_argument("--step_size", type=float, default=0.01)
    parser.add_argument("--discount", type=float, default=0.99)
    # 網路 / 優化器
    parser.add_argument("--hidden_dims", type=int, nargs="+", default=[64, 64])
    parser.add_argument("--optimizer", type=str, default="adam", choices=["adam", "rmsprop", "sgd"])
    parser.add_argument("--loss", type=str, default="mse", choices=["mse", "huber"])
    # Replay Buffer
    parser.add_argument("--batch_size", type=int, default=64)
    parser.add_argument("--buffer_size", type=int, default=100_000)
    # 評估 / Logging / Checkpoint
    parser.add_argument("--eval_frequency", type=int, default=20, help="0 = 不評估")
    parser.add_argument("--eval_episodes", type=int, default=5)
    parser.add_argument("--log_frequency", type=int, default=10)
    parser.add_argument("--save_frequency", type=int, default=0, help="0 = 只存最終 checkpoint")
    parser.add_argument("--checkpoint_dir", type=str, default="exp/sac/checkpoints")
    parser.add_argument("--resume", type=str, default=None, help="Checkpoint path to resume from")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--wandb", action="store_true")
    parser.add_argument("--mlflow", action="store_true")

    args = parser.parse_args(argv)

    config = RunConfig(
        env_name=args.env,
        episodes=args.episodes,
        training=TrainingConfig(
            discount=args.discount,
            step_size=args.step_size,
            step_limit=args.step_limit,
            target_network_sync_interval=args.sync_interval,
            exploration_steps=args.exploration_steps,
        ),
        hidden_dims=tuple(args.hidden_dims),
        optimizer=args.optimizer,
        loss=args.loss,
        batch_size=args.batch_size,
        buffer_size=args.buffer_size,
        eval_frequency=args.eval_frequency,
        eval_episodes=args.eval_episodes,
        log_frequency=args.log_frequency,
        save_frequency=args.save_frequency,
        checkpoint_dir=args.checkpoint_dir,
        use_wandb=args.wandb,
        use_mlflow=args.mlflow,
        seed=args.seed,
    )

    return config, args.resume


def main():
    """命令行入口"""
    config, resume_from = parse_args()
    train_sac(config, resume_from=resume_from)


if __name__ == "__main__":
    main()
