"""SAC 訓練配置

使用 dataclass 提供類型安全的配置管理。
- TrainingConfig：trainer 在整個生命週期內唯讀的超參數
- RunConfig：訓練腳本（train_sac.py）使用的執行設定，trainer 本身不讀取

## 預設值來源

| 參數 | 預設 | 說明 |
|------|------|------|
| discount | 0.99 | 折扣因子 |
| step_size | 0.01 | 優化器步長（critic 與 policy 共用） |
| step_limit | 200 | 每 episode 最大步數，0 = 不限制 |
| target_network_sync_interval | 100 | 每隔多少 total_steps 做一次 soft update |
| exploration_steps | 1 | 開始學習前的 warm-up 步數 |
"""

from dataclasses import asdict, dataclass, field
from typing import Tuple


class ConfigurationError(ValueError):
    """配置或網路形狀不合法（在建構時拋出，屬於致命錯誤）"""


@dataclass(frozen=True)
class TrainingConfig:
    """Trainer 超參數

    Attributes:
        discount: 折扣因子 gamma
        step_size: 優化器步長
        step_limit: 每 episode 最大步數（0 表示只在 terminal state 結束）
        target_network_sync_interval: Target critic soft update 間隔（以 total_steps 計）
        exploration_steps: total_steps 未達此值前只收集資料、不更新
    """

    discount: float = 0.99
    step_size: float = 0.01
    step_limit: int = 200
    target_network_sync_interval: int = 100
    exploration_steps: int = 1

    def __post_init__(self):
        """驗證超參數範圍"""
        if not 0.0 <= self.discount <= 1.0:
            raise ConfigurationError(f"discount 必須在 [0, 1]，got {self.discount}")
        if self.step_size <= 0.0:
            raise ConfigurationError(f"step_size 必須為正數，got {self.step_size}")
        if self.step_limit < 0:
            raise ConfigurationError(f"step_limit 不可為負，got {self.step_limit}")
        if self.target_network_sync_interval < 1:
            raise ConfigurationError(
                "target_network_sync_interval 必須 >= 1，"
                f"got {self.target_network_sync_interval}"
            )
        if self.exploration_steps < 0:
            raise ConfigurationError(
                f"exploration_steps 不可為負，got {self.exploration_steps}"
            )

    def to_dict(self) -> dict:
        """轉換為字典（用於 logging）"""
        return asdict(self)


@dataclass
class RunConfig:
    """訓練腳本完整配置

    Attributes:
        # 環境
        env_name: "line_world" 或任何 gymnasium 連續動作環境 ID（例如 "Pendulum-v1"）
        episodes: 訓練 episode 數

        # 網路 / 優化器
        hidden_dims: 隱藏層維度
        optimizer: "adam"、"rmsprop" 或 "sgd"
        loss: "mse" 或 "huber"

        # Replay Buffer
        batch_size: 每次更新的 batch size
        buffer_size: Replay Buffer 容量

        # 評估 & Logging & Checkpoint
        eval_frequency: 每隔幾個 episode 評估一次（0 = 不評估）
        eval_episodes: 每次評估的 episode 數
        log_frequency: 每隔幾個 episode 輸出一次
        save_frequency: 每隔幾個 episode 保存 checkpoint（0 = 只存最終）
        checkpoint_dir: Checkpoint 保存目錄

        # 監控
        use_wandb: 是否使用 W&B
        use_mlflow: 是否使用 MLflow
    """

    # === 環境 ===
    env_name: str = "line_world"
    episodes: int = 200

    # === Trainer 超參數 ===
    training: TrainingConfig = field(default_factory=TrainingConfig)

    # === 網路架構 / 優化器 ===
    hidden_dims: Tuple[int, ...] = (64, 64)
    optimizer: str = "adam"
    loss: str = "mse"

    # === Replay Buffer ===
    batch_size: int = 64
    buffer_size: int = 100_000

    # === 評估 & Logging & Checkpoint ===
    eval_frequency: int = 20
    eval_episodes: int = 5
    log_frequency: int = 10
    save_frequency: int = 0
    checkpoint_dir: str = "exp/sac/checkpoints"

    # === 監控 ===
    use_wandb: bool = False
    use_mlflow: bool = False
    wandb_project: str = "twin_sac"
    mlflow_experiment: str = "twin_sac"

    # === 隨機種子 ===
    seed: int = 42

    def __post_init__(self):
        if self.episodes < 0:
            raise ConfigurationError(f"episodes 不可為負，got {self.episodes}")
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size 必須 >= 1，got {self.batch_size}")
        if self.buffer_size < 1:
            raise ConfigurationError(f"buffer_size 必須 >= 1，got {self.buffer_size}")
        if self.optimizer not in ("adam", "rmsprop", "sgd"):
            raise ConfigurationError(f"未知的 optimizer: {self.optimizer}")
        if self.loss not in ("mse", "huber"):
            raise ConfigurationError(f"未知的 loss: {self.loss}")

    def to_dict(self) -> dict:
        """轉換為扁平字典（用於 logging）"""
        return {
            "env_name": self.env_name,
            "episodes": self.episodes,
            **self.training.to_dict(),
            "hidden_dims": self.hidden_dims,
            "optimizer": self.optimizer,
            "loss": self.loss,
            "batch_size": self.batch_size,
            "buffer_size": self.buffer_size,
            "seed": self.seed,
        }
