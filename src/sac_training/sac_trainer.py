"""Twin-critic SAC Trainer

Soft Actor-Critic 風格的 off-policy 連續動作 trainer。
網路、優化器、replay buffer、環境都以介面注入，trainer 只負責
更新規則與 rollout 控制流程。

Features:
- Twin Q-Networks：兩個獨立初始化的 critic，bootstrap target 取兩個
  target critic 的最小值（減少過估計）
- Per-sample pessimistic policy update：每個樣本選 Q 值較小的 critic 反傳
- Soft Target Update（Polyak averaging，rho = 0.005）
- 均勻噪聲探索（clamp 在 [-0.25, 0.25]）+ warm-up 期間不更新

與標準 SAC 的差異：
- 策略為確定性輸出，探索使用 clamped uniform noise（沒有 entropy 項）
- 沒有 target policy

References:
- SAC 論文: https://arxiv.org/abs/1801.01290
- Clipped double-Q（TD3）: https://arxiv.org/abs/1802.09477
"""

from enum import Enum
from typing import Any, Dict, NamedTuple, Optional

import jax
import jax.numpy as jnp

from sac_envs.base import encode_state, is_absorbing

from .config import ConfigurationError, TrainingConfig
from .losses import MeanSquaredError
from .networks import FunctionApproximator
from .optimizers import Optimizer

# Target critic 的 Polyak 係數
SOFT_UPDATE_RHO = 0.005

# 探索噪聲：uniform[0, 1) * scale，再 clamp 到 [-clip, clip]
EXPLORATION_NOISE_SCALE = 0.1
EXPLORATION_NOISE_CLIP = 0.25

_NETWORK_NAMES = ("learning_q1", "learning_q2", "target_q1", "target_q2", "policy")


class Termination(Enum):
    """Episode 結束原因（兩者都不是錯誤）"""
    TERMINAL = "terminal"
    STEP_LIMIT_REACHED = "step_limit_reached"


class EpisodeResult(NamedTuple):
    """episode() 的結果

    Attributes:
        total_return: 累積獎勵
        steps: 本 episode 的步數
        termination: 結束原因
    """
    total_return: float
    steps: int
    termination: Termination


def bootstrap_target(
    rewards: jnp.ndarray,
    terminals: jnp.ndarray,
    discount: float,
    q1: jnp.ndarray,
    q2: jnp.ndarray,
) -> jnp.ndarray:
    """TD target：r + gamma * (1 - done) * min(Q1', Q2')"""
    return rewards + discount * (1.0 - terminals) * jnp.minimum(q1, q2)


def use_first_critic(q1, q2):
    """是否選擇 Q1（嚴格小於；相等時選 Q2）"""
    return q1 < q2


class SACTrainer:
    """Twin-critic SAC Trainer

    Example:
        env = LineWorld()
        trainer = SACTrainer(
            TrainingConfig(),
            make_q_network(1, 1, (64, 64)),
            make_policy_network(1, 1, (64, 64)),
            RandomReplay(batch_size=32, capacity=10_000, state_dim=1, action_dim=1),
            OptaxOptimizer.adam(),
            OptaxOptimizer.adam(),
            env,
        )
        result = trainer.episode()
    """

    def __init__(
        self,
        config: TrainingConfig,
        q_network: FunctionApproximator,
        policy_network: FunctionApproximator,
        replay,
        q_optimizer: Optimizer,
        policy_optimizer: Optimizer,
        environment,
        loss=None,
        seed: int = 0,
    ):
        """
        Args:
            config: Trainer 超參數
            q_network: learning critic（成為 learning_q1）
            policy_network: 策略網路
            replay: 提供 store() / sample() 的 replay buffer
            q_optimizer: 兩個 critic 共用的優化器設定（狀態各自獨立）
            policy_optimizer: 策略網路的優化器
            environment: 提供 initial_sample / is_terminal / sample 的環境
                （可選 is_absorbing，決定 replay 中的 terminal 標誌）
            loss: critic loss，預設 MeanSquaredError
            seed: 探索噪聲的 random seed

        Raises:
            ConfigurationError: 網路形狀彼此不相容或與優化器不符
        """
        self.config = config
        self.replay = replay
        self.environment = environment
        self.loss = loss if loss is not None else MeanSquaredError()

        # ===== 初始化網路 =====
        if q_network.parameters.size == 0:
            q_network.reset_parameters()
        if policy_network.parameters.size == 0:
            policy_network.reset_parameters()

        self.learning_q1 = q_network
        self.policy = policy_network

        # Q2 從 Q1 複製結構後重新初始化，讓兩個 critic 從不同起點出發
        self.learning_q2 = q_network.clone()
        self.learning_q2.reset_parameters()

        # Target critics（硬拷貝）
        self.target_q1 = self.learning_q1.clone()
        self.target_q2 = self.learning_q2.clone()

        self._check_networks()

        # ===== 每個網路各自的優化器狀態 =====
        self.q1_update_policy = q_optimizer.initialize(self.learning_q1.parameters.shape)
        self.q2_update_policy = q_optimizer.initialize(self.learning_q2.parameters.shape)
        self.policy_update_policy = policy_optimizer.initialize(self.policy.parameters.shape)

        for network, update_policy in (
            (self.learning_q1, self.q1_update_policy),
            (self.learning_q2, self.q2_update_policy),
            (self.policy, self.policy_update_policy),
        ):
            if tuple(update_policy.shape) != tuple(network.parameters.shape):
                raise ConfigurationError(
                    f"優化器形狀 {update_policy.shape} 與網路參數 "
                    f"{network.parameters.shape} 不符"
                )

        # ===== 計數器 / rollout 狀態 =====
        self.total_steps = 0
        self.deterministic = False
        self.state: Any = None
        self.action: Optional[jnp.ndarray] = None
        self.last_update_info: Dict[str, Any] = {}

        self._rng = jax.random.PRNGKey(seed)

    @property
    def action_dim(self) -> int:
        return self.policy.output_dim

    def _check_networks(self):
        """驗證 critic 輸入 = [action, state]、輸出為 scalar，四個 critic 形狀一致"""
        expected_input = self.policy.output_dim + self.policy.input_dim
        if self.learning_q1.input_dim != expected_input:
            raise ConfigurationError(
                f"Critic 輸入維度 {self.learning_q1.input_dim} 應等於 "
                f"action_dim + state_dim = {expected_input}"
            )
        if self.learning_q1.output_dim != 1:
            raise ConfigurationError(
                f"Critic 輸出維度必須為 1，got {self.learning_q1.output_dim}"
            )

        shape = self.learning_q1.parameters.shape
        for name in ("learning_q2", "target_q1", "target_q2"):
            other = getattr(self, name).parameters.shape
            if other != shape:
                raise ConfigurationError(f"{name} 參數形狀 {other} 與 learning_q1 {shape} 不符")

    # =========================================================================
    # Target Network
    # =========================================================================

    def soft_update(self, rho: float):
        """target = (1 - rho) * target + rho * learning"""
        self.target_q1.parameters = (
            (1 - rho) * self.target_q1.parameters + rho * self.learning_q1.parameters
        )
        self.target_q2.parameters = (
            (1 - rho) * self.target_q2.parameters + rho * self.learning_q2.parameters
        )

    # =========================================================================
    # Update
    # =========================================================================

    def update(self) -> Dict[str, Any]:
        """SAC 更新

        執行順序：
        1. 更新兩個 Critic（共用同一個 bootstrap target）
        2. 更新 Policy（per-sample 選較保守的 critic）
        3. total_steps 為 sync interval 的倍數時 Soft update Target Critics

        Returns:
            info 字典（critic/*, actor/*, target/synced）
        """
        batch = self.replay.sample()

        info = self._update_critics(batch)
        info.update(self._update_policy(batch))

        synced = self.total_steps % self.config.target_network_sync_interval == 0
        if synced:
            self.soft_update(SOFT_UPDATE_RHO)
        info["target/synced"] = synced

        return info

    def _update_critics(self, batch) -> Dict[str, Any]:
        """更新 learning_q1 / learning_q2"""
        # 1. Policy 對 next state 的動作（不加噪聲）
        next_actions = self.policy.predict(batch.next_states)

        # 2. Target critics 評估 [next_action, next_state]
        target_input = jnp.concatenate([next_actions, batch.next_states], axis=-1)
        next_q1 = self.target_q1.predict(target_input)[:, 0]
        next_q2 = self.target_q2.predict(target_input)[:, 0]

        # 3. TD target
        target_q = bootstrap_target(
            batch.rewards, batch.terminals, self.config.discount, next_q1, next_q2
        )[:, None]

        # 4-5. 兩個 critic 各自 forward / backward / optimizer step
        learning_input = jnp.concatenate([batch.actions, batch.states], axis=-1)
        info = {"critic/target_q_mean": jnp.mean(target_q)}

        for name, network, update_policy in (
            ("q1", self.learning_q1, self.q1_update_policy),
            ("q2", self.learning_q2, self.q2_update_policy),
        ):
            q = network.forward(learning_input)
            network.backward(learning_input, self.loss.backward(q, target_q))
            network.parameters = update_policy.update(
                network.parameters, self.config.step_size, network.gradient
            )

            info[f"critic/{name}_loss"] = self.loss.forward(q, target_q)
            info[f"critic/{name}_mean"] = jnp.mean(q)

        return info

    def _update_policy(self, batch) -> Dict[str, Any]:
        """更新 Policy

        min(Q1, Q2) 的選擇是逐樣本決定的，反傳路徑因樣本而異，
        因此逐一樣本計算梯度後加總（不取平均）。
        """
        states = batch.states
        action_dim = self.action_dim

        # Batch 預測（用於監控）
        pi = self.policy.predict(states)
        q_input = jnp.concatenate([pi, states], axis=-1)
        batch_q = jnp.minimum(
            self.learning_q1.predict(q_input), self.learning_q2.predict(q_input)
        )

        gradient = jnp.zeros_like(self.policy.parameters)
        first_selected = 0

        for i in range(states.shape[0]):
            single_state = states[i:i + 1]
            single_pi = self.policy.forward(single_state)
            critic_input = jnp.concatenate([single_pi, single_state], axis=-1)

            q1 = self.learning_q1.predict(critic_input)[0, 0]
            q2 = self.learning_q2.predict(critic_input)[0, 0]
            if use_first_critic(q1, q2):
                critic = self.learning_q1
                first_selected += 1
            else:
                critic = self.learning_q2

            # 最大化 Q 等價於最小化 -Q：d(-Q)/dQ = -1
            q = critic.forward(critic_input)
            input_grad = critic.backward(critic_input, -jnp.ones_like(q))

            # Critic 輸入為 [action, state]，前 action_dim 欄為 dL/da
            self.policy.backward(single_state, input_grad[:, :action_dim])
            gradient = gradient + self.policy.gradient

        self.policy.parameters = self.policy_update_policy.update(
            self.policy.parameters, self.config.step_size, gradient
        )

        return {
            "actor/loss": -jnp.mean(batch_q),
            "actor/q_mean": jnp.mean(batch_q),
            "actor/q1_selected": first_selected / states.shape[0],
        }

    # =========================================================================
    # Rollout
    # =========================================================================

    def _exploration_noise(self, shape) -> jnp.ndarray:
        self._rng, noise_rng = jax.random.split(self._rng)
        noise = jax.random.uniform(noise_rng, shape) * EXPLORATION_NOISE_SCALE
        return jnp.clip(noise, -EXPLORATION_NOISE_CLIP, EXPLORATION_NOISE_CLIP)

    def select_action(self, state=None) -> jnp.ndarray:
        """選擇動作

        Args:
            state: 環境狀態，預設為目前的 self.state

        Returns:
            動作，shape (action_dim,)；deterministic 時不加噪聲
        """
        if state is None:
            state = self.state

        action = self.policy.predict(encode_state(state))[0]
        if not self.deterministic:
            action = action + self._exploration_noise(action.shape)

        self.action = action
        return action

    def episode(self) -> EpisodeResult:
        """執行一個 episode

        Returns:
            EpisodeResult（total_return / steps / termination）
        """
        self.state = self.environment.initial_sample()
        steps = 0
        total_return = 0.0
        termination = Termination.TERMINAL

        while not self.environment.is_terminal(self.state):
            if self.config.step_limit and steps >= self.config.step_limit:
                termination = Termination.STEP_LIMIT_REACHED
                break

            action = self.select_action(self.state)
            reward, next_state = self.environment.sample(self.state, action)

            total_return += float(reward)
            steps += 1
            self.total_steps += 1

            self.replay.store(
                encode_state(self.state),
                action,
                reward,
                encode_state(next_state),
                is_absorbing(self.environment, next_state),
                self.config.discount,
            )
            self.state = next_state

            if self.deterministic or self.total_steps < self.config.exploration_steps:
                continue
            self.last_update_info = self.update()

        return EpisodeResult(total_return, steps, termination)

    # =========================================================================
    # Checkpoint
    # =========================================================================

    def get_checkpoint(self) -> Dict[str, Any]:
        """獲取 checkpoint（五個網路的扁平參數 + total_steps）

        優化器狀態不包含在內；恢復後 moment estimates 從零開始。
        """
        checkpoint = {name: getattr(self, name).parameters for name in _NETWORK_NAMES}
        checkpoint["total_steps"] = self.total_steps
        checkpoint["config"] = self.config.to_dict()
        return checkpoint

    def load_checkpoint(self, checkpoint: Dict[str, Any]):
        """從 checkpoint 恢復參數與 total_steps

        Raises:
            ConfigurationError: 參數形狀與目前網路不符
        """
        # 先檢查全部形狀，避免只恢復一部分網路
        for name in _NETWORK_NAMES:
            expected = getattr(self, name).parameters.shape
            got = jnp.shape(checkpoint[name])
            if got != expected:
                raise ConfigurationError(
                    f"checkpoint 中 {name} 參數形狀 {got} 與網路 {expected} 不符"
                )

        for name in _NETWORK_NAMES:
            getattr(self, name).parameters = checkpoint[name]
        self.total_steps = int(checkpoint.get("total_steps", 0))
