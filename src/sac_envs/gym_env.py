"""gymnasium 環境 adapter

把 gymnasium 的 reset()/step() 轉成 trainer 的 Environment 介面。
gymnasium 環境本身有狀態，因此 sample() 忽略傳入的 state，直接對
底層環境 step。terminated 與 truncated 都會結束 episode，但只有
terminated 是 absorbing state（replay 的 terminal 標誌）；truncated
只是時間限制，TD target 仍會 bootstrap。

Usage:
    env = GymEnvironment("Pendulum-v1", seed=0)
    state = env.initial_sample()
    reward, state = env.sample(state, action)
"""

from typing import NamedTuple, Optional, Tuple

import gymnasium as gym
import numpy as np


class GymState(NamedTuple):
    """gymnasium observation 與終止標誌"""
    observation: np.ndarray
    terminated: bool = False
    truncated: bool = False

    def encode(self) -> np.ndarray:
        return np.asarray(self.observation, dtype=np.float32).ravel()


class GymEnvironment:
    """gymnasium 連續動作環境

    Attributes:
        env: 底層 gymnasium 環境
        state_dim: observation 維度
        action_dim: action 維度
        action_scale: 動作上界（假設 action space 對稱）
    """

    def __init__(self, env_id: str, seed: Optional[int] = None, **make_kwargs):
        self.env = gym.make(env_id, **make_kwargs)
        if not isinstance(self.env.action_space, gym.spaces.Box):
            raise ValueError(f"{env_id} 不是連續動作環境")

        self.state_dim = int(np.prod(self.env.observation_space.shape))
        self.action_dim = int(np.prod(self.env.action_space.shape))
        self.action_scale = float(np.max(np.abs(self.env.action_space.high)))
        self._seed = seed

    def initial_sample(self) -> GymState:
        observation, _ = self.env.reset(seed=self._seed)
        # 只在第一次 reset 使用 seed，之後延續同一個 RNG
        self._seed = None
        return GymState(observation=observation)

    def is_terminal(self, state: GymState) -> bool:
        return bool(state.terminated or state.truncated)

    def is_absorbing(self, state: GymState) -> bool:
        return bool(state.terminated)

    def sample(self, state: GymState, action) -> Tuple[float, GymState]:
        action = np.clip(
            np.asarray(action, dtype=np.float32).reshape(self.env.action_space.shape),
            self.env.action_space.low,
            self.env.action_space.high,
        )
        observation, reward, terminated, truncated, _ = self.env.step(action)
        return float(reward), GymState(observation, bool(terminated), bool(truncated))

    def close(self):
        self.env.close()
