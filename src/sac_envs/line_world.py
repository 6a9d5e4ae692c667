"""一維 Line World 環境

State 為位置 x，action 為位移 delta：
    x' = x + delta
    reward = -|x'|
    terminal: |x| > bound

環境本身無狀態（functional style），所有資訊都在 LineState 中，
因此 sample() 對相同輸入永遠回傳相同結果。

Usage:
    env = LineWorld(bound=10.0)
    state = env.initial_sample()
    reward, state = env.sample(state, jnp.array([0.5]))
"""

from typing import NamedTuple, Tuple

import jax.numpy as jnp


class LineState(NamedTuple):
    """Line World 狀態

    Attributes:
        position: 目前位置
    """
    position: float

    def encode(self) -> jnp.ndarray:
        return jnp.array([self.position], dtype=jnp.float32)


class LineWorld:
    """一維 toy 環境

    Attributes:
        bound: |position| 超過此值即為 terminal
        initial_position: 每個 episode 的起點
        state_dim: 1
        action_dim: 1
    """

    state_dim = 1
    action_dim = 1

    def __init__(self, bound: float = 10.0, initial_position: float = 0.0):
        self.bound = bound
        self.initial_position = initial_position

    def initial_sample(self) -> LineState:
        return LineState(position=float(self.initial_position))

    def is_terminal(self, state: LineState) -> bool:
        return abs(state.position) > self.bound

    def sample(self, state: LineState, action) -> Tuple[float, LineState]:
        delta = float(jnp.ravel(jnp.asarray(action))[0])
        next_state = LineState(position=state.position + delta)
        reward = -abs(next_state.position)
        return reward, next_state
