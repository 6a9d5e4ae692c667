"""JAX 原生 Replay Buffer

採用 FIFO 循環覆蓋策略，均勻隨機採樣（with replacement）。

Features:
- 資料以 JAX arrays 保存（BufferState），add / sample 皆 JIT 編譯
- RandomReplay 提供 trainer 需要的 store() / sample() 介面，
  內部持有 BufferState 與 JAX random key
- 額外記錄每筆 transition 的 discount
"""

from functools import partial
from typing import NamedTuple

import jax
import jax.numpy as jnp


class BufferState(NamedTuple):
    """Replay Buffer 狀態

    Attributes:
        state: 狀態特徵，shape (capacity, state_dim)
        action: 動作，shape (capacity, action_dim)
        reward: 獎勵，shape (capacity,)
        next_state: 下一個狀態特徵，shape (capacity, state_dim)
        terminal: 終止標誌，shape (capacity,)
        discount: 存入時的折扣因子，shape (capacity,)
        ptr: 當前寫入指針
        size: 當前有效樣本數
    """
    state: jnp.ndarray
    action: jnp.ndarray
    reward: jnp.ndarray
    next_state: jnp.ndarray
    terminal: jnp.ndarray
    discount: jnp.ndarray
    ptr: jnp.ndarray
    size: jnp.ndarray


class Batch(NamedTuple):
    """採樣得到的 transitions（每一列是一筆樣本）

    Attributes:
        states: shape (batch_size, state_dim)
        actions: shape (batch_size, action_dim)
        rewards: shape (batch_size,)
        next_states: shape (batch_size, state_dim)
        terminals: 0.0 / 1.0，shape (batch_size,)
        discounts: shape (batch_size,)
    """
    states: jnp.ndarray
    actions: jnp.ndarray
    rewards: jnp.ndarray
    next_states: jnp.ndarray
    terminals: jnp.ndarray
    discounts: jnp.ndarray


def init_buffer_state(capacity: int, state_dim: int, action_dim: int) -> BufferState:
    """建立空的 BufferState"""
    return BufferState(
        state=jnp.zeros((capacity, state_dim), dtype=jnp.float32),
        action=jnp.zeros((capacity, action_dim), dtype=jnp.float32),
        reward=jnp.zeros(capacity, dtype=jnp.float32),
        next_state=jnp.zeros((capacity, state_dim), dtype=jnp.float32),
        terminal=jnp.zeros(capacity, dtype=jnp.float32),
        discount=jnp.zeros(capacity, dtype=jnp.float32),
        ptr=jnp.array(0, dtype=jnp.int32),
        size=jnp.array(0, dtype=jnp.int32),
    )


@jax.jit
def add_transition(
    buffer: BufferState,
    state: jnp.ndarray,
    action: jnp.ndarray,
    reward: jnp.ndarray,
    next_state: jnp.ndarray,
    terminal: jnp.ndarray,
    discount: jnp.ndarray,
) -> BufferState:
    """添加單個 transition

    Args:
        buffer: 當前 buffer 狀態
        state: 狀態特徵，shape (state_dim,)
        action: 動作，shape (action_dim,)
        reward: 獎勵，scalar
        next_state: 下一個狀態特徵，shape (state_dim,)
        terminal: 終止標誌，scalar (0.0 或 1.0)
        discount: 折扣因子，scalar

    Returns:
        更新後的 BufferState
    """
    ptr = buffer.ptr
    capacity = buffer.state.shape[0]

    new_buffer = BufferState(
        state=buffer.state.at[ptr].set(state),
        action=buffer.action.at[ptr].set(action),
        reward=buffer.reward.at[ptr].set(reward),
        next_state=buffer.next_state.at[ptr].set(next_state),
        terminal=buffer.terminal.at[ptr].set(terminal),
        discount=buffer.discount.at[ptr].set(discount),
        # 更新指針（循環）
        ptr=(ptr + 1) % capacity,
        size=jnp.minimum(buffer.size + 1, capacity),
    )
    return new_buffer


@partial(jax.jit, static_argnums=(1,))
def sample_batch(buffer: BufferState, batch_size: int, rng: jnp.ndarray) -> Batch:
    """從有效範圍內均勻採樣 batch_size 筆（with replacement）"""
    indices = jax.random.randint(
        rng, shape=(batch_size,), minval=0, maxval=buffer.size
    )

    return Batch(
        states=buffer.state[indices],
        actions=buffer.action[indices],
        rewards=buffer.reward[indices],
        next_states=buffer.next_state[indices],
        terminals=buffer.terminal[indices],
        discounts=buffer.discount[indices],
    )


class RandomReplay:
    """均勻採樣的 Replay Buffer

    Example:
        replay = RandomReplay(batch_size=64, capacity=100_000,
                              state_dim=3, action_dim=1)
        replay.store(state, action, reward, next_state, terminal, 0.99)
        batch = replay.sample()
    """

    def __init__(
        self,
        batch_size: int,
        capacity: int,
        state_dim: int,
        action_dim: int,
        seed: int = 0,
    ):
        """初始化 Buffer

        Args:
            batch_size: sample() 每次回傳的樣本數
            capacity: Buffer 容量
            state_dim: 狀態特徵維度
            action_dim: 動作維度
            seed: 採樣用的 random seed
        """
        if capacity < 1:
            raise ValueError(f"capacity 必須 >= 1，got {capacity}")
        if batch_size < 1:
            raise ValueError(f"batch_size 必須 >= 1，got {batch_size}")

        self.batch_size = batch_size
        self.capacity = capacity
        self.state_dim = state_dim
        self.action_dim = action_dim

        self._buffer = init_buffer_state(capacity, state_dim, action_dim)
        self._rng = jax.random.PRNGKey(seed)

    def __len__(self) -> int:
        return int(self._buffer.size)

    @property
    def buffer_state(self) -> BufferState:
        return self._buffer

    def store(self, state, action, reward, next_state, terminal, discount):
        """存入一筆 transition（state / next_state 需為已編碼的特徵向量）"""
        self._buffer = add_transition(
            self._buffer,
            jnp.asarray(state, dtype=jnp.float32).reshape(self.state_dim),
            jnp.asarray(action, dtype=jnp.float32).reshape(self.action_dim),
            jnp.asarray(reward, dtype=jnp.float32),
            jnp.asarray(next_state, dtype=jnp.float32).reshape(self.state_dim),
            jnp.asarray(terminal, dtype=jnp.float32),
            jnp.asarray(discount, dtype=jnp.float32),
        )

    def sample(self) -> Batch:
        """採樣一個 batch

        Raises:
            ValueError: buffer 為空
        """
        if len(self) == 0:
            raise ValueError("Replay buffer 為空，無法採樣")

        self._rng, sample_rng = jax.random.split(self._rng)
        return sample_batch(self._buffer, self.batch_size, sample_rng)
