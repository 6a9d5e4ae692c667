"""Environment 介面

State 對 trainer 而言是不透明的；只要求能編碼成數值特徵向量：
- 若 state 定義了 encode()，使用其結果
- 否則直接以 jnp.asarray(state) 轉換

is_terminal 決定 episode 是否結束；可選的 is_absorbing 決定 replay 中的
terminal 標誌（例如時間限制截斷會結束 episode，但不是 absorbing state）。
"""

from typing import Any, Protocol, Tuple

import jax.numpy as jnp


class Environment(Protocol):
    """Trainer 使用的環境介面"""

    def initial_sample(self) -> Any:
        """從初始狀態分佈採樣"""
        ...

    def is_terminal(self, state: Any) -> bool:
        ...

    def sample(self, state: Any, action: jnp.ndarray) -> Tuple[float, Any]:
        """執行動作

        Returns:
            (reward, next_state)
        """
        ...


def is_absorbing(environment: Any, state: Any) -> bool:
    """state 是否為 absorbing（replay 中的 terminal 標誌，TD target 不 bootstrap）

    環境可選擇定義 is_absorbing(state) 來區分時間限制造成的截斷；
    未定義時與 is_terminal(state) 相同。
    """
    check = getattr(environment, "is_absorbing", None)
    if check is None:
        return bool(environment.is_terminal(state))
    return bool(check(state))


def encode_state(state: Any) -> jnp.ndarray:
    """將 state 編碼為一維 float32 特徵向量"""
    if hasattr(state, "encode"):
        state = state.encode()
    return jnp.ravel(jnp.asarray(state, dtype=jnp.float32))
