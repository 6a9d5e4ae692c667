"""環境模組

Trainer 只依賴 Environment 介面（initial_sample / is_terminal / sample），包含：
- base.py: Environment protocol 與 state 編碼
- line_world.py: 一維 toy 環境（測試與示範用）
- gym_env.py: gymnasium 連續動作環境的 adapter
"""

from .base import Environment, encode_state, is_absorbing
from .gym_env import GymEnvironment, GymState
from .line_world import LineState, LineWorld

__all__ = [
    "Environment",
    "encode_state",
    "is_absorbing",
    "GymEnvironment",
    "GymState",
    "LineState",
    "LineWorld",
]
