"""Critic regression losses

forward 回傳 batch 平均後的 scalar loss；backward 回傳 loss 對 prediction 的
梯度（shape 與 prediction 相同），供 FunctionApproximator.backward 使用。
"""

from abc import ABC, abstractmethod

import jax
import jax.numpy as jnp
import optax


class _Loss(ABC):
    @abstractmethod
    def forward(self, prediction: jnp.ndarray, target: jnp.ndarray) -> jnp.ndarray:
        ...

    def backward(self, prediction: jnp.ndarray, target: jnp.ndarray) -> jnp.ndarray:
        return jax.grad(self.forward)(prediction, jax.lax.stop_gradient(target))


class MeanSquaredError(_Loss):
    """mean((prediction - target) ** 2)"""

    def forward(self, prediction, target):
        return jnp.mean(optax.losses.squared_error(prediction, target))


class HuberLoss(_Loss):
    """Huber loss（|error| > delta 時為線性）"""

    def __init__(self, delta: float = 1.0):
        self.delta = delta

    def forward(self, prediction, target):
        return jnp.mean(optax.losses.huber_loss(prediction, target, delta=self.delta))


def make_loss(name: str):
    if name == "mse":
        return MeanSquaredError()
    if name == "huber":
        return HuberLoss()
    raise ValueError(f"未知的 loss: {name}")
