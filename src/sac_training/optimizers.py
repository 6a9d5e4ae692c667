"""優化器策略

Trainer 只依賴單一介面：

    policy = optimizer.initialize(parameters.shape)
    new_parameters = policy.update(parameters, step_size, gradient)

每個被訓練的網路各自持有一個 UpdatePolicy（即使兩個 critic 共用同一個
Optimizer 設定，moment estimates 等狀態也彼此獨立）。

Backends:
- GradientDescent: 無狀態，parameters - step_size * gradient
- OptaxOptimizer: 任意 optax GradientTransformation（adam / rmsprop / ...），
  透過 optax.inject_hyperparams 讓 step_size 在每次 update 時傳入
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Tuple

import jax.numpy as jnp
import optax

from .config import ConfigurationError


class UpdatePolicy(ABC):
    """綁定到單一網路參數形狀的更新器

    Attributes:
        shape: 初始化時的參數形狀
        steps: 已執行的 update 次數
    """

    def __init__(self, shape: Tuple[int, ...]):
        self.shape = tuple(shape)
        self.steps = 0

    def update(
        self,
        parameters: jnp.ndarray,
        step_size: float,
        gradient: jnp.ndarray,
    ) -> jnp.ndarray:
        """執行一次更新，回傳新的參數向量（JAX arrays 不可變）"""
        if parameters.shape != self.shape:
            raise ConfigurationError(
                f"參數形狀與優化器不符：expected {self.shape}, got {parameters.shape}"
            )
        if gradient.shape != self.shape:
            raise ConfigurationError(
                f"梯度形狀與優化器不符：expected {self.shape}, got {gradient.shape}"
            )

        new_parameters = self._apply(parameters, step_size, gradient)
        self.steps += 1
        return new_parameters

    @abstractmethod
    def _apply(self, parameters, step_size, gradient) -> jnp.ndarray:
        ...


class Optimizer(ABC):
    """優化器設定（可為多個網路建立各自的 UpdatePolicy）"""

    @abstractmethod
    def initialize(self, shape: Tuple[int, ...]) -> UpdatePolicy:
        ...


# =============================================================================
# Stateless backend
# =============================================================================

class _GradientDescentPolicy(UpdatePolicy):
    def _apply(self, parameters, step_size, gradient):
        return parameters - step_size * gradient


class GradientDescent(Optimizer):
    """Vanilla gradient descent（無內部狀態）"""

    def initialize(self, shape):
        return _GradientDescentPolicy(shape)


# =============================================================================
# Optax backend
# =============================================================================

class _OptaxPolicy(UpdatePolicy):
    def __init__(self, shape, transform: optax.GradientTransformation):
        super().__init__(shape)
        self.transform = transform
        self.opt_state = transform.init(jnp.zeros(self.shape, dtype=jnp.float32))

    def _apply(self, parameters, step_size, gradient):
        self.opt_state.hyperparams["learning_rate"] = jnp.asarray(step_size)
        updates, self.opt_state = self.transform.update(
            gradient, self.opt_state, parameters
        )
        return optax.apply_updates(parameters, updates)


class OptaxOptimizer(Optimizer):
    """包裝 optax 優化器

    Example:
        optimizer = OptaxOptimizer(optax.adam, b1=0.9, b2=0.999)
        policy = optimizer.initialize(params.shape)
        params = policy.update(params, 3e-4, grad)
    """

    def __init__(self, factory: Callable[..., optax.GradientTransformation], **kwargs: Any):
        """
        Args:
            factory: 接受 learning_rate 參數的 optax 建構函數（optax.adam 等）
            **kwargs: 除 learning_rate 以外的超參數
        """
        self.factory = factory
        self.kwargs = kwargs

    def initialize(self, shape):
        # learning_rate 由每次 update 傳入的 step_size 覆寫
        transform = optax.inject_hyperparams(self.factory)(learning_rate=0.0, **self.kwargs)
        return _OptaxPolicy(shape, transform)

    @classmethod
    def adam(cls, **kwargs) -> "OptaxOptimizer":
        return cls(optax.adam, **kwargs)

    @classmethod
    def rmsprop(cls, **kwargs) -> "OptaxOptimizer":
        return cls(optax.rmsprop, **kwargs)


def make_optimizer(name: str) -> Optimizer:
    """由名稱建立優化器（"adam" / "rmsprop" / "sgd"）"""
    if name == "adam":
        return OptaxOptimizer.adam()
    if name == "rmsprop":
        return OptaxOptimizer.rmsprop()
    if name == "sgd":
        return GradientDescent()
    raise ConfigurationError(f"未知的 optimizer: {name}")
