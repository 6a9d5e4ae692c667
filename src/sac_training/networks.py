"""網路定義與 FunctionApproximator

Flax 模組負責數值計算；FunctionApproximator 把模組包裝成 trainer 使用的
「扁平參數向量 + forward/backward」介面：

- parameters: 以 jax.flatten_util.ravel_pytree 攤平的一維參數向量
- predict(x): 純推理，不保留計算圖
- forward(x): 計算輸出並保留 jax.vjp 的 pullback（相當於保留計算圖）
- backward(x, dy): 回傳對輸入的梯度，並把對參數的梯度記錄在 .gradient

所有輸入輸出皆為 row-major：shape (batch_size, features)。
Critic 的輸入排列為 [action, state]，action 佔前 action_dim 欄。
"""

import copy
from typing import Callable, Optional, Tuple

import jax
import jax.numpy as jnp
import flax.linen as nn
from jax.flatten_util import ravel_pytree

from .config import ConfigurationError


# =============================================================================
# 網路定義
# =============================================================================

class MLP(nn.Module):
    """多層感知機

    Attributes:
        hidden_dims: 隱藏層維度列表
        activate_final: 是否在最後一層後激活
        use_layer_norm: 是否使用 LayerNorm
    """
    hidden_dims: Tuple[int, ...]
    activate_final: bool = True
    use_layer_norm: bool = True

    @nn.compact
    def __call__(self, x: jnp.ndarray) -> jnp.ndarray:
        for i, dim in enumerate(self.hidden_dims):
            x = nn.Dense(dim)(x)

            # 最後一層可能不激活
            if i < len(self.hidden_dims) - 1 or self.activate_final:
                x = nn.relu(x)
                if self.use_layer_norm:
                    x = nn.LayerNorm()(x)

        return x


class QNetwork(nn.Module):
    """Q-Network（輸入 [action, state] 拼接向量，輸出 Q 值）

    輸出 shape (batch_size, 1)，不做 squeeze，
    讓 backward 的 output gradient 與輸出形狀一致。
    """
    hidden_dims: Tuple[int, ...] = (256, 256)
    use_layer_norm: bool = True

    @nn.compact
    def __call__(self, x: jnp.ndarray) -> jnp.ndarray:
        x = MLP(
            hidden_dims=self.hidden_dims,
            activate_final=True,
            use_layer_norm=self.use_layer_norm,
        )(x)
        return nn.Dense(1)(x)


class PolicyNetwork(nn.Module):
    """確定性策略網路（state -> action）

    輸出經 tanh squashing 後乘上 action_scale，
    動作範圍為 [-action_scale, action_scale]。
    """
    action_dim: int
    hidden_dims: Tuple[int, ...] = (256, 256)
    action_scale: float = 1.0
    use_layer_norm: bool = True

    @nn.compact
    def __call__(self, state: jnp.ndarray) -> jnp.ndarray:
        x = MLP(
            hidden_dims=self.hidden_dims,
            activate_final=True,
            use_layer_norm=self.use_layer_norm,
        )(state)
        action = nn.Dense(self.action_dim)(x)
        return self.action_scale * jnp.tanh(action)


# =============================================================================
# FunctionApproximator
# =============================================================================

class FunctionApproximator:
    """以扁平參數向量表示的 Flax 模組

    每個實例擁有自己的參數向量；clone() 會完整複製參數，
    不與原實例共享 buffer。

    Example:
        q = FunctionApproximator(QNetwork((64, 64)), input_dim=4)
        q.reset_parameters()
        out = q.forward(x)                        # (batch, 1)
        dx = q.backward(x, jnp.ones_like(out))    # (batch, 4)
        q.gradient                                # (num_params,)
    """

    def __init__(self, module: nn.Module, input_dim: int, seed: int = 0):
        """
        Args:
            module: Flax 模組，輸入 shape (batch, input_dim)
            input_dim: 輸入特徵維度
            seed: 參數初始化用的 random seed
        """
        self.module = module
        self.input_dim = input_dim
        self.output_dim: Optional[int] = None

        # 最近一次 backward 計算出的參數梯度
        self.gradient: Optional[jnp.ndarray] = None

        self._rng = jax.random.PRNGKey(seed)
        self._parameters = jnp.zeros((0,), dtype=jnp.float32)
        self._apply_fn: Optional[Callable] = None
        # (inputs, outputs, pullback)，由 forward 建立
        self._tape = None

    # -------------------------------------------------------------------------
    # 參數
    # -------------------------------------------------------------------------

    @property
    def parameters(self) -> jnp.ndarray:
        return self._parameters

    @parameters.setter
    def parameters(self, value: jnp.ndarray):
        if self._apply_fn is None:
            raise ConfigurationError("網路尚未初始化，請先呼叫 reset_parameters()")

        value = jnp.asarray(value, dtype=self._parameters.dtype)
        if value.shape != self._parameters.shape:
            raise ConfigurationError(
                f"參數形狀不符：expected {self._parameters.shape}, got {value.shape}"
            )

        self._parameters = value
        self._tape = None

    def reset_parameters(self):
        """重新初始化參數（每次呼叫使用新的 random key）"""
        self._rng, init_rng = jax.random.split(self._rng)
        dummy_input = jnp.zeros((1, self.input_dim), dtype=jnp.float32)

        variables = self.module.init(init_rng, dummy_input)
        flat_params, unravel = ravel_pytree(variables)
        if flat_params.size == 0:
            raise ConfigurationError(
                f"{type(self.module).__name__} 初始化後沒有任何參數"
            )

        module = self.module

        def apply_fn(parameters, inputs):
            return module.apply(unravel(parameters), inputs)

        self._apply_fn = jax.jit(apply_fn)
        self._parameters = flat_params
        self.output_dim = jax.eval_shape(module.apply, variables, dummy_input).shape[-1]
        self.gradient = None
        self._tape = None

    def clone(self) -> "FunctionApproximator":
        """深拷貝：新實例擁有獨立的參數向量"""
        other = copy.copy(self)
        other._parameters = jnp.array(self._parameters, copy=True)
        other.gradient = None
        other._tape = None
        return other

    # -------------------------------------------------------------------------
    # 計算
    # -------------------------------------------------------------------------

    def _as_input(self, inputs) -> jnp.ndarray:
        if self._apply_fn is None:
            raise ConfigurationError("網路尚未初始化，請先呼叫 reset_parameters()")

        inputs = jnp.atleast_2d(jnp.asarray(inputs, dtype=jnp.float32))
        if inputs.shape[-1] != self.input_dim:
            raise ValueError(
                f"輸入維度不符：expected {self.input_dim}, got {inputs.shape[-1]}"
            )
        return inputs

    def predict(self, inputs) -> jnp.ndarray:
        """推理（不保留計算圖）

        Args:
            inputs: shape (batch, input_dim) 或 (input_dim,)

        Returns:
            shape (batch, output_dim)
        """
        return self._apply_fn(self._parameters, self._as_input(inputs))

    def forward(self, inputs) -> jnp.ndarray:
        """計算輸出並保留 pullback 供 backward 使用"""
        inputs = self._as_input(inputs)
        outputs, pullback = jax.vjp(self._apply_fn, self._parameters, inputs)
        self._tape = (inputs, outputs, pullback)
        return outputs

    def backward(self, inputs, output_gradient) -> jnp.ndarray:
        """反向傳播

        若 inputs 與最近一次 forward 的輸入不同，會先重新 forward。

        Args:
            inputs: 與 forward 相同的輸入
            output_gradient: loss 對輸出的梯度，shape 與輸出相同

        Returns:
            loss 對輸入的梯度，shape (batch, input_dim)。
            對參數的梯度記錄在 self.gradient。
        """
        inputs = self._as_input(inputs)
        if self._tape is None or not _same_array(self._tape[0], inputs):
            self.forward(inputs)

        _, outputs, pullback = self._tape
        output_gradient = jnp.asarray(output_gradient, dtype=outputs.dtype)
        param_grad, input_grad = pullback(output_gradient.reshape(outputs.shape))

        self.gradient = param_grad
        return input_grad


def _same_array(a: jnp.ndarray, b: jnp.ndarray) -> bool:
    return a is b or (a.shape == b.shape and bool(jnp.array_equal(a, b)))


# =============================================================================
# Factory functions
# =============================================================================

def make_q_network(
    state_dim: int,
    action_dim: int,
    hidden_dims: Tuple[int, ...] = (256, 256),
    use_layer_norm: bool = True,
    seed: int = 0,
) -> FunctionApproximator:
    """創建 critic（尚未初始化參數，由 trainer 初始化）"""
    return FunctionApproximator(
        QNetwork(hidden_dims=tuple(hidden_dims), use_layer_norm=use_layer_norm),
        input_dim=action_dim + state_dim,
        seed=seed,
    )


def make_policy_network(
    state_dim: int,
    action_dim: int,
    hidden_dims: Tuple[int, ...] = (256, 256),
    action_scale: float = 1.0,
    use_layer_norm: bool = True,
    seed: int = 0,
) -> FunctionApproximator:
    """創建策略網路（尚未初始化參數，由 trainer 初始化）"""
    return FunctionApproximator(
        PolicyNetwork(
            action_dim=action_dim,
            hidden_dims=tuple(hidden_dims),
            action_scale=action_scale,
            use_layer_norm=use_layer_norm,
        ),
        input_dim=state_dim,
        seed=seed,
    )
