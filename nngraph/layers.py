"""Basic network layers: activation, embedding, linear and normalization."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

from .arg import Arg
from .context import Context, GraphTensor, NeuralNetwork
from .dim import Dim
from .distribution import RowTPWeight, TPAction, TPTensor
from .meta import DigitLayout

T = TypeVar("T")


def _destruct(items: Sequence[GraphTensor], count: int) -> list[GraphTensor]:
    items = list(items)
    if len(items) != count:
        raise ValueError(f"expected {count} tensors, got {len(items)}")
    return items


def _dims(tensor: GraphTensor, ndim: int) -> tuple[Dim, ...]:
    shape = tensor.shape()
    if len(shape) != ndim:
        raise ValueError(f"Ndim mismatch ( = {len(shape)})")
    return shape


class Activation(Enum):
    SWIGLU = "swiglu"
    GELU = "gelu"

    def launch(
        self, inputs: Sequence[GraphTensor], ctx: Context
    ) -> tuple[Context, list[GraphTensor]]:
        (x,) = _destruct(inputs, 1)
        _, d = _dims(x, 2)
        if self is Activation.SWIGLU:
            half = d / 2
            gate, up = _destruct(
                ctx.call(
                    "split-gate-up",
                    "split",
                    Arg.dict({"axis": Arg.int(1), "parts": Arg.arr([half, half])}),
                    [x],
                ),
                2,
            )
            return ctx, ctx.call("", "swiglu", None, [gate, up])
        return ctx, ctx.call("", "gelu", None, [x])


NeuralNetwork.register(Activation)


@dataclass
class Table(Generic[T]):
    row: int
    weight: T


@dataclass
class Embedding(NeuralNetwork, Generic[T]):
    """Token embedding, optionally with a learned position embedding."""

    dt: DigitLayout
    d: int
    wte: Table[T]
    wpe: Optional[Table[T]] = None

    def tensor_parallel(self) -> "Embedding[TPTensor[T]]":
        return Embedding(
            self.dt,
            self.d,
            Table(self.wte.row, TPTensor(self.wte.weight)),
            None if self.wpe is None else Table(self.wpe.row, TPTensor(self.wpe.weight)),
        )

    def launch(
        self, inputs: Sequence[GraphTensor], ctx: Context
    ) -> tuple[Context, list[GraphTensor]]:
        inputs = list(inputs)
        if not inputs:
            raise ValueError("embedding needs a tokens input")
        wte = ctx.load_external("wte", self.dt, [self.wte.row, self.d], self.wte.weight)
        tokens = inputs[0]
        if self.wpe is None:
            return ctx, ctx.call("", "embedding", None, [wte, tokens])
        wpe = ctx.load_external("wpe", self.dt, [self.wpe.row, self.d], self.wpe.weight)
        if len(inputs) < 2:
            raise ValueError("position embedding needs a positions input")
        pos = inputs[1]
        return ctx, ctx.call("", "embedding", None, [wte, tokens, wpe, pos])


@dataclass
class Linear(NeuralNetwork, Generic[T]):
    """A linear layer with weight of ``shape`` (out, in) and an optional bias."""

    dt: DigitLayout
    shape: tuple[int, int]
    weight: T
    bias: Optional[tuple[DigitLayout, T]] = None
    allow_residual: bool = True

    def parallel(self, action: TPAction) -> "Linear[TPTensor[T]]":
        """This layer's share under ``action``; only the first share adds a residual."""
        rows, cols = self.shape
        dist = action.dist
        if not dist.is_mono():
            if type(action.wt) is RowTPWeight:
                cols = cols // dist.total * dist.len
            else:
                rows = rows // dist.total * dist.len
            act: Optional[TPAction] = action
            allow_residual = self.allow_residual and dist.start == 0
        else:
            act = None
            allow_residual = self.allow_residual
        bias = None
        if self.bias is not None:
            bias_dt, bias_val = self.bias
            bias = (bias_dt, TPTensor(bias_val, act))
        return Linear(self.dt, (rows, cols), TPTensor(self.weight, act), bias, allow_residual)

    def launch(
        self, inputs: Sequence[GraphTensor], ctx: Context
    ) -> tuple[Context, list[GraphTensor]]:
        rows, cols = self.shape
        w = ctx.load_external("weight", self.dt, [rows, cols], self.weight)
        inputs = list(inputs)
        if not inputs:
            raise ValueError("linear layer needs an input")
        x = inputs[0]
        residual = inputs[1] if len(inputs) > 1 else None
        use_residual = residual is not None and self.allow_residual
        operands = [x, residual, w] if use_residual else [x, w]
        if self.bias is not None:
            bias_dt, bias_val = self.bias
            operands.append(ctx.load_external("bias", bias_dt, [rows], bias_val))
        return ctx, ctx.call("", "linear", Arg.bool(use_residual), operands)


@dataclass
class RmsNorm(Generic[T]):
    dt: DigitLayout
    scale: T


@dataclass
class LayerNorm(Generic[T]):
    dt_scale: DigitLayout
    scale: T
    dt_bias: DigitLayout
    bias: T


@dataclass
class Normalization(NeuralNetwork, Generic[T]):
    """RMS or layer normalization over the last ``d`` features."""

    d: int
    epsilon: float
    items: Union[RmsNorm[T], LayerNorm[T]]

    def tensor_parallel(self) -> "Normalization[TPTensor[T]]":
        items: Any
        if isinstance(self.items, RmsNorm):
            items = RmsNorm(self.items.dt, TPTensor(self.items.scale))
        else:
            items = LayerNorm(
                self.items.dt_scale,
                TPTensor(self.items.scale),
                self.items.dt_bias,
                TPTensor(self.items.bias),
            )
        return Normalization(self.d, self.epsilon, items)

    def launch(
        self, inputs: Sequence[GraphTensor], ctx: Context
    ) -> tuple[Context, list[GraphTensor]]:
        (x,) = _destruct(inputs, 1)
        epsilon = Arg.float(self.epsilon)
        items = self.items
        if isinstance(items, RmsNorm):
            scale = ctx.load_external("scale", items.dt, [self.d], items.scale)
            return ctx, ctx.call("", "rms-norm", epsilon, [x, scale])
        scale = ctx.load_external("scale", items.dt_scale, [self.d], items.scale)
        bias = ctx.load_external("bias", items.dt_bias, [self.d], items.bias)
        return ctx, ctx.call("", "layer-norm", epsilon, [x, scale, bias])