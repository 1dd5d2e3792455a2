"""Graph operators that infer output metadata from their inputs."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from enum import Enum
from typing import Optional

from .arg import Arg, ArgKind
from .dim import Dim, make_eq
from .meta import TensorMeta


class OpErrorKind(Enum):
    NOT_EXIST = "operator does not exist"
    DATA_TYPE_ERROR = "data type error"
    DATA_TYPE_MISMATCH = "data type mismatch"
    SHAPE_ERROR = "shape error"
    SHAPE_MISMATCH = "shape mismatch"
    ARG_ERROR = "argument error"


class OpError(Exception):
    """Shape inference failed for the reason given by ``kind``."""

    def __init__(self, kind: OpErrorKind) -> None:
        super().__init__(kind.value)
        self.kind = kind


def _destruct(inputs: Sequence[TensorMeta], count: int) -> Sequence[TensorMeta]:
    if len(inputs) != count:
        raise OpError(OpErrorKind.SHAPE_ERROR)
    return inputs


def _dims(meta: TensorMeta, ndim: int) -> tuple[Dim, ...]:
    if len(meta.shape) != ndim:
        raise OpError(OpErrorKind.SHAPE_ERROR)
    return meta.shape


def _eq(*dims: Dim) -> Dim:
    merged = make_eq(dims)
    if merged is None:
        raise OpError(OpErrorKind.SHAPE_MISMATCH)
    return merged


def _no_arg(arg: Optional[Arg]) -> None:
    if arg is not None:
        raise OpError(OpErrorKind.ARG_ERROR)


def _arg_of(arg: Optional[Arg], kind: ArgKind) -> Arg:
    if arg is None or arg.kind is not kind:
        raise OpError(OpErrorKind.ARG_ERROR)
    return arg


class Operator(ABC):
    """A graph operator; it only infers the metadata of its outputs."""

    @abstractmethod
    def infer(self, inputs: Sequence[TensorMeta], arg: Optional[Arg]) -> list[TensorMeta]:
        """Output metadata for the given inputs, or raise ``OpError``."""


class SwiGLU(Operator):
    def infer(self, inputs, arg):
        _no_arg(arg)
        gate, up = _destruct(inputs, 2)
        _dims(gate, 2)
        n_up, d_up = _dims(up, 2)
        n = _eq(gate.shape[0], n_up)
        d = _eq(gate.shape[1], d_up)
        return [TensorMeta.new(gate.dt, [n, d])]


class GeLU(Operator):
    def infer(self, inputs, arg):
        _no_arg(arg)
        (x,) = _destruct(inputs, 1)
        _dims(x, 2)
        return [x]


class AllReduce(Operator):
    def infer(self, inputs, arg):
        _arg_of(arg, ArgKind.STR)
        if len(inputs) != 1:
            raise OpError(OpErrorKind.SHAPE_ERROR)
        return [inputs[0]]


class Attention(Operator):
    def infer(self, inputs, arg):
        _arg_of(arg, ArgKind.DIM)
        if len(inputs) != 3:
            raise OpError(OpErrorKind.SHAPE_ERROR)
        q, k, v = inputs
        n_q, d_q = _dims(q, 2)
        n_k, _ = _dims(k, 2)
        n_v, _ = _dims(v, 2)
        n = _eq(q.shape[0], n_q, n_k, n_v)
        return [TensorMeta.new(q.dt, [n, d_q])]


class Concat(Operator):
    def infer(self, inputs, arg):
        axis = _arg_of(arg, ArgKind.INT).value
        if not inputs:
            raise OpError(OpErrorKind.SHAPE_ERROR)
        ndim = len(inputs[0].shape)
        if axis >= ndim or any(len(t.shape) != ndim for t in inputs):
            raise OpError(OpErrorKind.SHAPE_ERROR)
        shape = []
        for i in range(ndim):
            if i == axis:
                total = Dim(0)
                for t in inputs:
                    total = total + t.shape[axis]
                shape.append(total)
            else:
                shape.append(_eq(*(t.shape[i] for t in inputs)))
        return [TensorMeta.new(inputs[0].dt, shape)]


class Conv(Operator):
    def infer(self, inputs, arg):
        _no_arg(arg)
        x, w, b = _destruct(inputs, 3)
        n, _, height, width = _dims(x, 4)
        embd_w, _, d_patch, d_patch_1 = _dims(w, 4)
        (embd_b,) = _dims(b, 1)
        if embd_w != embd_b:
            raise OpError(OpErrorKind.SHAPE_MISMATCH)
        if d_patch != d_patch_1:
            raise OpError(OpErrorKind.SHAPE_MISMATCH)
        embd = _eq(embd_w, embd_b)
        patch = _eq(d_patch, d_patch_1)
        return [TensorMeta.new(x.dt, [n, embd, height / patch, width / patch])]


class Embedding(Operator):
    def infer(self, inputs, arg):
        _no_arg(arg)
        if len(inputs) == 2:
            wte, tokens = inputs
            _, d = _dims(wte, 2)
            (n,) = _dims(tokens, 1)
            return [TensorMeta.new(wte.dt, [n, d])]
        if len(inputs) == 4:
            wte, tokens, wpe, pos = inputs
            _, d = _dims(wte, 2)
            (n,) = _dims(tokens, 1)
            _, d_pe = _dims(wpe, 2)
            (n_pos,) = _dims(pos, 1)
            return [TensorMeta.new(wte.dt, [_eq(n, n_pos), _eq(d, d_pe)][::-1][::-1])]
        raise OpError(OpErrorKind.SHAPE_ERROR)


class Linear(Operator):
    def infer(self, inputs, arg):
        residual = _arg_of(arg, ArgKind.BOOL).value
        count = len(inputs)
        if count == 2 and not residual:
            x, w = inputs
            m, k_x = _dims(x, 2)
            n, k_w = _dims(w, 2)
            if k_x != k_w:
                raise OpError(OpErrorKind.SHAPE_MISMATCH)
            return [TensorMeta.new(x.dt, [m, n])]
        if count == 3 and not residual:
            x, w, b = inputs
            m, k_x = _dims(x, 2)
            n, k_w = _dims(w, 2)
            (n_b,) = _dims(b, 1)
            if k_x != k_w:
                raise OpError(OpErrorKind.SHAPE_MISMATCH)
            return [TensorMeta.new(x.dt, [m, _eq(n, n_b)])]
        if count == 3:
            x, res, w = inputs
            m_x, k_x = _dims(x, 2)
            n_w, k_w = _dims(w, 2)
            m, n = _dims(res, 2)
            if k_x != k_w:
                raise OpError(OpErrorKind.SHAPE_MISMATCH)
            return [TensorMeta.new(x.dt, [_eq(m, m_x), _eq(n, n_w)])]
        if count == 4:
            x, res, w, b = inputs
            m_x, k_x = _dims(x, 2)
            _dims(w, 2)
            k_w = w.shape[1]
            (n_b,) = _dims(b, 1)
            m, n = _dims(res, 2)
            if k_x != k_w:
                raise OpError(OpErrorKind.SHAPE_MISMATCH)
            return [TensorMeta.new(x.dt, [_eq(m, m_x), _eq(n, n_b)])]
        raise OpError(OpErrorKind.SHAPE_ERROR)


class RmsNorm(Operator):
    def infer(self, inputs, arg):
        if arg is None:
            raise OpError(OpErrorKind.ARG_ERROR)
        if len(inputs) != 2:
            raise OpError(OpErrorKind.SHAPE_ERROR)
        x, scale = inputs
        n, _ = _dims(x, 2)
        _dims(scale, 1)
        d = _eq(x.shape[1], scale.shape[0])
        return [TensorMeta.new(x.dt, [n, d])]


class LayerNorm(Operator):
    def infer(self, inputs, arg):
        if arg is None:
            raise OpError(OpErrorKind.ARG_ERROR)
        if len(inputs) != 3:
            raise OpError(OpErrorKind.SHAPE_ERROR)
        x, scale, bias = inputs
        n, _ = _dims(x, 2)
        _dims(scale, 1)
        _dims(bias, 1)
        d = _eq(x.shape[1], scale.shape[0], bias.shape[0])
        return [TensorMeta.new(x.dt, [n, d])]


class Rope(Operator):
    def infer(self, inputs, arg):
        _no_arg(arg)
        if len(inputs) != 4:
            raise OpError(OpErrorKind.SHAPE_ERROR)
        x, pos, sin, cos = inputs
        _, d = _dims(x, 2)
        (n_pos,) = _dims(pos, 1)
        n_ctx_sin, dh_sin = _dims(sin, 2)
        n_ctx_cos, dh_cos = _dims(cos, 2)
        if n_ctx_sin != n_ctx_cos:
            raise OpError(OpErrorKind.SHAPE_MISMATCH)
        if dh_sin != dh_cos:
            raise OpError(OpErrorKind.SHAPE_MISMATCH)
        n = _eq(x.shape[0], n_pos)
        return [TensorMeta.new(x.dt, [n, d])]


class Split(Operator):
    def infer(self, inputs, arg):
        table = _arg_of(arg, ArgKind.DICT).value
        axis_arg = table.get("axis")
        if axis_arg is None or axis_arg.kind is not ArgKind.INT:
            raise OpError(OpErrorKind.ARG_ERROR)
        parts_arg = table.get("parts")
        if parts_arg is None or parts_arg.kind is not ArgKind.ARR:
            raise OpError(OpErrorKind.ARG_ERROR)
        if any(p.kind is not ArgKind.DIM for p in parts_arg.value):
            raise OpError(OpErrorKind.ARG_ERROR)
        axis = axis_arg.value
        parts = [p.value for p in parts_arg.value]

        (x,) = _destruct(inputs, 1)
        shape = x.shape
        if axis >= len(shape):
            raise OpError(OpErrorKind.SHAPE_ERROR)

        total = Dim(0)
        for p in parts:
            total = total + p
        chunk = shape[axis] / total
        if chunk * total != shape[axis]:
            raise OpError(OpErrorKind.SHAPE_MISMATCH)

        outputs = []
        for p in parts:
            part_shape = list(shape)
            part_shape[axis] = p * chunk
            outputs.append(TensorMeta.new(x.dt, part_shape))
        return outputs