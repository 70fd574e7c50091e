# seqgrad/ops/transcendental.py
"""
Elementwise nonlinearities.

Each primitive records its local partial a = dy/dx (a vector, since the op is
elementwise) and, for the R flavor, R{a}: the directional derivative of that
partial along the graph's direction. Backward then applies

    x.grad   += y.grad * a
    x.grad_R += y.grad_R * a + y.grad * R{a}
"""
import numpy as np
from scipy.special import expit

from ..core.result import Result, RResult, upstream_or_zeros


class UnaryResult(Result):
    def __init__(self, op_tag: str, x: Result, out: np.ndarray, partial: np.ndarray):
        self.op_tag = op_tag
        self.input = x
        self._output = out
        self.partial = partial

    @property
    def output(self) -> np.ndarray:
        return self._output

    def inputs(self):
        return (self.input,)

    def constant(self, g) -> bool:
        return self.input.constant(g)

    def propagate_gradient(self, upstream, g) -> None:
        if self.input.constant(g):
            return
        upstream = upstream_or_zeros(upstream, len(self._output))
        self.input.propagate_gradient(upstream * self.partial, g)


class UnaryRResult(RResult):
    def __init__(self, op_tag: str, x: RResult, out: np.ndarray, out_r: np.ndarray,
                 partial: np.ndarray, partial_r: np.ndarray):
        self.op_tag = op_tag
        self.input = x
        self._output = out
        self._r_output = out_r
        self.partial = partial
        self.partial_r = partial_r

    @property
    def output(self) -> np.ndarray:
        return self._output

    @property
    def r_output(self) -> np.ndarray:
        return self._r_output

    def inputs(self):
        return (self.input,)

    def constant(self, rg, g) -> bool:
        return self.input.constant(rg, g)

    def propagate_r_gradient(self, upstream, upstream_r, rg, g) -> None:
        if self.input.constant(rg, g):
            return
        n = len(self._output)
        upstream = upstream_or_zeros(upstream, n)
        upstream_r = upstream_or_zeros(upstream_r, n)
        down = upstream * self.partial
        down_r = upstream_r * self.partial + upstream * self.partial_r
        self.input.propagate_r_gradient(down, down_r, rg, g)


def tanh(x: Result) -> UnaryResult:
    y = np.tanh(x.output)
    return UnaryResult("tanh", x, y, 1.0 - y * y)


def tanh_r(x: RResult) -> UnaryRResult:
    # y = tanh(x), a = 1 - y^2, R{a} = -2 y R{y}
    y = np.tanh(x.output)
    a = 1.0 - y * y
    y_r = a * x.r_output
    return UnaryRResult("tanh", x, y, y_r, a, -2.0 * y * y_r)


def sigmoid(x: Result) -> UnaryResult:
    s = expit(x.output)
    return UnaryResult("sigmoid", x, s, s * (1.0 - s))


def sigmoid_r(x: RResult) -> UnaryRResult:
    # a = s(1-s), R{a} = (1 - 2s) R{s}
    s = expit(x.output)
    a = s * (1.0 - s)
    s_r = a * x.r_output
    return UnaryRResult("sigmoid", x, s, s_r, a, (1.0 - 2.0 * s) * s_r)
