"""
Elementwise ops and concatenation: values, gradients, R-derivatives.
"""

import numpy as np
import pytest

from seqgrad.core.gradient import RVector, new_gradient, new_r_gradient
from seqgrad.core.var import RVariable, Variable
from seqgrad.ops import concat, concat_r, sigmoid, sigmoid_r, tanh, tanh_r

DELTA = 1e-5


@pytest.mark.parametrize("fn,fn_r,ref", [
    (tanh, tanh_r, np.tanh),
    (sigmoid, sigmoid_r, lambda x: 1.0 / (1.0 + np.exp(-x))),
])
def test_unary_ops(fn, fn_r, ref):
    x = Variable([-1.2, 0.0, 0.7])
    direction = np.array([0.3, -1.0, 2.0])
    rv = RVector({x: direction})

    out = fn(x)
    np.testing.assert_allclose(out.output, ref(x.vector))

    # gradient of sum(w * f(x)) is w * f'(x)
    w = np.array([1.0, -2.0, 0.5])
    g = new_gradient([x])
    out.propagate_gradient(w, g)
    x0 = x.vector.copy()
    numeric = (ref(x0 + DELTA) - ref(x0 - DELTA)) / (2 * DELTA)
    np.testing.assert_allclose(g[x], w * numeric, atol=1e-8)

    # R output is f'(x) * v
    out_r = fn_r(RVariable(x, rv))
    np.testing.assert_allclose(out_r.output, out.output)
    np.testing.assert_allclose(out_r.r_output, numeric * direction, atol=1e-8)

    # R gradient with upstream_r = 0 is the derivative of the gradient along v
    g2, rg = new_gradient([x]), new_r_gradient([x])
    out_r.propagate_r_gradient(w, None, rg, g2)
    np.testing.assert_allclose(g2[x], g[x])
    grad_at = lambda pt: w * (ref(pt + DELTA) - ref(pt - DELTA)) / (2 * DELTA)
    h = 1e-4
    expected = (grad_at(x0 + h * direction) - grad_at(x0 - h * direction)) / (2 * h)
    np.testing.assert_allclose(rg[x], expected, atol=1e-5)


def test_unary_nil_upstream():
    x = Variable([0.1, 0.2])
    g1, g2 = new_gradient([x]), new_gradient([x])
    tanh(x).propagate_gradient(None, g1)
    tanh(x).propagate_gradient(np.zeros(2), g2)
    np.testing.assert_allclose(g1[x], g2[x])


def test_concat():
    a, b = Variable([1.0, 2.0]), Variable([3.0])
    c = concat(a, b)
    np.testing.assert_allclose(c.output, [1.0, 2.0, 3.0])

    g = new_gradient([b])
    c.propagate_gradient(np.array([5.0, 6.0, 7.0]), g)
    np.testing.assert_allclose(g[b], [7.0])
    assert not c.constant(g)
    assert concat(a).constant(g)


def test_concat_r_slices_both_streams():
    a, b = Variable([1.0, 2.0]), Variable([3.0])
    rv = RVector({a: [1.0, -1.0]})
    c = concat_r(RVariable(a, rv), RVariable(b, rv))
    np.testing.assert_allclose(c.r_output, [1.0, -1.0, 0.0])

    g, rg = new_gradient([a, b]), new_r_gradient([a, b])
    c.propagate_r_gradient(None, np.array([1.0, 2.0, 3.0]), rg, g)
    np.testing.assert_allclose(g[a], [0.0, 0.0])
    np.testing.assert_allclose(rg[a], [1.0, 2.0])
    np.testing.assert_allclose(rg[b], [3.0])
