"""
Variables, gradient maps and leaf propagation.
"""

import numpy as np
import pytest

from seqgrad.core.gradient import RVector, new_gradient, new_r_gradient
from seqgrad.core.result import Pool, RPool
from seqgrad.core.var import RVariable, Variable


def test_handles_are_unique():
    a = Variable([1.0, 2.0])
    b = Variable([1.0, 2.0])
    assert a.handle != b.handle
    g = new_gradient([a])
    assert a in g
    assert b not in g


def test_variable_keeps_float_buffer():
    buf = np.zeros(3)
    v = Variable(buf)
    assert v.vector is buf
    assert v.output is buf


def test_variable_rejects_bad_data():
    with pytest.raises(TypeError):
        Variable("abc")
    with pytest.raises(ValueError):
        Variable(np.zeros((2, 2)))


def test_gradient_key_set_is_fixed():
    a, b = Variable([1.0]), Variable([2.0, 3.0])
    g = new_gradient([a])
    b.propagate_gradient(np.array([1.0, 1.0]), g)
    assert len(g) == 1
    assert g.get(b) is None

    a.propagate_gradient(np.array([2.0]), g)
    a.propagate_gradient(np.array([0.5]), g)
    np.testing.assert_allclose(g[a], [2.5])


def test_nil_upstream_on_leaves():
    a = Variable([1.0, 2.0])
    g = new_gradient([a])
    a.propagate_gradient(None, g)
    np.testing.assert_allclose(g[a], [0.0, 0.0])

    pool = Pool(np.array([1.0, 2.0]))
    pool.propagate_gradient(None, g)
    np.testing.assert_allclose(pool.grad, [0.0, 0.0])
    assert not pool.constant(g)


def test_constancy():
    a, b = Variable([1.0]), Variable([1.0])
    g = new_gradient([a])
    assert not a.constant(g)
    assert b.constant(g)

    rv = RVector({b: [1.0]})
    rg = new_r_gradient([b])
    ra, rb = RVariable(a, rv), RVariable(b, rv)
    assert ra.constant(rg, new_gradient([]))
    assert not ra.constant(rg, g)
    assert not rb.constant(rg, new_gradient([]))
    assert RVariable(Variable([0.0]), rv).constant(rg, g)


def test_r_variable_direction():
    a, b = Variable([1.0, 2.0]), Variable([3.0])
    rv = RVector([(a, [0.5, -0.5])])
    np.testing.assert_allclose(RVariable(a, rv).r_output, [0.5, -0.5])
    np.testing.assert_allclose(RVariable(b, rv).r_output, [0.0])

    with pytest.raises(ValueError):
        rv[b] = [1.0, 2.0]


def test_r_variable_propagates_each_stream_independently():
    a = Variable([1.0, 2.0])
    g, rg = new_gradient([a]), new_r_gradient([a])
    ra = RVariable(a)
    ra.propagate_r_gradient(np.array([1.0, 1.0]), None, rg, g)
    ra.propagate_r_gradient(None, np.array([2.0, 3.0]), rg, g)
    np.testing.assert_allclose(g[a], [1.0, 1.0])
    np.testing.assert_allclose(rg[a], [2.0, 3.0])

    pool = RPool(np.zeros(2), np.zeros(2))
    pool.propagate_r_gradient(None, np.array([1.0, 0.0]), rg, g)
    np.testing.assert_allclose(pool.grad, [0.0, 0.0])
    np.testing.assert_allclose(pool.r_grad, [1.0, 0.0])


def test_copy_and_zero():
    a = Variable([1.0])
    g = new_gradient([a])
    g.accumulate(a, np.array([4.0]))
    snapshot = g.copy()
    g.zero()
    np.testing.assert_allclose(g[a], [0.0])
    np.testing.assert_allclose(snapshot[a], [4.0])


def test_r_vector_keeps_variables():
    a, b = Variable([1.0]), Variable([2.0, 3.0])
    rv = RVector.from_pairs((a, [0.5]), (b, [1.0, -1.0]))
    pairs = list(rv.items_vars())
    assert [var for var, _ in pairs] == [a, b]
    np.testing.assert_allclose(pairs[1][1], [1.0, -1.0])
