"""
ConvLayer: shape law, forward values, reverse and R-operator derivatives.
"""

import warnings

import numpy as np
import pytest

from seqgrad.core.gradient import RVector, new_gradient, new_r_gradient
from seqgrad.core.tensor3 import Tensor3
from seqgrad.core.var import RVariable, Variable
from seqgrad.nn.conv_layer import ConvLayer


def make_layer(seed=0, filters=2, fw=3, fh=3, stride=1, w=5, h=5, d=1):
    layer = ConvLayer(filters, fw, fh, stride, w, h, d)
    layer.randomize(np.random.default_rng(seed))
    return layer


def make_input(layer, seed=1):
    rng = np.random.default_rng(seed)
    return Variable(rng.uniform(-1.0, 1.0, size=layer.input_size), name="input")


def test_shape_law():
    assert ConvLayer(1, 3, 3, 1, 5, 5, 1).output_width == 3
    assert ConvLayer(1, 3, 2, 2, 7, 6, 1).output_width == 3
    assert ConvLayer(1, 3, 2, 2, 7, 6, 1).output_height == 3
    assert ConvLayer(4, 1, 1, 1, 2, 2, 3).output_depth == 4
    with pytest.warns(UserWarning):
        layer = ConvLayer(1, 3, 3, 1, 2, 5, 1)
    assert layer.output_width == 0


def test_bad_hyperparameters():
    with pytest.raises(ValueError):
        ConvLayer(1, 3, 3, 0, 5, 5, 1)
    with pytest.raises(ValueError):
        ConvLayer(0, 3, 3, 1, 5, 5, 1)


def test_uninitialized_layer_fails_loudly():
    layer = ConvLayer(2, 3, 3, 1, 5, 5, 1)
    x = Variable(np.zeros(25))
    with pytest.raises(RuntimeError):
        layer.apply(x)
    with pytest.raises(RuntimeError):
        layer.apply_r(RVector(), RVariable(x))
    with pytest.raises(RuntimeError):
        layer.parameters()


def test_input_length_mismatch():
    layer = make_layer()
    with pytest.raises(ValueError):
        layer.apply(Variable(np.zeros(24)))


def test_parameters_share_filter_storage():
    layer = make_layer()
    params = layer.parameters()
    assert params[0] is layer.biases
    for filt, var in zip(layer.filters, params[1:]):
        assert filt.data is var.vector


def test_forward_matches_direct_sum():
    layer = make_layer(stride=2, w=7, h=5, d=2, fw=3, fh=2)
    x = make_input(layer)
    out = layer.apply(x)
    inp = x.vector.reshape(5, 7, 2)
    got = out.output.reshape(layer.output_height, layer.output_width, layer.output_depth)
    for oy in range(layer.output_height):
        for ox in range(layer.output_width):
            patch = inp[oy * 2:oy * 2 + 2, ox * 2:ox * 2 + 3, :].ravel()
            for z in range(layer.filter_count):
                expected = patch @ layer.filters[z].data + layer.biases.vector[z]
                assert got[oy, ox, z] == pytest.approx(expected)


def test_filter_perturbation_matches_gradient():
    # 2 filters of 3x3x1 over a 5x5x1 input produce a 3x3x2 output
    layer = make_layer()
    x = make_input(layer)
    out = layer.apply(x)
    assert (layer.output_width, layer.output_height, layer.output_depth) == (3, 3, 2)
    assert len(out.output) == 18

    upstream = np.random.default_rng(2).uniform(-1.0, 1.0, size=18)
    g = new_gradient(layer.parameters())
    out.propagate_gradient(upstream, g)

    base = upstream @ out.output
    eps = 1e-4
    for var in layer.filter_vars:
        for j in range(len(var.vector)):
            old = var.vector[j]
            var.vector[j] = old + eps
            moved = upstream @ layer.apply(x).output
            var.vector[j] = old
            assert (moved - base) / eps == pytest.approx(g[var][j], abs=1e-3)


def test_input_gradient_only_when_tracked():
    layer = make_layer()
    x = make_input(layer)
    out = layer.apply(x)
    upstream = np.ones(18)

    g = new_gradient([layer.biases])
    assert not out.constant(g)
    out.propagate_gradient(upstream, g)
    np.testing.assert_allclose(g[layer.biases], [9.0, 9.0])

    g_in = new_gradient([x])
    out.propagate_gradient(upstream, g_in)
    expected = np.zeros(25)
    grid = expected.reshape(5, 5, 1)
    for oy in range(3):
        for ox in range(3):
            for filt in layer.filters:
                grid[oy:oy + 3, ox:ox + 3, :] += filt.grid()
    np.testing.assert_allclose(g_in[x], expected)

    untracked = new_gradient([Variable([0.0])])
    assert out.constant(untracked)


def test_nil_upstream_equals_zero_upstream():
    layer = make_layer()
    x = make_input(layer)
    tracked = layer.parameters() + [x]
    rv = RVector({layer.biases: [1.0, -1.0], x: np.ones(25)})

    g1, g2 = new_gradient(tracked), new_gradient(tracked)
    layer.apply(x).propagate_gradient(None, g1)
    layer.apply(x).propagate_gradient(np.zeros(18), g2)

    rg1, rg2 = new_r_gradient(tracked), new_r_gradient(tracked)
    h1, h2 = new_gradient(tracked), new_gradient(tracked)
    layer.apply_r(rv, RVariable(x, rv)).propagate_r_gradient(None, None, rg1, h1)
    layer.apply_r(rv, RVariable(x, rv)).propagate_r_gradient(np.zeros(18), np.zeros(18), rg2, h2)

    for var in tracked:
        np.testing.assert_array_equal(g1[var], g2[var])
        np.testing.assert_array_equal(h1[var], h2[var])
        np.testing.assert_array_equal(rg1[var], rg2[var])


def _random_direction(variables, seed):
    rng = np.random.default_rng(seed)
    return RVector({v: rng.uniform(-1.0, 1.0, size=len(v.vector)) for v in variables})


def test_r_output_and_r_gradient():
    layer = make_layer(stride=2, w=6, h=5, d=2, fw=2, fh=3, filters=3)
    x = make_input(layer)
    tracked = layer.parameters() + [x]
    # leave one filter without a direction
    rv = _random_direction([layer.biases, x] + layer.filter_vars[1:], seed=3)

    n_out = layer.output_size
    up = np.random.default_rng(4).uniform(-1.0, 1.0, size=n_out)
    up_r = np.random.default_rng(5).uniform(-1.0, 1.0, size=n_out)

    dual = layer.apply_r(rv, RVariable(x, rv))
    np.testing.assert_allclose(dual.output, layer.apply(x).output)

    moved = [v for v in tracked if v in rv]
    saved = [v.vector.copy() for v in moved]

    def move(scale):
        for v, old in zip(moved, saved):
            v.vector[...] = old + scale * rv[v]

    h = 1e-4
    move(h)
    plus = layer.apply(x)
    g_plus = new_gradient(tracked)
    plus.propagate_gradient(up, g_plus)
    plus_out = plus.output.copy()
    move(-h)
    minus = layer.apply(x)
    g_minus = new_gradient(tracked)
    minus.propagate_gradient(up, g_minus)
    minus_out = minus.output.copy()
    move(0.0)

    np.testing.assert_allclose(dual.r_output, (plus_out - minus_out) / (2 * h), atol=1e-6)

    g_plain = new_gradient(tracked)
    layer.apply(x).propagate_gradient(up_r, g_plain)

    ref = new_gradient(tracked)
    layer.apply(x).propagate_gradient(up, ref)

    g, rg = new_gradient(tracked), new_r_gradient(tracked)
    dual.propagate_r_gradient(up, up_r, rg, g)
    for v in tracked:
        np.testing.assert_allclose(g[v], ref[v], atol=1e-10)
        # R{grad} = d/dh grad(theta + h*rv) with upstream up, plus grad with upstream up_r
        expected = (g_plus[v] - g_minus[v]) / (2 * h) + g_plain[v]
        np.testing.assert_allclose(rg[v], expected, atol=1e-6)


def test_negative_offset_backward_matches_crop_backward():
    layer = make_layer(stride=3, w=8, h=7, d=2, fw=2, fh=3)
    x = make_input(layer)
    tracked = layer.parameters() + [x]
    up = np.random.default_rng(6).uniform(-1.0, 1.0, size=layer.output_size)

    g_crop = new_gradient(tracked)
    layer.apply(x).propagate_gradient(up, g_crop)

    g_offset, rg = new_gradient(tracked), new_r_gradient(tracked)
    layer.apply_r(RVector(), RVariable(x)).propagate_r_gradient(up, None, rg, g_offset)
    for v in tracked:
        np.testing.assert_allclose(g_offset[v], g_crop[v], atol=1e-12)
        np.testing.assert_allclose(rg[v], 0.0)


def test_empty_output_layer():
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        layer = ConvLayer(2, 3, 3, 1, 2, 2, 1)
    layer.randomize(np.random.default_rng(0))
    x = Variable(np.ones(4))
    out = layer.apply(x)
    assert len(out.output) == 0
    g = new_gradient([x] + layer.parameters())
    out.propagate_gradient(None, g)
    np.testing.assert_allclose(g[x], 0.0)


def test_tensor_views_of_parameters():
    layer = make_layer()
    filt = layer.filters[0]
    assert isinstance(filt, Tensor3)
    layer.filter_vars[0].vector[0] = 42.0
    assert filt.get(0, 0, 0) == 42.0


def test_strided_upstream_matches_contiguous_copy():
    layer = make_layer()
    x = make_input(layer)
    tracked = layer.parameters() + [x]
    full = np.random.default_rng(10).uniform(-1.0, 1.0, size=36)
    strided = full[::2]
    assert not strided.flags.c_contiguous

    g1, g2 = new_gradient(tracked), new_gradient(tracked)
    layer.apply(x).propagate_gradient(strided, g1)
    layer.apply(x).propagate_gradient(strided.copy(), g2)

    rv = _random_direction(tracked, seed=11)
    h1, rg1 = new_gradient(tracked), new_r_gradient(tracked)
    h2, rg2 = new_gradient(tracked), new_r_gradient(tracked)
    layer.apply_r(rv, RVariable(x, rv)).propagate_r_gradient(strided, full[1::2], rg1, h1)
    layer.apply_r(rv, RVariable(x, rv)).propagate_r_gradient(
        strided.copy(), full[1::2].copy(), rg2, h2)

    for var in tracked:
        np.testing.assert_array_equal(g1[var], g2[var])
        np.testing.assert_array_equal(h1[var], h2[var])
        np.testing.assert_array_equal(rg1[var], rg2[var])


def test_bool_hyperparameters_rejected():
    with pytest.raises(ValueError):
        ConvLayer(True, 3, 3, 1, 5, 5, 1)
    with pytest.raises(ValueError):
        ConvLayer(2, 3, 3, True, 5, 5, 1)


def test_r_constant_when_parameter_only_in_r_gradient():
    layer = make_layer()
    x = make_input(layer)
    dual = layer.apply_r(RVector(), RVariable(x))
    empty = new_gradient([])
    assert dual.constant(new_r_gradient([]), empty)
    assert not dual.constant(new_r_gradient([layer.biases]), empty)
    assert not dual.constant(new_r_gradient([layer.filter_vars[1]]), empty)
