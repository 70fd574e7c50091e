"""
Tensor3 layout and window operations.
"""

import numpy as np
import pytest

from seqgrad.core.tensor3 import Tensor3


def _arange_tensor(w, h, d):
    return Tensor3(w, h, d, np.arange(w * h * d, dtype=np.float64))


def test_flat_layout():
    t = _arange_tensor(4, 3, 2)
    # index = depth*(y*width + x) + z
    assert t.get(0, 0, 0) == 0.0
    assert t.get(1, 0, 0) == 2.0
    assert t.get(0, 1, 1) == 2 * (1 * 4 + 0) + 1
    assert t.get(3, 2, 1) == 23.0

    t.set(2, 1, 0, -5.0)
    assert t.data[2 * (1 * 4 + 2)] == -5.0


def test_data_is_shared_not_copied():
    buf = np.zeros(8)
    t = Tensor3(2, 2, 2, buf)
    assert t.data is buf
    t.set(1, 1, 1, 3.0)
    assert buf[7] == 3.0


def test_bad_construction():
    with pytest.raises(ValueError):
        Tensor3(2, 2, 2, np.zeros(7))
    with pytest.raises(ValueError):
        Tensor3(-1, 2, 2)


def test_out_of_range_access():
    t = Tensor3.zeros(2, 2, 1)
    with pytest.raises(IndexError):
        t.get(2, 0, 0)
    with pytest.raises(IndexError):
        t.set(0, -1, 0, 1.0)


def test_crop():
    t = _arange_tensor(4, 4, 2)
    dest = Tensor3.zeros(2, 3, 2)
    t.crop(1, 1, dest)
    for y in range(3):
        for x in range(2):
            for z in range(2):
                assert dest.get(x, y, z) == t.get(x + 1, y + 1, z)

    with pytest.raises(IndexError):
        t.crop(3, 0, dest)
    with pytest.raises(ValueError):
        t.crop(0, 0, Tensor3.zeros(2, 2, 1))


def test_mul_add_positive_offset_clips_to_overlap():
    dst = Tensor3.zeros(3, 3, 1)
    src = Tensor3(2, 2, 1, np.ones(4))
    dst.mul_add(2, 2, src, 3.0)
    expected = np.zeros(9)
    expected[8] = 3.0
    np.testing.assert_allclose(dst.data, expected)


def test_mul_add_negative_offset_matches_crop():
    rng = np.random.default_rng(0)
    big = Tensor3(7, 6, 3)
    big.randomize(rng)
    for fw, fh, stride in [(3, 3, 1), (2, 3, 2), (3, 2, 3), (1, 1, 1), (7, 6, 1)]:
        out_w = max(0, 1 + (big.width - fw) // stride)
        out_h = max(0, 1 + (big.height - fh) // stride)
        for oy in range(out_h):
            for ox in range(out_w):
                x, y = ox * stride, oy * stride
                cropped = Tensor3.zeros(fw, fh, 3)
                big.crop(x, y, cropped)

                acc = Tensor3(fw, fh, 3, np.full(fw * fh * 3, 0.5))
                acc.mul_add(-x, -y, big, -1.5)
                np.testing.assert_allclose(acc.data, 0.5 - 1.5 * cropped.data)


def test_randomize_range():
    t = Tensor3.zeros(5, 5, 4)
    t.randomize(np.random.default_rng(1))
    assert np.all(t.data >= -1.0) and np.all(t.data < 1.0)
    assert np.any(t.data != 0.0)
