# seqgrad/core/vecops.py
"""
Dense-vector primitives shared by every graph node.

All vectors in seqgrad are 1-D float64 numpy arrays. Accumulation is always
performed in place so that buffers shared between a Variable and the tensor
that owns its storage stay in sync.
"""
from __future__ import annotations
import numpy as np
from typing import Any


def as_vector(data: Any) -> np.ndarray:
    """Coerce list/tuple/ndarray data into a 1-D float64 vector (copying only if needed)."""
    vec = np.asarray(data, dtype=np.float64)
    if vec.ndim != 1:
        vec = vec.reshape(-1)
    return vec


def zeros(n: int) -> np.ndarray:
    return np.zeros(n, dtype=np.float64)


def dot(a: np.ndarray, b: np.ndarray) -> float:
    """Inner product of two equal-length vectors."""
    if len(a) != len(b):
        raise ValueError(f"dot: length mismatch ({len(a)} vs {len(b)})")
    return float(np.dot(a, b))


def scaled_accumulate(dest: np.ndarray, scalar: float, source: np.ndarray) -> None:
    """
    dest += scalar * source, in place.

    `dest` keeps its identity; this is what lets a gradient accumulator (or a
    tensor view) be updated without rebinding.
    """
    if len(dest) != len(source):
        raise ValueError(f"scaled_accumulate: length mismatch ({len(dest)} vs {len(source)})")
    if scalar == 1.0:
        dest += source
    else:
        dest += scalar * source
