# seqgrad/core/var.py
from __future__ import annotations
import itertools
import numpy as np
from typing import Any, Optional, TYPE_CHECKING

from .result import Result, RResult
from .vecops import zeros

if TYPE_CHECKING:
    from .gradient import Gradient, RGradient, RVector

# Handles are never reused within a process.
_handles = itertools.count(1)


class Variable(Result):
    """
    Named vector of real values acting as a graph leaf.

    Attributes
    ----------
    vector : np.ndarray
        Float64 values. The array object is never rebound: operators that own
        the Variable (e.g. a convolution filter) share this exact array as the
        backing store of their own tensors.
    handle : int
        Opaque identity issued at creation. Gradient maps are keyed by it, so
        two Variables with equal contents are still distinct nodes.
    name : Optional[str]
        Optional debug/pretty-print name.
    """

    op_tag = "variable"

    def __init__(self, vector: Any, *, name: Optional[str] = None):
        # Type check: only allow numeric scalars, sequences, or numpy arrays
        if not isinstance(vector, (int, float, list, tuple, np.ndarray)):
            raise TypeError(
                f"Variable only accepts numeric types (int, float, list, tuple, ndarray), "
                f"but got {type(vector)}"
            )
        # float64 ndarrays are kept as-is so the caller's buffer stays shared
        vec = np.asarray(vector, dtype=np.float64)
        if vec.ndim == 0:
            vec = vec.reshape(1)
        elif vec.ndim != 1:
            raise ValueError(f"Variable expects a 1-D vector, got shape {vec.shape}")
        self.vector = vec
        self.handle = next(_handles)
        self.name = name

    def __repr__(self):
        return f"Variable(#{self.handle}, len={len(self.vector)}, name={self.name!r})"

    @property
    def output(self) -> np.ndarray:
        return self.vector

    def constant(self, g: "Gradient") -> bool:
        return self not in g

    def propagate_gradient(self, upstream, g: "Gradient") -> None:
        # nil upstream is a zero contribution
        if upstream is None:
            return
        g.accumulate(self, upstream)


class RVariable(RResult):
    """
    Variable seen through a direction ``rv``: its R-output is ``rv[variable]``,
    or zeros when the direction has no entry for it.
    """

    op_tag = "r_variable"

    def __init__(self, variable: Variable, rv: Optional["RVector"] = None):
        self.variable = variable
        direction = rv.get(variable) if rv is not None else None
        if direction is None:
            direction = zeros(len(variable.vector))
        elif len(direction) != len(variable.vector):
            raise ValueError(
                f"direction length ({len(direction)}) does not match variable length "
                f"({len(variable.vector)})"
            )
        self._r_output = direction

    def __repr__(self):
        return f"RVariable({self.variable!r})"

    @property
    def output(self) -> np.ndarray:
        return self.variable.vector

    @property
    def r_output(self) -> np.ndarray:
        return self._r_output

    def constant(self, rg: "RGradient", g: "Gradient") -> bool:
        return self.variable not in g and self.variable not in rg

    def propagate_r_gradient(self, upstream, upstream_r, rg: "RGradient", g: "Gradient") -> None:
        if upstream is not None:
            g.accumulate(self.variable, upstream)
        if upstream_r is not None:
            rg.accumulate(self.variable, upstream_r)
