# seqgrad/core/result.py
"""
Computation-graph node protocol.

A node is created fresh by every forward evaluation and holds references to
its input nodes, so a single backward traversal can walk from the outputs to
the leaf Variables. Two flavors exist:

    Result  : forward value + reverse-mode gradient propagation.
    RResult : additionally carries the directional derivative (R-output) of the
              forward value along a fixed direction, and propagates gradients
              and R-gradients together.

Upstream vectors passed to the propagate methods may be ``None``, which means
"all zeros". Every node treats ``None`` as a designed case; the result must be
the same as passing an explicit zero vector of ``len(output)``.
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional, Sequence, TYPE_CHECKING
import numpy as np

from .vecops import zeros

if TYPE_CHECKING:
    from .gradient import Gradient, RGradient


def upstream_or_zeros(upstream: Optional[np.ndarray], n: int) -> np.ndarray:
    """Return ``upstream`` or a zero vector of length ``n`` when it is None."""
    if upstream is None:
        return zeros(n)
    if len(upstream) != n:
        raise ValueError(f"upstream length ({len(upstream)}) does not match output length ({n})")
    return upstream


class Result(ABC):
    """Node of a reverse-mode computation graph."""

    op_tag = "result"

    @property
    @abstractmethod
    def output(self) -> np.ndarray:
        """Forward value; fixed once materialized."""

    @abstractmethod
    def constant(self, g: "Gradient") -> bool:
        """True iff no variable tracked by ``g`` can reach this node."""

    @abstractmethod
    def propagate_gradient(self, upstream: Optional[np.ndarray], g: "Gradient") -> None:
        """Accumulate d(downstream)/d(var) into ``g`` for every reachable tracked var."""

    def inputs(self) -> Sequence["Result"]:
        """Input nodes (empty for leaves)."""
        return ()


class RResult(ABC):
    """Node of a graph that also carries forward-mode (R) derivatives."""

    op_tag = "r_result"

    @property
    @abstractmethod
    def output(self) -> np.ndarray:
        ...

    @property
    @abstractmethod
    def r_output(self) -> np.ndarray:
        """Directional derivative of ``output`` along the graph's direction."""

    @abstractmethod
    def constant(self, rg: "RGradient", g: "Gradient") -> bool:
        """True iff no variable tracked by ``rg`` or ``g`` can reach this node."""

    @abstractmethod
    def propagate_r_gradient(self, upstream: Optional[np.ndarray],
                             upstream_r: Optional[np.ndarray],
                             rg: "RGradient", g: "Gradient") -> None:
        """Dual of ``Result.propagate_gradient``; each upstream may be None independently."""

    def inputs(self) -> Sequence["RResult"]:
        return ()


# ---------------- capture leaves ---------------- #
class Pool(Result):
    """
    Leaf that captures the gradient flowing into a fixed vector.

    Blocks wrap each prior state in a Pool so the backward pass can hand the
    state gradient back to the caller. A Pool is never constant: its own
    ``grad`` buffer is always "tracked".
    """

    op_tag = "pool"

    def __init__(self, vector: np.ndarray):
        self._vector = vector
        self.grad = zeros(len(vector))

    @property
    def output(self) -> np.ndarray:
        return self._vector

    def constant(self, g) -> bool:
        return False

    def propagate_gradient(self, upstream, g) -> None:
        if upstream is None:
            return
        self.grad += upstream


class RPool(RResult):
    """R counterpart of :class:`Pool`, capturing both gradient streams."""

    op_tag = "r_pool"

    def __init__(self, vector: np.ndarray, r_vector: np.ndarray):
        if len(vector) != len(r_vector):
            raise ValueError(f"RPool: length mismatch ({len(vector)} vs {len(r_vector)})")
        self._vector = vector
        self._r_vector = r_vector
        self.grad = zeros(len(vector))
        self.r_grad = zeros(len(vector))

    @property
    def output(self) -> np.ndarray:
        return self._vector

    @property
    def r_output(self) -> np.ndarray:
        return self._r_vector

    def constant(self, rg, g) -> bool:
        return False

    def propagate_r_gradient(self, upstream, upstream_r, rg, g) -> None:
        if upstream is not None:
            self.grad += upstream
        if upstream_r is not None:
            self.r_grad += upstream_r
