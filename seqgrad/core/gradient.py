# seqgrad/core/gradient.py
"""
Handle-keyed accumulator maps.

    Gradient  : d(downstream)/d(var) for each tracked Variable.
    RGradient : the directional derivative of that gradient (R-gradient).
    RVector   : a perturbation direction in parameter space.

Gradient and RGradient are created for a fixed set of tracked variables and
that key set never changes afterwards: propagation only adds into existing
entries. Accumulating into a variable that is not tracked is a silent no-op,
which lets operators push gradients for every parameter unconditionally.
"""
from __future__ import annotations
import numpy as np
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union, TYPE_CHECKING

from .vecops import as_vector, scaled_accumulate

if TYPE_CHECKING:
    from .var import Variable


class _VarMap:
    """Mapping from Variable handle to a vector of the variable's length."""

    __slots__ = ("_vectors",)

    def __init__(self):
        self._vectors: Dict[int, np.ndarray] = {}

    def __contains__(self, var: "Variable") -> bool:
        return var.handle in self._vectors

    def __getitem__(self, var: "Variable") -> np.ndarray:
        return self._vectors[var.handle]

    def __len__(self) -> int:
        return len(self._vectors)

    def __iter__(self) -> Iterator[int]:
        return iter(self._vectors)

    def get(self, var: "Variable", default=None) -> Optional[np.ndarray]:
        return self._vectors.get(var.handle, default)

    def handles(self) -> List[int]:
        return list(self._vectors.keys())

    def items(self) -> Iterator[Tuple[int, np.ndarray]]:
        return iter(self._vectors.items())

    def __repr__(self):
        body = ", ".join(f"#{h}: {v!r}" for h, v in self._vectors.items())
        return f"{type(self).__name__}({{{body}}})"


class Gradient(_VarMap):
    """Reverse-mode accumulators for a fixed set of tracked variables."""

    __slots__ = ()

    @classmethod
    def for_variables(cls, variables: Iterable["Variable"]):
        """Allocate one zero accumulator per tracked variable."""
        g = cls()
        for var in variables:
            g._vectors[var.handle] = np.zeros(len(var.vector), dtype=np.float64)
        return g

    def accumulate(self, var: "Variable", vec: np.ndarray, scale: float = 1.0) -> None:
        """entry(var) += scale * vec; no-op if ``var`` is not tracked."""
        acc = self._vectors.get(var.handle)
        if acc is None:
            return
        scaled_accumulate(acc, scale, vec)

    def zero(self) -> None:
        for acc in self._vectors.values():
            acc.fill(0.0)

    def copy(self):
        out = type(self)()
        out._vectors = {h: v.copy() for h, v in self._vectors.items()}
        return out


class RGradient(Gradient):
    """R-gradient accumulators; same contract as :class:`Gradient`."""

    __slots__ = ()


def new_gradient(variables: Iterable["Variable"]) -> Gradient:
    return Gradient.for_variables(variables)


def new_r_gradient(variables: Iterable["Variable"]) -> RGradient:
    return RGradient.for_variables(variables)


PairsLike = Union[Mapping["Variable", np.ndarray], Iterable[Tuple["Variable", np.ndarray]]]


class RVector(_VarMap):
    """
    Perturbation direction keyed by Variable handle.

    An absent entry means a zero direction for that variable. Entries are
    assigned while the direction is being built:

        >>> rv = RVector({weights: np.ones(3)})
        >>> rv[bias] = np.array([0.5])
    """

    __slots__ = ("_vars",)

    def __init__(self, pairs: Optional[PairsLike] = None):
        super().__init__()
        self._vars: Dict[int, "Variable"] = {}
        if pairs is None:
            return
        items = pairs.items() if isinstance(pairs, Mapping) else pairs
        for var, vec in items:
            self[var] = vec

    @classmethod
    def from_pairs(cls, *pairs: Tuple["Variable", np.ndarray]) -> "RVector":
        return cls(pairs)

    def __setitem__(self, var: "Variable", vec) -> None:
        vec = as_vector(vec)
        if len(vec) != len(var.vector):
            raise ValueError(
                f"direction length ({len(vec)}) does not match variable length ({len(var.vector)})"
            )
        self._vectors[var.handle] = vec
        self._vars[var.handle] = var

    def items_vars(self) -> Iterator[Tuple["Variable", np.ndarray]]:
        """(Variable, direction) pairs, in insertion order."""
        for handle, vec in self._vectors.items():
            yield self._vars[handle], vec
