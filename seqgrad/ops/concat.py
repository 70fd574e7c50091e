# seqgrad/ops/concat.py
from __future__ import annotations
import numpy as np
from typing import List, Sequence

from ..core.result import Result, RResult, upstream_or_zeros
from ..core.vecops import zeros


class ConcatResult(Result):
    """
    Concatenation of several Results.

    Backward hands each input the slice of the upstream vector that lines up
    with its own output; constant inputs are skipped.
    """

    op_tag = "concat"

    def __init__(self, results: Sequence[Result]):
        self._inputs: List[Result] = list(results)
        if self._inputs:
            self._output = np.concatenate([r.output for r in self._inputs])
        else:
            self._output = zeros(0)

    @property
    def output(self) -> np.ndarray:
        return self._output

    def inputs(self):
        return self._inputs

    def constant(self, g) -> bool:
        return all(r.constant(g) for r in self._inputs)

    def propagate_gradient(self, upstream, g) -> None:
        upstream = upstream_or_zeros(upstream, len(self._output))
        offset = 0
        for r in self._inputs:
            n = len(r.output)
            if not r.constant(g):
                r.propagate_gradient(upstream[offset:offset + n], g)
            offset += n


class ConcatRResult(RResult):
    op_tag = "concat"

    def __init__(self, results: Sequence[RResult]):
        self._inputs: List[RResult] = list(results)
        if self._inputs:
            self._output = np.concatenate([r.output for r in self._inputs])
            self._r_output = np.concatenate([r.r_output for r in self._inputs])
        else:
            self._output = zeros(0)
            self._r_output = zeros(0)

    @property
    def output(self) -> np.ndarray:
        return self._output

    @property
    def r_output(self) -> np.ndarray:
        return self._r_output

    def inputs(self):
        return self._inputs

    def constant(self, rg, g) -> bool:
        return all(r.constant(rg, g) for r in self._inputs)

    def propagate_r_gradient(self, upstream, upstream_r, rg, g) -> None:
        n_out = len(self._output)
        upstream = upstream_or_zeros(upstream, n_out)
        upstream_r = upstream_or_zeros(upstream_r, n_out)
        offset = 0
        for r in self._inputs:
            n = len(r.output)
            if not r.constant(rg, g):
                r.propagate_r_gradient(upstream[offset:offset + n],
                                       upstream_r[offset:offset + n], rg, g)
            offset += n


def concat(*results: Result) -> ConcatResult:
    return ConcatResult(results)


def concat_r(*results: RResult) -> ConcatRResult:
    return ConcatRResult(results)
