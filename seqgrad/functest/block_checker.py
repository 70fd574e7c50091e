# seqgrad/functest/block_checker.py
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from ..core.gradient import RVector, new_gradient, new_r_gradient
from ..core.var import RVariable, Variable
from ..rnn.block import Block
from ..rnn.seq_func import BlockSeqFunc
from .seq_checker import (DEFAULT_DELTA, DEFAULT_PREC, ScenarioResult, SeqRFuncChecker,
                          log_result, vecs_equal)


@dataclass
class BlockChecker:
    """
    Gradient checking and nil-upstream checks for a Block.

    ``full_check`` runs the sequence checks of :class:`SeqRFuncChecker` over
    ``BlockSeqFunc(block)``, then verifies on the first step of the first
    input sequence that propagating ``None`` upstreams accumulates exactly what
    explicit zero upstreams (with ``None`` state gradients) accumulate, and
    that neither changes the key set of the gradient maps.
    """
    block: Block
    inputs: List[List[Variable]]
    variables: List[Variable]
    rv: Optional[RVector] = None
    delta: float = DEFAULT_DELTA
    prec: float = DEFAULT_PREC

    def full_check(self) -> List[ScenarioResult]:
        seq_checker = SeqRFuncChecker(
            f=BlockSeqFunc(self.block),
            inputs=self.inputs,
            variables=self.variables,
            rv=self.rv,
            delta=self.delta,
            prec=self.prec,
        )
        results = seq_checker.full_check()
        results.append(self.check_nil_upstream())
        results.append(self.check_nil_upstream_r())
        return results

    def _compare(self, result: ScenarioResult, label: str, m1, m2) -> None:
        for i, var in enumerate(self.variables):
            val1, val2 = m1.get(var), m2.get(var)
            if not vecs_equal(val1, val2, self.prec):
                result.failures.append(f"{label} for var {i} don't match: {val1} and {val2}")

    def check_nil_upstream(self) -> ScenarioResult:
        result = ScenarioResult("nil_upstream")
        out = self.block.apply_block([self.block.start_state()], [self.inputs[0][0]])

        g1 = new_gradient(self.variables)
        init_len1 = len(g1)
        out.propagate_gradient(None, None, g1)

        g2 = new_gradient(self.variables)
        init_len2 = len(g2)
        zero_upstream = [np.zeros(len(x)) for x in out.outputs()]
        nil_state_upstream = [None] * len(out.states())
        out.propagate_gradient(zero_upstream, nil_state_upstream, g2)

        if len(g1) != init_len1:
            result.failures.append(f"all nil gradient length changed from {init_len1} to {len(g1)}")
        if len(g2) != init_len2:
            result.failures.append(f"non-nil gradient length changed from {init_len2} to {len(g2)}")
        if set(g1.handles()) != set(g2.handles()):
            result.failures.append("gradient key sets differ")
        self._compare(result, "gradients", g1, g2)
        return log_result(result)

    def check_nil_upstream_r(self) -> ScenarioResult:
        result = ScenarioResult("nil_upstream_r")
        rv = self.rv if self.rv is not None else RVector()
        out = self.block.apply_block_r(rv, [self.block.start_r_state(rv)],
                                       [RVariable(self.inputs[0][0], rv)])

        g1 = new_gradient(self.variables)
        rg1 = new_r_gradient(self.variables)
        init_len1 = len(g1)
        out.propagate_r_gradient(None, None, None, rg1, g1)

        g2 = new_gradient(self.variables)
        rg2 = new_r_gradient(self.variables)
        init_len2 = len(g2)
        zero_upstream = [np.zeros(len(x)) for x in out.outputs()]
        nil_state_upstream = [None] * len(out.r_states())
        out.propagate_r_gradient(zero_upstream, zero_upstream, nil_state_upstream, rg2, g2)

        if len(g1) != init_len1:
            result.failures.append(f"all nil gradient length changed from {init_len1} to {len(g1)}")
        if len(rg1) != init_len1:
            result.failures.append(f"all nil r-gradient length changed from {init_len1} to {len(rg1)}")
        if len(g2) != init_len2:
            result.failures.append(f"non-nil gradient length changed from {init_len2} to {len(g2)}")
        if len(rg2) != init_len2:
            result.failures.append(f"non-nil r-gradient length changed from {init_len2} to {len(rg2)}")
        if set(g1.handles()) != set(g2.handles()) or set(rg1.handles()) != set(rg2.handles()):
            result.failures.append("gradient key sets differ")
        self._compare(result, "gradients", g1, g2)
        self._compare(result, "r-gradients", rg1, rg2)
        return log_result(result)
