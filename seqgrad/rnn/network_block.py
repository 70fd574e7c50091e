# seqgrad/rnn/network_block.py
"""
Block built from a feed-forward Network.

Each step evaluates

    [output ; new_state] = network([input ; state])

The prior state enters the graph through a Pool (RPool for the dual pass), so
the gradient reaching it can be read back after the network's backward pass
and returned to the caller as the state gradient.
"""
from typing import List, Optional, Sequence

import numpy as np

from ..core.gradient import Gradient, RGradient, RVector
from ..core.result import Pool, RPool, Result, RResult
from ..core.var import Variable
from ..core.vecops import zeros
from ..nn.network import Network
from ..ops.concat import concat, concat_r
from .block import (Block, BlockResult, BlockRResult, VecRState, VecRStateGrad,
                    VecState, VecStateGrad, check_batch)


def _split_upstream(upstream, state_upstream, n_out: int, n_state: int, i: int):
    """Joined [output ; state] upstream for element ``i``, or None if both parts are zero."""
    up = upstream[i] if upstream is not None else None
    st = state_upstream[i] if state_upstream is not None else None
    if up is None and st is None:
        return None
    joined = zeros(n_out + n_state)
    if up is not None:
        if len(up) != n_out:
            raise ValueError(f"output upstream length ({len(up)}) must be {n_out}")
        joined[:n_out] = up
    if st is not None:
        if len(st) != n_state:
            raise ValueError(f"state upstream length ({len(st)}) must be {n_state}")
        joined[n_out:] = st
    return joined


def _vec(grad, attr: str = "vector"):
    return None if grad is None else getattr(grad, attr)


class NetworkBlock(Block):
    """
    Args:
        network: maps input_size + state_size values to output_size + state_size
        input_size, output_size, state_size: vector lengths per step
        start: learnable start state (zeros of state_size when omitted)
    """

    def __init__(self, network: Network, input_size: int, output_size: int, state_size: int,
                 start: Optional[Variable] = None):
        for label, val in (("input_size", input_size), ("output_size", output_size),
                           ("state_size", state_size)):
            if int(val) != val or val < 0:
                raise ValueError(f"{label} must be a non-negative integer, got {val!r}")
        self.network = network
        self.input_size = int(input_size)
        self.output_size = int(output_size)
        self.state_size = int(state_size)
        if start is None:
            start = Variable(zeros(self.state_size), name="start")
        elif len(start.vector) != self.state_size:
            raise ValueError(
                f"start state length ({len(start.vector)}) must equal state_size ({self.state_size})"
            )
        self.start = start

    def parameters(self) -> List[Variable]:
        return [self.start] + self.network.parameters()

    # ---------------- start state ---------------- #
    def start_state(self) -> VecState:
        return VecState(self.start.vector)

    def start_r_state(self, rv: RVector) -> VecRState:
        r_vec = rv.get(self.start) if rv is not None else None
        if r_vec is None:
            r_vec = zeros(self.state_size)
        return VecRState(self.start.vector, r_vec)

    def propagate_start(self, state_grads, g: Gradient) -> None:
        if state_grads is None:
            return
        for grad in state_grads:
            if grad is not None:
                self.start.propagate_gradient(grad.vector, g)

    def propagate_start_r(self, state_grads, rg: RGradient, g: Gradient) -> None:
        if state_grads is None:
            return
        for grad in state_grads:
            if grad is None:
                continue
            g.accumulate(self.start, grad.vector)
            rg.accumulate(self.start, grad.r_vector)

    # ---------------- application ---------------- #
    def _check_step(self, states: Sequence, inputs: Sequence) -> None:
        check_batch("states", states, len(inputs))
        for state, x in zip(states, inputs):
            if len(state.vector) != self.state_size:
                raise ValueError(f"state length ({len(state.vector)}) must be {self.state_size}")
            if len(x.output) != self.input_size:
                raise ValueError(f"input length ({len(x.output)}) must be {self.input_size}")

    def _check_output(self, out) -> None:
        expected = self.output_size + self.state_size
        if len(out.output) != expected:
            raise ValueError(
                f"network output length ({len(out.output)}) must be output_size + state_size "
                f"= {expected}"
            )

    def apply_block(self, states: Sequence[VecState], inputs: Sequence[Result]) -> "NetworkBlockResult":
        self._check_step(states, inputs)
        pools, results = [], []
        for state, x in zip(states, inputs):
            pool = Pool(state.vector)
            out = self.network.apply(concat(x, pool))
            self._check_output(out)
            pools.append(pool)
            results.append(out)
        return NetworkBlockResult(self, pools, results)

    def apply_block_r(self, rv: RVector, states: Sequence[VecRState],
                      inputs: Sequence[RResult]) -> "NetworkBlockRResult":
        self._check_step(states, inputs)
        pools, results = [], []
        for state, x in zip(states, inputs):
            pool = RPool(state.vector, state.r_vector)
            out = self.network.apply_r(rv, concat_r(x, pool))
            self._check_output(out)
            pools.append(pool)
            results.append(out)
        return NetworkBlockRResult(self, pools, results)


class NetworkBlockResult(BlockResult):
    def __init__(self, block: NetworkBlock, pools: List[Pool], results: List[Result]):
        self.block = block
        self.pools = pools
        self.results = results

    def outputs(self) -> List[np.ndarray]:
        return [r.output[:self.block.output_size] for r in self.results]

    def states(self) -> List[VecState]:
        return [VecState(r.output[self.block.output_size:]) for r in self.results]

    def propagate_gradient(self, upstream, state_upstream, g: Gradient) -> List[Optional[VecStateGrad]]:
        n = len(self.results)
        check_batch("upstream", upstream, n)
        check_batch("state upstream", state_upstream, n)
        state_upstream = [_vec(s) for s in state_upstream] if state_upstream is not None else None

        state_grads: List[Optional[VecStateGrad]] = []
        for i, (pool, res) in enumerate(zip(self.pools, self.results)):
            joined = _split_upstream(upstream, state_upstream, self.block.output_size,
                                     self.block.state_size, i)
            if joined is None:
                state_grads.append(None)
                continue
            pool.grad.fill(0.0)
            res.propagate_gradient(joined, g)
            state_grads.append(VecStateGrad(pool.grad.copy()))
        return state_grads


class NetworkBlockRResult(BlockRResult):
    def __init__(self, block: NetworkBlock, pools: List[RPool], results: List[RResult]):
        self.block = block
        self.pools = pools
        self.results = results

    def outputs(self) -> List[np.ndarray]:
        return [r.output[:self.block.output_size] for r in self.results]

    def r_outputs(self) -> List[np.ndarray]:
        return [r.r_output[:self.block.output_size] for r in self.results]

    def r_states(self) -> List[VecRState]:
        n_out = self.block.output_size
        return [VecRState(r.output[n_out:], r.r_output[n_out:]) for r in self.results]

    def propagate_r_gradient(self, upstream, upstream_r, state_upstream,
                             rg: RGradient, g: Gradient) -> List[Optional[VecRStateGrad]]:
        n = len(self.results)
        check_batch("upstream", upstream, n)
        check_batch("upstream_r", upstream_r, n)
        check_batch("state upstream", state_upstream, n)
        state_up = [_vec(s) for s in state_upstream] if state_upstream is not None else None
        state_up_r = ([_vec(s, "r_vector") for s in state_upstream]
                      if state_upstream is not None else None)

        n_out, n_state = self.block.output_size, self.block.state_size
        state_grads: List[Optional[VecRStateGrad]] = []
        for i, (pool, res) in enumerate(zip(self.pools, self.results)):
            joined = _split_upstream(upstream, state_up, n_out, n_state, i)
            joined_r = _split_upstream(upstream_r, state_up_r, n_out, n_state, i)
            if joined is None and joined_r is None:
                state_grads.append(None)
                continue
            pool.grad.fill(0.0)
            pool.r_grad.fill(0.0)
            res.propagate_r_gradient(joined, joined_r, rg, g)
            state_grads.append(VecRStateGrad(pool.grad.copy(), pool.r_grad.copy()))
        return state_grads
