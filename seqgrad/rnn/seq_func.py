# seqgrad/rnn/seq_func.py
"""
Unroll a Block over whole sequences.

Sequences in one batch may have different lengths: at step t the block is
applied to the sequences that still have an input at t, and the others keep
their last state. The backward pass walks the steps in reverse, threading each
sequence's state gradient from one step into the previous one, and finally
hands the gradients of the start states to the block.
"""
import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..core.gradient import Gradient, RGradient, RVector
from ..core.result import Result, RResult
from .block import Block, check_batch

logger = logging.getLogger(__name__)

Step = Tuple[object, List[int]]


def _active(seqs: Sequence[Sequence], t: int) -> List[int]:
    return [i for i, seq in enumerate(seqs) if len(seq) > t]


def _step_upstream(upstream_seqs, lengths: List[int], active: List[int], t: int, label: str):
    """Per-active-sequence upstream at step t; None when no sequence has one."""
    if upstream_seqs is None:
        return None
    out = []
    for i in active:
        seq = upstream_seqs[i]
        if seq is None:
            out.append(None)
            continue
        if len(seq) != lengths[i]:
            raise ValueError(f"{label} sequence {i} has {len(seq)} steps, expected {lengths[i]}")
        out.append(seq[t])
    return out


class BlockSeqFunc:
    """Sequence function computed by running ``block`` over every input sequence."""

    def __init__(self, block: Block):
        self.block = block

    def apply_seqs(self, seqs: Sequence[Sequence[Result]]) -> "ResultSeqs":
        states = [self.block.start_state() for _ in seqs]
        outputs: List[List[np.ndarray]] = [[] for _ in seqs]
        steps: List[Step] = []
        t = 0
        while True:
            active = _active(seqs, t)
            if not active:
                break
            res = self.block.apply_block([states[i] for i in active], [seqs[i][t] for i in active])
            for out, new_state, i in zip(res.outputs(), res.states(), active):
                outputs[i].append(out)
                states[i] = new_state
            steps.append((res, active))
            t += 1
        logger.debug("applied block over %d sequences (%d steps)", len(seqs), t)
        return ResultSeqs(self.block, [len(s) for s in seqs], outputs, steps)

    def apply_seqs_r(self, rv: RVector, seqs: Sequence[Sequence[RResult]]) -> "RResultSeqs":
        states = [self.block.start_r_state(rv) for _ in seqs]
        outputs: List[List[np.ndarray]] = [[] for _ in seqs]
        r_outputs: List[List[np.ndarray]] = [[] for _ in seqs]
        steps: List[Step] = []
        t = 0
        while True:
            active = _active(seqs, t)
            if not active:
                break
            res = self.block.apply_block_r(rv, [states[i] for i in active],
                                           [seqs[i][t] for i in active])
            for out, out_r, new_state, i in zip(res.outputs(), res.r_outputs(),
                                                res.r_states(), active):
                outputs[i].append(out)
                r_outputs[i].append(out_r)
                states[i] = new_state
            steps.append((res, active))
            t += 1
        return RResultSeqs(self.block, [len(s) for s in seqs], outputs, r_outputs, steps)


class ResultSeqs:
    def __init__(self, block: Block, lengths: List[int], outputs: List[List[np.ndarray]],
                 steps: List[Step]):
        self.block = block
        self.lengths = lengths
        self._outputs = outputs
        self._steps = steps

    def output_seqs(self) -> List[List[np.ndarray]]:
        return self._outputs

    def propagate_gradient(self, upstream_seqs: Optional[Sequence[Optional[Sequence]]],
                           g: Gradient) -> None:
        """
        Args:
            upstream_seqs: one gradient sequence per input sequence; the list,
                any sequence in it, or any step may be None (zero).
            g: gradient accumulator
        """
        check_batch("upstream", upstream_seqs, len(self.lengths))
        state_grads: List = [None] * len(self.lengths)
        for t in range(len(self._steps) - 1, -1, -1):
            res, active = self._steps[t]
            up = _step_upstream(upstream_seqs, self.lengths, active, t, "upstream")
            down = res.propagate_gradient(up, [state_grads[i] for i in active], g)
            for i, sg in zip(active, down):
                state_grads[i] = sg
        self.block.propagate_start(state_grads, g)


class RResultSeqs:
    def __init__(self, block: Block, lengths: List[int], outputs: List[List[np.ndarray]],
                 r_outputs: List[List[np.ndarray]], steps: List[Step]):
        self.block = block
        self.lengths = lengths
        self._outputs = outputs
        self._r_outputs = r_outputs
        self._steps = steps

    def output_seqs(self) -> List[List[np.ndarray]]:
        return self._outputs

    def r_output_seqs(self) -> List[List[np.ndarray]]:
        return self._r_outputs

    def propagate_r_gradient(self, upstream_seqs, upstream_r_seqs,
                             rg: RGradient, g: Gradient) -> None:
        check_batch("upstream", upstream_seqs, len(self.lengths))
        check_batch("upstream_r", upstream_r_seqs, len(self.lengths))
        state_grads: List = [None] * len(self.lengths)
        for t in range(len(self._steps) - 1, -1, -1):
            res, active = self._steps[t]
            up = _step_upstream(upstream_seqs, self.lengths, active, t, "upstream")
            up_r = _step_upstream(upstream_r_seqs, self.lengths, active, t, "upstream_r")
            down = res.propagate_r_gradient(up, up_r, [state_grads[i] for i in active], rg, g)
            for i, sg in zip(active, down):
                state_grads[i] = sg
        self.block.propagate_start_r(state_grads, rg, g)
