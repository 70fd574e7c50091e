# seqgrad/rnn/block.py
"""
Block protocol: one unrolled step of a recurrent model.

A Block maps a batch of (state, input) pairs to a batch of (output, new_state)
pairs. Applying it creates a BlockResult that remembers how the step was
computed, so gradients of the outputs and of the new states can be pushed back
into the block's parameters, the inputs, and the prior states.

Upstream arguments follow the nil convention of the node protocol: a ``None``
list, or a ``None`` element inside a list, means "all zeros" for that slot.
A returned state gradient of ``None`` likewise means zero.
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ..core.gradient import Gradient, RGradient, RVector
from ..core.result import Result, RResult
from ..core.var import Variable


# ---------------- vector states ---------------- #
@dataclass
class VecState:
    vector: np.ndarray


@dataclass
class VecRState:
    vector: np.ndarray
    r_vector: np.ndarray


@dataclass
class VecStateGrad:
    vector: np.ndarray


@dataclass
class VecRStateGrad:
    vector: np.ndarray
    r_vector: np.ndarray


# ---------------- results ---------------- #
class BlockResult(ABC):
    """Batch of block outputs and new states, plus the backward pass."""

    @abstractmethod
    def outputs(self) -> List[np.ndarray]:
        ...

    @abstractmethod
    def states(self) -> List:
        ...

    @abstractmethod
    def propagate_gradient(self, upstream: Optional[Sequence[Optional[np.ndarray]]],
                           state_upstream: Optional[Sequence],
                           g: Gradient) -> List:
        """
        Back-propagate output and new-state gradients.

        Returns one state gradient per batch element (``None`` for zero).
        """


class BlockRResult(ABC):
    """R counterpart of :class:`BlockResult`."""

    @abstractmethod
    def outputs(self) -> List[np.ndarray]:
        ...

    @abstractmethod
    def r_outputs(self) -> List[np.ndarray]:
        ...

    @abstractmethod
    def r_states(self) -> List:
        ...

    @abstractmethod
    def propagate_r_gradient(self, upstream, upstream_r, state_upstream,
                             rg: RGradient, g: Gradient) -> List:
        ...


class Block(ABC):
    """Differentiable recurrent step with learnable parameters."""

    @abstractmethod
    def start_state(self):
        """The state fed to the first step of every sequence."""

    @abstractmethod
    def start_r_state(self, rv: RVector):
        ...

    @abstractmethod
    def propagate_start(self, state_grads: Optional[Sequence], g: Gradient) -> None:
        """Push gradients of the start states (one per sequence) into the parameters."""

    @abstractmethod
    def propagate_start_r(self, state_grads: Optional[Sequence], rg: RGradient, g: Gradient) -> None:
        ...

    @abstractmethod
    def apply_block(self, states: Sequence, inputs: Sequence[Result]) -> BlockResult:
        ...

    @abstractmethod
    def apply_block_r(self, rv: RVector, states: Sequence, inputs: Sequence[RResult]) -> BlockRResult:
        ...

    def parameters(self) -> List[Variable]:
        return []


def check_batch(name: str, items: Optional[Sequence], n: int) -> None:
    """Raise ValueError unless ``items`` is None or holds exactly ``n`` entries."""
    if items is not None and len(items) != n:
        raise ValueError(f"{name}: expected {n} entries, got {len(items)}")
