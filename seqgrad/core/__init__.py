# seqgrad/core/__init__.py

"""
Core public API for seqgrad graphs.

Exports:
    Tensor3        : Flat width x height x depth array with window operations.
    Variable       : Named vector leaf; identity is an integer handle.
    RVariable      : Variable seen along a perturbation direction.
    Result/RResult : Graph-node protocols (reverse mode / R-operator).
    Pool/RPool     : Capture leaves used to read back state gradients.
    Gradient       : Handle-keyed gradient accumulators for tracked variables.
    RGradient      : Handle-keyed R-gradient accumulators.
    RVector        : Perturbation direction in parameter space.
"""

from .tensor3 import Tensor3
from .result import Result, RResult, Pool, RPool
from .var import Variable, RVariable
from .gradient import Gradient, RGradient, RVector, new_gradient, new_r_gradient
from .graph_utils import get_graph_stats, print_graph_summary

__all__ = [
    "Tensor3",
    "Result", "RResult", "Pool", "RPool",
    "Variable", "RVariable",
    "Gradient", "RGradient", "RVector", "new_gradient", "new_r_gradient",
    "get_graph_stats", "print_graph_summary",
]
