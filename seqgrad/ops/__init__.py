# seqgrad/ops/__init__.py

# Convenience re-exports so users can do: from seqgrad.ops import concat, tanh, ...
from .concat import concat, concat_r, ConcatResult, ConcatRResult
from .transcendental import tanh, tanh_r, sigmoid, sigmoid_r, UnaryResult, UnaryRResult

__all__ = [
    "concat", "concat_r", "ConcatResult", "ConcatRResult",
    "tanh", "tanh_r", "sigmoid", "sigmoid_r", "UnaryResult", "UnaryRResult",
]
