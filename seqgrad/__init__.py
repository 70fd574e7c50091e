# seqgrad/__init__.py
# Differentiable graphs with reverse-mode and R-operator propagation

from .core.tensor3 import Tensor3
from .core.var import Variable, RVariable
from .core.gradient import Gradient, RGradient, RVector, new_gradient, new_r_gradient
from .core.result import Result, RResult

# Layers and recurrent blocks
from .nn import ConvLayer, Network, Tanh, Sigmoid
from .rnn import NetworkBlock, BlockSeqFunc

__all__ = [
    # Core
    'Tensor3',
    'Variable',
    'RVariable',
    'Gradient',
    'RGradient',
    'RVector',
    'new_gradient',
    'new_r_gradient',
    'Result',
    'RResult',
    # Layers
    'ConvLayer',
    'Network',
    'Tanh',
    'Sigmoid',
    # Sequences
    'NetworkBlock',
    'BlockSeqFunc',
]
