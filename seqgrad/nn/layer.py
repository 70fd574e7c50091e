# seqgrad/nn/layer.py
from abc import ABC, abstractmethod
from typing import Dict, List

from ..core.result import Result, RResult
from ..core.gradient import RVector
from ..core.var import Variable
from . import serializer


class Layer(ABC):
    """
    Differentiable operator mapping one input node to one output node.

    Subclasses build a fresh Result (or RResult) per call; the returned node
    stays valid only as long as the layer's parameters are not modified.
    """

    @abstractmethod
    def apply(self, x: Result) -> Result:
        ...

    @abstractmethod
    def apply_r(self, rv: RVector, x: RResult) -> RResult:
        ...

    def parameters(self) -> List[Variable]:
        """Learnable Variables owned by this layer (none by default)."""
        return []

    @abstractmethod
    def serializer_type(self) -> str:
        ...

    @abstractmethod
    def to_dict(self) -> Dict:
        """JSON-compatible description of the layer, including its parameters."""

    def serialize(self) -> bytes:
        return serializer.dumps(self.to_dict())
