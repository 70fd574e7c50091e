# seqgrad/nn/network.py
import logging
from typing import Dict, List, Sequence

from ..core.gradient import RVector
from ..core.result import Result, RResult
from ..core.var import Variable
from . import serializer
from .layer import Layer

logger = logging.getLogger(__name__)

SERIALIZER_TYPE_NETWORK = "seqgrad.Network"


class Network(Layer):
    """
    Sequential stack of layers, itself a Layer.

    ``apply`` feeds each layer's output node into the next one, so the graph
    built by a Network is just the chain of its layers' graphs.
    """

    def __init__(self, layers: Sequence[Layer] = ()):
        self.layers: List[Layer] = list(layers)

    def __len__(self) -> int:
        return len(self.layers)

    def apply(self, x: Result) -> Result:
        for layer in self.layers:
            x = layer.apply(x)
        return x

    def apply_r(self, rv: RVector, x: RResult) -> RResult:
        for layer in self.layers:
            x = layer.apply_r(rv, x)
        return x

    def parameters(self) -> List[Variable]:
        params: List[Variable] = []
        for layer in self.layers:
            params.extend(layer.parameters())
        return params

    def serializer_type(self) -> str:
        return SERIALIZER_TYPE_NETWORK

    def to_dict(self) -> Dict:
        return {"layers": [serializer.to_typed_dict(layer) for layer in self.layers]}

    @classmethod
    def from_dict(cls, data: Dict) -> "Network":
        try:
            raw_layers = data["layers"]
        except (KeyError, TypeError) as e:
            raise ValueError(f"malformed Network data: {e}") from e
        if not isinstance(raw_layers, list):
            raise ValueError(f"Network layers must be a list, got {type(raw_layers).__name__}")
        layers = [serializer.from_typed_dict(item) for item in raw_layers]
        logger.debug("restored Network with %d layers", len(layers))
        return cls(layers)

    @classmethod
    def deserialize(cls, data) -> "Network":
        return cls.from_dict(serializer.loads(data))


serializer.register_type(SERIALIZER_TYPE_NETWORK, Network)
