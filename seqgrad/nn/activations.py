# seqgrad/nn/activations.py
from typing import Dict

from ..core.gradient import RVector
from ..core.result import Result, RResult
from ..ops.transcendental import tanh, tanh_r, sigmoid, sigmoid_r
from . import serializer
from .layer import Layer

SERIALIZER_TYPE_TANH = "seqgrad.Tanh"
SERIALIZER_TYPE_SIGMOID = "seqgrad.Sigmoid"


class Tanh(Layer):
    """Elementwise hyperbolic tangent; no parameters."""

    def apply(self, x: Result) -> Result:
        return tanh(x)

    def apply_r(self, rv: RVector, x: RResult) -> RResult:
        return tanh_r(x)

    def serializer_type(self) -> str:
        return SERIALIZER_TYPE_TANH

    def to_dict(self) -> Dict:
        return {}

    @classmethod
    def from_dict(cls, data: Dict) -> "Tanh":
        return cls()


class Sigmoid(Layer):
    """Elementwise logistic function 1 / (1 + exp(-x)); no parameters."""

    def apply(self, x: Result) -> Result:
        return sigmoid(x)

    def apply_r(self, rv: RVector, x: RResult) -> RResult:
        return sigmoid_r(x)

    def serializer_type(self) -> str:
        return SERIALIZER_TYPE_SIGMOID

    def to_dict(self) -> Dict:
        return {}

    @classmethod
    def from_dict(cls, data: Dict) -> "Sigmoid":
        return cls()


serializer.register_type(SERIALIZER_TYPE_TANH, Tanh)
serializer.register_type(SERIALIZER_TYPE_SIGMOID, Sigmoid)
