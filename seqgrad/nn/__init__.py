# seqgrad/nn/__init__.py

# Importing every layer module registers its serializer type.
from .layer import Layer
from .conv_layer import ConvLayer, ConvLayerResult, ConvLayerRResult
from .activations import Tanh, Sigmoid
from .network import Network
from . import serializer

__all__ = [
    "Layer", "ConvLayer", "ConvLayerResult", "ConvLayerRResult",
    "Tanh", "Sigmoid", "Network", "serializer",
]
