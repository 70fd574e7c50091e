# seqgrad/nn/conv_layer.py
"""
Sliding-window convolution over a Tensor3 input.

For every output position (x, y) the input is cropped at (x*stride, y*stride)
to filter size, and for every filter z

    out[x, y, z] = dot(filter_z, patch) + bias[z]

The dual (R) forward pass applies the product rule termwise:

    R{out}[x, y, z] = dot(filter_z, R{patch}) + dot(R{filter_z}, patch) + R{bias}[z]

where terms whose direction is absent contribute zero.
"""
from __future__ import annotations
import logging
import warnings
import numpy as np
from typing import Dict, List, Optional, Tuple

from ..core.gradient import Gradient, RVector
from ..core.result import Result, RResult, upstream_or_zeros
from ..core.tensor3 import Tensor3
from ..core.var import Variable
from ..core.vecops import dot, scaled_accumulate
from . import serializer
from .layer import Layer

logger = logging.getLogger(__name__)

SERIALIZER_TYPE_CONV_LAYER = "seqgrad.ConvLayer"

_UNINIT_MESSAGE = "ConvLayer parameters are not initialized; call randomize() or deserialize()"


class ConvLayer(Layer):
    """
    Convolutional layer with learnable filters and biases.

    Args:
        filter_count: number of filters (= output depth)
        filter_width, filter_height: spatial size of each filter
        stride: step between neighboring windows, in input cells
        input_width, input_height, input_depth: shape of the input tensor

    Attributes:
        filters: list of Tensor3 (filter_width x filter_height x input_depth)
        filter_vars: one Variable per filter, sharing the filter's data array
        biases: Variable of length filter_count

    Parameters are allocated lazily by :meth:`randomize` or restored by
    :meth:`deserialize`; any other use before that raises ``RuntimeError``.
    """

    def __init__(self, filter_count: int, filter_width: int, filter_height: int, stride: int,
                 input_width: int, input_height: int, input_depth: int):
        for label, val in (("filter_count", filter_count), ("filter_width", filter_width),
                           ("filter_height", filter_height), ("stride", stride),
                           ("input_width", input_width), ("input_height", input_height),
                           ("input_depth", input_depth)):
            if not isinstance(val, (int, np.integer)) or isinstance(val, bool) or val <= 0:
                raise ValueError(f"{label} must be a positive integer, got {val!r}")

        self.filter_count = int(filter_count)
        self.filter_width = int(filter_width)
        self.filter_height = int(filter_height)
        self.stride = int(stride)
        self.input_width = int(input_width)
        self.input_height = int(input_height)
        self.input_depth = int(input_depth)

        self.filters: Optional[List[Tensor3]] = None
        self.filter_vars: Optional[List[Variable]] = None
        self.biases: Optional[Variable] = None

        if self.output_width == 0 or self.output_height == 0:
            warnings.warn(
                f"ConvLayer produces an empty output: {self.filter_width}x{self.filter_height} "
                f"filters do not fit a {self.input_width}x{self.input_height} input"
            )

    # ---------------- shape ---------------- #
    @property
    def output_width(self) -> int:
        return max(0, 1 + (self.input_width - self.filter_width) // self.stride)

    @property
    def output_height(self) -> int:
        return max(0, 1 + (self.input_height - self.filter_height) // self.stride)

    @property
    def output_depth(self) -> int:
        return self.filter_count

    @property
    def input_size(self) -> int:
        return self.input_width * self.input_height * self.input_depth

    @property
    def output_size(self) -> int:
        return self.output_width * self.output_height * self.output_depth

    # ---------------- parameters ---------------- #
    def randomize(self, rng: Optional[np.random.Generator] = None) -> None:
        """
        Randomly initialize filters and biases (uniform in [-1, 1)).

        Allocates ``filters``, ``filter_vars`` and ``biases`` if needed; existing
        arrays are refilled in place so Variables handed out earlier stay valid.
        """
        rng = rng if rng is not None else np.random.default_rng()
        if self.filters is None:
            self.filters = []
            self.filter_vars = []
            for i in range(self.filter_count):
                filt = Tensor3(self.filter_width, self.filter_height, self.input_depth)
                self.filters.append(filt)
                self.filter_vars.append(Variable(filt.data, name=f"filter{i}"))
            logger.debug("allocated %d filters of %dx%dx%d", self.filter_count,
                         self.filter_width, self.filter_height, self.input_depth)
        if self.biases is None:
            self.biases = Variable(np.zeros(self.filter_count), name="biases")

        for filt in self.filters:
            filt.randomize(rng)
        self.biases.vector[...] = rng.uniform(-1.0, 1.0, size=self.filter_count)

    def _check_initialized(self) -> None:
        if self.filters is None or self.biases is None or self.filter_vars is None:
            raise RuntimeError(_UNINIT_MESSAGE)

    def parameters(self) -> List[Variable]:
        """The bias Variable followed by every filter Variable."""
        self._check_initialized()
        return [self.biases] + list(self.filter_vars)

    # ---------------- application ---------------- #
    def _check_input(self, vec: np.ndarray) -> None:
        if len(vec) != self.input_size:
            raise ValueError(
                f"ConvLayer input length ({len(vec)}) must equal "
                f"{self.input_width}x{self.input_height}x{self.input_depth} = {self.input_size}"
            )

    def apply(self, x: Result) -> "ConvLayerResult":
        self._check_initialized()
        self._check_input(x.output)
        return ConvLayerResult(self, x, self._convolve(x.output))

    def apply_r(self, rv: RVector, x: RResult) -> "ConvLayerRResult":
        self._check_initialized()
        self._check_input(x.output)
        return ConvLayerRResult(
            self, x, rv,
            self._convolve(x.output),
            self._convolve_r(rv, x.output, x.r_output),
        )

    def _convolve(self, inp: np.ndarray) -> Tensor3:
        in_tensor = self._input_tensor(inp)
        cropped = Tensor3(self.filter_width, self.filter_height, self.input_depth)
        out = Tensor3(self.output_width, self.output_height, self.output_depth)
        biases = self.biases.vector

        for y in range(out.height):
            input_y = y * self.stride
            for x in range(out.width):
                input_x = x * self.stride
                in_tensor.crop(input_x, input_y, cropped)
                for z, filt in enumerate(self.filters):
                    out.set(x, y, z, dot(filt.data, cropped.data) + biases[z])
        return out

    def _convolve_r(self, rv: RVector, inp: np.ndarray, inp_r: np.ndarray) -> Tensor3:
        in_tensor = self._input_tensor(inp)
        in_tensor_r = self._input_tensor(inp_r)
        cropped = Tensor3(self.filter_width, self.filter_height, self.input_depth)
        cropped_r = Tensor3(self.filter_width, self.filter_height, self.input_depth)
        out = Tensor3(self.output_width, self.output_height, self.output_depth)

        filters_r = self._filters_r(rv)
        bias_r = rv.get(self.biases)

        for y in range(out.height):
            input_y = y * self.stride
            for x in range(out.width):
                input_x = x * self.stride
                in_tensor.crop(input_x, input_y, cropped)
                in_tensor_r.crop(input_x, input_y, cropped_r)
                for z, filt in enumerate(self.filters):
                    val = dot(filt.data, cropped_r.data)
                    if filters_r[z] is not None:
                        val += dot(filters_r[z].data, cropped.data)
                    if bias_r is not None:
                        val += bias_r[z]
                    out.set(x, y, z, val)
        return out

    # ---------------- helpers ---------------- #
    def _grads_from_map(self, m: Gradient) -> Tuple[Optional[np.ndarray], List[Optional[Tensor3]]]:
        """Accumulators for the bias and each filter, or None where untracked."""
        bias = m.get(self.biases)
        filters = []
        for var in self.filter_vars:
            vec = m.get(var)
            filters.append(None if vec is None else self._filter_tensor(vec))
        return bias, filters

    def _filters_r(self, rv: RVector) -> List[Optional[Tensor3]]:
        out = []
        for var in self.filter_vars:
            vec = rv.get(var)
            out.append(None if vec is None else self._filter_tensor(vec))
        return out

    def _input_tensor(self, vec: np.ndarray) -> Tensor3:
        # upstream and input vectors may be strided views
        return Tensor3(self.input_width, self.input_height, self.input_depth,
                       np.ascontiguousarray(vec, dtype=np.float64))

    def _output_tensor(self, vec: np.ndarray) -> Tensor3:
        return Tensor3(self.output_width, self.output_height, self.output_depth,
                       np.ascontiguousarray(vec, dtype=np.float64))

    def _filter_tensor(self, vec: np.ndarray) -> Tensor3:
        return Tensor3(self.filter_width, self.filter_height, self.input_depth, vec)

    # ---------------- persistence ---------------- #
    def serializer_type(self) -> str:
        return SERIALIZER_TYPE_CONV_LAYER

    def to_dict(self) -> Dict:
        self._check_initialized()
        return {
            "filter_count": self.filter_count,
            "filter_width": self.filter_width,
            "filter_height": self.filter_height,
            "stride": self.stride,
            "input_width": self.input_width,
            "input_height": self.input_height,
            "input_depth": self.input_depth,
            "filters": [filt.data.tolist() for filt in self.filters],
            "biases": self.biases.vector.tolist(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ConvLayer":
        try:
            layer = cls(data["filter_count"], data["filter_width"], data["filter_height"],
                        data["stride"], data["input_width"], data["input_height"],
                        data["input_depth"])
            raw_filters = list(data["filters"])
            raw_biases = list(data["biases"])
        except (KeyError, TypeError) as e:
            raise ValueError(f"malformed ConvLayer data: {e}") from e

        if len(raw_filters) != layer.filter_count:
            raise ValueError(
                f"ConvLayer data has {len(raw_filters)} filters, expected {layer.filter_count}"
            )
        if len(raw_biases) != layer.filter_count:
            raise ValueError(
                f"ConvLayer data has {len(raw_biases)} biases, expected {layer.filter_count}"
            )

        # Each restored tensor is re-wrapped in a fresh Variable sharing its array,
        # in the persisted order.
        layer.filters = [layer._filter_tensor(np.array(f, dtype=np.float64)) for f in raw_filters]
        layer.filter_vars = [Variable(filt.data, name=f"filter{i}")
                             for i, filt in enumerate(layer.filters)]
        layer.biases = Variable(np.array(raw_biases, dtype=np.float64), name="biases")
        logger.debug("restored ConvLayer with %d filters", layer.filter_count)
        return layer

    @classmethod
    def deserialize(cls, data) -> "ConvLayer":
        return cls.from_dict(serializer.loads(data))


class ConvLayerResult(Result):
    op_tag = "conv"

    def __init__(self, layer: ConvLayer, x: Result, output: Tensor3):
        self.layer = layer
        self.input = x
        self.output_tensor = output

    @property
    def output(self) -> np.ndarray:
        return self.output_tensor.data

    def inputs(self):
        return (self.input,)

    def constant(self, g: Gradient) -> bool:
        if not self.layer.biases.constant(g):
            return False
        if not self.input.constant(g):
            return False
        return all(var.constant(g) for var in self.layer.filter_vars)

    def propagate_gradient(self, upstream, g: Gradient) -> None:
        layer = self.layer
        upstream = upstream_or_zeros(upstream, len(self.output))
        input_tensor = layer._input_tensor(self.input.output)
        downstream = layer._output_tensor(upstream)

        bias_grad, filter_grads = layer._grads_from_map(g)

        input_grad = None
        temp_input_grad = None
        if not self.input.constant(g):
            input_grad = Tensor3(layer.input_width, layer.input_height, layer.input_depth)
            temp_input_grad = Tensor3(layer.filter_width, layer.filter_height, layer.input_depth)
        cropped = Tensor3(layer.filter_width, layer.filter_height, layer.input_depth)

        for y in range(self.output_tensor.height):
            input_y = y * layer.stride
            for x in range(self.output_tensor.width):
                input_x = x * layer.stride
                if temp_input_grad is not None:
                    temp_input_grad.data.fill(0.0)
                input_tensor.crop(input_x, input_y, cropped)
                for z, filt in enumerate(layer.filters):
                    partial = downstream.get(x, y, z)
                    if filter_grads[z] is not None:
                        scaled_accumulate(filter_grads[z].data, partial, cropped.data)
                    if bias_grad is not None:
                        bias_grad[z] += partial
                    if temp_input_grad is not None:
                        scaled_accumulate(temp_input_grad.data, partial, filt.data)
                if input_grad is not None:
                    input_grad.mul_add(input_x, input_y, temp_input_grad, 1.0)

        if input_grad is not None:
            self.input.propagate_gradient(input_grad.data, g)


class ConvLayerRResult(RResult):
    op_tag = "conv"

    def __init__(self, layer: ConvLayer, x: RResult, rv: RVector,
                 output: Tensor3, r_output: Tensor3):
        self.layer = layer
        self.input = x
        self.rv = rv
        self.output_tensor = output
        self.r_output_tensor = r_output

    @property
    def output(self) -> np.ndarray:
        return self.output_tensor.data

    @property
    def r_output(self) -> np.ndarray:
        return self.r_output_tensor.data

    def inputs(self):
        return (self.input,)

    def constant(self, rg, g) -> bool:
        if not self.input.constant(rg, g):
            return False
        for var in [self.layer.biases] + list(self.layer.filter_vars):
            if var in g or var in rg:
                return False
        return True

    def propagate_r_gradient(self, upstream, upstream_r, rg, g) -> None:
        layer = self.layer
        n = len(self.output)
        upstream = upstream_or_zeros(upstream, n)
        upstream_r = upstream_or_zeros(upstream_r, n)

        input_tensor = layer._input_tensor(self.input.output)
        input_tensor_r = layer._input_tensor(self.input.r_output)
        downstream = layer._output_tensor(upstream)
        downstream_r = layer._output_tensor(upstream_r)

        bias_grad, filter_grads = layer._grads_from_map(g)
        bias_grad_r, filter_grads_r = layer._grads_from_map(rg)

        input_grad = None
        input_grad_r = None
        if not self.input.constant(rg, g):
            input_grad = Tensor3(layer.input_width, layer.input_height, layer.input_depth)
            input_grad_r = Tensor3(layer.input_width, layer.input_height, layer.input_depth)

        filters_r = layer._filters_r(self.rv)

        # Filter gradients read the input window through a negative-offset
        # mul_add against the whole input tensor instead of re-cropping.
        for y in range(self.output_tensor.height):
            input_y = y * layer.stride
            for x in range(self.output_tensor.width):
                input_x = x * layer.stride
                for z, filt in enumerate(layer.filters):
                    partial = downstream.get(x, y, z)
                    partial_r = downstream_r.get(x, y, z)
                    if filter_grads[z] is not None:
                        filter_grads[z].mul_add(-input_x, -input_y, input_tensor, partial)
                    if filter_grads_r[z] is not None:
                        filter_grads_r[z].mul_add(-input_x, -input_y, input_tensor, partial_r)
                        filter_grads_r[z].mul_add(-input_x, -input_y, input_tensor_r, partial)
                    if bias_grad is not None:
                        bias_grad[z] += partial
                    if bias_grad_r is not None:
                        bias_grad_r[z] += partial_r
                    if input_grad is not None:
                        input_grad.mul_add(input_x, input_y, filt, partial)
                        input_grad_r.mul_add(input_x, input_y, filt, partial_r)
                        if filters_r[z] is not None:
                            input_grad_r.mul_add(input_x, input_y, filters_r[z], partial)

        if input_grad is not None:
            self.input.propagate_r_gradient(input_grad.data, input_grad_r.data, rg, g)


serializer.register_type(SERIALIZER_TYPE_CONV_LAYER, ConvLayer)
