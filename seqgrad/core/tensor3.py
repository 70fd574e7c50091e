# seqgrad/core/tensor3.py
from __future__ import annotations
import numpy as np
from typing import Optional

from .vecops import as_vector


class Tensor3:
    """
    Flat 3-D array (width x height x depth), channel-minor.

    The element at (x, y, z) lives at ``data[depth*(y*width + x) + z]``, so the
    backing vector reshapes into a (height, width, depth) grid without copying.

    Attributes
    ----------
    width, height, depth : int
        Tensor dimensions.
    data : np.ndarray
        Backing float64 vector of length width*height*depth. When passed in by
        the caller (e.g. a Variable's vector) the same array object is kept, so
        writes through the tensor are visible through the Variable and vice versa.
    """

    __slots__ = ("width", "height", "depth", "data")

    def __init__(self, width: int, height: int, depth: int, data: Optional[np.ndarray] = None):
        for label, dim in (("width", width), ("height", height), ("depth", depth)):
            if int(dim) != dim or dim < 0:
                raise ValueError(f"Tensor3 {label} must be a non-negative integer, got {dim!r}")
        self.width = int(width)
        self.height = int(height)
        self.depth = int(depth)

        size = self.width * self.height * self.depth
        if data is None:
            data = np.zeros(size, dtype=np.float64)
        else:
            data = as_vector(data)
        if len(data) != size:
            raise ValueError(
                f"Tensor3 data length ({len(data)}) must equal "
                f"width*height*depth = {self.width}*{self.height}*{self.depth} = {size}"
            )
        if not data.flags.c_contiguous:
            raise ValueError("Tensor3 data must be a contiguous vector")
        self.data = data

    @classmethod
    def zeros(cls, width: int, height: int, depth: int) -> "Tensor3":
        return cls(width, height, depth)

    def __repr__(self):
        return f"Tensor3({self.width}x{self.height}x{self.depth})"

    # ---------------- element access ---------------- #
    def grid(self) -> np.ndarray:
        """(height, width, depth) view sharing memory with ``data``."""
        return self.data.reshape(self.height, self.width, self.depth)

    def _index(self, x: int, y: int, z: int) -> int:
        if not (0 <= x < self.width and 0 <= y < self.height and 0 <= z < self.depth):
            raise IndexError(
                f"({x}, {y}, {z}) out of range for {self.width}x{self.height}x{self.depth} tensor"
            )
        return self.depth * (y * self.width + x) + z

    def get(self, x: int, y: int, z: int) -> float:
        return float(self.data[self._index(x, y, z)])

    def set(self, x: int, y: int, z: int, val: float) -> None:
        self.data[self._index(x, y, z)] = val

    # ---------------- window operations ---------------- #
    def crop(self, x: int, y: int, dest: "Tensor3") -> None:
        """
        Copy the depth-full window of ``self`` starting at (x, y) into ``dest``.

        The window has dest's width and height and must lie inside ``self``.
        """
        if dest.depth != self.depth:
            raise ValueError(f"crop: depth mismatch ({dest.depth} vs {self.depth})")
        if x < 0 or y < 0 or x + dest.width > self.width or y + dest.height > self.height:
            raise IndexError(
                f"crop window {dest.width}x{dest.height} at ({x}, {y}) exceeds "
                f"{self.width}x{self.height} tensor"
            )
        dest.grid()[...] = self.grid()[y:y + dest.height, x:x + dest.width, :]

    def mul_add(self, x: int, y: int, source: "Tensor3", scalar: float) -> None:
        """
        Add ``scalar * source`` into ``self`` with source's origin placed at (x, y).

        Only the overlapping region is touched. Offsets may be negative: with
        (x, y) = (-ox, -oy) and a source larger than ``self``, this accumulates
        the window of ``source`` at (ox, oy), i.e. the same values ``crop`` would
        return.
        """
        if source.depth != self.depth:
            raise ValueError(f"mul_add: depth mismatch ({source.depth} vs {self.depth})")

        y0, y1 = max(0, y), min(self.height, y + source.height)
        x0, x1 = max(0, x), min(self.width, x + source.width)
        if y0 >= y1 or x0 >= x1:
            return

        src = source.grid()[y0 - y:y1 - y, x0 - x:x1 - x, :]
        dst = self.grid()[y0:y1, x0:x1, :]
        if scalar == 1.0:
            dst += src
        else:
            dst += scalar * src

    def randomize(self, rng: Optional[np.random.Generator] = None) -> None:
        """Fill with uniform values in [-1, 1), in place."""
        rng = rng if rng is not None else np.random.default_rng()
        self.data[...] = rng.uniform(-1.0, 1.0, size=len(self.data))
