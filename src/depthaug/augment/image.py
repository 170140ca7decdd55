"""
image.py
--------

Format-tagged pixel buffers.

An `Image` owns a single numpy array. The format is fixed at allocation:
8-bit label ids, 32-bit float depth or 16-bit half-float depth. Rows are
addressed through `row(y)`; single pixels through `at(x, y)` / `put(x, y)`
which are bounds-checked. Noise operators work on `data` directly.
"""

from __future__ import annotations

__all__ = ["ImageFormat", "Image", "BACKGROUND_ID"]

from enum import Enum
from typing import Union

import numpy as np

BACKGROUND_ID = 0


class ImageFormat(Enum):
    LABEL_U8 = np.dtype(np.uint8)
    DEPTH_FLOAT = np.dtype(np.float32)
    DEPTH_HALF = np.dtype(np.float16)

    @property
    def dtype(self) -> np.dtype:
        return self.value

    @property
    def sample_size(self) -> int:
        return self.value.itemsize


class Image:
    """Owned, format-tagged 2D pixel buffer."""

    __slots__ = ("_format", "_data")

    def __init__(self, fmt: ImageFormat, width: int, height: int):
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid image size {width}x{height}")
        self._format = fmt
        self._data = np.zeros((height, width), dtype=fmt.dtype)

    @classmethod
    def from_array(cls, fmt: ImageFormat, array: np.ndarray) -> Image:
        """Wrap a copy of `array` (must be 2D); values are cast to the format dtype."""
        array = np.asarray(array)
        if array.ndim != 2:
            raise ValueError(f"Expected a 2D array, got shape {array.shape}")
        img = cls.__new__(cls)
        img._format = fmt
        img._data = np.array(array, dtype=fmt.dtype, order="C", copy=True)
        return img

    # -------------------------------------------------------------------------
    # Geometry
    # -------------------------------------------------------------------------
    @property
    def format(self) -> ImageFormat:
        return self._format

    @property
    def width(self) -> int:
        return self._data.shape[1]

    @property
    def height(self) -> int:
        return self._data.shape[0]

    @property
    def stride(self) -> int:
        """Row pitch in bytes."""
        return self._data.strides[0]

    @property
    def data(self) -> np.ndarray:
        return self._data

    # -------------------------------------------------------------------------
    # Addressing
    # -------------------------------------------------------------------------
    def _check(self, x: int, y: int) -> None:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"Pixel ({x}, {y}) outside {self.width}x{self.height} image")

    def row(self, y: int) -> np.ndarray:
        if not 0 <= y < self.height:
            raise IndexError(f"Row {y} outside image of height {self.height}")
        return self._data[y]

    def at(self, x: int, y: int) -> Union[int, float]:
        self._check(x, y)
        return self._data[y, x].item()

    def put(self, x: int, y: int, value: Union[int, float]) -> None:
        self._check(x, y)
        self._data[y, x] = value

    # -------------------------------------------------------------------------
    # Copies
    # -------------------------------------------------------------------------
    def copy(self) -> Image:
        return Image.from_array(self._format, self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Image):
            return NotImplemented
        return self._format is other._format and np.array_equal(self._data, other._data)

    def __repr__(self) -> str:
        return f"<Image {self._format.name} {self.width}x{self.height} stride={self.stride}>"
