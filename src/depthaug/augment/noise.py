"""
noise.py
--------

Sensor-like noise for label/depth frame pairs.

The configured operators run in declared order on copies of a frame:

    EdgeSwizzle   replace silhouette edge pixels with a random neighbour
                  (label and depth together), eroding/dilating the outline
    Gaussian      zero-mean normal depth noise, configured by the FWTM
                  (full width at tenth of maximum) range in metres
    Perlin        smooth low-frequency depth displacement

The worker RNG is reseeded with `seed + output_frame_no` before the first
operator runs, so each output frame is reproducible regardless of which
thread renders it or what it rendered before.
"""

from __future__ import annotations

__all__ = [
    "NoiseOp",
    "EdgeSwizzle",
    "Gaussian",
    "Perlin",
    "NoiseEngine",
    "apply_edge_swizzle",
    "apply_gaussian_noise",
    "apply_perlin_noise",
    "FWTM_TO_SIGMA",
]

import math
from dataclasses import dataclass
from typing import Sequence, Tuple, Union

import numpy as np
from numba import njit

from ..utils.rng import RNG
from .image import Image, ImageFormat, BACKGROUND_ID
from .perlin import perlin_field

# The full width at tenth of maximum of a Gaussian is ~4.29193 sigma.
FWTM_TO_SIGMA = 4.29193

# (dx, dy) of the 8 neighbours, indexed by the random draw in [0, 8)
NEIGHBOUR_OFFSETS = np.array([
    [-1, -1], [0, -1], [1, -1],
    [-1,  0],          [1,  0],
    [-1,  1], [0,  1], [1,  1],
], dtype=np.int64)


# ======================================================================
#  Operator descriptions
# ======================================================================
@dataclass(frozen=True)
class EdgeSwizzle:
    type_name = "foreground-edge-swizzle"


@dataclass(frozen=True)
class Gaussian:
    fwtm_range_map_m: float
    type_name = "gaussian"

    def __post_init__(self):
        if not math.isfinite(self.fwtm_range_map_m) or self.fwtm_range_map_m < 0:
            raise ValueError(f"Gaussian FWTM range must be finite and >= 0, got {self.fwtm_range_map_m}")

    @property
    def sigma_mm(self) -> float:
        return (self.fwtm_range_map_m * 1000.0) / FWTM_TO_SIGMA


@dataclass(frozen=True)
class Perlin:
    freq: float
    amplitude_m: float
    octaves: int = 1
    type_name = "perlin"

    def __post_init__(self):
        if not (math.isfinite(self.freq) and math.isfinite(self.amplitude_m)):
            raise ValueError(f"Perlin freq and amplitude must be finite, got {self.freq}, {self.amplitude_m}")
        if self.octaves < 1:
            raise ValueError(f"Perlin octaves must be >= 1, got {self.octaves}")


NoiseOp = Union[EdgeSwizzle, Gaussian, Perlin]


# ======================================================================
#  Edge swizzle
# ======================================================================
@njit
def _edge_swizzle_numba(in_labels: np.ndarray, in_depth: np.ndarray,
                        out_labels: np.ndarray, out_depth: np.ndarray,
                        choices: np.ndarray, offsets: np.ndarray) -> int:
    h, w = in_labels.shape
    n_edge = 0
    # first/last row and column are left untouched
    for y in range(1, h - 1):
        for x in range(1, w - 1):
            if in_labels[y, x] == BACKGROUND_ID:
                continue
            edge = False
            for i in range(8):
                if in_labels[y + offsets[i, 1], x + offsets[i, 0]] == BACKGROUND_ID:
                    edge = True
                    break
            if edge:
                n = choices[y, x]
                nx = x + offsets[n, 0]
                ny = y + offsets[n, 1]
                out_labels[y, x] = in_labels[ny, nx]
                out_depth[y, x] = in_depth[ny, nx]
                n_edge += 1
    return n_edge


def apply_edge_swizzle(labels: Image, depth: Image, rng: RNG) -> int:
    """Swizzle foreground edge pixels in place; returns the number of edge pixels.

    Edge detection and neighbour lookups read a snapshot taken before any
    pixel is modified.
    """
    in_labels = labels.data.copy()
    in_depth = depth.data.copy()
    choices = rng.randrange(0, 8, size=in_labels.shape, dtype=np.int64)
    return int(_edge_swizzle_numba(in_labels, in_depth, labels.data, depth.data,
                                   choices, NEIGHBOUR_OFFSETS))


# ======================================================================
#  Depth noise
# ======================================================================
def apply_gaussian_noise(depth: Image, op: Gaussian, rng: RNG) -> None:
    """Add N(0, sigma) millimetres to every depth pixel, labels are ignored."""
    delta_mm = rng.normal(0.0, op.sigma_mm, size=depth.data.shape)
    depth.data[...] += (delta_mm / 1000.0).astype(np.float32)


def apply_perlin_noise(depth: Image, op: Perlin, seed: int) -> None:
    field = perlin_field(depth.width, depth.height, op.freq, op.octaves, seed)
    depth.data[...] += field * np.float32(op.amplitude_m)


# ======================================================================
#  Engine
# ======================================================================
class NoiseEngine:
    """Applies a fixed operator sequence to copies of label/depth frames.

    The sequence and seed are shared read-only between workers; the RNG
    passed to `apply()` belongs to the calling worker.
    """

    def __init__(self, ops: Sequence[NoiseOp], seed: int = 0):
        self.ops: Tuple[NoiseOp, ...] = tuple(ops)
        self.seed = seed

    def apply(self, labels: Image, depth: Image, output_frame_no: int,
              rng: RNG) -> Tuple[Image, Image]:
        """Return noisy copies of (labels, depth); the inputs are not modified."""
        if labels.format is not ImageFormat.LABEL_U8 or depth.format is not ImageFormat.DEPTH_FLOAT:
            raise TypeError(f"Expected label/float-depth pair, got {labels!r}, {depth!r}")
        if labels.data.shape != depth.data.shape:
            raise ValueError(f"Label/depth size mismatch: {labels!r} vs {depth!r}")

        frame_seed = self.seed + output_frame_no
        rng.seed(frame_seed)

        noisy_labels = labels.copy()
        noisy_depth = depth.copy()

        for op in self.ops:
            if isinstance(op, EdgeSwizzle):
                apply_edge_swizzle(noisy_labels, noisy_depth, rng)
            elif isinstance(op, Gaussian):
                apply_gaussian_noise(noisy_depth, op, rng)
            elif isinstance(op, Perlin):
                apply_perlin_noise(noisy_depth, op, frame_seed)
            else:
                raise TypeError(f"Unknown noise operator {op!r}")

        return noisy_labels, noisy_depth

    def __repr__(self) -> str:
        return f"<NoiseEngine seed={self.seed} ops={list(self.ops)}>"
