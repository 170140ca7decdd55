"""
perlin.py
---------

Seeded multi-octave 2D Perlin-style value noise.

Each lattice point gets a pseudo-random value from a 256-entry hash
(a permutation derived from the seed). Values are blended with a
smoothstep curve and octaves are summed with halving amplitude and
doubling frequency, then normalized, so results lie in [0, 1).

Same (x, y, freq, octaves, seed) -> same value, on any thread.
"""

from __future__ import annotations

__all__ = ["perlin_hash", "perlin2d", "perlin_field"]

from functools import lru_cache

import numpy as np
from numba import njit

HASH_SIZE = 256


@lru_cache(maxsize=64)
def _cached_hash(seed: int) -> np.ndarray:
    perm = np.random.default_rng(seed).permutation(HASH_SIZE).astype(np.int64)
    perm.setflags(write=False)
    return perm


def perlin_hash(seed: int) -> np.ndarray:
    """Return the (read-only) lattice hash table for `seed`."""
    if seed < 0:
        raise ValueError(f"Perlin seed must be non-negative, got {seed}")
    return _cached_hash(int(seed))


# ======================================================================
#  Numba kernels
# ======================================================================
@njit
def _lattice(x: int, y: int, perm: np.ndarray) -> int:
    tmp = perm[y & 255]
    return perm[(tmp + x) & 255]


@njit
def _smooth_inter(a: float, b: float, s: float) -> float:
    s = s * s * (3.0 - 2.0 * s)
    return a + s * (b - a)


@njit
def _noise2d(x: float, y: float, perm: np.ndarray) -> float:
    x_int = int(np.floor(x))
    y_int = int(np.floor(y))
    x_frac = x - x_int
    y_frac = y - y_int

    s = _lattice(x_int, y_int, perm)
    t = _lattice(x_int + 1, y_int, perm)
    u = _lattice(x_int, y_int + 1, perm)
    v = _lattice(x_int + 1, y_int + 1, perm)

    low = _smooth_inter(s, t, x_frac)
    high = _smooth_inter(u, v, x_frac)
    return _smooth_inter(low, high, y_frac)


@njit
def _perlin_at(x: float, y: float, freq: float, octaves: int, perm: np.ndarray) -> float:
    xa = x * freq
    ya = y * freq
    amp = 1.0
    fin = 0.0
    div = 0.0
    for _ in range(octaves):
        div += HASH_SIZE * amp
        fin += _noise2d(xa, ya, perm) * amp
        amp /= 2.0
        xa *= 2.0
        ya *= 2.0
    return fin / div


@njit
def _perlin_field_numba(width: int, height: int, freq: float, octaves: int,
                        perm: np.ndarray) -> np.ndarray:
    out = np.empty((height, width), dtype=np.float32)
    for y in range(height):
        for x in range(width):
            out[y, x] = _perlin_at(float(x), float(y), freq, octaves, perm)
    return out


# ======================================================================
#  Public API
# ======================================================================
def perlin2d(x: float, y: float, freq: float, octaves: int, seed: int) -> float:
    """Noise value in [0, 1) at pixel (x, y)."""
    if octaves < 1:
        raise ValueError(f"octaves must be >= 1, got {octaves}")
    return float(_perlin_at(float(x), float(y), float(freq), int(octaves), perlin_hash(seed)))


def perlin_field(width: int, height: int, freq: float, octaves: int, seed: int) -> np.ndarray:
    """Evaluate `perlin2d` for every pixel of a `height` x `width` grid (float32)."""
    if octaves < 1:
        raise ValueError(f"octaves must be >= 1, got {octaves}")
    return _perlin_field_numba(int(width), int(height), float(freq), int(octaves),
                               perlin_hash(seed))
