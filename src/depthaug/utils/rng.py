"""
rng.py
------

Thread-safe random generator used by the noise engine.

- Wraps a `numpy.random.Generator`.
- Reseeding happens in place so a worker keeps one object for its lifetime.
- Each worker thread owns its instance; the lock guards the case where
  an instance is shared between threads.
"""

from __future__ import annotations

__all__ = ["RNG",]

import threading
from numbers import Real
from typing import Union

import numpy as np


# ---------------------------------------------------------------------
# RNG class
# ---------------------------------------------------------------------
class RNG:
    """Encapsulated, thread-safe random generator.

    Attributes:
        _rng:  Backend numpy.random.Generator.
        _lock: threading.Lock for safe concurrent access.

    Notes:
        - A seed is always required; 0 is a valid seed.
        - Scalar draws come back as plain Python numbers.
    """

    def __init__(self, seed: int):
        self._lock = threading.Lock()
        self._seed = seed
        self._rng = np.random.default_rng(seed)

    # -----------------------------------------------------------------
    # Core seeding
    # -----------------------------------------------------------------
    def seed(self, seed: int) -> None:
        """Reinitialize the RNG in place (preserves object identity)."""
        with self._lock:
            self._seed = seed
            self._rng = np.random.default_rng(seed)

    # -----------------------------------------------------------------
    # Sampling
    # -----------------------------------------------------------------
    def randrange(self, a: int, b: int, **kw) -> Union[int, np.ndarray]:
        """Integers in [a, b). `size=` gives an array."""
        with self._lock:
            out = self._rng.integers(a, b, **kw)
            if isinstance(out, (int, np.integer)):
                return int(out)
            return out

    def normal(self, mean: float = 0.0, sigma: float = 1.0, **kw) -> Union[float, np.ndarray]:
        with self._lock:
            out = self._rng.normal(mean, sigma, **kw)
            if isinstance(out, Real):
                return float(out)
            return out

    def __repr__(self) -> str:
        return f"<RNG seed={self._seed} thread={threading.get_ident()}>"
