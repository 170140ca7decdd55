"""
guard.py
--------

Background depth clamping and the post-noise sanity check.

A failed check raises `InvariantViolation`; callers must treat it as
fatal for the whole run rather than patching the frame up.
"""

from __future__ import annotations

__all__ = ["clamp_depth", "sanity_check_frame"]

import numpy as np

from ..errors import InvariantViolation
from .image import Image, BACKGROUND_ID


def clamp_depth(labels: Image, depth: Image, background_depth_m: float,
                far_clamp_mode: bool = False) -> None:
    """Normalize depth of background pixels in place.

    far_clamp_mode=True only pulls values farther than the background
    depth back to it; otherwise every background pixel is overwritten.
    """
    bg = labels.data == BACKGROUND_ID
    bg_depth = np.float32(background_depth_m)
    if far_clamp_mode:
        bg &= depth.data > bg_depth
    depth.data[bg] = bg_depth


def _first(mask: np.ndarray):
    y, x = np.argwhere(mask)[0]
    return int(x), int(y)


def sanity_check_frame(labels: Image, depth: Image, background_depth_m: float,
                       far_clamp_mode: bool = False) -> None:
    """Raise InvariantViolation unless the frame is a consistent training example."""
    d = depth.data
    bg_depth = np.float32(background_depth_m)
    is_bg = labels.data == BACKGROUND_ID

    bad = ~np.isfinite(d)
    if bad.any():
        x, y = _first(bad)
        raise InvariantViolation(f"Invalid INF/NaN value {d[y, x]} in depth image", x, y)

    bad = d > bg_depth
    if bad.any():
        x, y = _first(bad)
        raise InvariantViolation(
            f"Invalid out-of-range depth value ({d[y, x]:f} > background depth of {bg_depth:f})",
            x, y)

    if not far_clamp_mode:
        bad = is_bg & (d != bg_depth)
        if bad.any():
            x, y = _first(bad)
            raise InvariantViolation(f"Background pixel has incorrect depth {d[y, x]:f}", x, y)

    bad = ~is_bg & (d == bg_depth)
    if bad.any():
        x, y = _first(bad)
        raise InvariantViolation("Spurious non-background pixel has background depth", x, y)
