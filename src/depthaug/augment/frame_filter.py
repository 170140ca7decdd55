"""
frame_filter.py
---------------

Drop frames that are empty, too small or barely different from the
previously retained frame of the same work unit.
"""

from __future__ import annotations

__all__ = ["FrameDecision", "FrameFilter", "frame_diff", "SkipReason"]

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from .image import Image, BACKGROUND_ID


class SkipReason(str, Enum):
    EMPTY = "spurious empty frame"
    TOO_SMALL = "too small"
    TOO_SIMILAR = "too similar"


@dataclass(frozen=True)
class FrameDecision:
    retain: bool
    n_body_px: int = 0
    n_different_px: int = 0
    reason: Optional[SkipReason] = None


def frame_diff(labels: Image, prev: Image) -> Tuple[int, int]:
    """Return (n_body_px in `labels`, n_px where `labels` and `prev` differ)."""
    if labels.data.shape != prev.data.shape:
        raise ValueError(f"Can't diff {labels!r} against {prev!r}")
    n_body_px = int(np.count_nonzero(labels.data != BACKGROUND_ID))
    n_different_px = int(np.count_nonzero(labels.data != prev.data))
    return n_body_px, n_different_px


class FrameFilter:
    """Per-unit dedup filter holding the last retained label image.

    The first frame after `reset()` is always retained. `accept()` must be
    called once a retained frame is actually going to be processed so the
    next comparison is made against it.
    """

    def __init__(self, min_body_size_px: int, min_body_change_percent: float):
        self.min_body_size_px = min_body_size_px
        self.min_body_change_percent = min_body_change_percent
        self._prev: Optional[Image] = None

    def evaluate(self, labels: Image) -> FrameDecision:
        if self._prev is None:
            return FrameDecision(retain=True)

        n_body_px, n_different_px = frame_diff(labels, self._prev)

        if n_body_px == 0:
            return FrameDecision(False, n_body_px, n_different_px, SkipReason.EMPTY)
        if n_body_px < self.min_body_size_px:
            return FrameDecision(False, n_body_px, n_different_px, SkipReason.TOO_SMALL)

        percent = (n_different_px * 100.0) / n_body_px
        if percent < self.min_body_change_percent:
            return FrameDecision(False, n_body_px, n_different_px, SkipReason.TOO_SIMILAR)
        return FrameDecision(True, n_body_px, n_different_px)

    def accept(self, labels: Image) -> None:
        self._prev = labels

    def reset(self) -> None:
        self._prev = None
