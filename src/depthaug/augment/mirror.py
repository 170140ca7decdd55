"""
mirror.py
---------

Left/right mirrored variants of a frame.

Flipping labels swaps columns *and* remaps ids through the left/right
table, so e.g. "left hand" becomes "right hand" after the geometric flip.
Depth columns are swapped without touching values. Joint metadata is
mirrored by negating the x coordinate of every bone head/tail.
"""

from __future__ import annotations

__all__ = [
    "flip_labels",
    "flip_depth",
    "flip_bones",
    "flipped_output_frame_no",
    "output_frame_no",
    "FLIPPED_SUFFIX",
]

import copy
from numbers import Real
from typing import Any, Dict

import numpy as np

from .image import Image, ImageFormat

FLIPPED_SUFFIX = "-flipped"


def output_frame_no(frame_no: int) -> int:
    return frame_no * 2


def flipped_output_frame_no(frame_no: int) -> int:
    return frame_no * 2 + 1


def flip_labels(labels: Image, swap_lut: np.ndarray) -> Image:
    """Return a new label image reflected left-right with ids swapped."""
    if labels.format is not ImageFormat.LABEL_U8:
        raise TypeError(f"flip_labels() needs a label image, got {labels!r}")
    swap_lut = np.asarray(swap_lut, dtype=np.uint8)
    if swap_lut.shape != (256,):
        raise ValueError(f"Left/right table must have 256 entries, got {swap_lut.shape}")
    return Image.from_array(ImageFormat.LABEL_U8, swap_lut[labels.data[:, ::-1]])


def flip_depth(depth: Image) -> Image:
    return Image.from_array(depth.format, depth.data[:, ::-1])


def flip_bones(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of a frame metadata document with bone x positions negated.

    Raises ValueError when "bones" is not a list of objects or a head/tail
    is not a list starting with a number.
    """
    out = copy.deepcopy(doc)
    bones = out.get("bones", [])
    if not isinstance(bones, list):
        raise ValueError(f"\"bones\" must be a list, got {type(bones).__name__}")
    for i, bone in enumerate(bones):
        if not isinstance(bone, dict):
            raise ValueError(f"Bone {i} must be an object, got {bone!r}")
        for key in ("head", "tail"):
            pos = bone.get(key)
            if not pos:
                continue
            if not isinstance(pos, list) or isinstance(pos[0], bool) or not isinstance(pos[0], Real):
                raise ValueError(f"Bone {i} {key} must be a list of numbers, got {pos!r}")
            pos[0] = -pos[0]
    return out
