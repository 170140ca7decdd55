from .image import Image, ImageFormat, BACKGROUND_ID
from .scanner import InputFrame, WorkUnit, scan_work_units
from .frame_filter import FrameFilter, FrameDecision, SkipReason, frame_diff
from .noise import NoiseEngine, NoiseOp, EdgeSwizzle, Gaussian, Perlin
from .perlin import perlin2d, perlin_field
from .guard import clamp_depth, sanity_check_frame
from .mirror import flip_labels, flip_depth, flip_bones

__all__ = [
    "image",
    "scanner",
    "frame_filter",
    "noise",
    "perlin",
    "guard",
    "mirror",
]
