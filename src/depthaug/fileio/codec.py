"""
codec.py
--------

Image file codecs for label PNGs and depth maps.

- Label PNGs: Pillow, 8-bit greyscale or palettized ('P') output.
- Depth EXR:  OpenCV (half or full float), OpenEXR support is switched
              on through OPENCV_IO_ENABLE_OPENEXR before cv2 is imported.
- Depth PFM:  written/read directly (little-endian, scale -1.0, rows in
              memory order).
"""

from __future__ import annotations

__all__ = ["ImageCodec", "LABEL_PALETTE"]

import os
import logging
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

os.environ.setdefault("OPENCV_IO_ENABLE_OPENEXR", "1")
import cv2
import numpy as np
from PIL import Image as PILImage

from ..augment.image import Image, ImageFormat
from ..errors import FrameReadError

PathLike = Union[str, os.PathLike]
logger = logging.getLogger("depthaug.codec")

LABEL_PALETTE: Tuple[Tuple[int, int, int], ...] = (
    (0x21, 0x21, 0x21), (0xd1, 0x15, 0x40), (0xda, 0x1d, 0x0e), (0xdd, 0x5d, 0x1e),
    (0x49, 0xa2, 0x24), (0x29, 0xdc, 0xe3), (0x02, 0x68, 0xc2), (0x90, 0x29, 0xf9),
    (0xff, 0x00, 0xcf), (0xef, 0xd2, 0x37), (0x92, 0xa1, 0x3a), (0x48, 0x21, 0xeb),
    (0x2f, 0x93, 0xe5), (0x1d, 0x6b, 0x0e), (0x07, 0x66, 0x4b), (0xfc, 0xaa, 0x98),
    (0xb6, 0x85, 0x91), (0xab, 0xae, 0xf1), (0x5c, 0x62, 0xe0), (0x48, 0xf7, 0x36),
    (0xa3, 0x63, 0x0d), (0x78, 0x1d, 0x07), (0x5e, 0x3c, 0x00), (0x9f, 0x9f, 0x60),
    (0x51, 0x76, 0x44), (0xd4, 0x6d, 0x46), (0xff, 0xfb, 0x7e), (0xd8, 0x4b, 0x4b),
    (0xa9, 0x02, 0x52), (0x0f, 0xc1, 0x66), (0x2b, 0x5e, 0x44), (0x00, 0x9c, 0xad),
    (0x00, 0x40, 0xad), (0xff, 0x5d, 0xaa),
)

PFM_SCALE = -1.0  # negative -> little-endian


def _check_size(path: PathLike, shape: Sequence[int],
                expected_w: Optional[int], expected_h: Optional[int]) -> None:
    h, w = shape[:2]
    if expected_w is not None and expected_h is not None and (w, h) != (expected_w, expected_h):
        raise FrameReadError(f"{path}: size {w}x{h} doesn't match expected {expected_w}x{expected_h}")


class ImageCodec:
    """Reads and writes the per-frame image files.

    Stateless apart from the palette; one instance is shared by all workers.
    """

    def __init__(self, palette: Sequence[Tuple[int, int, int]] = LABEL_PALETTE):
        self.palette = [c for rgb in palette for c in rgb]

    # -------------------------------------------------------------------------
    # Labels
    # -------------------------------------------------------------------------
    def read_label(self, path: PathLike, expected_w: Optional[int] = None,
                   expected_h: Optional[int] = None) -> np.ndarray:
        """Return raw 8-bit grey (or palette index) values of a label PNG."""
        try:
            with PILImage.open(path) as im:
                if im.mode not in ("L", "P"):
                    im = im.convert("L")
                data = np.array(im, dtype=np.uint8)
        except (OSError, ValueError) as e:
            raise FrameReadError(f"Failed to read labels PNG {path}: {e}") from e
        _check_size(path, data.shape, expected_w, expected_h)
        return data

    def write_label(self, path: PathLike, labels: Image, palettized: bool = True) -> bool:
        im = PILImage.fromarray(np.ascontiguousarray(labels.data, dtype=np.uint8))
        if palettized:
            im.putpalette(self.palette)
        try:
            im.save(path, format="PNG")
        except OSError as e:
            logger.error(f"Failed to write label PNG {path}: {e}")
            return False
        return True

    # -------------------------------------------------------------------------
    # Depth
    # -------------------------------------------------------------------------
    def read_depth_float(self, path: PathLike, expected_w: Optional[int] = None,
                         expected_h: Optional[int] = None) -> Image:
        data = cv2.imread(str(path), cv2.IMREAD_ANYCOLOR | cv2.IMREAD_ANYDEPTH)
        if data is None:
            raise FrameReadError(f"Failed to read depth EXR {path}")
        if data.ndim == 3:
            # single depth value replicated across channels, take R (BGR order)
            data = data[:, :, 2]
        _check_size(path, data.shape, expected_w, expected_h)
        return Image.from_array(ImageFormat.DEPTH_FLOAT, data)

    def write_depth(self, path: PathLike, depth: Image, as_half: bool = True) -> bool:
        exr_type = cv2.IMWRITE_EXR_TYPE_HALF if as_half else cv2.IMWRITE_EXR_TYPE_FLOAT
        data = np.ascontiguousarray(depth.data, dtype=np.float32)
        try:
            ok = cv2.imwrite(str(path), data, [cv2.IMWRITE_EXR_TYPE, exr_type])
        except cv2.error as e:
            logger.error(f"Failed to write depth EXR {path}: {e}")
            return False
        if not ok:
            logger.error(f"Failed to write depth EXR {path}")
        return bool(ok)

    def write_pfm(self, path: PathLike, depth: Image) -> bool:
        if depth.format is ImageFormat.DEPTH_HALF:
            raise TypeError("Not possible to write half float data to PFM files")
        header = f"Pf\n{depth.width} {depth.height}\n{PFM_SCALE:f}\n".encode("ascii")
        try:
            with open(path, "wb") as f:
                f.write(header)
                f.write(np.ascontiguousarray(depth.data, dtype="<f4").tobytes())
        except OSError as e:
            logger.error(f"Failed to write PFM {path}: {e}")
            return False
        return True

    def read_pfm(self, path: PathLike, expected_w: Optional[int] = None,
                 expected_h: Optional[int] = None) -> Image:
        try:
            raw = Path(path).read_bytes()
        except OSError as e:
            raise FrameReadError(f"Failed to read PFM {path}: {e}") from e

        parts = raw.split(b"\n", 3)
        if len(parts) != 4 or parts[0] != b"Pf":
            raise FrameReadError(f"{path}: not a single channel PFM file")
        try:
            w, h = (int(v) for v in parts[1].split())
            scale = float(parts[2])
        except ValueError as e:
            raise FrameReadError(f"{path}: bad PFM header") from e

        dtype = "<f4" if scale < 0 else ">f4"
        data = np.frombuffer(parts[3], dtype=dtype)
        if data.size != w * h:
            raise FrameReadError(f"{path}: expected {w * h} samples, found {data.size}")
        data = data.reshape(h, w)
        _check_size(path, data.shape, expected_w, expected_h)
        return Image.from_array(ImageFormat.DEPTH_FLOAT, data)
