"""
-------
conftest.py
-------
Shared pytest fixtures: synthetic label/depth frames, a label map and a
source tree builder.
"""

import json
from pathlib import Path

import numpy as np
import pytest

from depthaug.augment.image import Image, ImageFormat
from depthaug.fileio.codec import ImageCodec
from depthaug.fileio.label_map import LabelMaps

WIDTH = 100
HEIGHT = 100

# grey values used in rendered label PNGs
GREY_BG = 0
GREY_TORSO = 100
GREY_HAND_L = 150
GREY_HAND_R = 200

LABEL_MAP = [
  {"name": "background", "inputs": [GREY_BG]},
  {"name": "torso", "inputs": [GREY_TORSO]},
  {"name": "hand left", "inputs": [GREY_HAND_L], "opposite": "hand right"},
  {"name": "hand right", "inputs": [GREY_HAND_R], "opposite": "hand left"},
]

FG_DEPTH = 0.5
BG_DEPTH = 1.0


class PfmCodec(ImageCodec):
  """Codec test double: depth inputs are PFM payloads, so no OpenEXR is needed."""

  def read_depth_float(self, path, expected_w=None, expected_h=None):
    return self.read_pfm(path, expected_w, expected_h)


# -----------------------------------------------------------------------------
# Frames
# -----------------------------------------------------------------------------
def body_grey(x0: int = 20, y0: int = 20, size: int = 60) -> np.ndarray:
  """Grey label frame with a square torso and a left hand strip (3600 body px)."""
  grey = np.full((HEIGHT, WIDTH), GREY_BG, dtype=np.uint8)
  grey[y0:y0 + size, x0:x0 + size] = GREY_TORSO
  grey[y0:y0 + size, x0:x0 + 10] = GREY_HAND_L
  return grey


def depth_for(grey: np.ndarray, fg: float = FG_DEPTH, bg: float = 5.0) -> np.ndarray:
  return np.where(grey == GREY_BG, np.float32(bg), np.float32(fg)).astype(np.float32)


@pytest.fixture
def label_map_path(tmp_path) -> Path:
  path = tmp_path / "label_map.json"
  path.write_text(json.dumps(LABEL_MAP))
  return path


@pytest.fixture
def label_maps(label_map_path) -> LabelMaps:
  return LabelMaps.from_file(label_map_path)


@pytest.fixture
def body_labels(label_maps) -> Image:
  """Label-id image (ids, not grey values) of the default body frame."""
  return Image.from_array(ImageFormat.LABEL_U8, label_maps.grey_to_id[body_grey()])


@pytest.fixture
def body_depth() -> Image:
  return Image.from_array(ImageFormat.DEPTH_FLOAT, depth_for(body_grey(), bg=BG_DEPTH))


# -----------------------------------------------------------------------------
# Source tree
# -----------------------------------------------------------------------------
class SourceTree:
  def __init__(self, root: Path, width: int = WIDTH, height: int = HEIGHT):
    self.root = root
    self.codec = ImageCodec()
    (root / "labels").mkdir(parents=True, exist_ok=True)
    (root / "depth").mkdir(parents=True, exist_ok=True)
    (root / "meta.json").write_text(json.dumps(
        {"camera": {"width": width, "height": height, "vertical_fov": 54.5}}))

  def add_frame(self, rel_dir: str, stem: str, grey: np.ndarray,
                depth: np.ndarray = None, bones=None) -> None:
    label_dir = self.root / "labels" / rel_dir
    depth_dir = self.root / "depth" / rel_dir
    label_dir.mkdir(parents=True, exist_ok=True)
    depth_dir.mkdir(parents=True, exist_ok=True)

    grey_img = Image.from_array(ImageFormat.LABEL_U8, grey)
    assert self.codec.write_label(label_dir / f"{stem}.png", grey_img, palettized=False)

    if depth is None:
      depth = depth_for(grey)
    # PFM payload under the .exr name the pipeline looks for
    assert self.codec.write_pfm(depth_dir / f"{stem}.exr",
                                Image.from_array(ImageFormat.DEPTH_FLOAT, depth))

    if bones is not None:
      (label_dir / f"{stem}.json").write_text(json.dumps({"bones": bones}))


@pytest.fixture
def source_tree(tmp_path) -> SourceTree:
  return SourceTree(tmp_path / "src")
