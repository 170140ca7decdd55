"""
metadata.py
-----------

JSON metadata: the top-level `meta.json` (camera description) and the
per-frame joint sidecars (`<frame>.json`, holding a "bones" array).
"""

from __future__ import annotations

__all__ = [
    "CameraInfo",
    "read_raw",
    "parse_metadata",
    "write_transformed",
    "load_camera_meta",
    "build_output_meta",
]

import os
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

from ..errors import ConfigError

PathLike = Union[str, os.PathLike]


@dataclass(frozen=True)
class CameraInfo:
    width: int
    height: int
    vertical_fov: float


# -----------------------------------------------------------------------------
# Per-frame sidecars
# -----------------------------------------------------------------------------
def read_raw(path: PathLike) -> bytes:
    return Path(path).read_bytes()


def parse_metadata(raw: bytes) -> Dict[str, Any]:
    doc = json.loads(raw)
    if not isinstance(doc, dict):
        raise ValueError("frame metadata must be a JSON object")
    return doc


def write_transformed(path: PathLike, doc: Dict[str, Any]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(doc, f, indent=4, ensure_ascii=False)


# -----------------------------------------------------------------------------
# Top level meta.json
# -----------------------------------------------------------------------------
def load_camera_meta(src_dir: PathLike) -> Tuple[Dict[str, Any], CameraInfo]:
    path = Path(src_dir) / "meta.json"
    try:
        with open(path, "r", encoding="utf-8") as f:
            meta = json.load(f)
        cam = meta["camera"]
        info = CameraInfo(width=int(cam["width"]),
                          height=int(cam["height"]),
                          vertical_fov=float(cam.get("vertical_fov", 0.0)))
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise ConfigError(f"Failed to parse top level meta.json ({path}): {e}") from e
    if info.width <= 0 or info.height <= 0:
        raise ConfigError(f"Invalid camera size {info.width}x{info.height} in {path}")
    return meta, info


def build_output_meta(meta: Dict[str, Any], labels: List[Dict[str, Any]]) -> Dict[str, Any]:
    out = dict(meta)
    out["labels"] = labels
    out["n_labels"] = len(labels)
    return out
