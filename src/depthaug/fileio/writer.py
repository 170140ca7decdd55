"""
writer.py
---------

Output tree writer.

Layout mirrors the source tree:

    <dst>/labels/<rel_dir>/<stem>[-flipped].png
    <dst>/labels/<rel_dir>/<stem>[-flipped].json
    <dst>/depth/<rel_dir>/<stem>[-flipped].exr   (or .pfm)

Files that already exist are never touched, so a re-run over a partial
output tree only fills in what is missing.
"""

from __future__ import annotations

__all__ = ["DepthFormat", "OutputWriter"]

import os
import json
import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Union

from ..augment.image import Image
from ..augment.mirror import FLIPPED_SUFFIX, flip_bones
from .codec import ImageCodec
from .metadata import read_raw, parse_metadata, write_transformed

PathLike = Union[str, os.PathLike]
logger = logging.getLogger("depthaug.writer")


class DepthFormat(Enum):
    EXR_HALF = "exr-half"
    EXR_FLOAT = "exr-float"
    PFM = "pfm"

    @property
    def suffix(self) -> str:
        return ".pfm" if self is DepthFormat.PFM else ".exr"


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


class OutputWriter:
    """Skip-if-exists writer shared by all workers.

    Only the counters are shared mutable state; they are guarded by a lock.
    """

    def __init__(self, src_dir: PathLike, dst_dir: PathLike, codec: ImageCodec,
                 depth_format: DepthFormat = DepthFormat.EXR_HALF,
                 palettized: bool = True):
        self.src_dir = Path(src_dir)
        self.dst_dir = Path(dst_dir)
        self.codec = codec
        self.depth_format = depth_format
        self.palettized = palettized
        self._lock = threading.Lock()
        self.n_written = 0
        self.n_skipped = 0

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------
    def label_path(self, rel_dir: str, stem: str) -> Path:
        return self.dst_dir / "labels" / rel_dir / f"{stem}.png"

    def depth_path(self, rel_dir: str, stem: str) -> Path:
        return self.dst_dir / "depth" / rel_dir / f"{stem}{self.depth_format.suffix}"

    def meta_path(self, rel_dir: str, stem: str) -> Path:
        return self.dst_dir / "labels" / rel_dir / f"{stem}.json"

    def ensure_unit_dirs(self, rel_dir: str) -> None:
        ensure_directory(self.dst_dir / "labels" / rel_dir)
        ensure_directory(self.dst_dir / "depth" / rel_dir)

    # -------------------------------------------------------------------------
    # Bookkeeping
    # -------------------------------------------------------------------------
    def _skip_existing(self, path: Path) -> bool:
        if path.exists():
            logger.warning(f"SKIP: {path} file already exists")
            with self._lock:
                self.n_skipped += 1
            return True
        return False

    def _record(self, ok: bool) -> bool:
        if ok:
            with self._lock:
                self.n_written += 1
        return ok

    # -------------------------------------------------------------------------
    # Frame outputs
    # -------------------------------------------------------------------------
    def save_labels(self, rel_dir: str, stem: str, labels: Image) -> bool:
        path = self.label_path(rel_dir, stem)
        if self._skip_existing(path):
            return False
        ok = self.codec.write_label(path, labels, palettized=self.palettized)
        if ok:
            logger.debug(f"wrote {path}")
        return self._record(ok)

    def save_depth(self, rel_dir: str, stem: str, depth: Image) -> bool:
        path = self.depth_path(rel_dir, stem)
        if self._skip_existing(path):
            return False
        if self.depth_format is DepthFormat.PFM:
            ok = self.codec.write_pfm(path, depth)
        else:
            ok = self.codec.write_depth(path, depth,
                                        as_half=self.depth_format is DepthFormat.EXR_HALF)
        if ok:
            logger.debug(f"wrote {path}")
        return self._record(ok)

    def copy_metadata(self, rel_dir: str, stem: str, flipped: bool) -> None:
        """Copy a frame's joint sidecar, plus a mirrored copy when `flipped` is set.

        Missing or unparseable sidecars are logged and skipped.
        """
        src = self.src_dir / "labels" / rel_dir / f"{stem}.json"
        try:
            raw = read_raw(src)
        except OSError as e:
            logger.warning(f"Failed to read frame's meta data {src}: {e}")
            return

        dst = self.meta_path(rel_dir, stem)
        if not self._skip_existing(dst):
            try:
                dst.write_bytes(raw)
                self._record(True)
            except OSError as e:
                logger.warning(f"Failed to copy frame's meta data to {dst}: {e}")

        if not flipped:
            return

        dst = self.meta_path(rel_dir, f"{stem}{FLIPPED_SUFFIX}")
        if self._skip_existing(dst):
            return
        try:
            doc = parse_metadata(raw)
            write_transformed(dst, flip_bones(doc))
            self._record(True)
        except (ValueError, KeyError, TypeError, IndexError) as e:
            logger.warning(f"Failed to mirror frame's meta data {src}: {e}")
        except OSError as e:
            logger.warning(f"Failed to serialize flipped frame's json meta data to {dst}: {e}")

    # -------------------------------------------------------------------------
    # Run outputs
    # -------------------------------------------------------------------------
    def write_meta(self, meta: Dict[str, Any]) -> bool:
        path = self.dst_dir / "meta.json"
        ensure_directory(self.dst_dir)
        if self._skip_existing(path):
            return False
        with open(path, "w", encoding="utf-8") as f:
            json.dump(meta, f, indent=4, ensure_ascii=False)
        return self._record(True)
