"""
scanner.py
----------

Walk `<src>/labels/` and group label PNGs per directory into work units.

Frames get a global number in the order they are discovered. Directory
enumeration order comes straight from `os.scandir()` unless
`sort_entries` is set, so numbering can differ between file systems.
"""

from __future__ import annotations

__all__ = ["InputFrame", "WorkUnit", "scan_work_units"]

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

PathLike = Union[str, os.PathLike]
logger = logging.getLogger("depthaug.scanner")


@dataclass(frozen=True)
class InputFrame:
    frame_no: int
    name: str           # label file name, e.g. "Image0001.png"

    @property
    def stem(self) -> str:
        return self.name[:-len(".png")]


@dataclass
class WorkUnit:
    """Frames of a single directory; processed in order by one worker."""
    rel_dir: str
    frames: List[InputFrame] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.frames)


def _join(rel_dir: str, name: str) -> str:
    return f"{rel_dir}/{name}" if rel_dir else name


def scan_work_units(src_dir: PathLike, sort_entries: bool = False) -> List[WorkUnit]:
    """Build every work unit for `src_dir` before any processing starts.

    A directory's unit is created when its first PNG is met, so a parent
    directory whose first PNG precedes a subdirectory entry is queued
    ahead of that subdirectory's unit.
    """
    labels_root = Path(src_dir) / "labels"
    if not labels_root.is_dir():
        raise FileNotFoundError(f"No labels directory under {src_dir}")

    units: List[WorkUnit] = []
    frame_count = 0

    def recurse(rel_dir: str, depth: int) -> None:
        nonlocal frame_count
        unit: Optional[WorkUnit] = None

        with os.scandir(labels_root / rel_dir if rel_dir else labels_root) as it:
            entries = list(it)
        if sort_entries:
            entries.sort(key=lambda e: e.name)

        for entry in entries:
            if entry.is_dir():
                logger.debug(f"{' ' * depth}recursing into {_join(rel_dir, entry.name)}")
                recurse(_join(rel_dir, entry.name), depth + 2)
            elif entry.name.endswith(".png"):
                if unit is None:
                    unit = WorkUnit(rel_dir=rel_dir)
                    units.append(unit)
                unit.frames.append(InputFrame(frame_no=frame_count, name=entry.name))
                frame_count += 1

    recurse("", 0)
    return units
