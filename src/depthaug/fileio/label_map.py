"""
label_map.py
------------

Label map JSON loader.

The label map is a JSON array, one object per label id (array index):

    [
      {"name": "background", "inputs": [0]},
      {"name": "head left",  "inputs": [10, 11], "opposite": "head right"},
      {"name": "head right", "inputs": [12],     "opposite": "head left"},
      ...
    ]

`inputs` lists the grey values in rendered label PNGs that map to the id;
`opposite` names the label that an anatomically mirrored pixel takes.
"""

from __future__ import annotations

__all__ = [
    "UNMAPPED",
    "LabelMaps",
    "load_label_map",
    "grey_to_id_table",
    "left_right_flip_table",
    "labels_for_meta",
]

import os
import json
import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Union

import numpy as np

from ..errors import LabelMapError

PathLike = Union[str, os.PathLike]
UNMAPPED = 255


@dataclass(frozen=True, eq=False)
class LabelMaps:
    """Lookup tables shared read-only by every worker."""
    entries: tuple
    grey_to_id: np.ndarray
    left_right: np.ndarray

    @classmethod
    def from_file(cls, path: PathLike) -> LabelMaps:
        entries = load_label_map(path)
        maps = cls(tuple(entries), grey_to_id_table(entries), left_right_flip_table(entries))
        maps.grey_to_id.setflags(write=False)
        maps.left_right.setflags(write=False)
        return maps

    @property
    def n_labels(self) -> int:
        return len(self.entries)


def load_label_map(path: PathLike) -> List[Dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            doc = json.load(f)
    except (OSError, ValueError) as e:
        raise LabelMapError(f"Failed to load label map {path}: {e}") from e

    if not isinstance(doc, list) or not doc:
        raise LabelMapError(f"Label map {path} must be a non-empty JSON array")
    if len(doc) >= UNMAPPED:
        raise LabelMapError(f"Too many labels ({len(doc)}) in {path}")
    for i, entry in enumerate(doc):
        if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
            raise LabelMapError(f"Label {i} in {path} has no name")
    return doc


def grey_to_id_table(entries: List[Dict[str, Any]]) -> np.ndarray:
    """256 entry table; grey values not listed as any label's input map to UNMAPPED."""
    table = np.full(256, UNMAPPED, dtype=np.uint8)
    for label_id, entry in enumerate(entries):
        inputs = entry.get("inputs", [])
        if not isinstance(inputs, list):
            raise LabelMapError(f"Label '{entry['name']}' has a non-array 'inputs'")
        for grey in inputs:
            if not isinstance(grey, int) or not 0 <= grey <= 255:
                raise LabelMapError(f"Label '{entry['name']}' has invalid input value {grey!r}")
            if table[grey] != UNMAPPED:
                raise LabelMapError(f"Grey value {grey} mapped to more than one label")
            table[grey] = label_id
    return table


def left_right_flip_table(entries: List[Dict[str, Any]]) -> np.ndarray:
    """256 entry table mapping each label id to its mirrored counterpart (identity by default)."""
    table = np.arange(256, dtype=np.uint8)
    ids = {entry["name"]: i for i, entry in enumerate(entries)}
    for label_id, entry in enumerate(entries):
        opposite = entry.get("opposite")
        if opposite is None:
            continue
        if opposite not in ids:
            raise LabelMapError(f"Label '{entry['name']}' has unknown opposite '{opposite}'")
        table[label_id] = ids[opposite]
    return table


def labels_for_meta(entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Label definitions without the input grey mappings, for the output meta.json."""
    out = copy.deepcopy(list(entries))
    for entry in out:
        entry.pop("inputs", None)
    return out
