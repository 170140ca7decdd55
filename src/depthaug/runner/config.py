"""
config.py - Configuration dataclass for the frame pre-processor.

Built once on the main thread (defaults <- JSON config <- CLI flags) and
shared read-only by every worker thread.
"""

from __future__ import annotations

__all__ = ["PipelineConfig", "load_config_file", "parse_noise_ops"]

import os
import json
import math
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple, Union

from ..augment.noise import EdgeSwizzle, Gaussian, NoiseOp, Perlin
from ..errors import ConfigError
from ..fileio.writer import DepthFormat

PathLike = Union[str, os.PathLike]


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable configuration shared by all worker threads."""
    logger_level: int = logging.INFO
    background_depth_m: float = 1000.0
    bg_far_clamp_mode: bool = False
    min_body_size_px: int = 3000
    min_body_change_percent: float = 0.1
    mirror_enabled: bool = True
    seed: int = 0
    max_frame_count: Optional[int] = None
    noise_ops: Tuple[NoiseOp, ...] = field(default_factory=tuple)
    depth_format: DepthFormat = DepthFormat.EXR_HALF
    palettized_labels: bool = True
    n_threads: Optional[int] = None
    sort_entries: bool = False

    def __post_init__(self):
        if self.seed < 0:
            raise ConfigError(f"Seed must be non-negative, got {self.seed}")
        if self.n_threads is not None and self.n_threads < 1:
            raise ConfigError(f"Thread count must be at least 1, got {self.n_threads}")
        if self.max_frame_count is not None and self.max_frame_count < 0:
            raise ConfigError(f"Max frame count must be non-negative, got {self.max_frame_count}")
        if self.background_depth_m <= 0:
            raise ConfigError(f"background_depth_m must be positive, got {self.background_depth_m}")

    @property
    def variants_per_frame(self) -> int:
        return 2 if self.mirror_enabled else 1

    def with_overrides(self, **kwargs: Any) -> PipelineConfig:
        return replace(self, **kwargs)

    def describe(self) -> Dict[str, Any]:
        return {
            "background_depth_m": self.background_depth_m,
            "bg_far_clamp_mode": self.bg_far_clamp_mode,
            "min_body_size_px": self.min_body_size_px,
            "min_body_change_percent": self.min_body_change_percent,
            "mirror_enabled": self.mirror_enabled,
            "seed": self.seed,
            "max_frame_count": self.max_frame_count,
            "noise_ops": [repr(op) for op in self.noise_ops],
            "depth_format": self.depth_format.value,
            "palettized_labels": self.palettized_labels,
            "n_threads": self.n_threads,
            "sort_entries": self.sort_entries,
        }


# ---------------------------------------------------------------------------
# JSON config
# ---------------------------------------------------------------------------
_PROPERTY_TYPES = {
    "background_depth_m": (int, float),
    "bg_far_clamp_mode": (bool,),
    "min_body_size_px": (int,),
    "min_body_change_percent": (int, float),
    "no_flip": (bool,),
}


def _number(op: Dict[str, Any], key: str, what: str) -> float:
    if key not in op:
        raise ConfigError(f"{what} noise config missing '{key}' value")
    value = op[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{what} noise '{key}' must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ConfigError(f"{what} noise '{key}' must be finite, got {value!r}")
    return float(value)


def parse_noise_ops(items: List[Any]) -> Tuple[NoiseOp, ...]:
    ops: List[NoiseOp] = []
    for js_op in items:
        if not isinstance(js_op, dict):
            raise ConfigError(f"Noise configuration entries must be objects, got {js_op!r}")
        type_str = js_op.get("type")
        if not type_str:
            raise ConfigError('Noise configuration missing "type"')

        if type_str == EdgeSwizzle.type_name:
            ops.append(EdgeSwizzle())
        elif type_str == Gaussian.type_name:
            fwtm = _number(js_op, "fwtm_range_map_m", "Gaussian")
            if fwtm < 0:
                raise ConfigError(f"Gaussian noise 'fwtm_range_map_m' must be non-negative, got {fwtm}")
            ops.append(Gaussian(fwtm_range_map_m=fwtm))
        elif type_str == Perlin.type_name:
            freq = _number(js_op, "freq", "Perlin")
            octaves = int(_number(js_op, "octaves", "Perlin")) if "octaves" in js_op else 1
            if octaves < 1:
                raise ConfigError(f"Perlin noise 'octaves' must be >= 1, got {octaves}")
            amplitude_m = _number(js_op, "amplitude_m", "Perlin")
            ops.append(Perlin(freq=freq, amplitude_m=amplitude_m, octaves=octaves))
        else:
            raise ConfigError(f'Unknown noise type "{type_str}"')
    return tuple(ops)


def load_config_file(path: PathLike, base: Optional[PipelineConfig] = None) -> PipelineConfig:
    """Apply a JSON config file ({"properties": {...}, "noise": [...]}) on top of `base`."""
    base = base or PipelineConfig()
    try:
        with open(path, "r", encoding="utf-8") as f:
            doc = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(doc, dict):
        raise ConfigError(f"Config file {path} must hold a JSON object")

    overrides: Dict[str, Any] = {}

    props = doc.get("properties", {})
    if not isinstance(props, dict):
        raise ConfigError(f"'properties' in {path} must be an object")
    for name, value in props.items():
        if name not in _PROPERTY_TYPES:
            raise ConfigError(f"Unknown property '{name}' in {path}")
        types = _PROPERTY_TYPES[name]
        if not isinstance(value, types) or (bool not in types and isinstance(value, bool)):
            raise ConfigError(f"Property '{name}' has invalid value {value!r}")
        if name == "no_flip":
            overrides["mirror_enabled"] = not value
        elif name in ("background_depth_m", "min_body_change_percent"):
            overrides[name] = float(value)
        else:
            overrides[name] = value

    noise = doc.get("noise")
    if noise is not None:
        if not isinstance(noise, list):
            raise ConfigError(f"'noise' in {path} must be an array")
        overrides["noise_ops"] = parse_noise_ops(noise)

    return replace(base, **overrides)
