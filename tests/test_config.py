"""
test_config.py
--------------
Unit tests for config.py (PipelineConfig, JSON config files, noise ops).
"""

import json

import pytest

from depthaug.augment.noise import EdgeSwizzle, Gaussian, Perlin
from depthaug.errors import ConfigError
from depthaug.fileio.writer import DepthFormat
from depthaug.runner.config import PipelineConfig, load_config_file, parse_noise_ops


def write_config(tmp_path, doc):
  path = tmp_path / "config.json"
  path.write_text(doc if isinstance(doc, str) else json.dumps(doc))
  return path


# ---------------------------------------------------------------------------
# Defaults and validation
# ---------------------------------------------------------------------------

def test_defaults():
  cfg = PipelineConfig()
  assert cfg.background_depth_m == 1000.0
  assert cfg.min_body_size_px == 3000
  assert cfg.min_body_change_percent == 0.1
  assert cfg.mirror_enabled and not cfg.bg_far_clamp_mode
  assert cfg.seed == 0
  assert cfg.max_frame_count is None
  assert cfg.noise_ops == ()
  assert cfg.depth_format is DepthFormat.EXR_HALF
  assert cfg.variants_per_frame == 2
  assert PipelineConfig(mirror_enabled=False).variants_per_frame == 1


@pytest.mark.parametrize("kwargs", [
  {"seed": -1},
  {"n_threads": 0},
  {"max_frame_count": -2},
  {"background_depth_m": 0.0},
])
def test_invalid_values(kwargs):
  with pytest.raises(ConfigError):
    PipelineConfig(**kwargs)


def test_config_is_frozen():
  cfg = PipelineConfig()
  with pytest.raises(AttributeError):
    cfg.seed = 3
  assert cfg.with_overrides(seed=3).seed == 3
  assert cfg.seed == 0


def test_describe_is_plain_data():
  desc = PipelineConfig(noise_ops=(EdgeSwizzle(),)).describe()
  json.dumps(desc)
  assert desc["depth_format"] == "exr-half"
  assert len(desc["noise_ops"]) == 1


# ---------------------------------------------------------------------------
# Noise ops
# ---------------------------------------------------------------------------

def test_parse_noise_ops_in_order():
  ops = parse_noise_ops([
    {"type": "perlin", "freq": 0.05, "amplitude_m": 0.01, "octaves": 3},
    {"type": "foreground-edge-swizzle"},
    {"type": "gaussian", "fwtm_range_map_m": 0.02},
  ])
  assert ops == (Perlin(0.05, 0.01, 3), EdgeSwizzle(), Gaussian(0.02))


def test_perlin_octaves_default():
  (op,) = parse_noise_ops([{"type": "perlin", "freq": 1, "amplitude_m": 2}])
  assert op.octaves == 1
  assert isinstance(op.freq, float)


@pytest.mark.parametrize("items,match", [
  ([{}], "missing \"type\""),
  ([{"type": "salt"}], "Unknown noise type"),
  ([{"type": "gaussian"}], "missing 'fwtm_range_map_m'"),
  ([{"type": "gaussian", "fwtm_range_map_m": "big"}], "must be a number"),
  ([{"type": "perlin", "amplitude_m": 0.1}], "missing 'freq'"),
  ([{"type": "perlin", "freq": 0.1}], "missing 'amplitude_m'"),
  ([{"type": "perlin", "freq": 0.1, "amplitude_m": 0.1, "octaves": 0}], "octaves"),
  ([{"type": "gaussian", "fwtm_range_map_m": -0.01}], "non-negative"),
  ([{"type": "gaussian", "fwtm_range_map_m": float("nan")}], "must be finite"),
  ([{"type": "perlin", "freq": float("inf"), "amplitude_m": 0.1}], "must be finite"),
  ([{"type": "perlin", "freq": 0.1, "amplitude_m": float("nan")}], "must be finite"),
  (["gaussian"], "must be objects"),
])
def test_parse_noise_ops_errors(items, match):
  with pytest.raises(ConfigError, match=match):
    parse_noise_ops(items)


# ---------------------------------------------------------------------------
# Config files
# ---------------------------------------------------------------------------

def test_load_config_file(tmp_path):
  path = write_config(tmp_path, {
    "properties": {
      "background_depth_m": 20,
      "bg_far_clamp_mode": True,
      "min_body_size_px": 100,
      "min_body_change_percent": 1,
      "no_flip": True,
    },
    "noise": [{"type": "gaussian", "fwtm_range_map_m": 0.03}],
  })
  cfg = load_config_file(path, PipelineConfig(seed=7))
  assert cfg.background_depth_m == 20.0
  assert cfg.bg_far_clamp_mode
  assert cfg.min_body_size_px == 100
  assert cfg.min_body_change_percent == 1.0
  assert not cfg.mirror_enabled
  assert cfg.noise_ops == (Gaussian(0.03),)
  # untouched fields come from the base
  assert cfg.seed == 7


def test_empty_config_keeps_base(tmp_path):
  base = PipelineConfig(min_body_size_px=5)
  assert load_config_file(write_config(tmp_path, {}), base) == base


@pytest.mark.parametrize("doc", [
  "{nope",
  [],
  {"properties": []},
  {"properties": {"colour": 1}},
  {"properties": {"min_body_size_px": 1.5}},
  {"properties": {"min_body_size_px": True}},
  {"properties": {"no_flip": "yes"}},
  {"noise": {"type": "gaussian"}},
])
def test_bad_config_files(tmp_path, doc):
  with pytest.raises(ConfigError):
    load_config_file(write_config(tmp_path, doc))


def test_missing_config_file(tmp_path):
  with pytest.raises(ConfigError):
    load_config_file(tmp_path / "missing.json")


def test_negative_fwtm_in_config_file_fails_at_load(tmp_path):
  path = write_config(tmp_path, {"noise": [{"type": "gaussian", "fwtm_range_map_m": -0.01}]})
  with pytest.raises(ConfigError, match="fwtm_range_map_m"):
    load_config_file(path)


@pytest.mark.parametrize("make", [
  lambda: Gaussian(-0.5),
  lambda: Gaussian(float("inf")),
  lambda: Perlin(freq=float("nan"), amplitude_m=0.1),
  lambda: Perlin(freq=0.1, amplitude_m=float("-inf")),
  lambda: Perlin(freq=0.1, amplitude_m=0.1, octaves=0),
])
def test_noise_ops_validate_parameters(make):
  with pytest.raises(ValueError):
    make()
