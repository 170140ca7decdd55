"""
test_pipeline.py
----------------
End-to-end runs over small synthetic source trees.

Input depth files are PFM payloads read through `PfmCodec` and output
depth is written as PFM, so no OpenEXR support is needed.
"""

import json
import logging

import numpy as np
import pytest

from depthaug.augment.noise import EdgeSwizzle, Gaussian, Perlin
from depthaug.errors import InvariantViolation, UnmappedLabelError
from depthaug.fileio.writer import DepthFormat
from depthaug.runner.config import PipelineConfig
from depthaug.runner.orchestration import preprocess

from conftest import GREY_HAND_R, GREY_TORSO, PfmCodec, body_grey


BASE = PipelineConfig(
  seed=0,
  background_depth_m=1.0,
  min_body_size_px=3000,
  min_body_change_percent=0.1,
  depth_format=DepthFormat.PFM,
  sort_entries=True,
  n_threads=1,
)


def run(source_tree, dst, label_map_path, **overrides):
  return preprocess(source_tree.root, dst, label_map_path,
                    config=BASE.with_overrides(**overrides),
                    codec=PfmCodec(), poll_interval=0.05)


def output_files(dst):
  return sorted(str(p.relative_to(dst)) for p in dst.rglob("*") if p.is_file())


def tree_bytes(dst):
  return {name: (dst / name).read_bytes() for name in output_files(dst)}


def three_frame_sequence(source_tree, rel_dir="seq"):
  """frame1; frame2 = one pixel changed; frame3 = a 10x10 block changed."""
  frame1 = body_grey()
  frame2 = frame1.copy()
  frame2[50, 50] = GREY_HAND_R
  frame3 = frame1.copy()
  frame3[40:50, 40:50] = GREY_HAND_R
  bones = [{"name": "arm", "head": [0.1, 0.2, 0.3], "tail": [0.4, 0.5, 0.6]}]
  for stem, grey in (("frame1", frame1), ("frame2", frame2), ("frame3", frame3)):
    source_tree.add_frame(rel_dir, stem, grey, bones=bones)


# ---------------------------------------------------------------------------
# Dedup, mirroring and output layout
# ---------------------------------------------------------------------------

def test_similar_frame_dropped_others_mirrored(source_tree, label_map_path, tmp_path, caplog):
  caplog.set_level(logging.WARNING, logger="depthaug")
  three_frame_sequence(source_tree)
  dst = tmp_path / "dst"

  pipeline = run(source_tree, dst, label_map_path)

  for kind, suffix in (("labels", ".png"), ("depth", ".pfm"), ("labels", ".json")):
    names = sorted(p.name for p in (dst / kind / "seq").glob(f"*{suffix}"))
    assert names == [f"frame1-flipped{suffix}", f"frame1{suffix}",
                     f"frame3-flipped{suffix}", f"frame3{suffix}"]

  skips = [r.getMessage() for r in caplog.records if "SKIPPING" in r.getMessage()]
  assert len(skips) == 1
  assert "frame2.png" in skips[0] and "too similar" in skips[0]
  assert "only 1 out of 3600" in skips[0]

  assert pipeline.stats.frames_retained == 2
  assert pipeline.stats.units_done == 1
  assert pipeline.tracker.count == 4
  assert pipeline.fatal_error is None


def test_output_meta_json(source_tree, label_map_path, tmp_path):
  three_frame_sequence(source_tree)
  dst = tmp_path / "dst"
  run(source_tree, dst, label_map_path)

  meta = json.loads((dst / "meta.json").read_text())
  assert meta["camera"]["width"] == 100
  assert meta["n_labels"] == 4
  assert [entry["name"] for entry in meta["labels"]] == [
    "background", "torso", "hand left", "hand right"]
  assert all("inputs" not in entry for entry in meta["labels"])


def test_outputs_are_label_ids_and_clamped_depth(source_tree, label_map_path, tmp_path):
  three_frame_sequence(source_tree)
  dst = tmp_path / "dst"
  run(source_tree, dst, label_map_path)
  codec = PfmCodec()

  labels = codec.read_label(dst / "labels" / "seq" / "frame1.png")
  assert set(np.unique(labels).tolist()) == {0, 1, 2}
  flipped = codec.read_label(dst / "labels" / "seq" / "frame1-flipped.png")
  # left hand strip mirrored to the right side and relabelled as right hand
  assert flipped[50, 75] == 3
  assert set(np.unique(flipped).tolist()) == {0, 1, 3}

  depth = codec.read_pfm(dst / "depth" / "seq" / "frame1.pfm").data
  assert np.all(depth[labels == 0] == np.float32(1.0))
  assert np.all(depth[labels != 0] == np.float32(0.5))

  bones = json.loads((dst / "labels" / "seq" / "frame1-flipped.json").read_text())["bones"]
  assert bones[0]["head"] == [-0.1, 0.2, 0.3]
  assert bones[0]["tail"] == [-0.4, 0.5, 0.6]


def test_no_flip(source_tree, label_map_path, tmp_path):
  three_frame_sequence(source_tree)
  dst = tmp_path / "dst"
  pipeline = run(source_tree, dst, label_map_path, mirror_enabled=False)
  assert not any("flipped" in name for name in output_files(dst))
  assert pipeline.tracker.count == 2


def test_malformed_bones_do_not_abort_run(source_tree, label_map_path, tmp_path, caplog):
  caplog.set_level(logging.WARNING, logger="depthaug")
  source_tree.add_frame("seq", "f1", body_grey(), bones=[1])
  source_tree.add_frame("seq", "f2", body_grey(x0=30))
  dst = tmp_path / "dst"
  pipeline = run(source_tree, dst, label_map_path)

  assert pipeline.fatal_error is None
  assert (dst / "labels" / "seq" / "f1.json").exists()
  assert not (dst / "labels" / "seq" / "f1-flipped.json").exists()
  assert (dst / "depth" / "seq" / "f2-flipped.pfm").exists()
  assert any("Failed to mirror" in r.getMessage() for r in caplog.records)


def test_units_restart_dedup(source_tree, label_map_path, tmp_path):
  # identical frames in two directories: first frame of each unit is kept
  for rel in ("a", "b"):
    source_tree.add_frame(rel, "f1", body_grey())
    source_tree.add_frame(rel, "f2", body_grey())
  dst = tmp_path / "dst"
  pipeline = run(source_tree, dst, label_map_path, mirror_enabled=False)
  assert (dst / "labels" / "a" / "f1.png").exists()
  assert (dst / "labels" / "b" / "f1.png").exists()
  assert not (dst / "labels" / "a" / "f2.png").exists()
  assert pipeline.stats.frames_skipped["too similar"] == 2


# ---------------------------------------------------------------------------
# Determinism and resume
# ---------------------------------------------------------------------------

NOISE = (EdgeSwizzle(), Gaussian(0.01), Perlin(freq=0.05, amplitude_m=0.01))


def busy_tree(source_tree):
  for rel in ("a", "b", "c/d", "e"):
    for i in range(3):
      grey = body_grey(x0=10 + 5 * i, y0=15 + 3 * i)
      source_tree.add_frame(rel, f"f{i}", grey)


def test_thread_count_does_not_change_outputs(source_tree, label_map_path, tmp_path):
  busy_tree(source_tree)
  one = tmp_path / "one"
  four = tmp_path / "four"
  run(source_tree, one, label_map_path, noise_ops=NOISE, seed=17, n_threads=1)
  run(source_tree, four, label_map_path, noise_ops=NOISE, seed=17, n_threads=4)

  a, b = tree_bytes(one), tree_bytes(four)
  assert len(a) > 0
  assert a.keys() == b.keys()
  assert all(a[name] == b[name] for name in a)


def test_noisy_outputs_stay_valid(source_tree, label_map_path, tmp_path):
  busy_tree(source_tree)
  dst = tmp_path / "dst"
  run(source_tree, dst, label_map_path, noise_ops=NOISE, n_threads=3)
  codec = PfmCodec()
  depth_files = list((dst / "depth").rglob("*.pfm"))
  assert len(depth_files) == 24
  for path in depth_files:
    depth = codec.read_pfm(path).data
    assert np.all(np.isfinite(depth))
    assert np.all(depth <= np.float32(1.0))


@pytest.mark.parametrize("op", [Gaussian(0.01), Perlin(freq=0.05, amplitude_m=0.01)])
def test_single_depth_noise_op_run(source_tree, label_map_path, tmp_path, op):
  source_tree.add_frame("seq", "f1", body_grey())
  dst = tmp_path / "dst"
  pipeline = run(source_tree, dst, label_map_path, noise_ops=(op,))
  assert pipeline.fatal_error is None
  for name in ("f1.pfm", "f1-flipped.pfm"):
    depth = PfmCodec().read_pfm(dst / "depth" / "seq" / name).data
    assert np.all(np.isfinite(depth))
    assert not np.all(depth[depth < np.float32(1.0)] == np.float32(0.5))


def test_seed_changes_noisy_outputs(source_tree, label_map_path, tmp_path):
  busy_tree(source_tree)
  run(source_tree, tmp_path / "s1", label_map_path, noise_ops=NOISE, seed=1)
  run(source_tree, tmp_path / "s2", label_map_path, noise_ops=NOISE, seed=2)
  name = "depth/a/f0.pfm"
  assert (tmp_path / "s1" / name).read_bytes() != (tmp_path / "s2" / name).read_bytes()


def test_rerun_keeps_existing_outputs(source_tree, label_map_path, tmp_path):
  three_frame_sequence(source_tree)
  dst = tmp_path / "dst"
  run(source_tree, dst, label_map_path)
  before = tree_bytes(dst)

  sentinel = dst / "depth" / "seq" / "frame3.pfm"
  sentinel.write_bytes(b"sentinel")
  (dst / "labels" / "seq" / "frame3-flipped.png").unlink()

  pipeline = run(source_tree, dst, label_map_path)

  assert sentinel.read_bytes() == b"sentinel"
  after = tree_bytes(dst)
  assert after.keys() == before.keys()
  assert after["labels/seq/frame3-flipped.png"] == before["labels/seq/frame3-flipped.png"]
  assert pipeline.writer.n_written == 1


# ---------------------------------------------------------------------------
# Frame budget
# ---------------------------------------------------------------------------

def test_frame_budget_stops_after_first_frame(source_tree, label_map_path, tmp_path):
  three_frame_sequence(source_tree)
  dst = tmp_path / "dst"
  pipeline = run(source_tree, dst, label_map_path, max_frame_count=2)

  assert sorted(p.name for p in (dst / "labels" / "seq").glob("*.png")) == [
    "frame1-flipped.png", "frame1.png"]
  assert not (dst / "depth" / "seq" / "frame3.pfm").exists()
  assert pipeline.finished
  assert pipeline.fatal_error is None


def test_zero_frame_budget_writes_no_frames(source_tree, label_map_path, tmp_path):
  three_frame_sequence(source_tree)
  dst = tmp_path / "dst"
  pipeline = run(source_tree, dst, label_map_path, max_frame_count=0)
  assert output_files(dst) == ["meta.json"]
  assert pipeline.stats.frames_retained == 0


# ---------------------------------------------------------------------------
# Fatal errors
# ---------------------------------------------------------------------------

def test_foreground_beyond_background_is_fatal(source_tree, label_map_path, tmp_path):
  three_frame_sequence(source_tree)
  dst = tmp_path / "dst"
  with pytest.raises(InvariantViolation, match="out-of-range"):
    run(source_tree, dst, label_map_path, background_depth_m=0.4)
  assert not (dst / "depth" / "seq" / "frame1.pfm").exists()


def test_unmapped_grey_value_is_fatal(source_tree, label_map_path, tmp_path):
  grey = body_grey()
  grey[30, 30] = 42
  source_tree.add_frame("seq", "frame1", grey)
  with pytest.raises(UnmappedLabelError, match="Spurious grey value 42"):
    run(source_tree, tmp_path / "dst", label_map_path)


def test_fatal_error_stops_other_units(source_tree, label_map_path, tmp_path):
  bad = body_grey()
  bad[0, 0] = GREY_TORSO + 1
  source_tree.add_frame("a", "f1", bad)
  for i in range(5):
    source_tree.add_frame("b", f"f{i}", body_grey(x0=10 + 5 * i))
  dst = tmp_path / "dst"
  with pytest.raises(UnmappedLabelError):
    run(source_tree, dst, label_map_path)
  # single worker, sorted scan: unit "a" fails before "b" is popped
  assert not (dst / "labels" / "b").exists()
