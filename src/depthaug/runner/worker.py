"""
worker.py
---------

Per-thread frame worker used by orchestration.py.

Responsibilities:
- pop whole work units off the shared queue, one at a time
- run the unit's frames strictly in order through the dedup filter
- render the unflipped and (optionally) mirrored variant of every retained
  frame: noise -> clamp -> sanity check -> write
- copy the joint metadata sidecars
- stop at the next frame boundary once the run is finished or aborted
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from ..augment.frame_filter import FrameDecision, FrameFilter, SkipReason
from ..augment.guard import clamp_depth, sanity_check_frame
from ..augment.image import Image, ImageFormat
from ..augment.mirror import (
    FLIPPED_SUFFIX,
    flip_depth,
    flip_labels,
    flipped_output_frame_no,
    output_frame_no,
)
from ..augment.scanner import InputFrame, WorkUnit
from ..errors import FatalFrameError, InvariantViolation, UnmappedLabelError
from ..fileio.label_map import UNMAPPED
from ..utils.rng import RNG

if TYPE_CHECKING:
    from .orchestration import Pipeline

LOGGER_NAME = "depthaug.worker"


class FrameWorker:
    """
    Worker state owned by a single thread.

    Each worker:
    - has its own RNG, reseeded for every output frame
    - has its own dedup filter, reset at each work unit boundary
    """

    def __init__(self, pipeline: Pipeline, idx: int) -> None:
        self.pipeline = pipeline
        self.config = pipeline.config
        self.idx = idx
        self.logger = logging.getLogger(LOGGER_NAME)
        self.rng = RNG(seed=self.config.seed)
        self.filter = FrameFilter(self.config.min_body_size_px,
                                  self.config.min_body_change_percent)

    # -------------------------------------------------------------------------
    # main loop
    # -------------------------------------------------------------------------
    def run(self) -> None:
        self.logger.debug(f"Running worker thread {self.idx}")
        while not self.pipeline.finished:
            unit = self.pipeline.queue.pop()
            if unit is None:
                break
            self.process_unit(unit)
        self.logger.debug(f"Worker thread {self.idx} finished")

    def process_unit(self, unit: WorkUnit) -> None:
        self.filter.reset()
        dirs_ready = False
        try:
            for frame in unit.frames:
                if self.pipeline.finished:
                    break
                self.logger.debug(f"Thread {self.idx}: processing {unit.rel_dir}/{frame.name}")

                labels = self.load_labels(unit.rel_dir, frame)
                decision = self.filter.evaluate(labels)
                if not decision.retain:
                    self._log_skip(unit, frame, decision)
                    self.pipeline.stats.record_skip(decision.reason.value)
                    continue

                # budget check after the skip decision, before anything is written
                if not self.pipeline.tracker.try_reserve(self.config.variants_per_frame):
                    break
                self.filter.accept(labels)
                self.pipeline.stats.record_retained()

                if not dirs_ready:
                    self.pipeline.writer.ensure_unit_dirs(unit.rel_dir)
                    dirs_ready = True

                self.process_frame(unit.rel_dir, frame, labels)
        finally:
            self.filter.reset()
        self.pipeline.stats.record_unit()

    def process_frame(self, rel_dir: str, frame: InputFrame, labels: Image) -> None:
        cam = self.pipeline.camera
        depth_path = self.pipeline.src_dir / "depth" / rel_dir / f"{frame.stem}.exr"
        depth = self.pipeline.codec.read_depth_float(depth_path, cam.width, cam.height)

        self.render_variant(rel_dir, frame.stem, labels, depth,
                            output_frame_no(frame.frame_no))

        if self.config.mirror_enabled:
            self.render_variant(rel_dir, f"{frame.stem}{FLIPPED_SUFFIX}",
                                flip_labels(labels, self.pipeline.label_maps.left_right),
                                flip_depth(depth),
                                flipped_output_frame_no(frame.frame_no))

        self.pipeline.writer.copy_metadata(rel_dir, frame.stem,
                                           flipped=self.config.mirror_enabled)

    def render_variant(self, rel_dir: str, stem: str, labels: Image, depth: Image,
                       out_frame_no: int) -> None:
        cfg = self.config
        noisy_labels, noisy_depth = self.pipeline.noise.apply(labels, depth, out_frame_no, self.rng)
        clamp_depth(noisy_labels, noisy_depth, cfg.background_depth_m, cfg.bg_far_clamp_mode)
        try:
            sanity_check_frame(noisy_labels, noisy_depth, cfg.background_depth_m,
                               cfg.bg_far_clamp_mode)
        except InvariantViolation as e:
            raise InvariantViolation(f"{rel_dir}/{stem} (output frame {out_frame_no}): {e}") from e

        self.pipeline.writer.save_labels(rel_dir, stem, noisy_labels)
        self.pipeline.writer.save_depth(rel_dir, stem, noisy_depth)

    # -------------------------------------------------------------------------
    # input helpers
    # -------------------------------------------------------------------------
    def load_labels(self, rel_dir: str, frame: InputFrame) -> Image:
        """Read a label PNG and map its grey values to label ids."""
        cam = self.pipeline.camera
        path = self.pipeline.src_dir / "labels" / rel_dir / frame.name
        grey = self.pipeline.codec.read_label(path, cam.width, cam.height)

        ids = self.pipeline.label_maps.grey_to_id[grey]
        unmapped = ids == UNMAPPED
        if unmapped.any():
            y, x = np.argwhere(unmapped)[0]
            raise UnmappedLabelError(
                f"Spurious grey value {grey[y, x]} found in label image {path} "
                f"that doesn't map to a known label")
        return Image.from_array(ImageFormat.LABEL_U8, ids)

    def _log_skip(self, unit: WorkUnit, frame: InputFrame, decision: FrameDecision) -> None:
        where = f"{unit.rel_dir}/{frame.name}" if unit.rel_dir else frame.name
        if decision.reason is SkipReason.EMPTY:
            msg = "spurious frame with no body pixels!"
        elif decision.reason is SkipReason.TOO_SMALL:
            msg = f"frame with less than {self.config.min_body_size_px} body pixels"
        else:
            msg = (f"too similar to previous frame (only {decision.n_different_px} "
                   f"out of {decision.n_body_px} body pixels differ)")
        self.logger.warning(f"SKIPPING: {where} - {msg}")


def worker_main(pipeline: Pipeline, idx: int) -> None:
    """Thread entry point. Any error aborts the whole run."""
    logger = logging.getLogger(LOGGER_NAME)
    try:
        FrameWorker(pipeline, idx).run()
    except FatalFrameError as e:
        logger.critical(f"Fatal error in worker {idx}: {e}")
        pipeline.abort(e)
    except Exception as e:
        logger.exception(f"Unexpected error in worker {idx}: {e}")
        pipeline.abort(e)
