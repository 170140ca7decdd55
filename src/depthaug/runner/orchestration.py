"""
orchestration.py - Work queue, completion tracking and the worker thread pool.

The main thread scans the source tree, queues every work unit, starts a
fixed pool of worker threads and then only reports progress until the
queue drains (or the frame budget / a fatal error stops the run), after
which it joins the workers.
"""

from __future__ import annotations

__all__ = [
    "WorkQueue",
    "CompletionTracker",
    "Pipeline",
    "run_pipeline",
    "prepare_pipeline",
    "preprocess",
    "default_thread_count",
]

import os
import time
import logging
import threading
from collections import deque
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from ..augment.noise import NoiseEngine
from ..augment.scanner import WorkUnit, scan_work_units
from ..errors import ConfigError
from ..fileio.codec import ImageCodec
from ..fileio.label_map import LabelMaps, labels_for_meta
from ..fileio.metadata import CameraInfo, build_output_meta, load_camera_meta
from ..fileio.writer import OutputWriter
from .config import PipelineConfig
from .summary import RunStats
from .worker import worker_main

PathLike = Union[str, os.PathLike]
LOGGER_NAME = "depthaug.orchestration"


# ---------------------------------------------------------------------------
# Shared state
# ---------------------------------------------------------------------------
class WorkQueue:
    """Single FIFO of work units shared by all workers; pop() is the only hot path."""

    def __init__(self, units: Iterable[WorkUnit] = ()):
        self._lock = threading.Lock()
        self._units = deque(units)

    def extend(self, units: Iterable[WorkUnit]) -> None:
        with self._lock:
            self._units.extend(units)

    def pop(self) -> Optional[WorkUnit]:
        """Remove and return the front unit, or None once the queue is empty."""
        with self._lock:
            if not self._units:
                return None
            return self._units.popleft()

    def __len__(self) -> int:
        with self._lock:
            return len(self._units)


class CompletionTracker:
    """Output frame counter plus the shared `finished` flag.

    `try_reserve()` is the budget check: it runs after a frame passed the
    filter and before anything of it is written.
    """

    def __init__(self, max_frame_count: Optional[int] = None):
        self.max_frame_count = max_frame_count
        self._lock = threading.Lock()
        self._count = 0
        self._finished = threading.Event()

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    def finish(self) -> None:
        self._finished.set()

    def wait(self, timeout: float) -> bool:
        return self._finished.wait(timeout)

    def try_reserve(self, n_frames: int) -> bool:
        with self._lock:
            if self.max_frame_count is not None and self._count >= self.max_frame_count:
                self._finished.set()
                return False
            self._count += n_frames
            return True


class Pipeline:
    """Everything a worker needs, built once on the main thread.

    Config, label tables and the noise engine are read-only once workers
    start. Queue, tracker, stats and writer counters carry their own locks.
    """

    def __init__(self, config: PipelineConfig, src_dir: PathLike, dst_dir: PathLike,
                 label_maps: LabelMaps, camera: CameraInfo,
                 codec: Optional[ImageCodec] = None):
        self.config = config
        self.src_dir = Path(src_dir)
        self.dst_dir = Path(dst_dir)
        self.label_maps = label_maps
        self.camera = camera
        self.codec = codec or ImageCodec()
        self.writer = OutputWriter(self.src_dir, self.dst_dir, self.codec,
                                   depth_format=config.depth_format,
                                   palettized=config.palettized_labels)
        self.noise = NoiseEngine(config.noise_ops, seed=config.seed)
        self.queue = WorkQueue()
        self.tracker = CompletionTracker(config.max_frame_count)
        self.stats = RunStats()
        self._error_lock = threading.Lock()
        self.fatal_error: Optional[BaseException] = None

    @property
    def finished(self) -> bool:
        return self.tracker.finished

    def abort(self, error: BaseException) -> None:
        """Record the first fatal error and stop all workers at their next frame boundary."""
        with self._error_lock:
            if self.fatal_error is None:
                self.fatal_error = error
        self.tracker.finish()


def default_thread_count() -> int:
    return os.cpu_count() or 1


# ---------------------------------------------------------------------------
# Pool driver
# ---------------------------------------------------------------------------
def _progress_target(pipeline: Pipeline, n_input_frames: int) -> int:
    if pipeline.config.max_frame_count is not None:
        return pipeline.config.max_frame_count
    return n_input_frames * pipeline.config.variants_per_frame


def run_pipeline(pipeline: Pipeline, units: List[WorkUnit],
                 poll_interval: float = 1.0) -> None:
    """Queue `units`, run the worker pool to completion and join it.

    Raises the first fatal worker error (after every thread has stopped).
    """
    logger = logging.getLogger(LOGGER_NAME)
    n_input_frames = sum(len(u) for u in units)
    pipeline.queue.extend(units)

    n_threads = pipeline.config.n_threads or default_thread_count()
    logger.info(f"Spawning {n_threads} worker threads")

    start = time.perf_counter()
    threads = []
    for idx in range(n_threads):
        t = threading.Thread(target=worker_main, args=(pipeline, idx),
                             name=f"worker-{idx}")
        t.start()
        threads.append(t)
        logger.debug(f"Spawned worker thread {idx}")

    target = _progress_target(pipeline, n_input_frames)
    while True:
        n_jobs = len(pipeline.queue)
        if n_jobs == 0 or pipeline.finished:
            break
        count = pipeline.tracker.count
        progress = int(100.0 * count / target) if target else 100
        logger.info(f"Progress = {progress:3d}%: {count:10d} / {target:<10d} ({n_jobs} jobs remaining)")
        pipeline.tracker.wait(poll_interval)

    for t in threads:
        t.join()

    duration = time.perf_counter() - start
    logger.info(f"Finished processing all frames in {duration:.3f}s")

    if pipeline.fatal_error is not None:
        raise pipeline.fatal_error


# ---------------------------------------------------------------------------
# Setup helpers
# ---------------------------------------------------------------------------
def prepare_pipeline(src_dir: PathLike, dst_dir: PathLike, label_map_path: PathLike,
                     config: PipelineConfig,
                     codec: Optional[ImageCodec] = None) -> Tuple[Pipeline, List[WorkUnit]]:
    """Load label tables and camera metadata, scan the tree and write the output meta.json.

    Raises ConfigError / LabelMapError before any unit is queued.
    """
    logger = logging.getLogger(LOGGER_NAME)

    label_maps = LabelMaps.from_file(label_map_path)
    logger.info(f"Loaded {label_maps.n_labels} labels from {label_map_path}")
    meta, camera = load_camera_meta(src_dir)
    logger.info(f"Data rendered at {camera.width}x{camera.height} "
                f"with fov = {camera.vertical_fov:.3f}")

    logger.info("Queuing frames to process...")
    start = time.perf_counter()
    try:
        units = scan_work_units(src_dir, sort_entries=config.sort_entries)
    except OSError as e:
        raise ConfigError(f"Failed to scan {src_dir}: {e}") from e
    logger.info(f"{len(units)} directories queued to process, "
                f"in {time.perf_counter() - start:.3f}s")

    pipeline = Pipeline(config, src_dir, dst_dir, label_maps, camera, codec=codec)
    pipeline.writer.write_meta(build_output_meta(meta, labels_for_meta(list(label_maps.entries))))
    return pipeline, units


def preprocess(src_dir: PathLike, dst_dir: PathLike, label_map_path: PathLike,
               config: Optional[PipelineConfig] = None,
               codec: Optional[ImageCodec] = None,
               poll_interval: float = 1.0) -> Pipeline:
    """Run the whole pre-processing pass and return the finished pipeline."""
    pipeline, units = prepare_pipeline(src_dir, dst_dir, label_map_path,
                                       config or PipelineConfig(), codec=codec)
    run_pipeline(pipeline, units, poll_interval=poll_interval)
    return pipeline
