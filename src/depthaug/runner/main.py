"""
main.py - Entry point for the depth/label frame pre-processor.

    depthaug-preprocess [options] <src_dir> <dst_dir> <label_map.json>
"""

import os
import sys
import logging
import argparse
from pathlib import Path
from typing import List, Optional

from ..errors import DepthAugError
from ..fileio.writer import DepthFormat
from ..utils.logging_utils import LOGGER_NAME, close_logging, configure_logging
from .config import PipelineConfig, load_config_file
from .orchestration import prepare_pipeline, run_pipeline
from .summary import RunSummary


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="depthaug-preprocess",
        description="Deduplicate, mirror and add sensor noise to rendered depth/label training frames.",
    )
    parser.add_argument("src_dir", type=Path, help="Source tree with labels/, depth/ and meta.json.")
    parser.add_argument("dst_dir", type=Path, help="Output tree (existing files are kept).")
    parser.add_argument("label_map", type=Path, help="Label map JSON.")

    fmt = parser.add_argument_group("output formats")
    fmt.add_argument("--full", action="store_true",
                     help="Write full-float channel depth images (otherwise writes half-float).")
    fmt.add_argument("--grey", action="store_true",
                     help="Write greyscale not palettized label PNGs.")
    fmt.add_argument("--pfm", action="store_true",
                     help="Write depth data as PFM files (otherwise EXR); requires --full.")

    proc = parser.add_argument_group("processing")
    proc.add_argument("--no-flip", action="store_true", help="Disable flipping of the images.")
    proc.add_argument("--bg-far-clamp-mode", action="store_true",
                      help=("Only clamp depth values farther than 'background_depth_m' "
                            "(otherwise all background depth values are overridden)."))
    proc.add_argument("-c", "--config", type=Path, default=None,
                      help="JSON file with 'properties' and 'noise' pre-processing settings.")
    proc.add_argument("-s", "--seed", type=int, default=0, help="Seed to use for RNG (default: 0).")
    proc.add_argument("-j", "--threads", type=int, default=None,
                      help="Override how many worker threads are run (default: CPU count).")
    proc.add_argument("-m", "--max-frames", type=int, default=None,
                      help="Don't pre-process more than this many output frames.")
    proc.add_argument("--sorted-scan", action="store_true",
                      help="Sort directory entries before numbering frames.")

    log = parser.add_argument_group("logging")
    log.add_argument("--log-dir", type=Path, default=Path("logs"),
                     help="Directory for the rotating log file (default: logs).")
    log.add_argument("--log-level", default="INFO",
                     choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                     help="Console/file log level (default: INFO).")

    args = parser.parse_args(argv)
    if args.pfm and not args.full:
        parser.error("Not possible to write half float data to PFM files (add --full)")
    if args.threads is not None and args.threads < 1:
        parser.error("--threads must be at least 1")
    if args.max_frames is not None and args.max_frames < 0:
        parser.error("--max-frames must be non-negative")
    if args.seed < 0:
        parser.error("--seed must be non-negative")
    return args


def build_config(args: argparse.Namespace) -> PipelineConfig:
    """Defaults <- config file <- command line flags."""
    config = PipelineConfig(logger_level=getattr(logging, args.log_level))
    if args.config is not None:
        config = load_config_file(args.config, base=config)

    if args.pfm:
        depth_format = DepthFormat.PFM
    elif args.full:
        depth_format = DepthFormat.EXR_FLOAT
    else:
        depth_format = DepthFormat.EXR_HALF

    overrides = dict(
        seed=args.seed,
        n_threads=args.threads,
        max_frame_count=args.max_frames,
        depth_format=depth_format,
        palettized_labels=not args.grey,
        sort_entries=args.sorted_scan,
    )
    if args.no_flip:
        overrides["mirror_enabled"] = False
    if args.bg_far_clamp_mode:
        overrides["bg_far_clamp_mode"] = True
    return config.with_overrides(**overrides)


# ---------------------------------------------------------------------------
# Main driver
# ---------------------------------------------------------------------------
def main(argv: Optional[List[str]] = None) -> int:
    """Run the pre-processor; exits non-zero on setup or fatal frame errors."""
    args = parse_args(argv)
    log_path = configure_logging(level=getattr(logging, args.log_level),
                                 log_dir=args.log_dir,
                                 name=LOGGER_NAME,
                                 run_prefix="preprocess")
    try:
        return _run(args, log_path)
    finally:
        close_logging(LOGGER_NAME)


def _run(args: argparse.Namespace, log_path: Path) -> int:
    logger = logging.getLogger(f"{LOGGER_NAME}.main")
    logger.info(f"Process PID: {os.getpid()}")

    try:
        config = build_config(args)
        logger.info(f"PipelineConfig: {config.describe()}")
        pipeline, units = prepare_pipeline(args.src_dir, args.dst_dir, args.label_map, config)
    except (DepthAugError, OSError) as e:
        logger.critical(f"Setup failed: {e}")
        raise SystemExit(1)

    summary = RunSummary(total_units=len(units),
                         total_frames=sum(len(u) for u in units),
                         log_path=log_path)
    failed = False
    try:
        run_pipeline(pipeline, units)
    except Exception as e:
        failed = True
        logger.critical(f"Run aborted due to fatal error: {e}")
        raise SystemExit(1)
    finally:
        summary.finalize(pipeline.stats,
                         files_written=pipeline.writer.n_written,
                         files_skipped=pipeline.writer.n_skipped,
                         failed=failed)
    return 0


if __name__ == "__main__":
    sys.exit(main())
