"""
summary.py - Run statistics and the colorized summary footer.
"""

import time
import threading
from collections import Counter
from pathlib import Path
from typing import Optional

from colorama import Fore, Style


class RunStats:
    """Per-frame counters updated by every worker thread."""

    def __init__(self):
        self._lock = threading.Lock()
        self.units_done = 0
        self.frames_retained = 0
        self.frames_skipped: Counter = Counter()

    def record_retained(self) -> None:
        with self._lock:
            self.frames_retained += 1

    def record_skip(self, reason: str) -> None:
        with self._lock:
            self.frames_skipped[reason] += 1

    def record_unit(self) -> None:
        with self._lock:
            self.units_done += 1


class RunSummary:
    """Collects runtime statistics and prints a colorized summary footer."""

    def __init__(self, total_units: int, total_frames: int, log_path: Optional[Path]):
        self.start_time = time.time()
        self.total_units = total_units
        self.total_frames = total_frames
        self.log_path = log_path

    def finalize(self, stats: RunStats, files_written: int, files_skipped: int,
                 failed: bool = False) -> None:
        end_time = time.time()
        duration = end_time - self.start_time
        throughput = (stats.frames_retained / duration) if duration > 0 else 0.0

        sep = Style.BRIGHT + Fore.WHITE
        title = Style.BRIGHT + Fore.CYAN
        thr_color = Fore.RED if failed else Fore.GREEN
        reset = Style.RESET_ALL

        skipped = ", ".join(f"{k}: {v}" for k, v in sorted(stats.frames_skipped.items())) or "none"
        lines = [
            "",
            f"{sep}{'=' * 78}{reset}",
            f"{title}RUN SUMMARY{reset}",
            f"{sep}{'=' * 78}{reset}",
            f"Start Time    : {time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(self.start_time))}",
            f"End Time      : {time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(end_time))}",
            f"Duration      : {duration:.2f} seconds",
            f"Directories   : {stats.units_done} / {self.total_units}",
            f"Input Frames  : {self.total_frames}",
            f"Retained      : {stats.frames_retained}",
            f"Skipped       : {skipped}",
            f"Files Written : {files_written}",
            f"Files Existing: {files_skipped}",
            f"Status        : {thr_color}{'FAILED' if failed else 'OK'}{reset}",
            f"Throughput    : {thr_color}{throughput:.2f} frames/sec{reset}",
        ]
        if self.log_path is not None:
            lines.append(f"Log File      : {Path(self.log_path).resolve()}")
        lines += [f"{sep}{'=' * 78}{reset}", ""]
        for line in lines:
            print(line)
