"""Slice-level progress reporting for the voxelwise engines.

Worker threads share one bar per run and report each finished z-slice.
Bars are hidden in quiet mode, when ``QUITPY_PROGRESS=0``, or when stderr is
not a terminal.
"""

from __future__ import annotations

import os
import sys
import threading
from typing import Optional

from tqdm import tqdm


BAR_FORMAT = "|{bar:60}|{percentage:3.0f}% ({n_fmt}/{total_fmt} slices) [{desc}: {elapsed} < {remaining}]"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}

_forced: Optional[bool] = None


def set_progress_enabled(enabled: Optional[bool]) -> None:
    """Force bars on/off for the rest of the process; ``None`` restores auto-detection."""
    global _forced
    _forced = enabled


def progress_enabled() -> bool:
    if _forced is not None:
        return _forced

    env = os.environ.get("QUITPY_PROGRESS", "").strip().lower()
    if env in _TRUE:
        return True
    if env in _FALSE:
        return False

    isatty = getattr(sys.stderr, "isatty", None)
    return bool(isatty and isatty())


class SliceProgress:
    """Thread-safe slice counter drawn as a tqdm bar.

    Use as a context manager around the threaded pass; workers call
    :meth:`advance` once per finished slice.
    """

    def __init__(self, total: int, desc: str) -> None:
        self.total = int(total)
        self.done = 0
        self._lock = threading.Lock()
        self._bar = tqdm(
            total=self.total,
            desc=str(desc),
            ascii=True,
            bar_format=BAR_FORMAT,
            disable=not progress_enabled(),
        )

    def advance(self, n: int = 1) -> None:
        with self._lock:
            self.done += n
            self._bar.update(n)

    def close(self) -> None:
        self._bar.close()

    def __enter__(self) -> "SliceProgress":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
