from __future__ import annotations

import logging
import os

import psutil


def effective_worker_count() -> int:
    """Worker count (use scheduler hints when present)."""

    for key in ("QUITPY_THREADS", "SLURM_CPUS_PER_TASK", "SLURM_CPUS_ON_NODE", "OMP_NUM_THREADS"):
        v = os.environ.get(key, "").strip()
        if not v:
            continue
        try:
            n = int(v)
            if n > 0:
                return n
        except ValueError:
            logging.debug(f"Ignoring non-integer {key}={v!r}")
    return int(psutil.cpu_count(logical=False) or psutil.cpu_count() or 1)


def resolve_worker_count(requested: int | None) -> int:
    """Explicit positive request wins; otherwise fall back to the hardware-derived count."""
    if requested is not None and int(requested) > 0:
        return int(requested)
    return effective_worker_count()
