"""Spatial decomposition and the threaded fork/join used by the voxelwise engines.

Volumes are cut into contiguous slabs along the slowest (last spatial) axis, one
slab per worker. Slabs never overlap, so workers can write straight into shared
output arrays without locking.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Sequence, Tuple

import numpy as np
from joblib import Parallel, delayed

from quitpy.core.progress import SliceProgress

Region = Tuple[int, int]


def split_regions(spatial_shape: Sequence[int], n_regions: int) -> List[Region]:
    """Split ``spatial_shape`` into at most ``n_regions`` non-empty ``(z_start, z_stop)`` slabs."""
    nz = int(spatial_shape[2])
    if nz == 0:
        return []
    n = max(1, min(int(n_regions), nz))
    bounds = np.linspace(0, nz, n + 1).round().astype(int)
    return [(int(bounds[i]), int(bounds[i + 1])) for i in range(n) if bounds[i + 1] > bounds[i]]


def run_regions(
    process: Callable,
    regions: Sequence[Region],
    *,
    n_workers: int,
    desc: str,
    total_slices: int,
) -> None:
    """Run ``process(region, progress)`` for every region on a thread pool and wait for all of them."""
    if not regions:
        return

    n_jobs = max(1, min(int(n_workers), len(regions)))
    logging.debug(f"Dispatching {len(regions)} region(s) over {n_jobs} thread(s)")
    with SliceProgress(total_slices, desc) as progress:
        Parallel(n_jobs=n_jobs, backend='threading')(
            delayed(process)(region, progress) for region in regions
        )
