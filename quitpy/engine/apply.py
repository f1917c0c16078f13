"""Voxelwise application engine.

:class:`ApplyAlgorithm` binds a sequence protocol, a fitting algorithm, data
channels, optional constant channels and an optional mask, then applies the
algorithm independently to every voxel on a pool of worker threads.

Life cycle::

    configured --setup()--> sized --run()--> running --> complete
         \\______________________\\_____________________--> failed

Binding is only allowed while ``configured``. ``setup()`` validates every
channel against the primary data input's grid and allocates all outputs once,
before any voxel is touched. Output accessors are only available once the run
is ``complete``.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import numpy as np

from quitpy.algorithms.base import Algorithm
from quitpy.core.image import Image
from quitpy.core.progress import SliceProgress
from quitpy.core.resources import resolve_worker_count
from quitpy.core.validation import ConfigurationError, DataError, EngineStateError, validate_same_grid
from quitpy.engine.regions import Region, run_regions, split_regions
from quitpy.sequences.sequence import SequenceBase


CONFIGURED = 'configured'
SIZED = 'sized'
RUNNING = 'running'
COMPLETE = 'complete'
FAILED = 'failed'


class ApplyAlgorithm:
    def __init__(self, n_workers: Optional[int] = None) -> None:
        self._state = CONFIGURED
        self._n_workers = resolve_worker_count(n_workers)

        self._sequence: Optional[SequenceBase] = None
        self._algorithm: Optional[Algorithm] = None
        self._data_inputs: Dict[int, Image] = {}
        self._const_inputs: Dict[int, Image] = {}
        self._mask: Optional[Image] = None

        self._data_arrays: List[np.ndarray] = []
        self._const_arrays: Dict[int, np.ndarray] = {}
        self._mask_array: Optional[np.ndarray] = None
        self._outputs: List[Image] = []
        self._resids: Optional[Image] = None
        self.summary: Dict[str, Any] = {}

    @property
    def state(self) -> str:
        return self._state

    @property
    def n_workers(self) -> int:
        return self._n_workers

    def _require_state(self, allowed: str, action: str) -> None:
        if self._state != allowed:
            raise EngineStateError(
                f"Cannot {action} while the engine is '{self._state}' (requires '{allowed}')."
            )

    # ------------------------------------------------------------------------------- #
    #                                    Binding                                      #
    # ------------------------------------------------------------------------------- #

    def set_sequence(self, sequence: SequenceBase) -> None:
        self._require_state(CONFIGURED, 'assign the sequence')
        self._sequence = sequence

    def set_algorithm(self, algorithm: Algorithm) -> None:
        self._require_state(CONFIGURED, 'assign the algorithm')
        self._algorithm = algorithm

    def set_data_input(self, i: int, image: Image) -> None:
        self._require_state(CONFIGURED, 'assign a data input')
        if i < 0 or (self._algorithm is not None and i >= self._algorithm.num_inputs):
            raise ConfigurationError(f"Data input {i} out of range.")
        self._data_inputs[int(i)] = image

    def set_const_input(self, i: int, image: Image) -> None:
        self._require_state(CONFIGURED, 'assign a constant input')
        if i < 0 or (self._algorithm is not None and i >= self._algorithm.num_consts):
            raise ConfigurationError(f"Const input {i} out of range.")
        self._const_inputs[int(i)] = image

    def set_mask(self, image: Image) -> None:
        self._require_state(CONFIGURED, 'assign the mask')
        self._mask = image

    # ------------------------------------------------------------------------------- #
    #                                     Setup                                       #
    # ------------------------------------------------------------------------------- #

    def setup(self) -> None:
        """Validate every binding and allocate the output maps on the primary grid."""
        self._require_state(CONFIGURED, 'set up')
        try:
            self._check_configuration()
            self._allocate()
        except (ConfigurationError, DataError):
            self._state = FAILED
            raise
        self._state = SIZED

    def _check_configuration(self) -> None:
        if self._sequence is None:
            raise ConfigurationError("No sequence assigned; call set_sequence() before setup().")
        if self._algorithm is None:
            raise ConfigurationError("No algorithm assigned; call set_algorithm() before setup().")

        algo = self._algorithm
        algo.check_sequence(self._sequence)

        missing = [i for i in range(algo.num_inputs) if i not in self._data_inputs]
        if missing:
            raise ConfigurationError(f"Missing required data input(s): {missing}")
        extra = sorted(i for i in self._data_inputs if i >= algo.num_inputs)
        if extra:
            raise ConfigurationError(f"Data input(s) {extra} out of range (algorithm takes {algo.num_inputs}).")
        extra = sorted(i for i in self._const_inputs if i >= algo.num_consts)
        if extra:
            raise ConfigurationError(f"Const input(s) {extra} out of range (algorithm takes {algo.num_consts}).")
        if len(algo.default_consts()) != algo.num_consts:
            raise ConfigurationError(
                f"{type(algo).__name__} declares {algo.num_consts} constant(s) but "
                f"provides {len(algo.default_consts())} default(s)."
            )

        primary = self._data_inputs[0]
        for i in range(1, algo.num_inputs):
            validate_same_grid(primary, self._data_inputs[i], f"Data input {i}")
        for i, img in self._const_inputs.items():
            if img.is_vector:
                raise DataError(f"Const input {i} must be a scalar 3D image, got shape {img.data.shape}")
            validate_same_grid(primary, img, f"Const input {i} ({algo.const_names[i]})")
        if self._mask is not None:
            if self._mask.is_vector:
                raise DataError(f"Mask must be a scalar 3D image, got shape {self._mask.data.shape}")
            validate_same_grid(primary, self._mask, "Mask")

        n_data = sum(self._data_inputs[i].n_components for i in range(algo.num_inputs))
        if n_data != self._sequence.size:
            raise DataError(
                f"Data inputs provide {n_data} volume(s) but the {self._sequence.name} sequence "
                f"describes {self._sequence.size} acquisition(s).\n"
                f"Sequence: {self._sequence}"
            )

    def _allocate(self) -> None:
        algo = self._algorithm
        primary = self._data_inputs[0]
        spatial = primary.spatial_shape

        self._data_arrays = []
        for i in range(algo.num_inputs):
            arr = np.asarray(self._data_inputs[i].data, dtype=np.float64)
            self._data_arrays.append(arr if arr.ndim == 4 else arr[..., np.newaxis])
        self._const_arrays = {
            i: np.asarray(img.data, dtype=np.float64) for i, img in self._const_inputs.items()
        }
        self._mask_array = None if self._mask is None else (np.asarray(self._mask.data) != 0)

        self._outputs = [primary.like(np.zeros(spatial, dtype=np.float64)) for _ in range(algo.num_outputs)]
        self._resids = primary.like(np.zeros(spatial + (self._sequence.size,), dtype=np.float64))

    # ------------------------------------------------------------------------------- #
    #                                      Run                                        #
    # ------------------------------------------------------------------------------- #

    def run(self) -> None:
        """Apply the algorithm to every active voxel; blocks until all regions are done."""
        self._require_state(SIZED, 'run')
        self._state = RUNNING

        spatial = self._data_inputs[0].spatial_shape
        regions = split_regions(spatial, self._n_workers)
        n_active = int(np.prod(spatial)) if self._mask_array is None else int(self._mask_array.sum())
        logging.info(
            f"Applying {type(self._algorithm).__name__} to {n_active:,} of {int(np.prod(spatial)):,} voxels "
            f"({len(regions)} region(s), {self._n_workers} worker(s))"
        )

        start = time.time()
        try:
            run_regions(
                self._process_region,
                regions,
                n_workers=self._n_workers,
                desc=type(self._algorithm).__name__,
                total_slices=int(spatial[2]),
            )
        except Exception:
            self._state = FAILED
            raise
        elapsed = float(time.time() - start)
        self._state = COMPLETE

        n_degenerate = self._count_degenerate()
        self.summary = {
            'voxels': int(np.prod(spatial)),
            'active_voxels': n_active,
            'degenerate_voxels': n_degenerate,
            'regions': len(regions),
            'workers': self._n_workers,
            'elapsed_s': elapsed,
        }
        logging.info(f"Voxelwise fit complete in {elapsed:.4f} seconds")
        if n_degenerate:
            logging.warning(
                f"{n_degenerate:,} voxel(s) produced non-finite parameters (degenerate fits); "
                f"they are kept as-is in memory and written as 0."
            )

    def _process_region(self, region: Region, progress: SliceProgress) -> None:
        z_start, z_stop = region
        nx, ny, _ = self._data_inputs[0].spatial_shape
        algo = self._algorithm
        sequence = self._sequence
        defaults = np.asarray(algo.default_consts(), dtype=np.float64)
        mask = self._mask_array
        out_arrays = [img.data for img in self._outputs]
        resid_array = self._resids.data

        for k in range(z_start, z_stop):
            for j in range(ny):
                for i in range(nx):
                    if mask is not None and not mask[i, j, k]:
                        continue
                    consts = defaults.copy()
                    for c, arr in self._const_arrays.items():
                        consts[c] = arr[i, j, k]
                    if len(self._data_arrays) == 1:
                        data = self._data_arrays[0][i, j, k, :]
                    else:
                        data = np.concatenate([arr[i, j, k, :] for arr in self._data_arrays])

                    outputs, resids = algo.apply(sequence, data, consts)
                    for o, out in enumerate(out_arrays):
                        out[i, j, k] = outputs[o]
                    resid_array[i, j, k, :] = resids
            progress.advance()

    def _count_degenerate(self) -> int:
        if not self._outputs:
            return 0
        bad = np.zeros(self._outputs[0].spatial_shape, dtype=bool)
        for img in self._outputs:
            bad |= ~np.isfinite(img.data)
        return int(bad.sum())

    # ------------------------------------------------------------------------------- #
    #                                   Accessors                                     #
    # ------------------------------------------------------------------------------- #

    def output(self, i: int) -> Image:
        self._require_state(COMPLETE, 'read outputs')
        if i < 0 or i >= len(self._outputs):
            raise IndexError(f"Output {i} out of range ({len(self._outputs)} outputs).")
        return self._outputs[i]

    def output_by_name(self, name: str) -> Image:
        self._require_state(COMPLETE, 'read outputs')
        names = list(self._algorithm.output_names)
        if name not in names:
            raise KeyError(f"No output named '{name}'. Available: {', '.join(names)}")
        return self._outputs[names.index(name)]

    def outputs(self) -> Dict[str, Image]:
        self._require_state(COMPLETE, 'read outputs')
        return dict(zip(self._algorithm.output_names, self._outputs))

    def residuals(self) -> Image:
        self._require_state(COMPLETE, 'read residuals')
        return self._resids
