"""Capability interface between the voxelwise engine and per-voxel fitting code.

The engine only relies on the declared cardinalities and on ``apply``:

- ``num_inputs``: number of data channels (vector images) concatenated into the
  measurement vector;
- ``num_consts`` / ``default_consts()``: scalar covariates per voxel (e.g. B1) and
  the value used when a constant channel is not bound;
- ``num_outputs`` / ``output_names``: one scalar parameter map per output;
- ``apply(sequence, data, consts) -> (outputs, residuals)``: a pure function of its
  arguments, safe to call concurrently from several worker threads.
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

import numpy as np

from quitpy.sequences.sequence import SequenceBase


class Algorithm:
    output_names: Tuple[str, ...] = ()
    const_names: Tuple[str, ...] = ()

    @property
    def num_inputs(self) -> int:
        return 1

    @property
    def num_consts(self) -> int:
        return len(self.const_names)

    @property
    def num_outputs(self) -> int:
        return len(self.output_names)

    def default_consts(self) -> np.ndarray:
        return np.zeros(self.num_consts, dtype=np.float64)

    def check_sequence(self, sequence: SequenceBase) -> None:
        """Raise ``ConfigurationError`` when ``sequence`` cannot be fitted by this algorithm."""

    def apply(
        self,
        sequence: SequenceBase,
        data: np.ndarray,
        consts: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray]:
        raise NotImplementedError

    def describe(self) -> Dict[str, Any]:
        return {'algorithm': type(self).__name__}
