"""DESPOT1: T1 and PD from variable flip-angle spoiled gradient echo data.

The SPGR steady state can be linearised as

.. math::
    \\frac{S}{\\sin\\alpha} = E_1 \\frac{S}{\\tan\\alpha} + PD(1 - E_1)

so a straight-line fit of ``S/sin(a)`` against ``S/tan(a)`` gives the slope
``E1 = exp(-TR/T1)`` and the intercept ``PD (1 - E1)``. Three strategies are
available and all produce the same outputs:

- ``LLS``: one ordinary least-squares solve of the linearised system;
- ``WLLS``: the LLS solve repeated ``iterations`` times, each pass re-weighting
  acquisitions with ``(sin a / (1 - E1 cos a))**2`` from the previous T1 estimate;
- ``NLLS``: Levenberg-Marquardt with a finite-difference Jacobian on the magnitude
  signal, started from the LLS estimate, with an evaluation budget of
  ``iterations * (n_acquisitions + 1)``.

B1 (the flip-angle scaling ratio) is the single per-voxel constant, 1.0 when no
B1 map is given. Residuals are always ``measured - theoretical`` recomputed from
the final PD/T1. Degenerate voxels never raise: their PD/T1 are whatever the solve
produced (possibly negative or non-finite).

References
----------
.. [1] Deoni SCL, Rutt BK, Peters TM. Rapid combined T1 and T2 mapping using
       gradient recalled acquisition in the steady state. MRM 2003;49:515-526.
.. [2] Chang LC et al. Linear least-squares method for unbiased estimation of
       T1 from SPGR signals. MRM 2008;60:496-501.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, Optional, Tuple

import numpy as np
from scipy import optimize

from quitpy.algorithms.base import Algorithm
from quitpy.core.validation import ConfigurationError
from quitpy.models.model import SCD
from quitpy.sequences.sequence import SequenceBase, SPGRSimple
from quitpy.sequences.signal_equations import one_spgr


FIT_TYPES = ('LLS', 'WLLS', 'NLLS')

_FIT_ALIASES = {
    'L': 'LLS',
    'W': 'WLLS',
    'N': 'NLLS',
}


def normalize_fit_type(value: Optional[str]) -> str:
    if value is None:
        return 'LLS'
    v = str(value).strip().upper()
    v = _FIT_ALIASES.get(v, v)
    if v not in FIT_TYPES:
        raise ConfigurationError(
            "Invalid DESPOT1 algorithm.\n"
            "Valid options: LLS (l) | WLLS (w) | NLLS (n)\n"
            f"Current value: '{value}'"
        )
    return v


def _solve(X: np.ndarray, Y: np.ndarray, W: Optional[np.ndarray] = None) -> np.ndarray:
    """Normal-equations solve of ``X b = Y`` (optionally weighted); NaN when singular."""
    if W is None:
        XtW = X.T
    else:
        XtW = X.T * W[np.newaxis, :]
    try:
        return np.linalg.solve(XtW @ X, XtW @ Y)
    except np.linalg.LinAlgError:
        return np.full(X.shape[1], np.nan)


def _pd_t1(b: np.ndarray, TR: float) -> Tuple[float, float]:
    with np.errstate(divide='ignore', invalid='ignore'):
        T1 = -TR / np.log(b[0])
        PD = b[1] / (1.0 - b[0])
    return float(PD), float(T1)


class DESPOT1(Algorithm):
    output_names = ('PD', 'T1')
    const_names = ('B1',)

    def __init__(self, fit_type: Optional[str] = 'LLS', iterations: int = 4) -> None:
        self._fit_type = normalize_fit_type(fit_type)
        try:
            its = int(iterations)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"Invalid iterations value: must be an integer.\nCurrent value: '{iterations}'"
            ) from None
        if its < 1:
            raise ConfigurationError(f"Invalid iterations: {its}\nMust be a positive integer.")
        self._iterations = its
        self._model = SCD()

    @property
    def fit_type(self) -> str:
        return self._fit_type

    @property
    def iterations(self) -> int:
        return self._iterations

    def default_consts(self) -> np.ndarray:
        return np.ones(1, dtype=np.float64)

    def check_sequence(self, sequence: SequenceBase) -> None:
        if not isinstance(sequence, SPGRSimple):
            raise ConfigurationError(
                f"DESPOT1 needs an SPGR sequence, got '{getattr(sequence, 'name', type(sequence).__name__)}'."
            )
        if sequence.size < 2:
            raise ConfigurationError(
                f"DESPOT1 needs at least 2 flip angles to fit PD and T1, got {sequence.size}."
            )

    def _design(self, sequence: SPGRSimple, data: np.ndarray, B1: float):
        flip = sequence.flip * B1
        with np.errstate(divide='ignore', invalid='ignore'):
            Y = data / np.sin(flip)
            X = np.column_stack([data / np.tan(flip), np.ones_like(data)])
        return flip, X, Y

    def reweighted_estimates(
        self,
        sequence: SPGRSimple,
        data: np.ndarray,
        B1: float = 1.0,
        iterations: Optional[int] = None,
    ) -> Iterator[Tuple[float, float]]:
        """Yield ``(PD, T1)``: the LLS estimate, then one estimate per re-weighting pass."""
        n_its = self._iterations if iterations is None else int(iterations)
        flip, X, Y = self._design(sequence, data, B1)
        PD, T1 = _pd_t1(_solve(X, Y), sequence.TR)
        yield PD, T1
        for _ in range(n_its):
            with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
                W = (np.sin(flip) / (1.0 - np.exp(-sequence.TR / T1) * np.cos(flip))) ** 2
            PD, T1 = _pd_t1(_solve(X, Y, W), sequence.TR)
            yield PD, T1

    def _nlls_residuals(self, params: np.ndarray, sequence: SPGRSimple, data: np.ndarray, B1: float) -> np.ndarray:
        full = np.zeros(self._model.n_parameters)
        full[:2] = params
        full[-1] = B1
        return np.abs(sequence.signal(self._model, full)) - data

    def _nlls(self, sequence: SPGRSimple, data: np.ndarray, B1: float, start: np.ndarray) -> np.ndarray:
        x0 = np.where(np.isfinite(start), start, 0.0)
        try:
            res = optimize.least_squares(
                self._nlls_residuals,
                x0,
                method='lm',
                max_nfev=self._iterations * (sequence.size + 1),
                args=(sequence, data, B1),
            )
        except (ValueError, np.linalg.LinAlgError) as e:
            logging.debug(f"DESPOT1 NLLS failed for one voxel ({e}); keeping the starting estimate")
            return x0
        return res.x

    def apply(
        self,
        sequence: SPGRSimple,
        data: np.ndarray,
        consts: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray]:
        data = np.asarray(data, dtype=np.float64)
        B1 = float(consts[0])

        if self._fit_type == 'WLLS':
            estimates = list(self.reweighted_estimates(sequence, data, B1))
            outputs = np.array(estimates[-1])
        else:
            outputs = np.array(next(self.reweighted_estimates(sequence, data, B1, iterations=0)))
            if self._fit_type == 'NLLS':
                outputs = self._nlls(sequence, data, B1, outputs)

        theory = np.abs(one_spgr(sequence.flip, sequence.TR, outputs[0], outputs[1], B1))
        resids = data - theory
        return outputs, resids

    def describe(self) -> Dict[str, Any]:
        return {'algorithm': 'DESPOT1', 'fit_type': self._fit_type, 'iterations': self._iterations}
