"""Closed-form single-compartment signal equations.

All times share one unit (seconds by convention); angles are in radians.
Equations return complex arrays so that sequences with phase terms share the
same interface; the ones implemented here are real-valued.
"""

from __future__ import annotations

import numpy as np


def one_spgr(flip, TR: float, PD: float, T1: float, B1: float = 1.0) -> np.ndarray:
    r"""Spoiled gradient-echo steady state.

    .. math::
        S = PD \frac{(1 - E_1)\sin(B_1\alpha)}{1 - E_1\cos(B_1\alpha)}, \quad E_1 = e^{-TR/T_1}
    """
    alpha = np.asarray(flip, dtype=np.float64) * B1
    with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
        E1 = np.exp(-TR / np.float64(T1))
        s = PD * (1.0 - E1) * np.sin(alpha) / (1.0 - E1 * np.cos(alpha))
    return s.astype(np.complex128)


def one_multiecho(TE, TR: float, PD: float, T1: float, T2: float) -> np.ndarray:
    r"""Multi-echo spin echo with partial T1 recovery.

    .. math::
        S(TE) = PD (1 - e^{-TR/T_1}) e^{-TE/T_2}
    """
    te = np.asarray(TE, dtype=np.float64)
    with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
        s = PD * (1.0 - np.exp(-TR / np.float64(T1))) * np.exp(-te / np.float64(T2))
    return s.astype(np.complex128)
