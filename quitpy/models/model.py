"""Tissue models: number, names and meaning of the free parameters.

A model does not know any signal equation. It only tells a sequence how a
parameter vector splits into compartments ``(fraction, T1, T2)`` plus the shared
scalars (``PD``, off-resonance ``f0`` and the ``B1`` flip-angle ratio). The
sequence then weights each single-compartment signal by its fraction.

Parameter layouts
-----------------
- 1C / SCD : PD, T1, T2, f0, B1
- 2C / MCD2: PD, T1_m, T2_m, T1_ie, T2_ie, tau_m, f_m, f0, B1
- 3C / MCD3: PD, T1_m, T2_m, T1_ie, T2_ie, T1_csf, T2_csf, tau_m, f_m, f_csf, f0, B1

Multi-compartment variants use the slow-exchange limit: ``tau_m`` is carried as
a parameter but compartments are summed without exchange.
"""

from __future__ import annotations

from typing import Dict, List, Tuple, Type

import numpy as np

from quitpy.core.validation import ConfigurationError

Compartment = Tuple[float, float, float]


class TissueModel:
    """Base class; subclasses fill in ``_NAMES``/``_DEFAULTS`` and ``compartments``."""

    _NAME: str = ""
    _NAMES: Tuple[str, ...] = ()
    _DEFAULTS: Tuple[float, ...] = ()

    @property
    def name(self) -> str:
        return self._NAME

    @property
    def names(self) -> Tuple[str, ...]:
        return self._NAMES

    @property
    def n_parameters(self) -> int:
        return len(self._NAMES)

    def index(self, parameter: str) -> int:
        try:
            return self._NAMES.index(parameter)
        except ValueError:
            raise ConfigurationError(
                f"Model {self.name} has no parameter '{parameter}'.\n"
                f"Valid parameters: {', '.join(self._NAMES)}"
            ) from None

    def default_parameters(self) -> np.ndarray:
        return np.array(self._DEFAULTS, dtype=np.float64)

    def check(self, parameters) -> np.ndarray:
        p = np.asarray(parameters, dtype=np.float64)
        if p.shape != (self.n_parameters,):
            raise ConfigurationError(
                f"Model {self.name} expects {self.n_parameters} parameters "
                f"({', '.join(self._NAMES)}), got shape {p.shape}"
            )
        return p

    def pd(self, parameters) -> float:
        return float(parameters[0])

    def f0(self, parameters) -> float:
        return float(parameters[-2])

    def b1(self, parameters) -> float:
        return float(parameters[-1])

    def compartments(self, parameters) -> List[Compartment]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({', '.join(self._NAMES)})"


class SCD(TissueModel):
    _NAME = "1C"
    _NAMES = ("PD", "T1", "T2", "f0", "B1")
    _DEFAULTS = (1.0, 1.0, 0.1, 0.0, 1.0)

    def compartments(self, parameters) -> List[Compartment]:
        return [(1.0, float(parameters[1]), float(parameters[2]))]


class MCD2(TissueModel):
    _NAME = "2C"
    _NAMES = ("PD", "T1_m", "T2_m", "T1_ie", "T2_ie", "tau_m", "f_m", "f0", "B1")
    _DEFAULTS = (1.0, 0.465, 0.012, 1.07, 0.09, 0.18, 0.2, 0.0, 1.0)

    def compartments(self, parameters) -> List[Compartment]:
        f_m = float(parameters[6])
        return [
            (f_m, float(parameters[1]), float(parameters[2])),
            (1.0 - f_m, float(parameters[3]), float(parameters[4])),
        ]


class MCD3(TissueModel):
    _NAME = "3C"
    _NAMES = (
        "PD", "T1_m", "T2_m", "T1_ie", "T2_ie", "T1_csf", "T2_csf",
        "tau_m", "f_m", "f_csf", "f0", "B1",
    )
    _DEFAULTS = (1.0, 0.465, 0.012, 1.07, 0.09, 3.5, 1.0, 0.18, 0.2, 0.05, 0.0, 1.0)

    def compartments(self, parameters) -> List[Compartment]:
        f_m = float(parameters[8])
        f_csf = float(parameters[9])
        return [
            (f_m, float(parameters[1]), float(parameters[2])),
            (1.0 - f_m - f_csf, float(parameters[3]), float(parameters[4])),
            (f_csf, float(parameters[5]), float(parameters[6])),
        ]


MODELS: Dict[str, Type[TissueModel]] = {
    '1C': SCD,
    '2C': MCD2,
    '3C': MCD3,
}

_MODEL_ALIASES = {
    '1': '1C', 'SCD': '1C',
    '2': '2C', 'MCD2': '2C',
    '3': '3C', 'MCD3': '3C',
}


def get_model(key) -> TissueModel:
    """Instantiate a tissue model from ``1C/2C/3C`` (or ``1/2/3``, ``SCD/MCD2/MCD3``)."""
    k = str(key).strip().upper()
    k = _MODEL_ALIASES.get(k, k)
    if k not in MODELS:
        raise ConfigurationError(
            f"Unknown tissue model: '{key}'\n"
            f"Valid options are: 1C (SCD), 2C (MCD2), 3C (MCD3)"
        )
    return MODELS[k]()
