"""Sequence protocols.

A protocol holds the (immutable) acquisition settings of one pulse sequence and
maps a tissue model plus parameter vector to the predicted complex signal, one
entry per acquisition. Protocols are validated on construction so a malformed
protocol can never reach the voxel loop; after that they are read-only and
shared by every worker thread.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Type

import numpy as np

from quitpy.core.validation import ConfigurationError
from quitpy.models.model import TissueModel
from quitpy.sequences.signal_equations import one_multiecho, one_spgr


def _parse_float_list(raw, what: str) -> np.ndarray:
    if isinstance(raw, str):
        items = [x for x in raw.replace(';', ',').replace(' ', ',').split(',') if x.strip() != '']
    else:
        items = list(raw)
    try:
        values = np.array([float(x) for x in items], dtype=np.float64)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Invalid {what}: could not parse {raw!r} as a list of numbers.\n"
            f"Use a comma-separated list, e.g. '5,10,15'."
        ) from None
    return values


def _positive_float(raw, what: str) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid {what} value: must be a number.\nCurrent value: '{raw}'") from None
    if not np.isfinite(value) or value <= 0:
        raise ConfigurationError(f"Invalid {what}: {value}\n{what} must be positive.")
    return value


class SequenceBase:
    """Interface shared by all protocols."""

    name: str = ""

    @property
    def size(self) -> int:
        raise NotImplementedError

    def signal(self, model: TissueModel, parameters) -> np.ndarray:
        raise NotImplementedError

    def describe(self) -> Dict[str, Any]:
        return {'type': self.name, 'size': self.size}

    def __str__(self) -> str:
        return ", ".join(f"{k}={v}" for k, v in self.describe().items())


class SPGRSimple(SequenceBase):
    """Spoiled gradient echo with a variable flip angle per acquisition.

    :param flip_angles: flip angles in degrees
    :param TR: repetition time (seconds)
    """

    name = 'SPGR'

    def __init__(self, flip_angles, TR) -> None:
        flip_deg = _parse_float_list(flip_angles, 'flip_angles')
        if flip_deg.size == 0:
            raise ConfigurationError("SPGR protocol needs at least one flip angle.")
        if not np.all(np.isfinite(flip_deg)) or np.any(flip_deg <= 0) or np.any(flip_deg >= 180):
            raise ConfigurationError(
                f"Invalid SPGR flip angles: {flip_deg.tolist()}\n"
                f"Flip angles are given in degrees and must lie in (0, 180)."
            )
        self._TR = _positive_float(TR, 'TR')
        self._flip = np.deg2rad(flip_deg)
        self._flip.setflags(write=False)

    @property
    def size(self) -> int:
        return int(self._flip.shape[0])

    @property
    def TR(self) -> float:
        return self._TR

    @property
    def flip(self) -> np.ndarray:
        return self._flip

    def signal(self, model: TissueModel, parameters) -> np.ndarray:
        p = model.check(parameters)
        PD, B1 = model.pd(p), model.b1(p)
        s = np.zeros(self.size, dtype=np.complex128)
        for fraction, T1, _T2 in model.compartments(p):
            s += fraction * one_spgr(self._flip, self._TR, PD, T1, B1)
        return s

    def describe(self) -> Dict[str, Any]:
        return {
            'type': self.name,
            'size': self.size,
            'TR': self._TR,
            'flip_angles': [round(float(a), 4) for a in np.rad2deg(self._flip)],
        }


class MultiEcho(SequenceBase):
    """Multi-echo spin echo; echo ``k`` (1-based) is acquired at ``k * echo_spacing``.

    :param echo_spacing: echo spacing (seconds)
    :param echo_count: number of echoes
    :param TR: repetition time (seconds)
    """

    name = 'SPINECHO'

    def __init__(self, echo_spacing, echo_count, TR) -> None:
        self._ESP = _positive_float(echo_spacing, 'echo_spacing')
        try:
            n = int(echo_count)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid echo_count value: must be an integer.\nCurrent value: '{echo_count}'") from None
        if n < 1:
            raise ConfigurationError(f"Invalid echo_count: {n}\nAt least one echo is required.")
        self._TR = _positive_float(TR, 'TR')
        self._TE = self._ESP * np.arange(1, n + 1, dtype=np.float64)
        self._TE.setflags(write=False)

    @property
    def size(self) -> int:
        return int(self._TE.shape[0])

    @property
    def TR(self) -> float:
        return self._TR

    @property
    def TE(self) -> np.ndarray:
        return self._TE

    def signal(self, model: TissueModel, parameters) -> np.ndarray:
        p = model.check(parameters)
        PD = model.pd(p)
        s = np.zeros(self.size, dtype=np.complex128)
        for fraction, T1, T2 in model.compartments(p):
            s += fraction * one_multiecho(self._TE, self._TR, PD, T1, T2)
        return s

    def describe(self) -> Dict[str, Any]:
        return {'type': self.name, 'size': self.size, 'TR': self._TR, 'echo_spacing': self._ESP}


SEQUENCES: Dict[str, Type[SequenceBase]] = {
    'SPGR': SPGRSimple,
    'SPINECHO': MultiEcho,
}


def build_sequence(options: Mapping[str, Any]) -> SequenceBase:
    """Construct a protocol from resolved options (e.g. an INI ``[SEQUENCE]`` section).

    Keys are case-insensitive: ``type`` plus ``TR`` and ``flip_angles`` (SPGR) or
    ``TR``, ``echo_spacing`` and ``echo_count`` (SPINECHO).
    """
    opts = {str(k).strip().lower(): v for k, v in dict(options).items()}
    seq_type = str(opts.get('type', 'SPGR') or 'SPGR').strip().upper()
    if seq_type not in SEQUENCES:
        raise ConfigurationError(
            f"Unknown sequence type: '{seq_type}'\n"
            f"Valid options are: {', '.join(SEQUENCES)}"
        )

    def _require(key: str, description: str):
        if key not in opts or str(opts[key]).strip() == '':
            raise ConfigurationError(
                f"Missing required sequence option '{key}' for {seq_type}.\n"
                f"This should specify the {description}."
            )
        return opts[key]

    if seq_type == 'SPGR':
        return SPGRSimple(
            flip_angles=_require('flip_angles', 'flip angles in degrees (comma-separated)'),
            TR=_require('tr', 'repetition time in seconds'),
        )
    return MultiEcho(
        echo_spacing=_require('echo_spacing', 'echo spacing in seconds'),
        echo_count=_require('echo_count', 'number of echoes'),
        TR=_require('tr', 'repetition time in seconds'),
    )
